"""Orchestration over the watch status data service"""

from collections.abc import Callable, Iterable
from typing import Optional, Protocol

from kink import di

from keepwatching.db.watch_status_db import WatchStatusDbService
from keepwatching.exceptions import DatabaseError
from keepwatching.media.models import (
    StatusChange,
    StatusUpdateResult,
    WatchStatusServiceResult,
)
from keepwatching.media.state import WatchStatus
from keepwatching.utils.logging import logger

_GROUP_ORDER = ("show", "season", "episode")


class ProfileCacheInvalidator(Protocol):
    """Anything that can drop the cached show data of a profile."""

    def invalidate_profile_cache(self, account_id: int, profile_id: int) -> None: ...


def format_changes_message(changes: Iterable[StatusChange]) -> str:
    """
    Summarize changes grouped by level, e.g.
    "Updated status for 1 show, 1 season, 3 episodes".
    """

    counts = dict.fromkeys(_GROUP_ORDER, 0)
    for change in changes:
        counts[change.entity_type] += 1

    parts = [
        f"{count} {entity_type}{'' if count == 1 else 's'}"
        for entity_type, count in counts.items()
        if count
    ]
    if not parts:
        return "No status changes occurred"
    return "Updated status for " + ", ".join(parts)


def _has_show_change(changes: Iterable[StatusChange]) -> bool:
    return any(c.entity_type == "show" for c in changes)


class WatchStatusService:
    """
    Entry point used by the rest of the application.

    Wraps each data service call, turns an unsuccessful result into a
    DatabaseError, invalidates the profile cache when a show level status moved
    and attaches a readable message to the result.
    """

    def __init__(
        self,
        show_service: ProfileCacheInvalidator,
        db_service: Optional[WatchStatusDbService] = None,
    ):
        self.show_service = show_service
        self.db_service = db_service or di[WatchStatusDbService]

    def update_episode_watch_status(
        self, account_id: int, profile_id: int, episode_id: int, status: WatchStatus
    ) -> WatchStatusServiceResult:
        return self._run(
            f"update_episode_watch_status({profile_id}, {episode_id}, {_name(status)})",
            lambda: self.db_service.update_episode_watch_status(
                profile_id, episode_id, status
            ),
            "Failed to update episode watch status",
            account_id,
            profile_id,
        )

    def update_season_watch_status(
        self, account_id: int, profile_id: int, season_id: int, status: WatchStatus
    ) -> WatchStatusServiceResult:
        return self._run(
            f"update_season_watch_status({profile_id}, {season_id}, {_name(status)})",
            lambda: self.db_service.update_season_watch_status(
                profile_id, season_id, status
            ),
            "Failed to update season watch status",
            account_id,
            profile_id,
        )

    def update_show_watch_status(
        self, account_id: int, profile_id: int, show_id: int, status: WatchStatus
    ) -> WatchStatusServiceResult:
        """Marking a whole show always invalidates the profile cache."""

        return self._run(
            f"update_show_watch_status({profile_id}, {show_id}, {_name(status)})",
            lambda: self.db_service.update_show_watch_status(
                profile_id, show_id, status
            ),
            "Failed to update show watch status",
            account_id,
            profile_id,
            always_invalidate=True,
        )

    def check_and_update_show_watch_status(
        self, account_id: int, profile_id: int, show_id: int
    ) -> WatchStatusServiceResult:
        return self._run(
            f"check_and_update_show_watch_status({account_id}, {profile_id}, {show_id})",
            lambda: self.db_service.check_and_update_show_watch_status(
                profile_id, show_id
            ),
            "Failed to recalculate and update show watch status",
            account_id,
            profile_id,
            unchanged_message="Show status is already correct",
        )

    def check_and_update_movie_watch_status(
        self, profile_id: int, movie_id: int
    ) -> WatchStatusServiceResult:
        """Movies live outside the show hierarchy, so no cache is invalidated."""

        return self._run(
            f"check_and_update_movie_watch_status({profile_id}, {movie_id})",
            lambda: self.db_service.check_and_update_movie_watch_status(
                profile_id, movie_id
            ),
            "Failed to check and update movie watch status",
            unchanged_message="Movie status is current",
        )

    def _run(
        self,
        signature: str,
        operation: Callable[[], StatusUpdateResult],
        failure_message: str,
        account_id: Optional[int] = None,
        profile_id: Optional[int] = None,
        always_invalidate: bool = False,
        unchanged_message: Optional[str] = None,
    ) -> WatchStatusServiceResult:
        try:
            result = operation()
            if not result.success:
                raise DatabaseError(failure_message)

            if account_id is not None and (
                always_invalidate or _has_show_change(result.changes)
            ):
                self.show_service.invalidate_profile_cache(account_id, profile_id)

            if not result.changes and unchanged_message:
                message = unchanged_message
            else:
                message = format_changes_message(result.changes)

            return WatchStatusServiceResult(
                success=True,
                changes=result.changes,
                affected_rows=result.affected_rows,
                message=message,
            )
        except Exception as e:
            logger.error(f"Error in {signature}: {e}")
            raise


def _name(status: WatchStatus | str) -> str:
    return status.value if isinstance(status, WatchStatus) else str(status)
