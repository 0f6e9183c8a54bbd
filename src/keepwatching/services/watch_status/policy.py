"""
Status policy: derives the correct status of an episode, season or show from
the statuses of its children and its air-date facts.

Everything here is pure. Callers pass `today` when they need a fixed reference
date; otherwise the local date is used.
"""

from collections.abc import Iterable, Sequence
from datetime import date
from typing import Optional

from keepwatching.media.models import (
    WatchStatusEpisode,
    WatchStatusSeason,
    WatchStatusShow,
)
from keepwatching.media.state import WatchStatus

STARTED_STATUSES = frozenset({WatchStatus.WATCHING, WatchStatus.WATCHED})
COMPLETE_STATUSES = frozenset({WatchStatus.WATCHED, WatchStatus.UP_TO_DATE})


def _today(today: Optional[date]) -> date:
    return today or date.today()


class WatchStatusPolicy:
    """Pure status calculations for every level of the catalog"""

    def has_aired(self, air_date: Optional[date], today: Optional[date] = None) -> bool:
        """An unknown air date counts as not aired yet."""
        return air_date is not None and air_date <= _today(today)

    def calculate_episode_status(
        self, episode: WatchStatusEpisode, today: Optional[date] = None
    ) -> WatchStatus:
        """
        UNAIRED while the episode has no air date or airs after `today`,
        otherwise whatever the user set (NOT_WATCHED when nothing was set).

        A stored UNAIRED whose air date has passed becomes NOT_WATCHED.
        """

        if not self.has_aired(episode.air_date, today):
            return WatchStatus.UNAIRED

        if episode.watch_status in (None, WatchStatus.UNAIRED):
            return WatchStatus.NOT_WATCHED

        return episode.watch_status

    def calculate_season_status(
        self, season: WatchStatusSeason, today: Optional[date] = None
    ) -> WatchStatus:
        """
        Derive a season's status from its episodes' statuses.

        Episode statuses are expected to be normalized by `effective_statuses`,
        so an episode counts as unaired exactly when its air date has not passed.

        - release date known and still ahead -> UNAIRED
        - no episodes, or every episode UNAIRED -> UNAIRED
        - every aired episode WATCHED, nothing unaired, nothing more announced -> WATCHED
        - every aired episode WATCHED, but unaired or announced episodes remain -> UP_TO_DATE
        - any episode WATCHED or WATCHING -> WATCHING
        - otherwise -> NOT_WATCHED
        """

        if season.release_date is not None and not self.has_aired(
            season.release_date, today
        ):
            return WatchStatus.UNAIRED

        statuses = [e.watch_status or WatchStatus.NOT_WATCHED for e in season.episodes]
        if not statuses or all(s == WatchStatus.UNAIRED for s in statuses):
            return WatchStatus.UNAIRED

        aired = [s for s in statuses if s != WatchStatus.UNAIRED]
        has_unaired = len(aired) < len(statuses)

        if all(s == WatchStatus.WATCHED for s in aired):
            return self.determine_completion_status(
                True, season.expecting_more, has_unaired
            )

        if any(s in STARTED_STATUSES for s in aired):
            return WatchStatus.WATCHING

        return WatchStatus.NOT_WATCHED

    def calculate_show_status(self, show: WatchStatusShow) -> WatchStatus:
        """
        Derive a show's status from its seasons' statuses.

        Same tiers as a season. A show still in production, or one with an
        UNAIRED or UP_TO_DATE season, has more content coming and is never
        reported as WATCHED.
        """

        statuses = [s.watch_status or WatchStatus.NOT_WATCHED for s in show.seasons]
        if not statuses or all(s == WatchStatus.UNAIRED for s in statuses):
            return WatchStatus.UNAIRED

        aired = [s for s in statuses if s != WatchStatus.UNAIRED]
        has_upcoming = any(
            s in (WatchStatus.UNAIRED, WatchStatus.UP_TO_DATE) for s in statuses
        )

        if all(s in COMPLETE_STATUSES for s in aired):
            return self.determine_completion_status(
                True, show.in_production, has_upcoming
            )

        if any(s in STARTED_STATUSES or s == WatchStatus.UP_TO_DATE for s in aired):
            return WatchStatus.WATCHING

        return WatchStatus.NOT_WATCHED

    def determine_completion_status(
        self, is_complete: bool, in_production: bool, has_upcoming: bool
    ) -> WatchStatus:
        """Status for content the user has fully or partially caught up on."""

        if not is_complete:
            return WatchStatus.WATCHING
        if in_production or has_upcoming:
            return WatchStatus.UP_TO_DATE
        return WatchStatus.WATCHED

    def plan_episode_fan_out(
        self,
        episodes: Iterable[WatchStatusEpisode],
        target: WatchStatus,
        today: Optional[date] = None,
    ) -> list[tuple[int, WatchStatus]]:
        """
        Decide what a bulk write of `target` does to each episode.

        Aired episodes get `target`. Unaired episodes keep UNAIRED and are only
        written when they do not already hold it.
        """

        plan: list[tuple[int, WatchStatus]] = []
        for episode in episodes:
            if self.has_aired(episode.air_date, today):
                plan.append((episode.id, target))
            elif episode.watch_status != WatchStatus.UNAIRED:
                plan.append((episode.id, WatchStatus.UNAIRED))
        return plan

    def convert_status(self, raw: str | WatchStatus | None) -> WatchStatus:
        """Map a stored or legacy value onto WatchStatus; unknown values read as NOT_WATCHED."""

        if isinstance(raw, WatchStatus):
            return raw
        try:
            return WatchStatus(str(raw).strip().upper())
        except ValueError:
            return WatchStatus.NOT_WATCHED

    def generate_status_summary(
        self, show: WatchStatusShow, today: Optional[date] = None
    ) -> str:
        """Multi-line, human readable breakdown of a show used for debugging."""

        lines = [
            f'Show "{show.id}" - Status: {self.calculate_show_status(show).value}',
            f"  Air Date: {self._format_air_date(show.release_date, today)}",
            f"  In Production: {show.in_production}",
            f"  Seasons: {len(show.seasons)}",
            "",
        ]

        for season in show.seasons:
            watched = sum(
                1 for e in season.episodes if e.watch_status == WatchStatus.WATCHED
            )
            aired = sum(1 for e in season.episodes if self.has_aired(e.air_date, today))
            lines.extend(
                [
                    f'  Season "{season.id}" - Status: {self.calculate_season_status(season, today).value}',
                    f"    Air Date: {self._format_air_date(season.release_date, today)}",
                    f"    Episodes: {len(season.episodes)}",
                    f"    Progress: {watched}/{aired} aired episodes watched",
                    "",
                ]
            )

        return "\n".join(lines)

    def _format_air_date(self, air_date: Optional[date], today: Optional[date]) -> str:
        if not self.has_aired(air_date, today):
            return "INVALID/UNAIRED"
        return air_date.isoformat()


def effective_statuses(
    policy: WatchStatusPolicy,
    episodes: Sequence[WatchStatusEpisode],
    today: Optional[date] = None,
) -> tuple[WatchStatusEpisode, ...]:
    """
    The status each episode counts as during season derivation.

    Aired and unaired are decided by air date: a stale UNAIRED row of an aired
    episode reads as NOT_WATCHED, and anything not yet aired reads as UNAIRED
    whatever its row says. Missing rows get the default the air date implies.
    """

    return tuple(
        WatchStatusEpisode(e.id, e.air_date, policy.calculate_episode_status(e, today))
        for e in episodes
    )
