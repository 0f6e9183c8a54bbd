"""
Watch status data service.

Every public operation runs inside one transaction and works bottom-up:
episodes first, then seasons, then the show. Each level is re-read after the
level below was written, so the derivation always sees the new values.

Season and show rows are a cache of what the status policy derives from their
children. A missing season/show row reads as NOT_WATCHED; a missing episode
row reads as UNAIRED or NOT_WATCHED depending on its air date.
"""

from datetime import date, datetime
from typing import Optional

from kink import di
from sqla_wrapper import Session
from sqlalchemy import and_, select, update

from keepwatching.db.base_model import Base
from keepwatching.db.status_writes import entity_key, upsert_statuses
from keepwatching.db.transaction import TransactionHelper
from keepwatching.exceptions import CustomError, NotFoundError, handle_database_error
from keepwatching.media.item import Episode, Movie, Season, Show
from keepwatching.media.models import (
    StatusChange,
    StatusUpdateResult,
    WatchStatusEpisode,
    WatchStatusSeason,
    WatchStatusShow,
)
from keepwatching.media.state import USER_WATCH_STATUSES, EntityType, WatchStatus
from keepwatching.media.watch_status import (
    EpisodeWatchStatus,
    MovieWatchStatus,
    SeasonWatchStatus,
    ShowWatchStatus,
)
from keepwatching.services.watch_status.policy import (
    WatchStatusPolicy,
    effective_statuses,
)
from keepwatching.utils.logging import logger


class _Changes:
    """Collects the StatusChanges and affected row count of one operation."""

    def __init__(self):
        self.changes: list[StatusChange] = []
        self.affected_rows = 0

    def record(
        self,
        entity_type: EntityType,
        entity_id: int,
        from_status: WatchStatus,
        to_status: WatchStatus,
        reason: str,
    ) -> None:
        self.changes.append(
            StatusChange(
                entity_type=entity_type,
                entity_id=entity_id,
                from_status=from_status,
                to_status=to_status,
                reason=reason,
            )
        )
        logger.log(
            "STATUS",
            f"{entity_type} {entity_id}: {from_status.value} -> {to_status.value} ({reason})",
        )

    def result(self) -> StatusUpdateResult:
        return StatusUpdateResult(
            success=True, changes=self.changes, affected_rows=self.affected_rows
        )


class WatchStatusDbService:
    """Reads, recalculates and persists watch statuses for one profile at a time"""

    def __init__(
        self,
        policy: Optional[WatchStatusPolicy] = None,
        transaction_helper: Optional[TransactionHelper] = None,
    ):
        self.policy = policy or di[WatchStatusPolicy]
        self.transaction_helper = transaction_helper or di[TransactionHelper]

    # ------------------------------------------------------------------
    # Manual updates

    def update_episode_watch_status(
        self, profile_id: int, episode_id: int, status: WatchStatus | str
    ) -> StatusUpdateResult:
        """
        Set an episode's status and propagate it to its season and show.

        Stale UNAIRED siblings in the same season are expired first, without
        being recorded. The show is only recalculated when the season's derived
        status changed.

        Raises:
            ValueError: `status` is not a status a user may set.
            NotFoundError: the episode does not exist.
            DatabaseError: anything failed inside the transaction.
        """

        target = self._validate_user_status(status)

        try:
            with self.transaction_helper.transaction() as session:
                row = session.execute(
                    select(
                        Episode.id,
                        Episode.season_id,
                        Episode.show_id,
                        Episode.air_date,
                        EpisodeWatchStatus.status,
                    )
                    .outerjoin(
                        EpisodeWatchStatus,
                        and_(
                            EpisodeWatchStatus.episode_id == Episode.id,
                            EpisodeWatchStatus.profile_id == profile_id,
                        ),
                    )
                    .where(Episode.id == episode_id)
                ).one_or_none()

                if row is None:
                    raise NotFoundError(f"Episode {episode_id} not found")

                tracker = _Changes()
                current = row.status or self.policy.calculate_episode_status(
                    WatchStatusEpisode(row.id, row.air_date)
                )

                tracker.affected_rows += upsert_statuses(
                    session, EpisodeWatchStatus, profile_id, [(episode_id, target)]
                )
                if current != target:
                    tracker.record(
                        "episode",
                        episode_id,
                        current,
                        target,
                        f"Episode manually set to {target.value}",
                    )

                tracker.affected_rows += self._expire_unaired_episodes(
                    session, profile_id, row.show_id, season_id=row.season_id
                )
                season_changed = self._refresh_season(
                    session,
                    tracker,
                    profile_id,
                    row.season_id,
                    f"Episode {episode_id} status changed",
                )
                if season_changed:
                    self._refresh_show(
                        session,
                        tracker,
                        profile_id,
                        row.show_id,
                        f"Season {row.season_id} status changed",
                    )

                return tracker.result()
        except CustomError:
            raise
        except Exception as e:
            raise handle_database_error(
                e, "updating episode watch status with propagation"
            ) from e

    def update_season_watch_status(
        self, profile_id: int, season_id: int, status: WatchStatus | str
    ) -> StatusUpdateResult:
        """
        Set every aired episode of a season to `status`, then rederive the season
        and its show. Unaired episodes stay UNAIRED, so a season marked WATCHED
        can come out UP_TO_DATE.
        """

        target = self._validate_user_status(status)

        try:
            with self.transaction_helper.transaction() as session:
                show_id = session.execute(
                    select(Season.show_id).where(Season.id == season_id)
                ).scalar_one_or_none()

                if show_id is None:
                    raise NotFoundError(f"Season {season_id} not found")

                tracker = _Changes()
                episodes = self._season_episodes(session, profile_id, season_id)
                plan = self.policy.plan_episode_fan_out(episodes, target)
                tracker.affected_rows += upsert_statuses(
                    session, EpisodeWatchStatus, profile_id, plan
                )

                self._refresh_season(
                    session,
                    tracker,
                    profile_id,
                    season_id,
                    f"Season manually set to {target.value}",
                )
                self._refresh_show(
                    session,
                    tracker,
                    profile_id,
                    show_id,
                    f"Season {season_id} status changed",
                )

                return tracker.result()
        except CustomError:
            raise
        except Exception as e:
            raise handle_database_error(
                e, "updating season watch status with propagation"
            ) from e

    def update_show_watch_status(
        self, profile_id: int, show_id: int, status: WatchStatus | str
    ) -> StatusUpdateResult:
        """
        Fan `status` out to every season and episode of a show.

        Only the show's own transition is recorded. A season is recorded as well
        when its derived status differs from `status` (e.g. UP_TO_DATE because
        it still has unaired episodes).
        """

        target = self._validate_user_status(status)

        try:
            with self.transaction_helper.transaction() as session:
                show = self._show_row(session, show_id)
                tracker = _Changes()

                episodes = self._show_episodes(session, profile_id, show_id)
                plan = self.policy.plan_episode_fan_out(episodes, target)
                tracker.affected_rows += upsert_statuses(
                    session, EpisodeWatchStatus, profile_id, plan
                )

                reason = f"Show manually set to {target.value}"
                seasons = self._show_seasons(session, profile_id, show_id)
                season_rows: list[tuple[int, WatchStatus]] = []
                derived_seasons: list[WatchStatusSeason] = []

                for season in seasons:
                    derived = self.policy.calculate_season_status(season)
                    stored = season.watch_status or WatchStatus.NOT_WATCHED
                    if derived != target and derived != stored:
                        tracker.record("season", season.id, stored, derived, reason)
                    season_rows.append((season.id, derived))
                    derived_seasons.append(
                        WatchStatusSeason(season.id, watch_status=derived)
                    )

                tracker.affected_rows += upsert_statuses(
                    session, SeasonWatchStatus, profile_id, season_rows
                )

                derived_show = self.policy.calculate_show_status(
                    WatchStatusShow(
                        show_id,
                        in_production=show.in_production,
                        seasons=tuple(derived_seasons),
                    )
                )
                self._write_if_changed(
                    session,
                    tracker,
                    ShowWatchStatus,
                    "show",
                    profile_id,
                    show_id,
                    derived_show,
                    reason,
                )

                return tracker.result()
        except CustomError:
            raise
        except Exception as e:
            raise handle_database_error(
                e, "updating show watch status with propagation"
            ) from e

    # ------------------------------------------------------------------
    # Reconciliation

    def check_and_update_movie_watch_status(
        self, profile_id: int, movie_id: int
    ) -> StatusUpdateResult:
        """Flip an UNAIRED (or missing) movie row to NOT_WATCHED once the movie is released."""

        try:
            with self.transaction_helper.transaction() as session:
                row = session.execute(
                    select(Movie.release_date, MovieWatchStatus.status)
                    .outerjoin(
                        MovieWatchStatus,
                        and_(
                            MovieWatchStatus.movie_id == Movie.id,
                            MovieWatchStatus.profile_id == profile_id,
                        ),
                    )
                    .where(Movie.id == movie_id)
                ).one_or_none()

                tracker = _Changes()
                if row is None:
                    return tracker.result()

                stored = row.status or WatchStatus.UNAIRED
                if stored == WatchStatus.UNAIRED and self.policy.has_aired(
                    row.release_date
                ):
                    tracker.affected_rows += upsert_statuses(
                        session,
                        MovieWatchStatus,
                        profile_id,
                        [(movie_id, WatchStatus.NOT_WATCHED)],
                    )
                    # Movies share the episode tag in change records
                    tracker.record(
                        "episode",
                        movie_id,
                        WatchStatus.UNAIRED,
                        WatchStatus.NOT_WATCHED,
                        "Movie release date passed",
                    )

                return tracker.result()
        except CustomError:
            raise
        except Exception as e:
            raise handle_database_error(
                e, "checking and updating movie watch status"
            ) from e

    def check_and_update_show_watch_status(
        self, profile_id: int, show_id: int
    ) -> StatusUpdateResult:
        """
        Bring a show's stored statuses in line with the current catalog.

        UNAIRED episodes whose air date passed become NOT_WATCHED, then every
        season and the show are rederived. Only season/show transitions are
        recorded; running this twice in a row changes nothing the second time.
        """

        try:
            with self.transaction_helper.transaction() as session:
                show = self._show_row(session, show_id)
                tracker = _Changes()
                reason = "Content updates detected"

                tracker.affected_rows += self._expire_unaired_episodes(
                    session, profile_id, show_id
                )

                seasons = self._show_seasons(session, profile_id, show_id)
                season_rows: list[tuple[int, WatchStatus]] = []
                derived_seasons: list[WatchStatusSeason] = []

                for season in seasons:
                    derived = self.policy.calculate_season_status(season)
                    stored = season.watch_status or WatchStatus.NOT_WATCHED
                    if derived != stored:
                        tracker.record("season", season.id, stored, derived, reason)
                        season_rows.append((season.id, derived))
                    derived_seasons.append(
                        WatchStatusSeason(season.id, watch_status=derived)
                    )

                tracker.affected_rows += upsert_statuses(
                    session, SeasonWatchStatus, profile_id, season_rows
                )

                derived_show = self.policy.calculate_show_status(
                    WatchStatusShow(
                        show_id,
                        in_production=show.in_production,
                        seasons=tuple(derived_seasons),
                    )
                )
                self._write_if_changed(
                    session,
                    tracker,
                    ShowWatchStatus,
                    "show",
                    profile_id,
                    show_id,
                    derived_show,
                    reason,
                )

                return tracker.result()
        except CustomError:
            raise
        except Exception as e:
            raise handle_database_error(
                e, "checking and updating show watch status"
            ) from e

    def migrate_watched_to_up_to_date(self) -> dict[str, int]:
        """
        Rewrite WATCHED show and season rows to UP_TO_DATE for shows still in production.

        Returns the number of rows updated per table.
        """

        try:
            with self.transaction_helper.transaction() as session:
                active_shows = select(Show.id).where(Show.in_production.is_(True))
                active_seasons = select(Season.id).where(
                    Season.show_id.in_(active_shows)
                )

                counts = {
                    "shows": self._promote_watched(
                        session, ShowWatchStatus, active_shows
                    ),
                    "seasons": self._promote_watched(
                        session, SeasonWatchStatus, active_seasons
                    ),
                }
        except Exception as e:
            raise handle_database_error(
                e, "migrating watched statuses to up to date"
            ) from e

        logger.log("PROGRAM", f"Migrated WATCHED rows to UP_TO_DATE: {counts}")
        return counts

    # ------------------------------------------------------------------
    # Helpers

    def _validate_user_status(self, status: WatchStatus | str) -> WatchStatus:
        try:
            target = WatchStatus(status)
        except ValueError:
            raise ValueError(f"Unknown watch status: {status}") from None

        if target not in USER_WATCH_STATUSES:
            raise ValueError(f"{target.value} cannot be set manually")
        return target

    def _show_row(self, session: Session, show_id: int):
        show = session.execute(
            select(Show.id, Show.in_production).where(Show.id == show_id)
        ).one_or_none()
        if show is None:
            raise NotFoundError(f"Show {show_id} not found")
        return show

    def _stored_status(
        self, session: Session, model: type[Base], profile_id: int, entity_id: int
    ) -> Optional[WatchStatus]:
        key = getattr(model, entity_key(model))
        return session.execute(
            select(model.status).where(
                model.profile_id == profile_id, key == entity_id
            )
        ).scalar_one_or_none()

    def _write_if_changed(
        self,
        session: Session,
        tracker: _Changes,
        model: type[Base],
        entity_type: EntityType,
        profile_id: int,
        entity_id: int,
        derived: WatchStatus,
        reason: str,
    ) -> bool:
        stored = (
            self._stored_status(session, model, profile_id, entity_id)
            or WatchStatus.NOT_WATCHED
        )
        if derived == stored:
            return False

        tracker.affected_rows += upsert_statuses(
            session, model, profile_id, [(entity_id, derived)]
        )
        tracker.record(entity_type, entity_id, stored, derived, reason)
        return True

    def _refresh_season(
        self,
        session: Session,
        tracker: _Changes,
        profile_id: int,
        season_id: int,
        reason: str,
    ) -> bool:
        season = self._season_snapshot(session, profile_id, season_id)
        derived = self.policy.calculate_season_status(season)
        return self._write_if_changed(
            session, tracker, SeasonWatchStatus, "season", profile_id, season_id, derived, reason
        )

    def _refresh_show(
        self,
        session: Session,
        tracker: _Changes,
        profile_id: int,
        show_id: int,
        reason: str,
    ) -> bool:
        show = self._show_row(session, show_id)
        stored_seasons = session.execute(
            select(Season.id, SeasonWatchStatus.status)
            .outerjoin(
                SeasonWatchStatus,
                and_(
                    SeasonWatchStatus.season_id == Season.id,
                    SeasonWatchStatus.profile_id == profile_id,
                ),
            )
            .where(Season.show_id == show_id)
            .order_by(Season.season_number)
        ).all()

        derived = self.policy.calculate_show_status(
            WatchStatusShow(
                show_id,
                in_production=show.in_production,
                seasons=tuple(
                    WatchStatusSeason(s.id, watch_status=s.status or WatchStatus.NOT_WATCHED)
                    for s in stored_seasons
                ),
            )
        )
        return self._write_if_changed(
            session, tracker, ShowWatchStatus, "show", profile_id, show_id, derived, reason
        )

    def _episode_query(self, profile_id: int):
        return select(
            Episode.id, Episode.season_id, Episode.air_date, EpisodeWatchStatus.status
        ).outerjoin(
            EpisodeWatchStatus,
            and_(
                EpisodeWatchStatus.episode_id == Episode.id,
                EpisodeWatchStatus.profile_id == profile_id,
            ),
        )

    def _season_episodes(
        self, session: Session, profile_id: int, season_id: int
    ) -> list[WatchStatusEpisode]:
        """Episodes of a season with their stored status (None when no row exists)."""

        rows = session.execute(
            self._episode_query(profile_id)
            .where(Episode.season_id == season_id)
            .order_by(Episode.episode_number)
        ).all()
        return [WatchStatusEpisode(r.id, r.air_date, r.status) for r in rows]

    def _show_episodes(
        self, session: Session, profile_id: int, show_id: int
    ) -> list[WatchStatusEpisode]:
        rows = session.execute(
            self._episode_query(profile_id)
            .where(Episode.show_id == show_id)
            .order_by(Episode.season_id, Episode.episode_number)
        ).all()
        return [WatchStatusEpisode(r.id, r.air_date, r.status) for r in rows]

    def _season_snapshot(
        self, session: Session, profile_id: int, season_id: int
    ) -> WatchStatusSeason:
        season = session.execute(
            select(
                Season.id,
                Season.release_date,
                Season.number_of_episodes,
                SeasonWatchStatus.status,
            )
            .outerjoin(
                SeasonWatchStatus,
                and_(
                    SeasonWatchStatus.season_id == Season.id,
                    SeasonWatchStatus.profile_id == profile_id,
                ),
            )
            .where(Season.id == season_id)
        ).one()

        episodes = effective_statuses(
            self.policy, self._season_episodes(session, profile_id, season_id)
        )
        return WatchStatusSeason(
            season.id,
            release_date=season.release_date,
            expecting_more=(season.number_of_episodes or 0) > len(episodes),
            episodes=episodes,
            watch_status=season.status,
        )

    def _show_seasons(
        self, session: Session, profile_id: int, show_id: int
    ) -> list[WatchStatusSeason]:
        season_ids = session.execute(
            select(Season.id)
            .where(Season.show_id == show_id)
            .order_by(Season.season_number)
        ).scalars()
        return [
            self._season_snapshot(session, profile_id, season_id)
            for season_id in season_ids.all()
        ]

    def _expire_unaired_episodes(
        self,
        session: Session,
        profile_id: int,
        show_id: int,
        season_id: Optional[int] = None,
        today: Optional[date] = None,
    ) -> int:
        """UNAIRED rows of aired episodes become NOT_WATCHED. Returns the rows updated."""

        table = EpisodeWatchStatus.__table__
        aired = select(Episode.id).where(
            Episode.show_id == show_id,
            Episode.air_date.is_not(None),
            Episode.air_date <= (today or date.today()),
        )
        if season_id is not None:
            aired = aired.where(Episode.season_id == season_id)
        result = session.execute(
            update(table)
            .where(
                table.c.profile_id == profile_id,
                table.c.status == WatchStatus.UNAIRED,
                table.c.episode_id.in_(aired),
            )
            .values(status=WatchStatus.NOT_WATCHED, updated_at=datetime.now())
        )
        expired = max(result.rowcount or 0, 0)
        if expired:
            logger.log(
                "DATABASE",
                f"Expired {expired} unaired episodes for profile {profile_id} on show {show_id}",
            )
        return expired

    def _promote_watched(self, session: Session, model: type[Base], active_ids) -> int:
        table = model.__table__
        key = table.c[entity_key(model)]
        result = session.execute(
            update(table)
            .where(table.c.status == WatchStatus.WATCHED, key.in_(active_ids))
            .values(status=WatchStatus.UP_TO_DATE, updated_at=datetime.now())
        )
        return max(result.rowcount or 0, 0)
