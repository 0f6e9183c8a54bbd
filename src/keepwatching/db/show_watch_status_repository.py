"""
Profile-level bookkeeping of a show's status rows (adding/removing favorites).

Public API for the favorites flow of the surrounding application; the watch
status engine itself never calls into this module.
"""

from collections import defaultdict
from typing import Optional

from kink import di
from sqla_wrapper import Session
from sqlalchemy import and_, delete, select

from keepwatching.db.db import db_session
from keepwatching.db.status_writes import upsert_statuses
from keepwatching.db.transaction import TransactionHelper
from keepwatching.exceptions import handle_database_error
from keepwatching.media.item import Episode, Season, Show
from keepwatching.media.models import (
    WatchStatusEpisode,
    WatchStatusSeason,
    WatchStatusShow,
)
from keepwatching.media.state import WatchStatus
from keepwatching.media.watch_status import (
    EpisodeWatchStatus,
    SeasonWatchStatus,
    ShowWatchStatus,
)
from keepwatching.services.watch_status.policy import (
    WatchStatusPolicy,
    effective_statuses,
)
from keepwatching.utils.logging import logger


def _transaction_helper(helper: Optional[TransactionHelper]) -> TransactionHelper:
    if helper is not None:
        return helper

    return di[TransactionHelper]


def _policy(policy: Optional[WatchStatusPolicy]) -> WatchStatusPolicy:
    if policy is not None:
        return policy

    return di[WatchStatusPolicy]


def _seed_children(
    session: Session, policy: WatchStatusPolicy, profile_id: int, show_id: int
) -> tuple[int, list[WatchStatusSeason]]:
    """
    Create missing episode and season rows with the status the air dates imply.

    Returns the rows created and the derived status of every season.
    """

    episodes = session.execute(
        select(Episode.id, Episode.season_id, Episode.air_date, EpisodeWatchStatus.status)
        .outerjoin(
            EpisodeWatchStatus,
            and_(
                EpisodeWatchStatus.episode_id == Episode.id,
                EpisodeWatchStatus.profile_id == profile_id,
            ),
        )
        .where(Episode.show_id == show_id)
        .order_by(Episode.season_id, Episode.episode_number)
    ).all()

    created = upsert_statuses(
        session,
        EpisodeWatchStatus,
        profile_id,
        [
            (e.id, policy.calculate_episode_status(WatchStatusEpisode(e.id, e.air_date)))
            for e in episodes
            if e.status is None
        ],
        overwrite=False,
    )

    by_season: dict[int, list[WatchStatusEpisode]] = defaultdict(list)
    for e in episodes:
        by_season[e.season_id].append(WatchStatusEpisode(e.id, e.air_date, e.status))

    seasons = session.execute(
        select(Season.id, Season.release_date, Season.number_of_episodes)
        .where(Season.show_id == show_id)
        .order_by(Season.season_number)
    ).all()

    derived: list[WatchStatusSeason] = []
    for s in seasons:
        season_episodes = effective_statuses(policy, by_season[s.id])
        snapshot = WatchStatusSeason(
            s.id,
            release_date=s.release_date,
            expecting_more=(s.number_of_episodes or 0) > len(season_episodes),
            episodes=season_episodes,
        )
        derived.append(
            WatchStatusSeason(s.id, watch_status=policy.calculate_season_status(snapshot))
        )

    created += upsert_statuses(
        session,
        SeasonWatchStatus,
        profile_id,
        [(s.id, s.watch_status) for s in derived],
        overwrite=False,
    )
    return created, derived


def save_favorite(
    profile_id: int,
    show_id: int,
    save_children: bool = False,
    transaction_helper: Optional[TransactionHelper] = None,
    policy: Optional[WatchStatusPolicy] = None,
) -> int:
    """
    Start tracking a show for a profile.

    Creates a NOT_WATCHED show row when none exists. With `save_children`,
    missing episode rows are created as UNAIRED or NOT_WATCHED depending on
    their air date, missing season rows get the status derived from those
    episodes, and a new show row gets the status derived from its seasons.
    Rows that already exist keep their status.

    Returns:
        int: number of rows created.
    """

    def _save(session: Session) -> int:
        show_status = WatchStatus.NOT_WATCHED
        created = 0

        if save_children:
            status_policy = _policy(policy)
            created, seasons = _seed_children(session, status_policy, profile_id, show_id)
            in_production = session.execute(
                select(Show.in_production).where(Show.id == show_id)
            ).scalar_one_or_none()
            if in_production is not None:
                show_status = status_policy.calculate_show_status(
                    WatchStatusShow(
                        show_id, in_production=in_production, seasons=tuple(seasons)
                    )
                )

        return created + upsert_statuses(
            session,
            ShowWatchStatus,
            profile_id,
            [(show_id, show_status)],
            overwrite=False,
        )

    try:
        created = _transaction_helper(transaction_helper).execute_in_transaction(_save)
    except Exception as e:
        raise handle_database_error(e, "saving a show as a favorite") from e

    logger.log("DATABASE", f"Saved show {show_id} as favorite for profile {profile_id}")
    return created


def remove_favorite(
    profile_id: int,
    show_id: int,
    transaction_helper: Optional[TransactionHelper] = None,
) -> int:
    """Delete a profile's episode, season and show rows for a show. Returns rows deleted."""

    def _remove(session: Session) -> int:
        episode_ids = select(Episode.id).where(Episode.show_id == show_id)
        season_ids = select(Season.id).where(Season.show_id == show_id)

        statements = [
            delete(EpisodeWatchStatus.__table__).where(
                EpisodeWatchStatus.__table__.c.profile_id == profile_id,
                EpisodeWatchStatus.__table__.c.episode_id.in_(episode_ids),
            ),
            delete(SeasonWatchStatus.__table__).where(
                SeasonWatchStatus.__table__.c.profile_id == profile_id,
                SeasonWatchStatus.__table__.c.season_id.in_(season_ids),
            ),
            delete(ShowWatchStatus.__table__).where(
                ShowWatchStatus.__table__.c.profile_id == profile_id,
                ShowWatchStatus.__table__.c.show_id == show_id,
            ),
        ]
        return sum(max(session.execute(s).rowcount or 0, 0) for s in statements)

    try:
        removed = _transaction_helper(transaction_helper).execute_in_transaction(_remove)
    except Exception as e:
        raise handle_database_error(e, "removing a show as a favorite") from e

    logger.log("DATABASE", f"Removed show {show_id} from favorites of profile {profile_id}")
    return removed


def get_watch_status(
    profile_id: int,
    show_id: int,
    session: Optional[Session] = None,
) -> Optional[WatchStatus]:
    """Stored show status for the profile, or None when the show is not tracked."""

    query = select(ShowWatchStatus.status).where(
        ShowWatchStatus.profile_id == profile_id, ShowWatchStatus.show_id == show_id
    )

    try:
        if session is not None:
            return session.execute(query).scalar_one_or_none()
        with db_session() as s:
            return s.execute(query).scalar_one_or_none()
    except Exception as e:
        raise handle_database_error(e, "getting a show's watch status") from e
