from datetime import date, timedelta

import pytest
from sqlalchemy import select

from keepwatching.db.db import db
from keepwatching.db.transaction import TransactionHelper
from keepwatching.db.watch_status_db import WatchStatusDbService
from keepwatching.exceptions import DatabaseError, NotFoundError
from keepwatching.media import (
    Episode,
    EpisodeWatchStatus,
    MovieWatchStatus,
    SeasonWatchStatus,
    ShowWatchStatus,
    WatchStatus,
    WatchStatusSeason,
    WatchStatusShow,
)
from keepwatching.services.watch_status.policy import WatchStatusPolicy

from conftest import PROFILE_ID

W = WatchStatus


def change_types(result):
    return [c.entity_type for c in result.changes]


def unaired_episodes_that_aired(profile_id: int = PROFILE_ID) -> list[int]:
    with db.Session() as session:
        return list(
            session.execute(
                select(EpisodeWatchStatus.episode_id)
                .join(Episode, Episode.id == EpisodeWatchStatus.episode_id)
                .where(
                    EpisodeWatchStatus.profile_id == profile_id,
                    EpisodeWatchStatus.status == W.UNAIRED,
                    Episode.air_date <= date.today(),
                )
            ).scalars()
        )


@pytest.fixture
def ended_show(catalog, past_date):
    """Show 101112 / season 789 with three aired, unwatched episodes."""

    catalog.add_show(101112, in_production=False, release_date=past_date)
    catalog.add_season(101112, 789, number_of_episodes=3, release_date=past_date)
    for episode_id in (455, 456, 457):
        catalog.add_episode(789, episode_id, past_date)
        catalog.set_status(EpisodeWatchStatus, episode_id, W.NOT_WATCHED)
    catalog.set_status(SeasonWatchStatus, 789, W.NOT_WATCHED)
    catalog.set_status(ShowWatchStatus, 101112, W.NOT_WATCHED)
    return catalog


class TestUpdateEpisodeWatchStatus:
    def test_propagates_to_season_and_show(self, ended_show, data_service):
        result = data_service.update_episode_watch_status(PROFILE_ID, 456, W.WATCHED)

        assert result.success is True
        assert result.affected_rows == 3
        assert change_types(result) == ["episode", "season", "show"]

        episode, season, show = result.changes
        assert (episode.entity_id, episode.from_status, episode.to_status) == (456, W.NOT_WATCHED, W.WATCHED)
        assert episode.reason == "Episode manually set to WATCHED"
        assert (season.entity_id, season.to_status) == (789, W.WATCHING)
        assert season.reason == "Episode 456 status changed"
        assert (show.entity_id, show.to_status) == (101112, W.WATCHING)
        assert show.reason == "Season 789 status changed"

        assert ended_show.status(EpisodeWatchStatus, 456) == W.WATCHED
        assert ended_show.status(SeasonWatchStatus, 789) == W.WATCHING
        assert ended_show.status(ShowWatchStatus, 101112) == W.WATCHING

    def test_show_untouched_when_season_unchanged(self, ended_show, data_service):
        data_service.update_episode_watch_status(PROFILE_ID, 455, W.WATCHED)

        result = data_service.update_episode_watch_status(PROFILE_ID, 456, W.WATCHED)

        assert change_types(result) == ["episode"]
        assert result.affected_rows == 1

    def test_watching_every_episode_completes_an_ended_show(self, ended_show, data_service):
        for episode_id in (455, 456, 457):
            result = data_service.update_episode_watch_status(PROFILE_ID, episode_id, W.WATCHED)

        assert change_types(result) == ["episode", "season", "show"]
        assert ended_show.status(SeasonWatchStatus, 789) == W.WATCHED
        assert ended_show.status(ShowWatchStatus, 101112) == W.WATCHED

    def test_same_status_records_no_episode_change(self, ended_show, data_service):
        result = data_service.update_episode_watch_status(PROFILE_ID, 455, W.NOT_WATCHED)

        assert result.changes == []
        assert ended_show.status(SeasonWatchStatus, 789) == W.NOT_WATCHED

    def test_accepts_status_strings(self, ended_show, data_service):
        result = data_service.update_episode_watch_status(PROFILE_ID, 455, "WATCHING")

        assert result.changes[0].to_status == W.WATCHING

    def test_missing_rows_are_created(self, catalog, data_service, past_date):
        catalog.add_show(1, in_production=True)
        catalog.add_season(1, 10)
        catalog.add_episode(10, 100, past_date)
        catalog.add_episode(10, 101, past_date)

        result = data_service.update_episode_watch_status(PROFILE_ID, 100, W.WATCHED)

        assert change_types(result) == ["episode", "season", "show"]
        assert catalog.status(EpisodeWatchStatus, 101) is None
        assert catalog.status(SeasonWatchStatus, 10) == W.WATCHING
        assert catalog.status(ShowWatchStatus, 1) == W.WATCHING

    def test_episode_not_found(self, db_engine, data_service):
        with pytest.raises(NotFoundError, match="Episode 999 not found"):
            data_service.update_episode_watch_status(PROFILE_ID, 999, W.WATCHED)

    @pytest.mark.parametrize("status", [W.UNAIRED, W.UP_TO_DATE, "BOGUS"])
    def test_rejects_statuses_a_user_cannot_set(self, ended_show, data_service, status):
        with pytest.raises(ValueError):
            data_service.update_episode_watch_status(PROFILE_ID, 455, status)

        assert ended_show.status(EpisodeWatchStatus, 455) == W.NOT_WATCHED

    def test_failure_rolls_back_every_level(self, ended_show):
        class BrokenPolicy(WatchStatusPolicy):
            def calculate_show_status(self, show):
                raise RuntimeError("boom")

        service = WatchStatusDbService(BrokenPolicy(), TransactionHelper())

        with pytest.raises(DatabaseError) as exc_info:
            service.update_episode_watch_status(PROFILE_ID, 456, W.WATCHED)

        assert exc_info.value.message == (
            "Database error updating episode watch status with propagation: boom"
        )
        assert isinstance(exc_info.value.original_error, RuntimeError)
        assert ended_show.status(EpisodeWatchStatus, 456) == W.NOT_WATCHED
        assert ended_show.status(SeasonWatchStatus, 789) == W.NOT_WATCHED
        assert ended_show.status(ShowWatchStatus, 101112) == W.NOT_WATCHED

    @pytest.fixture
    def stale_sibling(self, catalog, past_date):
        """Episode 100 aired but its row still says UNAIRED."""

        catalog.add_show(1, in_production=False)
        catalog.add_season(1, 10, number_of_episodes=2)
        catalog.add_episode(10, 100, past_date)
        catalog.add_episode(10, 101, past_date)
        catalog.set_status(EpisodeWatchStatus, 100, W.UNAIRED)
        catalog.set_status(EpisodeWatchStatus, 101, W.NOT_WATCHED)
        catalog.set_status(SeasonWatchStatus, 10, W.NOT_WATCHED)
        catalog.set_status(ShowWatchStatus, 1, W.NOT_WATCHED)
        return catalog

    def test_stale_unaired_sibling_counts_as_aired(self, stale_sibling, data_service):
        result = data_service.update_episode_watch_status(PROFILE_ID, 101, W.WATCHED)

        assert change_types(result) == ["episode", "season", "show"]
        assert stale_sibling.status(SeasonWatchStatus, 10) == W.WATCHING
        assert stale_sibling.status(ShowWatchStatus, 1) == W.WATCHING

    def test_stale_unaired_sibling_is_expired(self, stale_sibling, data_service):
        result = data_service.update_episode_watch_status(PROFILE_ID, 101, W.WATCHED)

        # episode + expired sibling + season + show
        assert result.affected_rows == 4
        assert stale_sibling.status(EpisodeWatchStatus, 100) == W.NOT_WATCHED
        assert unaired_episodes_that_aired() == []

    def test_watched_unaired_episode_does_not_complete_its_season(
        self, catalog, data_service, past_date, future_date
    ):
        catalog.add_show(8, in_production=False)
        catalog.add_season(8, 80, number_of_episodes=2)
        catalog.add_episode(80, 801, past_date)
        catalog.add_episode(80, 802, future_date)

        data_service.update_episode_watch_status(PROFILE_ID, 802, W.WATCHED)

        assert catalog.status(EpisodeWatchStatus, 802) == W.WATCHED
        assert catalog.status(SeasonWatchStatus, 80) is None

    def test_season_with_future_release_stays_unaired(
        self, catalog, data_service, past_date, future_date
    ):
        catalog.add_show(9, in_production=True)
        catalog.add_season(9, 90, number_of_episodes=1, release_date=future_date)
        catalog.add_episode(90, 901, past_date)
        catalog.set_status(SeasonWatchStatus, 90, W.UNAIRED)

        result = data_service.update_episode_watch_status(PROFILE_ID, 901, W.WATCHED)

        assert change_types(result) == ["episode"]
        assert catalog.status(SeasonWatchStatus, 90) == W.UNAIRED


class TestUpdateSeasonWatchStatus:
    @pytest.fixture
    def airing_season(self, catalog, past_date, future_date):
        """Two watched aired episodes and one unaired episode."""

        catalog.add_show(2, in_production=True)
        catalog.add_season(2, 20, number_of_episodes=3)
        catalog.add_episode(20, 201, past_date)
        catalog.add_episode(20, 202, past_date)
        catalog.add_episode(20, 203, future_date)
        catalog.set_status(EpisodeWatchStatus, 201, W.WATCHED)
        catalog.set_status(EpisodeWatchStatus, 202, W.WATCHED)
        catalog.set_status(EpisodeWatchStatus, 203, W.UNAIRED)
        catalog.set_status(SeasonWatchStatus, 20, W.WATCHING)
        catalog.set_status(ShowWatchStatus, 2, W.WATCHING)
        return catalog

    def test_watched_season_with_unaired_episode_is_up_to_date(self, airing_season, data_service):
        result = data_service.update_season_watch_status(PROFILE_ID, 20, W.WATCHED)

        # 2 aired episodes + season + show
        assert result.affected_rows == 4
        assert change_types(result) == ["season", "show"]
        assert result.changes[0].to_status == W.UP_TO_DATE
        assert result.changes[0].reason == "Season manually set to WATCHED"
        assert result.changes[1].reason == "Season 20 status changed"

        assert airing_season.status(EpisodeWatchStatus, 203) == W.UNAIRED
        assert airing_season.status(SeasonWatchStatus, 20) == W.UP_TO_DATE
        assert airing_season.status(ShowWatchStatus, 2) == W.UP_TO_DATE

    def test_not_watched_resets_aired_episodes_only(self, airing_season, data_service):
        result = data_service.update_season_watch_status(PROFILE_ID, 20, W.NOT_WATCHED)

        assert airing_season.status(EpisodeWatchStatus, 201) == W.NOT_WATCHED
        assert airing_season.status(EpisodeWatchStatus, 202) == W.NOT_WATCHED
        assert airing_season.status(EpisodeWatchStatus, 203) == W.UNAIRED
        assert airing_season.status(SeasonWatchStatus, 20) == W.NOT_WATCHED
        assert airing_season.status(ShowWatchStatus, 2) == W.NOT_WATCHED
        assert change_types(result) == ["season", "show"]

    def test_season_not_found(self, db_engine, data_service):
        with pytest.raises(NotFoundError, match="Season 404 not found"):
            data_service.update_season_watch_status(PROFILE_ID, 404, W.WATCHED)


class TestUpdateShowWatchStatus:
    @pytest.fixture
    def two_season_show(self, catalog, past_date, future_date):
        catalog.add_show(3, in_production=False)
        catalog.add_season(3, 30, season_number=1, number_of_episodes=2)
        catalog.add_episode(30, 301, past_date)
        catalog.add_episode(30, 302, past_date)
        catalog.add_season(3, 31, season_number=2, number_of_episodes=3)
        catalog.add_episode(31, 311, past_date)
        catalog.add_episode(31, 312, future_date)
        catalog.add_episode(31, 313, None)
        return catalog

    def test_fans_out_and_preserves_unaired(self, two_season_show, data_service):
        result = data_service.update_show_watch_status(PROFILE_ID, 3, W.WATCHED)

        # 5 episodes + 2 seasons + show
        assert result.affected_rows == 8
        assert change_types(result) == ["season", "show"]

        season, show = result.changes
        assert (season.entity_id, season.to_status) == (31, W.UP_TO_DATE)
        assert (show.from_status, show.to_status) == (W.NOT_WATCHED, W.UP_TO_DATE)
        assert show.reason == "Show manually set to WATCHED"

        for episode_id in (301, 302, 311):
            assert two_season_show.status(EpisodeWatchStatus, episode_id) == W.WATCHED
        for episode_id in (312, 313):
            assert two_season_show.status(EpisodeWatchStatus, episode_id) == W.UNAIRED
        assert two_season_show.status(SeasonWatchStatus, 30) == W.WATCHED
        assert two_season_show.status(SeasonWatchStatus, 31) == W.UP_TO_DATE

    def test_stored_show_matches_its_seasons(self, two_season_show, data_service, policy):
        data_service.update_show_watch_status(PROFILE_ID, 3, W.WATCHED)

        seasons = tuple(
            WatchStatusSeason(season_id, watch_status=two_season_show.status(SeasonWatchStatus, season_id))
            for season_id in (30, 31)
        )
        derived = policy.calculate_show_status(WatchStatusShow(3, in_production=False, seasons=seasons))

        assert two_season_show.status(ShowWatchStatus, 3) == derived

    def test_stale_unaired_rows_of_aired_episodes_are_overwritten(self, two_season_show, data_service):
        two_season_show.set_status(EpisodeWatchStatus, 301, W.UNAIRED)
        two_season_show.set_status(EpisodeWatchStatus, 311, W.UNAIRED)

        data_service.update_show_watch_status(PROFILE_ID, 3, W.NOT_WATCHED)

        assert two_season_show.status(EpisodeWatchStatus, 301) == W.NOT_WATCHED
        assert two_season_show.status(EpisodeWatchStatus, 311) == W.NOT_WATCHED
        assert two_season_show.status(EpisodeWatchStatus, 312) == W.UNAIRED
        assert unaired_episodes_that_aired() == []

    def test_fully_aired_ended_show_records_only_the_show(self, ended_show, data_service):
        result = data_service.update_show_watch_status(PROFILE_ID, 101112, W.WATCHED)

        assert change_types(result) == ["show"]
        assert ended_show.status(SeasonWatchStatus, 789) == W.WATCHED
        assert ended_show.status(ShowWatchStatus, 101112) == W.WATCHED

    def test_small_batches_write_every_row(self, two_season_show, data_service, monkeypatch):
        from keepwatching.settings.manager import settings_manager

        monkeypatch.setattr(settings_manager.settings.watch_status, "bulk_batch_size", 2)

        result = data_service.update_show_watch_status(PROFILE_ID, 3, W.WATCHED)

        assert result.affected_rows == 8

    def test_show_not_found(self, db_engine, data_service):
        with pytest.raises(NotFoundError, match="Show 404 not found"):
            data_service.update_show_watch_status(PROFILE_ID, 404, W.WATCHED)


class TestCheckAndUpdateMovieWatchStatus:
    def test_released_unaired_movie_becomes_not_watched(self, catalog, data_service, past_date):
        catalog.add_movie(50, past_date)
        catalog.set_status(MovieWatchStatus, 50, W.UNAIRED)

        result = data_service.check_and_update_movie_watch_status(PROFILE_ID, 50)

        assert result.affected_rows == 1
        assert len(result.changes) == 1
        change = result.changes[0]
        assert change.entity_type == "episode"
        assert change.entity_id == 50
        assert (change.from_status, change.to_status) == (W.UNAIRED, W.NOT_WATCHED)
        assert change.reason == "Movie release date passed"
        assert catalog.status(MovieWatchStatus, 50) == W.NOT_WATCHED

    def test_is_idempotent(self, catalog, data_service, past_date):
        catalog.add_movie(50, past_date)
        catalog.set_status(MovieWatchStatus, 50, W.UNAIRED)
        data_service.check_and_update_movie_watch_status(PROFILE_ID, 50)

        result = data_service.check_and_update_movie_watch_status(PROFILE_ID, 50)

        assert (result.changes, result.affected_rows) == ([], 0)

    def test_missing_row_for_released_movie_is_created(self, catalog, data_service, past_date):
        catalog.add_movie(51, past_date)

        result = data_service.check_and_update_movie_watch_status(PROFILE_ID, 51)

        assert result.affected_rows == 1
        assert catalog.status(MovieWatchStatus, 51) == W.NOT_WATCHED

    def test_future_release_is_left_alone(self, catalog, data_service, future_date):
        catalog.add_movie(52, future_date)
        catalog.set_status(MovieWatchStatus, 52, W.UNAIRED)

        result = data_service.check_and_update_movie_watch_status(PROFILE_ID, 52)

        assert (result.success, result.changes, result.affected_rows) == (True, [], 0)
        assert catalog.status(MovieWatchStatus, 52) == W.UNAIRED

    def test_watched_movie_is_left_alone(self, catalog, data_service, past_date):
        catalog.add_movie(53, past_date)
        catalog.set_status(MovieWatchStatus, 53, W.WATCHED)

        result = data_service.check_and_update_movie_watch_status(PROFILE_ID, 53)

        assert result.changes == []
        assert catalog.status(MovieWatchStatus, 53) == W.WATCHED

    def test_unknown_movie_is_a_no_op(self, db_engine, data_service):
        result = data_service.check_and_update_movie_watch_status(PROFILE_ID, 999)

        assert (result.success, result.changes, result.affected_rows) == (True, [], 0)


class TestCheckAndUpdateShowWatchStatus:
    @pytest.fixture
    def caught_up_show(self, catalog, past_date):
        """Profile was UP_TO_DATE; the second episode has since aired."""

        catalog.add_show(4, in_production=True)
        catalog.add_season(4, 40, number_of_episodes=2)
        catalog.add_episode(40, 401, past_date)
        catalog.add_episode(40, 402, past_date)
        catalog.set_status(EpisodeWatchStatus, 401, W.WATCHED)
        catalog.set_status(EpisodeWatchStatus, 402, W.UNAIRED)
        catalog.set_status(SeasonWatchStatus, 40, W.UP_TO_DATE)
        catalog.set_status(ShowWatchStatus, 4, W.UP_TO_DATE)
        return catalog

    def test_new_episode_moves_show_back_to_watching(self, caught_up_show, data_service):
        result = data_service.check_and_update_show_watch_status(PROFILE_ID, 4)

        # expired episode + season + show
        assert result.affected_rows == 3
        assert change_types(result) == ["season", "show"]
        assert all(c.reason == "Content updates detected" for c in result.changes)
        assert caught_up_show.status(EpisodeWatchStatus, 402) == W.NOT_WATCHED
        assert caught_up_show.status(SeasonWatchStatus, 40) == W.WATCHING
        assert caught_up_show.status(ShowWatchStatus, 4) == W.WATCHING
        assert unaired_episodes_that_aired() == []

    def test_second_run_changes_nothing(self, caught_up_show, data_service):
        data_service.check_and_update_show_watch_status(PROFILE_ID, 4)

        result = data_service.check_and_update_show_watch_status(PROFILE_ID, 4)

        assert (result.success, result.changes, result.affected_rows) == (True, [], 0)

    def test_consistent_show_has_no_changes(self, ended_show, data_service):
        result = data_service.check_and_update_show_watch_status(PROFILE_ID, 101112)

        assert (result.changes, result.affected_rows) == ([], 0)

    def test_expiry_without_season_delta_records_nothing(self, catalog, data_service, past_date):
        catalog.add_show(5, in_production=False)
        catalog.add_season(5, 50, number_of_episodes=2)
        catalog.add_episode(50, 501, past_date)
        catalog.add_episode(50, 502, past_date)
        catalog.set_status(EpisodeWatchStatus, 501, W.NOT_WATCHED)
        catalog.set_status(EpisodeWatchStatus, 502, W.UNAIRED)
        catalog.set_status(SeasonWatchStatus, 50, W.NOT_WATCHED)
        catalog.set_status(ShowWatchStatus, 5, W.NOT_WATCHED)

        result = data_service.check_and_update_show_watch_status(PROFILE_ID, 5)

        assert result.changes == []
        assert result.affected_rows == 1
        assert catalog.status(EpisodeWatchStatus, 502) == W.NOT_WATCHED

    def test_announced_episodes_keep_a_finished_season_up_to_date(self, catalog, data_service, past_date):
        catalog.add_show(6, in_production=False)
        catalog.add_season(6, 60, number_of_episodes=3)
        catalog.add_episode(60, 601, past_date)
        catalog.set_status(EpisodeWatchStatus, 601, W.WATCHED)
        catalog.set_status(SeasonWatchStatus, 60, W.WATCHED)
        catalog.set_status(ShowWatchStatus, 6, W.WATCHED)

        result = data_service.check_and_update_show_watch_status(PROFILE_ID, 6)

        assert change_types(result) == ["season", "show"]
        assert catalog.status(SeasonWatchStatus, 60) == W.UP_TO_DATE
        assert catalog.status(ShowWatchStatus, 6) == W.UP_TO_DATE

    def test_other_profiles_are_untouched(self, caught_up_show, data_service):
        caught_up_show.set_status(EpisodeWatchStatus, 402, W.UNAIRED, profile_id=999)

        data_service.check_and_update_show_watch_status(PROFILE_ID, 4)

        assert caught_up_show.status(EpisodeWatchStatus, 402, profile_id=999) == W.UNAIRED

    def test_show_not_found(self, db_engine, data_service):
        with pytest.raises(NotFoundError, match="Show 404 not found"):
            data_service.check_and_update_show_watch_status(PROFILE_ID, 404)


class TestMigrateWatchedToUpToDate:
    def test_only_shows_in_production_are_rewritten(self, catalog, data_service):
        catalog.add_show(7, in_production=True)
        catalog.add_season(7, 70)
        catalog.add_show(8, in_production=False)
        catalog.add_season(8, 80)
        for show_id, season_id in ((7, 70), (8, 80)):
            catalog.set_status(ShowWatchStatus, show_id, W.WATCHED)
            catalog.set_status(SeasonWatchStatus, season_id, W.WATCHED)

        counts = data_service.migrate_watched_to_up_to_date()

        assert counts == {"shows": 1, "seasons": 1}
        assert catalog.status(ShowWatchStatus, 7) == W.UP_TO_DATE
        assert catalog.status(SeasonWatchStatus, 70) == W.UP_TO_DATE
        assert catalog.status(ShowWatchStatus, 8) == W.WATCHED
        assert catalog.status(SeasonWatchStatus, 80) == W.WATCHED
