# tests/conftest.py
import os
import tempfile

# Settings are read once at import time, so point them at throwaway locations first
os.environ.setdefault(
    "KEEPWATCHING_DATA_DIR", tempfile.mkdtemp(prefix="keepwatching-tests-")
)
os.environ["KEEPWATCHING_DATABASE_HOST"] = "sqlite://"
os.environ["KEEPWATCHING_LOGGING_ENABLED"] = "false"

from collections.abc import Iterator
from datetime import date, timedelta

import pytest
from sqlalchemy import create_engine, event, select
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

from keepwatching.db.db import create_tables, db
from keepwatching.db.status_writes import entity_key
from keepwatching.db.transaction import TransactionHelper
from keepwatching.db.watch_status_db import WatchStatusDbService
from keepwatching.media import Episode, Movie, Season, Show, WatchStatus
from keepwatching.services import bootstrap_services
from keepwatching.services.watch_status.policy import WatchStatusPolicy
from keepwatching.utils.logging import setup_logger

# Setup logger for tests to ensure custom log levels are available
setup_logger("DEBUG")
bootstrap_services()

PROFILE_ID = 123


@pytest.fixture
def past_date() -> date:
    return date.today() - timedelta(days=30)


@pytest.fixture
def future_date() -> date:
    return date.today() + timedelta(days=30)


@pytest.fixture()
def db_engine() -> Iterator[Engine]:
    """
    Fresh in-memory SQLite database per test.

    The global `db` is rebound to it so application code (TransactionHelper,
    repositories) talks to the same database the test inspects.
    """

    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine, "connect")
    def enable_foreign_keys(dbapi_connection, _record) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    original_engine = db.engine
    db.engine = engine
    db.Session.configure(bind=engine)
    create_tables()

    try:
        yield engine
    finally:
        db.engine = original_engine
        db.Session.configure(bind=original_engine)
        engine.dispose()


class Catalog:
    """Seeds catalog rows and status rows, and reads statuses back."""

    def __init__(self):
        self._season_shows: dict[int, int] = {}

    def _add(self, *objects) -> None:
        with db.Session() as session:
            with session.begin():
                session.add_all(objects)

    def add_show(
        self,
        show_id: int,
        in_production: bool = False,
        release_date: date | None = None,
    ) -> int:
        self._add(
            Show(
                id=show_id,
                title=f"Show {show_id}",
                release_date=release_date,
                in_production=in_production,
            )
        )
        return show_id

    def add_season(
        self,
        show_id: int,
        season_id: int,
        season_number: int = 1,
        number_of_episodes: int = 0,
        release_date: date | None = None,
    ) -> int:
        self._add(
            Season(
                id=season_id,
                show_id=show_id,
                season_number=season_number,
                number_of_episodes=number_of_episodes,
                release_date=release_date,
            )
        )
        self._season_shows[season_id] = show_id
        return season_id

    def add_episode(
        self,
        season_id: int,
        episode_id: int,
        air_date: date | None,
        episode_number: int | None = None,
    ) -> int:
        self._add(
            Episode(
                id=episode_id,
                show_id=self._season_shows[season_id],
                season_id=season_id,
                episode_number=episode_number or episode_id,
                air_date=air_date,
            )
        )
        return episode_id

    def add_movie(self, movie_id: int, release_date: date | None) -> int:
        self._add(Movie(id=movie_id, title=f"Movie {movie_id}", release_date=release_date))
        return movie_id

    def set_status(
        self, model, entity_id: int, status: WatchStatus, profile_id: int = PROFILE_ID
    ) -> None:
        with db.Session() as session:
            with session.begin():
                session.merge(
                    model(
                        profile_id=profile_id,
                        **{entity_key(model): entity_id},
                        status=status,
                    )
                )

    def status(
        self, model, entity_id: int, profile_id: int = PROFILE_ID
    ) -> WatchStatus | None:
        key = getattr(model, entity_key(model))
        with db.Session() as session:
            return session.execute(
                select(model.status).where(
                    model.profile_id == profile_id, key == entity_id
                )
            ).scalar_one_or_none()


@pytest.fixture()
def catalog(db_engine: Engine) -> Catalog:
    return Catalog()


@pytest.fixture()
def policy() -> WatchStatusPolicy:
    return WatchStatusPolicy()


@pytest.fixture()
def data_service(db_engine: Engine, policy: WatchStatusPolicy) -> WatchStatusDbService:
    return WatchStatusDbService(policy, TransactionHelper())
