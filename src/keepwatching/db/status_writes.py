"""Multi-row writes against the per-profile status tables"""

from collections.abc import Sequence
from datetime import datetime

from sqla_wrapper import Session
from sqlalchemy.dialects import mysql, postgresql, sqlite

from keepwatching.db.base_model import Base
from keepwatching.media.state import WatchStatus
from keepwatching.settings.manager import settings_manager
from keepwatching.utils.logging import logger

_INSERTS = {
    "mysql": mysql.insert,
    "mariadb": mysql.insert,
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def entity_key(model: type[Base]) -> str:
    """Name of the entity column in a status table's (profile_id, <entity>_id) key."""

    return next(
        c.name for c in model.__table__.primary_key.columns if c.name != "profile_id"
    )


def _chunks(rows: Sequence, size: int):
    for start in range(0, len(rows), size):
        yield rows[start : start + size]


def upsert_statuses(
    session: Session,
    model: type[Base],
    profile_id: int,
    rows: Sequence[tuple[int, WatchStatus]],
    overwrite: bool = True,
) -> int:
    """
    Write `(entity_id, status)` pairs for one profile and return the affected row count.

    Rows are sent as chunked multi-row INSERTs: ON CONFLICT DO UPDATE on
    SQLite/PostgreSQL, ON DUPLICATE KEY UPDATE on MySQL. With `overwrite=False`
    existing rows are left alone and only missing rows are created.
    """

    if not rows:
        return 0

    dialect = session.get_bind().dialect.name
    insert = _INSERTS.get(dialect)
    if insert is None:
        raise NotImplementedError(f"Status upserts are not supported on {dialect}")

    table = model.__table__
    key = entity_key(model)
    now = datetime.now()
    batch_size = settings_manager.settings.watch_status.bulk_batch_size
    affected = 0

    for chunk in _chunks(list(rows), batch_size):
        values = [
            {"profile_id": profile_id, key: entity_id, "status": status, "updated_at": now}
            for entity_id, status in chunk
        ]
        stmt = insert(table).values(values)

        if dialect in ("mysql", "mariadb"):
            if overwrite:
                stmt = stmt.on_duplicate_key_update(
                    status=stmt.inserted.status, updated_at=stmt.inserted.updated_at
                )
            else:
                stmt = stmt.prefix_with("IGNORE")
        elif overwrite:
            stmt = stmt.on_conflict_do_update(
                index_elements=["profile_id", key],
                set_={"status": stmt.excluded.status, "updated_at": stmt.excluded.updated_at},
            )
        else:
            stmt = stmt.on_conflict_do_nothing(index_elements=["profile_id", key])

        result = session.execute(stmt)
        affected += max(result.rowcount or 0, 0)

    logger.log(
        "DATABASE",
        f"Wrote {len(rows)} {table.name} rows for profile {profile_id} ({affected} affected)",
    )
    return affected
