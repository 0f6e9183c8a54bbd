"""create_watch_status_tables

Revision ID: 4f1c2a9b7d3e
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql
from sqlalchemy.engine.reflection import Inspector

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "4f1c2a9b7d3e"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

WATCH_STATUS_VALUES = ("UNAIRED", "NOT_WATCHED", "WATCHING", "UP_TO_DATE", "WATCHED")

STATUS_TABLES = (
    ("episode_watch_status", "episode_id", "episodes"),
    ("season_watch_status", "season_id", "seasons"),
    ("show_watch_status", "show_id", "shows"),
    ("movie_watch_status", "movie_id", "movies"),
)


def get_table_names():
    bind = op.get_bind()
    inspector = Inspector.from_engine(bind)
    return inspector.get_table_names()


def upgrade() -> None:
    existing_tables = get_table_names()
    # One shared enum type; only PostgreSQL actually creates it
    sa.Enum(*WATCH_STATUS_VALUES, name="watch_status").create(op.get_bind(), checkfirst=True)
    watch_status = postgresql.ENUM(*WATCH_STATUS_VALUES, name="watch_status", create_type=False)

    if "shows" not in existing_tables:
        op.create_table(
            "shows",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("title", sa.String(255), nullable=False),
            sa.Column("release_date", sa.Date(), nullable=True),
            sa.Column("in_production", sa.Boolean(), nullable=False),
        )

    if "seasons" not in existing_tables:
        op.create_table(
            "seasons",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("show_id", sa.Integer(), sa.ForeignKey("shows.id", ondelete="CASCADE"), nullable=False),
            sa.Column("season_number", sa.Integer(), nullable=False),
            sa.Column("release_date", sa.Date(), nullable=True),
            sa.Column("number_of_episodes", sa.Integer(), nullable=False),
        )
        op.create_index("ix_seasons_show_id", "seasons", ["show_id"])

    if "episodes" not in existing_tables:
        op.create_table(
            "episodes",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("show_id", sa.Integer(), sa.ForeignKey("shows.id", ondelete="CASCADE"), nullable=False),
            sa.Column("season_id", sa.Integer(), sa.ForeignKey("seasons.id", ondelete="CASCADE"), nullable=False),
            sa.Column("episode_number", sa.Integer(), nullable=False),
            sa.Column("air_date", sa.Date(), nullable=True),
        )
        op.create_index("ix_episodes_season_id", "episodes", ["season_id"])
        op.create_index("ix_episodes_show_id", "episodes", ["show_id"])
        op.create_index("ix_episodes_air_date", "episodes", ["air_date"])

    if "movies" not in existing_tables:
        op.create_table(
            "movies",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("title", sa.String(255), nullable=False),
            sa.Column("release_date", sa.Date(), nullable=True),
        )

    for table_name, key, parent in STATUS_TABLES:
        if table_name in existing_tables:
            continue

        op.create_table(
            table_name,
            sa.Column("profile_id", sa.Integer(), primary_key=True),
            sa.Column(key, sa.Integer(), sa.ForeignKey(f"{parent}.id", ondelete="CASCADE"), primary_key=True),
            sa.Column("status", watch_status, nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
        )
        op.create_index(f"ix_{table_name}_{key}", table_name, [key])

    if "episode_watch_status" not in existing_tables:
        op.create_index("ix_episode_watch_status_status", "episode_watch_status", ["status"])


def downgrade() -> None:
    for table_name, _, _ in reversed(STATUS_TABLES):
        op.drop_table(table_name)

    op.drop_table("movies")
    op.drop_table("episodes")
    op.drop_table("seasons")
    op.drop_table("shows")

    sa.Enum(name="watch_status").drop(op.get_bind(), checkfirst=True)
