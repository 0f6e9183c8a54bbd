"""Per-profile status tables, one per level of the catalog"""

from datetime import datetime

import sqlalchemy
from sqlalchemy import ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column

from keepwatching.db.base_model import Base
from keepwatching.media.state import WatchStatus


def _status_column():
    return mapped_column(
        sqlalchemy.Enum(
            WatchStatus,
            name="watch_status",
            values_callable=lambda enum: [e.value for e in enum],
            validate_strings=True,
        ),
        nullable=False,
        default=WatchStatus.NOT_WATCHED,
    )


def _updated_at_column():
    return mapped_column(
        sqlalchemy.DateTime,
        nullable=False,
        default=datetime.now,
        onupdate=datetime.now,
    )


class EpisodeWatchStatus(Base):
    __tablename__ = "episode_watch_status"

    profile_id: Mapped[int] = mapped_column(sqlalchemy.Integer, primary_key=True)
    episode_id: Mapped[int] = mapped_column(
        ForeignKey("episodes.id", ondelete="CASCADE"), primary_key=True
    )
    status: Mapped[WatchStatus] = _status_column()
    updated_at: Mapped[datetime] = _updated_at_column()

    __table_args__ = (
        Index("ix_episode_watch_status_episode_id", "episode_id"),
        Index("ix_episode_watch_status_status", "status"),
    )

    def __repr__(self):
        return f"EpisodeWatchStatus:{self.profile_id}:{self.episode_id}:{self.status}"


class SeasonWatchStatus(Base):
    __tablename__ = "season_watch_status"

    profile_id: Mapped[int] = mapped_column(sqlalchemy.Integer, primary_key=True)
    season_id: Mapped[int] = mapped_column(
        ForeignKey("seasons.id", ondelete="CASCADE"), primary_key=True
    )
    status: Mapped[WatchStatus] = _status_column()
    updated_at: Mapped[datetime] = _updated_at_column()

    __table_args__ = (Index("ix_season_watch_status_season_id", "season_id"),)

    def __repr__(self):
        return f"SeasonWatchStatus:{self.profile_id}:{self.season_id}:{self.status}"


class ShowWatchStatus(Base):
    __tablename__ = "show_watch_status"

    profile_id: Mapped[int] = mapped_column(sqlalchemy.Integer, primary_key=True)
    show_id: Mapped[int] = mapped_column(
        ForeignKey("shows.id", ondelete="CASCADE"), primary_key=True
    )
    status: Mapped[WatchStatus] = _status_column()
    updated_at: Mapped[datetime] = _updated_at_column()

    __table_args__ = (Index("ix_show_watch_status_show_id", "show_id"),)

    def __repr__(self):
        return f"ShowWatchStatus:{self.profile_id}:{self.show_id}:{self.status}"


class MovieWatchStatus(Base):
    __tablename__ = "movie_watch_status"

    profile_id: Mapped[int] = mapped_column(sqlalchemy.Integer, primary_key=True)
    movie_id: Mapped[int] = mapped_column(
        ForeignKey("movies.id", ondelete="CASCADE"), primary_key=True
    )
    status: Mapped[WatchStatus] = _status_column()
    updated_at: Mapped[datetime] = _updated_at_column()

    __table_args__ = (Index("ix_movie_watch_status_movie_id", "movie_id"),)

    def __repr__(self):
        return f"MovieWatchStatus:{self.profile_id}:{self.movie_id}:{self.status}"
