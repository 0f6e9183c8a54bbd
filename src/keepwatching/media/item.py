"""Catalog tables: shows, seasons, episodes and movies"""

from datetime import date

import sqlalchemy
from sqlalchemy import ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from keepwatching.db.base_model import Base


class Show(Base):
    __tablename__ = "shows"

    id: Mapped[int] = mapped_column(sqlalchemy.Integer, primary_key=True)
    title: Mapped[str] = mapped_column(sqlalchemy.String(255))
    release_date: Mapped[date | None] = mapped_column(sqlalchemy.Date)
    in_production: Mapped[bool] = mapped_column(sqlalchemy.Boolean, default=True)

    seasons: Mapped[list["Season"]] = relationship(
        back_populates="show",
        cascade="all, delete-orphan",
        order_by="Season.season_number",
    )

    def __repr__(self):
        return f"Show:{self.id}:{self.title}"


class Season(Base):
    __tablename__ = "seasons"

    id: Mapped[int] = mapped_column(sqlalchemy.Integer, primary_key=True)
    show_id: Mapped[int] = mapped_column(ForeignKey("shows.id", ondelete="CASCADE"))
    season_number: Mapped[int]
    release_date: Mapped[date | None] = mapped_column(sqlalchemy.Date)
    # Announced episode count; may run ahead of the episode rows we know about
    number_of_episodes: Mapped[int] = mapped_column(sqlalchemy.Integer, default=0)

    show: Mapped[Show] = relationship(back_populates="seasons")
    episodes: Mapped[list["Episode"]] = relationship(
        back_populates="season",
        cascade="all, delete-orphan",
        order_by="Episode.episode_number",
    )

    __table_args__ = (Index("ix_seasons_show_id", "show_id"),)

    def __repr__(self):
        return f"Season:{self.id}:{self.season_number}"


class Episode(Base):
    __tablename__ = "episodes"

    id: Mapped[int] = mapped_column(sqlalchemy.Integer, primary_key=True)
    show_id: Mapped[int] = mapped_column(ForeignKey("shows.id", ondelete="CASCADE"))
    season_id: Mapped[int] = mapped_column(
        ForeignKey("seasons.id", ondelete="CASCADE")
    )
    episode_number: Mapped[int]
    air_date: Mapped[date | None] = mapped_column(sqlalchemy.Date)

    season: Mapped[Season] = relationship(back_populates="episodes")

    __table_args__ = (
        Index("ix_episodes_season_id", "season_id"),
        Index("ix_episodes_show_id", "show_id"),
        Index("ix_episodes_air_date", "air_date"),
    )

    def __repr__(self):
        return f"Episode:{self.id}:{self.episode_number}"


class Movie(Base):
    __tablename__ = "movies"

    id: Mapped[int] = mapped_column(sqlalchemy.Integer, primary_key=True)
    title: Mapped[str] = mapped_column(sqlalchemy.String(255))
    release_date: Mapped[date | None] = mapped_column(sqlalchemy.Date)

    def __repr__(self):
        return f"Movie:{self.id}:{self.title}"
