"""
Transport and policy-input models for watch status propagation.

StatusChange/StatusUpdateResult are what every mutation hands back to its
caller; they are never persisted. The frozen dataclasses are the read-only
snapshots the status policy works on.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from keepwatching.media.state import EntityType, WatchStatus


class StatusChange(BaseModel):
    """One status transition produced while running a single operation"""

    model_config = ConfigDict(populate_by_name=True)

    entity_type: EntityType = Field(alias="entityType")
    entity_id: int = Field(alias="entityId")
    from_status: WatchStatus = Field(alias="from")
    to_status: WatchStatus = Field(alias="to")
    timestamp: datetime = Field(default_factory=datetime.now)
    reason: str


class StatusUpdateResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    changes: list[StatusChange] = Field(default_factory=list)
    affected_rows: int = Field(default=0, alias="affectedRows")


class WatchStatusServiceResult(StatusUpdateResult):
    """StatusUpdateResult plus a human readable summary of the changes"""

    message: str


@dataclass(frozen=True)
class WatchStatusEpisode:
    id: int
    air_date: Optional[date] = None
    watch_status: Optional[WatchStatus] = None


@dataclass(frozen=True)
class WatchStatusSeason:
    id: int
    release_date: Optional[date] = None
    # More episodes are announced than are currently known
    expecting_more: bool = False
    episodes: tuple[WatchStatusEpisode, ...] = field(default_factory=tuple)
    watch_status: Optional[WatchStatus] = None


@dataclass(frozen=True)
class WatchStatusShow:
    id: int
    release_date: Optional[date] = None
    in_production: bool = False
    seasons: tuple[WatchStatusSeason, ...] = field(default_factory=tuple)
    watch_status: Optional[WatchStatus] = None
