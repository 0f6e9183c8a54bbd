"""
Watch status values.

Every status row (episode, season, show, movie) holds one of these values for
a single profile.

    Episodes: Unaired → NotWatched ↔ Watching ↔ Watched
    Seasons/Shows: Unaired → NotWatched → Watching → UpToDate ↔ Watched
    Movies: Unaired → NotWatched ↔ Watched

Status Descriptions:
    UNAIRED: Not released yet, cannot be watched
    NOT_WATCHED: Released, nothing watched
    WATCHING: Some of the released content watched
    UP_TO_DATE: Everything released is watched, more content is coming
    WATCHED: Everything watched, nothing more is coming
"""

from enum import Enum
from typing import Literal


class WatchStatus(str, Enum):
    UNAIRED = "UNAIRED"
    NOT_WATCHED = "NOT_WATCHED"
    WATCHING = "WATCHING"
    UP_TO_DATE = "UP_TO_DATE"
    WATCHED = "WATCHED"


# Statuses a user may set explicitly
USER_WATCH_STATUSES = frozenset(
    {WatchStatus.NOT_WATCHED, WatchStatus.WATCHING, WatchStatus.WATCHED}
)

EntityType = Literal["episode", "season", "show"]
