from .item import Episode, Movie, Season, Show
from .models import (
    StatusChange,
    StatusUpdateResult,
    WatchStatusEpisode,
    WatchStatusSeason,
    WatchStatusServiceResult,
    WatchStatusShow,
)
from .state import USER_WATCH_STATUSES, EntityType, WatchStatus
from .watch_status import (
    EpisodeWatchStatus,
    MovieWatchStatus,
    SeasonWatchStatus,
    ShowWatchStatus,
)

__all__ = [
    "Episode",
    "EpisodeWatchStatus",
    "EntityType",
    "Movie",
    "MovieWatchStatus",
    "Season",
    "SeasonWatchStatus",
    "Show",
    "ShowWatchStatus",
    "StatusChange",
    "StatusUpdateResult",
    "USER_WATCH_STATUSES",
    "WatchStatus",
    "WatchStatusEpisode",
    "WatchStatusSeason",
    "WatchStatusServiceResult",
    "WatchStatusShow",
]
