from sqlalchemy import MetaData, orm


class Base(orm.DeclarativeBase):
    """Base class for all database models"""

    pass


def get_base_metadata() -> MetaData:
    """Get the Base metadata for Alembic migrations"""

    # Import models to register them with Base.metadata

    from keepwatching.media import (
        Episode,  # pyright: ignore[reportUnusedImport]
        EpisodeWatchStatus,  # pyright: ignore[reportUnusedImport]
        Movie,  # pyright: ignore[reportUnusedImport]
        MovieWatchStatus,  # pyright: ignore[reportUnusedImport]
        Season,  # pyright: ignore[reportUnusedImport]
        SeasonWatchStatus,  # pyright: ignore[reportUnusedImport]
        Show,  # pyright: ignore[reportUnusedImport]
        ShowWatchStatus,  # pyright: ignore[reportUnusedImport]
    )

    return Base.metadata
