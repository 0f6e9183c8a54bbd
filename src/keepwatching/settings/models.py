"""keepwatching settings models"""

from typing import Any, Callable, ClassVar, Literal

from pydantic import Field, field_validator

from keepwatching.settings.migratable import MigratableBaseModel
from keepwatching.utils import data_dir_path, get_version


class Observable(MigratableBaseModel):
    class Config:
        arbitrary_types_allowed = True

    _notify_observers: ClassVar[Callable | None] = None

    @classmethod
    def set_notify_observers(cls, notify_observers_callable):
        cls._notify_observers = notify_observers_callable

    def __setattr__(self, name, value):
        super().__setattr__(name, value)
        if self.__class__._notify_observers:
            self.__class__._notify_observers()


class DatabaseModel(Observable):
    host: str = Field(
        default_factory=lambda: f"sqlite:///{data_dir_path / 'keepwatching.db'}",
        description="Database connection string (SQLAlchemy URL)",
    )

    @field_validator("host", mode="before")
    def check_host(cls, v):
        if not v:
            raise ValueError("Database host must not be empty")
        return str(v)


class LoggingModel(Observable):
    enabled: bool = Field(default=True, description="Enable file logging")
    retention_hours: int = Field(
        default=24, description="Log retention period in hours"
    )
    rotation_mb: int = Field(default=10, description="Log file rotation size in MB")
    compression: Literal["zip", "gz", "bz2", "xz", "disabled"] = Field(
        default="disabled",
        description="Log compression format (empty for no compression)",
    )

    @field_validator("compression", mode="before")
    def check_compression(cls, v):
        if v == "" or not v:
            return "disabled"
        return v


class WatchStatusModel(Observable):
    bulk_batch_size: int = Field(
        default=200,
        ge=1,
        le=1000,
        description="Maximum number of rows per multi-row upsert during fan-out",
    )


class AppModel(Observable):
    version: str = Field(default_factory=get_version, description="Application version")
    log_level: Literal["TRACE", "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = (
        Field(default="INFO", description="Logging level")
    )
    database: DatabaseModel = Field(
        default_factory=lambda: DatabaseModel(), description="Database configuration"
    )
    logging: LoggingModel = Field(
        default_factory=lambda: LoggingModel(), description="Logging configuration"
    )
    watch_status: WatchStatusModel = Field(
        default_factory=lambda: WatchStatusModel(),
        description="Watch status propagation configuration",
    )

    @field_validator("log_level", mode="before")
    def check_debug(cls, v):
        if v is True:
            return "DEBUG"
        elif v is False:
            return "INFO"
        return v.upper()

    def __init__(self, **data: Any):
        current_version = get_version()
        existing_version = data.get("version", current_version)
        super().__init__(**data)
        if existing_version < current_version:
            self.version = current_version
