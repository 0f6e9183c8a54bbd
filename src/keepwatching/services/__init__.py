from kink import di

from keepwatching.db.transaction import TransactionHelper
from keepwatching.utils.logging import log_cleaner, logger

from .watch_status.policy import WatchStatusPolicy


def bootstrap_services():
    __setup_policy()
    __setup_transactions()
    __setup_watch_status_db()
    log_cleaner()

    logger.log("PROGRAM", "Watch status services registered")


def __setup_policy():
    di[WatchStatusPolicy] = WatchStatusPolicy()


def __setup_transactions():
    di[TransactionHelper] = TransactionHelper()


def __setup_watch_status_db():
    # Imported here: the data service itself depends on this package
    from keepwatching.db.watch_status_db import WatchStatusDbService

    di[WatchStatusDbService] = WatchStatusDbService(
        di[WatchStatusPolicy], di[TransactionHelper]
    )
