from collections.abc import Callable, Generator
from contextlib import contextmanager
from typing import TypeVar

from sqla_wrapper import Session

from keepwatching.utils.logging import logger

from .db import db

T = TypeVar("T")


class TransactionHelper:
    """
    Hands out sessions bound to a single transaction.

    Every exit path either commits (block finished) or rolls back (block raised),
    and the session is always closed. Callers never commit or roll back
    themselves.
    """

    @contextmanager
    def transaction(self) -> Generator[Session, None, None]:
        session: Session = db.Session()

        try:
            with session.begin():
                yield session
        except Exception:
            logger.log("DATABASE", "Transaction rolled back")
            raise
        finally:
            session.close()

    def execute_in_transaction(self, callback: Callable[[Session], T]) -> T:
        """Run `callback(session)` inside one transaction and return its result."""

        with self.transaction() as session:
            return callback(session)
