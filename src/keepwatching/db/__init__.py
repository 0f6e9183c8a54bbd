from .db import db, db_session
from .transaction import TransactionHelper

__all__ = ["db", "db_session", "TransactionHelper"]
