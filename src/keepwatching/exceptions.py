class CustomError(Exception):
    """Base class for errors that carry a status code and a stable error code."""

    def __init__(self, message: str, status_code: int, error_code: str) -> None:
        super().__init__(message)

        self.message = message
        self.status_code = status_code
        self.error_code = error_code


class NotFoundError(CustomError):
    """Raised when a referenced show, season, episode or movie does not exist."""

    def __init__(self, message: str = "Resource not found") -> None:
        super().__init__(message, 404, "NOT_FOUND")


class DatabaseError(CustomError):
    """Raised when a database operation fails; wraps the original cause."""

    def __init__(
        self,
        message: str = "Database operation failed",
        original_error: BaseException | None = None,
    ) -> None:
        super().__init__(message, 500, "DATABASE_ERROR")

        self.original_error = original_error


def handle_database_error(error: BaseException, context_message: str) -> DatabaseError | CustomError:
    """
    Normalize an exception raised during a database operation.

    CustomErrors (NotFoundError, DatabaseError, ...) come back unchanged so the
    caller can re-raise them as-is; anything else is wrapped in a DatabaseError
    whose message names the operation, e.g. "Database error updating episode
    watch status with propagation: connection reset".

    Usage:
        except Exception as e:
            raise handle_database_error(e, "removing a show as a favorite") from e
    """

    if isinstance(error, CustomError):
        return error

    detail = str(error)
    message = (
        f"Database error {context_message}: {detail}"
        if detail
        else f"Unknown database error {context_message}"
    )

    return DatabaseError(message, error)
