"""Error Handler - Centralized error handling."""

import functools


class MeridianError(Exception):
    """Base exception for the console."""

    pass


class DatabaseError(MeridianError):
    """Database operation error."""

    pass


class NotFoundError(MeridianError):
    """A referenced record does not exist."""

    pass


class InvalidInputError(MeridianError):
    """Caller supplied input that cannot be processed."""

    pass


class DriftScanError(MeridianError):
    """Error during a drift scan."""

    pass


class SpendImportError(MeridianError):
    """Error while importing cost data."""

    pass


class HealthCheckError(MeridianError):
    """Error during a health sweep."""

    pass


class ErrorHandler:
    def __init__(self, logger=None, raise_on_error=True):
        self.logger = logger
        self.raise_on_error = raise_on_error

    def handle(self, error: Exception, context: dict | None = None):
        if self.logger:
            self.logger.error(f"Error: {error}", extra={"extra_data": {"context": context}})
        if self.raise_on_error:
            raise error


def handle_errors(error_class=MeridianError, logger=None):
    """Decorator that re-raises foreign exceptions as error_class; domain errors pass through."""

    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except MeridianError:
                raise
            except Exception as e:
                if logger:
                    logger.error(f"Error in {func.__name__}: {e}")
                raise error_class(str(e)) from e

        return wrapper

    return decorator
