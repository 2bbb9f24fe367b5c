"""Unified error codes and custom exceptions.

Error code ranges:
  1xxx: Content
  9xxx: System (91xx store, 92xx migrations, 93xx cache)

Cache errors (93xx) are internal: the cache client and repository absorb
them and fall back to the store. They never reach repository callers.
"""


class AppError(Exception):
    """Base application error."""

    def __init__(
        self,
        code: int,
        message: str,
        http_status: int = 500,
    ) -> None:
        self.code = code
        self.message = message
        self.http_status = http_status
        super().__init__(message)


# --- 1xxx: Content ---

class ContentValidationError(AppError):
    def __init__(self, field: str) -> None:
        self.field = field
        super().__init__(1001, f"Field must not be empty: {field}", 422)


# --- 91xx: Store ---

class StoreConnectionError(AppError):
    """Transient store/pool failure. Retryable by the caller, never retried here."""

    def __init__(self, detail: str = "Store connection failed") -> None:
        super().__init__(9101, detail, 503)


# --- 92xx: Migrations ---

class MigrationFailedError(AppError):
    """Fatal: the process must not start serving traffic."""

    def __init__(self, name: str | None, detail: str) -> None:
        self.migration_name = name
        prefix = f"Migration {name} failed" if name else "Migration run failed"
        super().__init__(9201, f"{prefix}: {detail}", 500)


# --- 93xx: Cache (internal) ---

class CacheUnavailableError(AppError):
    def __init__(self, detail: str = "Cache unavailable") -> None:
        super().__init__(9301, detail, 503)


class CacheDecodeError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(9302, f"Cache payload rejected: {detail}", 500)
