"""
Error taxonomy.

Every failure the app can show to the user is one of these types. Each carries a
user-facing message (what ends up in `SearchStatus.error_message`); the raw cause
is kept on `__cause__` and only goes to the logs.

- Location errors come from the permission/location-service gate.
- Search errors come from the remote query (`ResultFetcher`).
"""

from __future__ import annotations


class MealMapError(Exception):
    """Base class for all app-level failures."""


class LocationError(MealMapError):
    """Position could not be acquired."""


class PermissionDenied(LocationError):
    """User refused location access; they may still grant it later."""

    def __init__(self, message: str = "Location permissions are denied") -> None:
        super().__init__(message)


class PermissionDeniedForever(LocationError):
    """User refused location access permanently; we must not prompt again."""

    def __init__(
        self,
        message: str = "Location permissions are permanently denied, we cannot request permissions.",
    ) -> None:
        super().__init__(message)


class LocationServiceDisabled(LocationError):
    """The OS location service is switched off."""

    def __init__(self, message: str = "Location services are disabled.") -> None:
        super().__init__(message)


class SearchError(MealMapError):
    """A fetch against the search service failed."""


class FetchFailed(SearchError):
    """Non-200 response, transport error or timeout."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class MalformedResponse(SearchError):
    """Response body was not JSON or did not match the expected shape."""
