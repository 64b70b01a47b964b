"""Error taxonomy shared by the sync layer."""

from __future__ import annotations

from typing import Any, Mapping


class SyncError(Exception):
    """Base class for every error raised by the sync layer."""


class InvalidTransition(SyncError):
    """An operation was requested in a phase that does not allow it."""


class ApiError(SyncError):
    """The BFFlix API answered with a non-success status."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    @classmethod
    def from_payload(
        cls, status_code: int, payload: Any, *, default: str | None = None
    ) -> "ApiError":
        """Build an error using the server's ``error``/``message`` field when present."""

        message: str | None = None
        if isinstance(payload, Mapping):
            for key in ("error", "message"):
                value = payload.get(key)
                if isinstance(value, str) and value.strip():
                    message = value.strip()
                    break
        return cls(message or default or f"Request failed: {status_code}", status_code=status_code)


class NetworkError(ApiError):
    """Transport failure or a 5xx response."""


class AuthError(ApiError):
    """The session is missing or not allowed to see the resource (401/403)."""


class NotFoundError(ApiError):
    """The referenced entity does not exist (404)."""


class ValidationError(SyncError):
    """A draft failed client-side validation; nothing was sent."""

    def __init__(self, field_errors: Mapping[str, str]) -> None:
        self.field_errors = dict(field_errors)
        summary = ", ".join(f"{field}: {error}" for field, error in self.field_errors.items())
        super().__init__(summary or "Validation failed")


class EnrichmentFailure(SyncError):
    """The metadata provider could not describe a title."""


class SaveError(SyncError):
    """A profile save did not fully succeed.

    The profile and streaming-service updates are sent independently, so one
    of them may already be applied on the server when the other fails.
    ``failed_operations`` names the parts that failed.
    """

    def __init__(
        self,
        *,
        profile_error: BaseException | None = None,
        services_error: BaseException | None = None,
    ) -> None:
        self.profile_error = profile_error
        self.services_error = services_error
        failed = self.failed_operations
        if len(failed) == 2:
            message = "Failed to save profile and streaming services"
        elif failed == ("profile",):
            message = "Failed to save profile (streaming services were saved)"
        else:
            message = "Failed to save streaming services (profile was saved)"
        super().__init__(message)

    @property
    def failed_operations(self) -> tuple[str, ...]:
        failed: list[str] = []
        if self.profile_error is not None:
            failed.append("profile")
        if self.services_error is not None:
            failed.append("services")
        return tuple(failed)

    @property
    def partially_applied(self) -> bool:
        return len(self.failed_operations) == 1
