"""Session context threaded explicitly through every remote call."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class SessionContext:
    """Credentials for the signed-in user.

    Instances are created by whatever performed the sign-in and handed to each
    client call; nothing in this package reads credentials from ambient state.
    """

    access_token: str | None = None
    user_id: str | None = None

    @property
    def authenticated(self) -> bool:
        return bool(self.access_token)

    def headers(self) -> dict[str, str]:
        """Return the request headers carrying this session's credentials."""

        if not self.access_token:
            return {}
        return {"Authorization": f"Bearer {self.access_token}"}


ANONYMOUS = SessionContext()
