"""Generation counters and cancellation flags for outstanding operations."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class OperationToken:
    """Handle attached to one outstanding operation.

    The token answers two questions once the operation resumes: has its owner
    been torn down, and has a newer operation been issued since.
    """

    scope: "OperationScope"
    sequence: int

    @property
    def cancelled(self) -> bool:
        return self.scope.closed

    @property
    def superseded(self) -> bool:
        return self.scope.latest != self.sequence

    @property
    def current(self) -> bool:
        """True when the result of this operation may still be applied."""

        return not self.cancelled and not self.superseded


class OperationScope:
    """Issues monotonically numbered tokens for a single owner."""

    def __init__(self, name: str = "operation") -> None:
        self.name = name
        self._latest = 0
        self._closed = False

    @property
    def latest(self) -> int:
        return self._latest

    @property
    def closed(self) -> bool:
        return self._closed

    def issue(self) -> OperationToken:
        """Start a new operation, superseding every earlier token."""

        self._latest += 1
        return OperationToken(self, self._latest)

    def invalidate(self) -> None:
        """Supersede outstanding tokens without starting a new operation."""

        self._latest += 1

    def close(self) -> None:
        """Mark the owner torn down; every token becomes non-current."""

        self._closed = True

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"OperationScope({self.name!r}, latest={self._latest}, {state})"
