"""RealtimeChannel protocol: room-based, fire-and-forget event bus."""

from typing import Any, AsyncIterator, Protocol


class RealtimeSubscription(Protocol):
    def listen(self) -> AsyncIterator[dict[str, Any]]: ...

    async def aclose(self) -> None: ...


class RealtimeChannel(Protocol):
    async def emit(self, room: str, event: str, payload: dict[str, Any]) -> bool:
        """Publish *event* to everyone in *room*.

        Returns True once the event is handed to the transport (there is no
        per-receiver acknowledgment) and False when it was dropped unsent.
        """
        ...

    async def join_room(self, room: str) -> RealtimeSubscription: ...

    async def aclose(self) -> None: ...


def user_room(user_id: Any) -> str:
    """Room every connected session of a user joins."""
    return f"user:{user_id}"
