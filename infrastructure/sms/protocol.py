"""SmsProvider protocol — services depend on this, not the concrete implementation."""

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class SmsResult:
    """Provider message id. simulated=True means nothing left the building."""

    id: str
    simulated: bool = False


class SmsProvider(Protocol):
    async def send(self, to: str, body: str) -> SmsResult:
        """Send *body* to E.164 number *to*.

        Raises TransientExternalError for retryable failures and
        PermanentExternalError for everything else.
        """
        ...
