"""NotificationSender protocol — services depend on this, not on a provider.

A provider takes an already-rendered message and reports whether it was
accepted. Providers never raise for delivery problems; they log and return
``DeliveryReceipt(delivered=False)`` so the caller decides how strict to be.
"""

from dataclasses import dataclass
from typing import Optional, Protocol


@dataclass(frozen=True)
class RenderedMessage:
    subject: str
    text: str
    html: Optional[str] = None


@dataclass(frozen=True)
class DeliveryReceipt:
    delivered: bool
    # Some sandboxes (Ethereal, Mailpit) expose a web view of the message
    preview_url: Optional[str] = None


class NotificationSender(Protocol):
    async def send(
        self,
        destination: str,
        message: RenderedMessage,
        *,
        recipient_name: Optional[str] = None,
    ) -> DeliveryReceipt: ...
