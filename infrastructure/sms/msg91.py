"""MSG91 implementation of NotificationSender for SMS.

Uses the MSG91 OTP v5 endpoint. MSG91 fills the DLT-registered template
itself, so only the code travels in the request; the rendered text is
kept for logging length and for providers that take free text.
"""

import re
from typing import Optional

from config import SmsSettings
from infrastructure.http_client import HttpClient
from infrastructure.notifications import DeliveryReceipt, RenderedMessage
from shared.logging import get_logger
from shared.validators import mask_phone

log = get_logger(__name__)

_MSG91_OTP_URL = "https://control.msg91.com/api/v5/otp"
_CODE_RE = re.compile(r"\b(\d{4,8})\b")


def _digits(phone: str) -> str:
    return "".join(ch for ch in (phone or "").strip() if ch.isdigit())


class Msg91SmsProvider:
    def __init__(self, settings: SmsSettings, http_client: HttpClient) -> None:
        self._settings = settings
        self._http = http_client

    def missing_fields(self) -> list[str]:
        missing: list[str] = []
        if not self._settings.msg91_api_key:
            missing.append("MSG91_API_KEY")
        if not self._settings.msg91_sender_id:
            missing.append("MSG91_SENDER_ID")
        if not self._settings.msg91_otp_template_id:
            missing.append("MSG91_OTP_TEMPLATE_ID")
        return missing

    async def send(
        self,
        destination: str,
        message: RenderedMessage,
        *,
        recipient_name: Optional[str] = None,
    ) -> DeliveryReceipt:
        missing = self.missing_fields()
        if missing:
            log.error("sms_send_failed", reason="not_configured", missing=",".join(missing))
            return DeliveryReceipt(delivered=False)

        mobile = _digits(destination)
        match = _CODE_RE.search(message.text)
        if not mobile or not match:
            log.error("sms_send_failed", reason="invalid_payload", to_phone=mask_phone(destination))
            return DeliveryReceipt(delivered=False)

        payload = {
            "mobile": mobile,
            "otp": match.group(1),
            "sender": self._settings.msg91_sender_id,
            "template_id": self._settings.msg91_otp_template_id,
        }
        headers = {
            "accept": "application/json",
            "content-type": "application/json",
            "authkey": self._settings.msg91_api_key,
        }

        try:
            response = await self._http.post(_MSG91_OTP_URL, json=payload, headers=headers)
        except Exception as e:
            log.error(
                "sms_send_error",
                to_phone=mask_phone(destination),
                error=str(e),
                error_type=type(e).__name__,
            )
            return DeliveryReceipt(delivered=False)

        if response.status_code // 100 == 2:
            log.info("sms_sent_success", to_phone=mask_phone(destination))
            return DeliveryReceipt(delivered=True)

        log.error(
            "sms_sent_failed",
            to_phone=mask_phone(destination),
            status_code=response.status_code,
            response=response.text[:200],
        )
        return DeliveryReceipt(delivered=False)
