from typing import Optional

import httpx

from chatdesk.config import Settings
from chatdesk.exceptions import ProviderRejected, TransportError
from chatdesk.logging_config import get_logger
from chatdesk.services.replies import ButtonsReply, MediaReply, ReplyPlan, TemplateReply, TextReply
from chatdesk.services.result import Result

logger = get_logger("whatsapp_service")

MESSAGING_PRODUCT = "whatsapp"


class WhatsAppService:
    """Sends reply plans through the WhatsApp Cloud API messages endpoint."""

    def __init__(self, settings: Settings, transport: Optional[httpx.BaseTransport] = None):
        self.settings = settings
        self.url = settings.messages_url
        self.timeout = settings.send_timeout_seconds
        self._transport = transport

    def build_payload(self, to: str, reply: ReplyPlan) -> dict:
        """Shape the Graph API JSON body for ``reply``."""
        payload = {
            "messaging_product": MESSAGING_PRODUCT,
            "recipient_type": "individual",
            "to": to,
        }

        if isinstance(reply, TextReply):
            payload["type"] = "text"
            payload["text"] = {"body": reply.body, "preview_url": False}
        elif isinstance(reply, ButtonsReply):
            payload["type"] = "interactive"
            payload["interactive"] = {
                "type": "button",
                "body": {"text": reply.body},
                "action": {
                    "buttons": [
                        {"type": "reply", "reply": {"id": button.id, "title": button.title}}
                        for button in reply.buttons
                    ]
                },
            }
        elif isinstance(reply, TemplateReply):
            template = {"name": reply.name, "language": {"code": reply.language_code}}
            if reply.components:
                template["components"] = list(reply.components)
            payload["type"] = "template"
            payload["template"] = template
        elif isinstance(reply, MediaReply):
            media = {"link": reply.media_ref} if reply.is_link else {"id": reply.media_ref}
            if reply.caption and reply.media_type in {"image", "video", "document"}:
                media["caption"] = reply.caption
            payload["type"] = reply.media_type
            payload[reply.media_type] = media
        else:
            raise TypeError(f"Unsupported reply plan: {type(reply).__name__}")

        return payload

    def _post(self, payload: dict) -> dict:
        headers = {
            "Authorization": f"Bearer {self.settings.whatsapp_token}",
            "Content-Type": "application/json",
        }
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.post(self.url, json=payload, headers=headers)
        except httpx.TimeoutException as e:
            raise TransportError(f"WhatsApp API timed out: {e}") from e
        except httpx.TransportError as e:
            raise TransportError(f"WhatsApp API unreachable: {e}") from e

        if response.is_success:
            try:
                data = response.json()
            except ValueError:
                return {}
            return data if isinstance(data, dict) else {}

        raise ProviderRejected(response.status_code, _error_detail(response))

    def send(self, to: str, reply: ReplyPlan) -> Result[dict]:
        """Send ``reply`` to ``to``. Failures come back as a failed Result, never raised."""
        payload = self.build_payload(to, reply)
        try:
            data = self._post(payload)
        except (ProviderRejected, TransportError) as e:
            logger.error(
                f"WhatsApp send failed: {e.message}",
                extra={"context": {"to": to, "type": payload["type"], "error_code": e.code}},
            )
            return Result.from_error(e)

        message_ids = [m.get("id") for m in data.get("messages", []) if isinstance(m, dict)]
        logger.info(
            f"WhatsApp message sent: to={to}, type={payload['type']}",
            extra={"context": {"to": to, "message_ids": message_ids}},
        )
        return Result.success(data)


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    return response.text[:200]
