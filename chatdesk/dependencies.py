from fastapi import Depends

from chatdesk.config import Settings, get_settings
from chatdesk.services.dispatcher import WebhookDispatcher
from chatdesk.services.whatsapp_service import WhatsAppService


def get_sender(settings: Settings = Depends(get_settings)) -> WhatsAppService:
    return WhatsAppService(settings)


def get_dispatcher(
    settings: Settings = Depends(get_settings),
    sender: WhatsAppService = Depends(get_sender),
) -> WebhookDispatcher:
    return WebhookDispatcher(settings, sender)
