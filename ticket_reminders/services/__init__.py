"""Service modules - Outbound channels"""
from .whatsapp_service import WhatsAppService, format_phone_number

__all__ = [
    "WhatsAppService",
    "format_phone_number",
]
