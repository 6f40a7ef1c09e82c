"""Domain Errors - Centralized Exception Hierarchy"""
from typing import Any, Dict, Optional


class DomainError(Exception):
    """Base domain error - all errors extend this"""

    error_code: str = "DOMAIN_ERROR"
    http_status: int = 400

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if error_code:
            self.error_code = error_code

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to API response dict"""
        return {
            "error": {
                "code": self.error_code,
                "message": self.message,
                "details": self.details
            }
        }


# Authentication
class AuthenticationError(DomainError):
    """Trigger secret missing or invalid"""
    error_code = "AUTHENTICATION_ERROR"
    http_status = 401


class WebhookVerificationError(DomainError):
    """Webhook verify token mismatch"""
    error_code = "WEBHOOK_VERIFICATION_FAILED"
    http_status = 403


# Configuration
class RuleConfigurationError(DomainError):
    """Notification rule is missing or has invalid fields"""
    error_code = "RULE_CONFIGURATION_ERROR"


# Not Found
class NotFoundError(DomainError):
    """Resource not found"""
    error_code = "NOT_FOUND"
    http_status = 404


class RecipientNotFoundError(NotFoundError):
    """Recipient has no contact details on file"""
    error_code = "RECIPIENT_NOT_FOUND"


# Store
class StoreError(DomainError):
    """Durable store read/write failure"""
    error_code = "STORE_ERROR"
    http_status = 503


# External Service Errors
class ExternalServiceError(DomainError):
    """External service failure"""
    error_code = "EXTERNAL_SERVICE_ERROR"
    http_status = 502


class ChannelError(ExternalServiceError):
    """Outbound notification channel rejected or failed the message"""
    error_code = "CHANNEL_ERROR"


class ChannelNotConfiguredError(ChannelError):
    """Outbound channel credentials are not configured"""
    error_code = "CHANNEL_NOT_CONFIGURED"
