"""
Error taxonomy for order and payment flows.

Errors raised from request-facing code are rendered by the handler in
``main.py`` as ``{"success": false, "message": ...}`` using ``status_code``.
``UnresolvedOrderError`` and ``SideEffectError`` are internal: they are caught
and logged inside the webhook flow and never reach a provider as a failure.
"""


class OrderServiceError(Exception):
    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(OrderServiceError):
    status_code = 400


class OrderNotFoundError(OrderServiceError):
    status_code = 404


class SignatureError(OrderServiceError):
    status_code = 400


class ProviderError(OrderServiceError):
    status_code = 502

    def __init__(self, message: str, provider: str | None = None, status: int | None = None):
        super().__init__(message)
        self.provider = provider
        self.status = status


class SecretNotFoundError(OrderServiceError):
    status_code = 500


class UnresolvedOrderError(OrderServiceError):
    pass


class SideEffectError(OrderServiceError):
    pass
