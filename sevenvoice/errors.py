"""Error kinds surfaced to API callers.

Every provider or processor failure is translated into one of these before it
leaves a service; ``main.py`` renders them as ``{"message": ...}`` JSON.
"""
from typing import Any, List, Optional


def field_errors(errors: List[dict], skip: tuple = ("body",)) -> List[dict]:
    """Flatten pydantic error dicts to ``{"field", "message"}`` pairs."""
    out = []
    for err in errors:
        loc = [str(p) for p in err.get("loc", ()) if p not in skip]
        out.append({"field": ".".join(loc), "message": err.get("msg", "")})
    return out


class AppError(Exception):
    status_code = 500
    message = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)

    def to_body(self) -> dict:
        return {"message": self.message}


class ValidationError(AppError):
    status_code = 400
    message = "Validation error"

    def __init__(self, message: Optional[str] = None, errors: Optional[List[Any]] = None):
        super().__init__(message)
        self.errors = errors or []

    def to_body(self) -> dict:
        body = super().to_body()
        if self.errors:
            body["errors"] = self.errors
        return body


class AuthRequired(AppError):
    status_code = 401
    message = "Authentication required"


class InvalidCredentials(AppError):
    status_code = 401
    message = "Invalid email or password"


class NotFound(AppError):
    status_code = 404
    message = "Not found"


class Conflict(AppError):
    status_code = 409
    message = "User already exists with this email"


class AlreadySubscribed(AppError):
    status_code = 400
    message = "User already has an active subscription"


class InvalidSignature(AppError):
    status_code = 400
    message = "Webhook signature verification failed"


class ProviderUnavailable(AppError):
    status_code = 429
    message = "Provider unavailable. Please check your API key and quota, or try again later."

    def __init__(self, message: Optional[str] = None, provider_error: Optional[str] = None):
        super().__init__(message)
        self.provider_error = provider_error

    def to_body(self) -> dict:
        body = super().to_body()
        if self.provider_error:
            body["providerError"] = self.provider_error
        return body


class NotConfigured(AppError):
    status_code = 501
    message = "Not configured"


class GenerationError(AppError):
    status_code = 500
    message = "Failed to generate speech"


class InternalError(AppError):
    status_code = 500
