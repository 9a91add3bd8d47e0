"""
Errors raised while resolving an access token to a fillable entry.

Each error carries the HTTP status and the stable `code` the patient
client uses to pick the right status card (invalid link, expired link,
already submitted).
"""
from fastapi import HTTPException


class TokenError(Exception):
    status_code = 400
    code = "invalid_request"
    message = "Invalid request"

    def __init__(self, message: str = None, **extra):
        super().__init__(message or self.message)
        self.message = message or self.message
        self.extra = extra

    def to_http(self) -> HTTPException:
        detail = {"error": self.message, "code": self.code}
        detail.update(self.extra)
        return HTTPException(status_code=self.status_code, detail=detail)


class MissingToken(TokenError):
    code = "missing_token"
    message = "Token is required"


class MalformedToken(TokenError):
    code = "invalid_token"
    message = "Invalid token format"


class InvalidToken(TokenError):
    status_code = 404
    code = "invalid_token"
    message = "Invalid token"


class TokenExpired(TokenError):
    status_code = 403
    code = "expired"
    message = "Token expired"


class AlreadySubmitted(TokenError):
    status_code = 409
    code = "already_submitted"
    message = "Form already submitted"


class EntryUnavailable(TokenError):
    status_code = 403
    code = "invalid_status"
    message = "Form cannot be filled in right now"


class InvalidTemplate(ValueError):
    """A stored or uploaded form template breaks a structural rule."""
