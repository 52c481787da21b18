"""
Error taxonomy shared by the store and the managers.

Store operations hand errors back as values (`StoreResult.error`) rather
than raising them at the caller; store-side services raise them
internally and the store adapter converts.
"""

import enum


class ErrorKind(str, enum.Enum):
    INVALID_REFRESH_TOKEN = "invalid_refresh_token"
    INVALID_CREDENTIALS = "invalid_credentials"
    INVALID_JWT = "invalid_jwt"
    NOT_FOUND = "not_found"
    CONSTRAINT = "constraint"
    TRANSIENT = "transient"


class StoreError(Exception):
    """A classified backing-store failure."""

    def __init__(self, message: str, kind: ErrorKind = ErrorKind.TRANSIENT):
        super().__init__(message)
        self.message = message
        self.kind = kind

    @property
    def is_invalid_refresh_token(self) -> bool:
        return self.kind is ErrorKind.INVALID_REFRESH_TOKEN

    def __repr__(self) -> str:
        return f"<StoreError {self.kind.value}: {self.message}>"
