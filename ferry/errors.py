from __future__ import annotations

from typing import Optional


class FerryError(Exception):
    """Base class for Ferry-specific errors."""


# Container / stream format
class FormatError(FerryError):
    pass


# Encryption
class CryptoSetupError(FerryError):
    pass


class PasswordRequired(FerryError):
    pass


class ConfigError(FerryError):
    pass


class TransportError(FerryError):
    """HTTP failure; ``status`` is None when no response was received."""

    def __init__(self, message: str, status: Optional[int] = None, reason: Optional[str] = None):
        super().__init__(message)
        self.status = status
        self.reason = reason
