from __future__ import annotations

from typing import Optional


class ToolError(RuntimeError):
    pass


class ConfigurationError(ToolError):
    """Templates, placeholders or auth settings cannot produce a working tool."""


class InputRecoveryError(ToolError):
    def __init__(self, message: str, *, missing: Optional[str] = None) -> None:
        super().__init__(message)
        self.missing = missing


class HttpError(ToolError):
    def __init__(self, status_code: Optional[int], message: str, *, body: Optional[str] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.body = body

    def __str__(self) -> str:
        if self.status_code is None:
            return f"HTTP error: {self.message}"
        return f"HTTP {self.status_code}: {self.message}"


class UnsupportedContentError(ToolError):
    pass


class CredentialError(ToolError):
    pass
