from __future__ import annotations

from typing import Optional


class RendererError(Exception):
    """Base class for failures raised by the rendering pipeline."""


class CollaboratorError(RendererError):
    """An HTTP call to the file-storage or bot-config service did not succeed."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TemplateError(RendererError):
    pass


class ConversionError(RendererError):
    """The document-conversion service rejected or failed a request."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
