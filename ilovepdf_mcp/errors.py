from __future__ import annotations

from typing import Optional


class ILoveAPIError(RuntimeError):
    """Base error for a failed step of an iLovePDF/iLoveIMG workflow.

    Carries the backend HTTP status (when a response was received) and the
    backend error body verbatim, since that body usually holds the actionable
    detail (wrong password, unsupported region, ...).
    """

    def __init__(self, message: str, *, status_code: Optional[int] = None, body: Optional[str] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class AuthenticationError(ILoveAPIError):
    pass


class TaskStartError(ILoveAPIError):
    def __init__(self, message: str, *, transform: str, status_code: Optional[int] = None, body: Optional[str] = None) -> None:
        super().__init__(message, status_code=status_code, body=body)
        self.transform = transform


class UploadError(ILoveAPIError):
    pass


class ProcessError(ILoveAPIError):
    pass


class DownloadError(ILoveAPIError):
    pass


class ChainError(ILoveAPIError):
    pass


class SignatureError(ILoveAPIError):
    pass


class SessionStateError(ILoveAPIError):
    """A task session was driven out of order (e.g. process before upload)."""


class SessionExpiredError(ILoveAPIError):
    """The backend task window has passed; the kept task can no longer be used."""


class MissingCredentialsError(ILoveAPIError):
    pass


class UnknownToolError(ILoveAPIError):
    pass
