"""
Error taxonomy for the application workflow.

Every engine, store and attachment operation either returns the new state
or raises one of these. The API layer maps them to HTTP responses in one
place (see main.py), so routes never build HTTPExceptions for business rules.
"""


class ApplicationError(Exception):
    """Base class. `status_code` is the HTTP status the API answers with."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ApplicationError):
    """Bad input shape: blank cover letter, short review notes, no-op change."""

    status_code = 400


class AttachmentTooLargeError(ValidationError):
    status_code = 413


class ConflictError(ApplicationError):
    """Optimistic version mismatch on update."""

    status_code = 409

    def __init__(self, message: str, expected_version: int = None, current_version: int = None):
        super().__init__(message)
        self.expected_version = expected_version
        self.current_version = current_version


class DuplicateError(ApplicationError):
    status_code = 409


class NotFoundError(ApplicationError):
    status_code = 404


class ForbiddenError(ApplicationError):
    status_code = 403


class PostingInactiveError(ApplicationError):
    status_code = 400


class NoResumeError(ApplicationError):
    """Nothing attached to the application."""

    status_code = 404


class CorruptAttachmentError(ApplicationError):
    """An attachment is present but cannot be decoded."""

    status_code = 422
