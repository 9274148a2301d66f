"""
Resume Attachment Service - inline resume storage on the application record.

Submit path: bytes -> base64 text + filename + MIME type + size
View path:   base64 text -> bytes + filename + MIME type

No content validation happens here. A PDF that is really a JPEG is the
viewer's problem, not ours. Oversized files are rejected, never truncated.
"""

import asyncio
import base64
import binascii
import logging

from internlink.core.errors import (
    AttachmentTooLargeError,
    CorruptAttachmentError,
    NoResumeError,
    ValidationError,
)
from internlink.schemas.schemas import Application, ResumeAttachment, ResumeFile, ResumeUpload

logger = logging.getLogger(__name__)

DEFAULT_RESUME_FILE_NAME = "resume.pdf"
DEFAULT_RESUME_MIME_TYPE = "application/pdf"


class ResumeAttachmentService:

    def __init__(self, max_bytes: int):
        self.max_bytes = max_bytes

    async def encode(self, upload: ResumeUpload) -> ResumeAttachment:
        size = len(upload.data)
        if size == 0:
            raise ValidationError("Resume file is empty")
        if size > self.max_bytes:
            raise AttachmentTooLargeError(
                f"Resume file too large. Maximum size is {self.max_bytes // 1000}KB. "
                f"Your file: {size // 1000}KB"
            )

        blob = await asyncio.to_thread(lambda: base64.b64encode(upload.data).decode("ascii"))
        file_name = upload.file_name or DEFAULT_RESUME_FILE_NAME
        logger.debug("Resume encoded: %s, %d bytes", file_name, size)
        return ResumeAttachment(
            blob=blob,
            file_name=file_name,
            mime_type=upload.mime_type or DEFAULT_RESUME_MIME_TYPE,
            size=size,
        )

    async def open(self, application: Application) -> ResumeFile:
        """
        Decode the stored resume for viewing.

        Raises:
            NoResumeError: nothing is attached
            CorruptAttachmentError: something is attached but is not valid base64
        """
        if not application.has_resume:
            raise NoResumeError(f"No resume attached to application '{application.id}'")

        # Blobs written by older mobile clients are line-wrapped
        blob = "".join(application.resume_blob.split())
        try:
            content = await asyncio.to_thread(base64.b64decode, blob, validate=True)
        except (binascii.Error, ValueError) as e:
            raise CorruptAttachmentError(
                f"Resume on application '{application.id}' cannot be decoded: {e}"
            ) from e

        return ResumeFile(
            content=content,
            file_name=application.resume_file_name or DEFAULT_RESUME_FILE_NAME,
            mime_type=application.resume_mime_type or DEFAULT_RESUME_MIME_TYPE,
        )
