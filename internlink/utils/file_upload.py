"""
File Upload Utility - read a resume upload into memory.

The workflow stores resumes inline on the application record, so the
upload is bounded by MAX_RESUME_BYTES (default 500KB). Oversized files are
rejected here, before anything reaches the core.

Content is not inspected. Filename and MIME type are passed through.
"""

from typing import Optional

from fastapi import HTTPException, UploadFile

from internlink.schemas.schemas import ResumeUpload

CHUNK_SIZE = 64 * 1024

# Used when the client sends no (or a generic) content type
EXTENSION_MIME_TYPES = {
    '.pdf': 'application/pdf',
    '.docx': 'application/vnd.openxmlformats-officedocument.wordprocessingml.document',
    '.doc': 'application/msword',
    '.txt': 'text/plain',
}


def get_file_extension(filename: str) -> str:
    """Get lowercase file extension."""
    if '.' not in filename:
        return ''
    return '.' + filename.rsplit('.', 1)[1].lower()


async def read_resume_upload(file: Optional[UploadFile], max_bytes: int) -> Optional[ResumeUpload]:
    """
    Read an optional resume upload.

    Returns:
        ResumeUpload, or None when no file was sent

    Raises:
        HTTPException 413 once the upload passes `max_bytes`
        HTTPException 400 for an empty file
    """
    if file is None or not file.filename:
        return None

    chunks = []
    size = 0
    while True:
        chunk = await file.read(CHUNK_SIZE)
        if not chunk:
            break
        size += len(chunk)
        # Stop reading as soon as the bound is passed
        if size > max_bytes:
            raise HTTPException(
                status_code=413,
                detail=f"Resume file too large. Maximum size: {max_bytes // 1000}KB"
            )
        chunks.append(chunk)

    if size == 0:
        raise HTTPException(status_code=400, detail="Resume file is empty")

    mime_type = file.content_type
    if not mime_type or mime_type == "application/octet-stream":
        mime_type = EXTENSION_MIME_TYPES.get(get_file_extension(file.filename))

    return ResumeUpload(data=b"".join(chunks), file_name=file.filename, mime_type=mime_type)
