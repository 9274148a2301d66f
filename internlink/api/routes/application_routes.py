"""
Application Routes

POST /applications - Submit (or resubmit) an application (student only)
GET /applications/{id} - Application with posting and student profile
PUT /applications/{id}/status - Change status (company only)
PUT /applications/{id}/notes - Change reviewer notes (company only)
PUT /applications/{id}/review - Change status and notes together (company only)
POST /applications/{id}/override - Audited status override (company only)
DELETE /applications/{id} - Withdraw (owning student only)
GET /applications/{id}/resume - Download the attached resume
"""

from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import Response

from internlink.api.deps import Services, get_services
from internlink.api.responses import (
    ERROR_RESPONSES,
    application_detail_response,
    application_response,
)
from internlink.core.auth import get_current_actor
from internlink.schemas.schemas import (
    Actor,
    ApplicationDetailResponse,
    ApplicationResponse,
    MessageResponse,
    NotesUpdateRequest,
    ReviewRequest,
    StatusOverrideRequest,
    StatusUpdateRequest,
)
from internlink.utils.file_upload import read_resume_upload

router = APIRouter(prefix="/applications", tags=["Applications"], responses=ERROR_RESPONSES)


@router.post("", response_model=ApplicationResponse, status_code=201)
async def submit_application(
    posting_id: str = Form(...),
    cover_letter: str = Form(...),
    resume: Optional[UploadFile] = File(None, description="Resume file (PDF preferred)"),
    actor: Actor = Depends(get_current_actor),
    services: Services = Depends(get_services),
):
    """
    Apply to a posting. Students only.

    Applying again to the same posting updates the existing application
    (cover letter, and resume if one is sent) instead of creating a second one.
    """
    upload = await read_resume_upload(resume, services.settings.max_resume_bytes)
    application = await services.engine.submit_application(actor, posting_id, cover_letter, upload)
    return application_response(application)


@router.get("/{application_id}", response_model=ApplicationDetailResponse)
async def get_application(
    application_id: str,
    actor: Actor = Depends(get_current_actor),
    services: Services = Depends(get_services),
):
    """Application details, enriched with the posting and the student's profile."""
    detail = await services.engine.get_application_detail(actor, application_id)
    return application_detail_response(detail)


@router.put("/{application_id}/status", response_model=ApplicationResponse)
async def update_status(
    application_id: str,
    update: StatusUpdateRequest,
    actor: Actor = Depends(get_current_actor),
    services: Services = Depends(get_services),
):
    """Change only the status."""
    application = await services.engine.update_status(
        actor, application_id, update.status, update.expected_version
    )
    return application_response(application)


@router.put("/{application_id}/notes", response_model=ApplicationResponse)
async def update_notes(
    application_id: str,
    update: NotesUpdateRequest,
    actor: Actor = Depends(get_current_actor),
    services: Services = Depends(get_services),
):
    """Change only the reviewer notes (visible to the student)."""
    application = await services.engine.update_notes(
        actor, application_id, update.notes, update.expected_version
    )
    return application_response(application)


@router.put("/{application_id}/review", response_model=ApplicationResponse)
async def review_application(
    application_id: str,
    review: ReviewRequest,
    actor: Actor = Depends(get_current_actor),
    services: Services = Depends(get_services),
):
    """
    Confirm a review: new status plus notes.

    Notes must be at least 20 characters and the status must actually change.
    """
    application = await services.engine.update_status_and_notes(
        actor, application_id, review.status, review.notes, review.expected_version
    )
    return application_response(application)


@router.post("/{application_id}/override", response_model=ApplicationResponse)
async def override_status(
    application_id: str,
    override: StatusOverrideRequest,
    actor: Actor = Depends(get_current_actor),
    services: Services = Depends(get_services),
):
    """Set any status, including back to pending. Recorded in the status history."""
    application = await services.engine.override_status(
        actor, application_id, override.status, override.reason
    )
    return application_response(application)


@router.delete("/{application_id}", response_model=MessageResponse)
async def withdraw_application(
    application_id: str,
    actor: Actor = Depends(get_current_actor),
    services: Services = Depends(get_services),
):
    """Withdraw an application. Allowed in any status."""
    await services.engine.withdraw(actor, application_id)
    return MessageResponse(message="Application withdrawn")


@router.get("/{application_id}/resume")
async def download_resume(
    application_id: str,
    actor: Actor = Depends(get_current_actor),
    services: Services = Depends(get_services),
):
    """Stream the attached resume back with its stored MIME type."""
    application = await services.engine.get_application(actor, application_id)
    resume = await services.attachments.open(application)
    return Response(
        content=resume.content,
        media_type=resume.mime_type,
        headers={"Content-Disposition": f"inline; filename*=UTF-8''{quote(resume.file_name)}"},
    )
