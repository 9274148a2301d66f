"""
Response builders - domain objects to API schemas.

The resume blob never leaves through these; it is only served by the
dedicated download route.
"""

from typing import List

from internlink.core.errors import ApplicationError
from internlink.schemas.schemas import (
    Application,
    ApplicationDetail,
    ApplicationDetailResponse,
    ApplicationListResponse,
    ApplicationResponse,
    DashboardResponse,
    ErrorResponse,
    StatusTallyResponse,
)
from internlink.services.projection import (
    DashboardSummary,
    ProjectedView,
    status_description,
    status_label,
)


def application_response(app: Application) -> ApplicationResponse:
    return ApplicationResponse(
        application_id=app.id, posting_id=app.posting_id, posting_title=app.posting_title,
        company_name=app.company_name, student_id=app.student_id, student_email=app.student_email,
        cover_letter=app.cover_letter, status=app.status, status_label=status_label(app.status),
        status_description=status_description(app.status),
        company_notes=app.company_notes, has_resume=app.has_resume,
        resume_file_name=app.resume_file_name, resume_mime_type=app.resume_mime_type,
        resume_size=app.resume_size, applied_date=app.applied_date, last_updated=app.last_updated
    )


def application_detail_response(detail: ApplicationDetail) -> ApplicationDetailResponse:
    base = application_response(detail.application)
    return ApplicationDetailResponse(
        **base.model_dump(),
        posting=detail.posting,
        student_profile=detail.student_profile,
        status_history=detail.application.status_history,
    )


def list_response(view: ProjectedView) -> ApplicationListResponse:
    return ApplicationListResponse(
        applications=applications_response(view.applications),
        tally=StatusTallyResponse(counts=view.tally.counts, total=view.tally.total),
        status_filter=view.status_filter,
    )


def applications_response(applications: List[Application]) -> List[ApplicationResponse]:
    return [application_response(app) for app in applications]


def dashboard_response(summary: DashboardSummary) -> DashboardResponse:
    return DashboardResponse(
        total=summary.total, pending_review=summary.pending_review, accepted=summary.accepted,
        recent=applications_response(summary.recent)
    )


def error_response(exc: ApplicationError) -> ErrorResponse:
    return ErrorResponse(detail=exc.message, error=type(exc).__name__)


# Documented on every route that goes through the engine
ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Validation failed"},
    403: {"model": ErrorResponse, "description": "Actor may not do this"},
    404: {"model": ErrorResponse, "description": "Unknown application or posting"},
    409: {"model": ErrorResponse, "description": "Concurrent change survived the retry"},
}
