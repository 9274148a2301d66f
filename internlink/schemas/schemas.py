"""
Pydantic Schemas - Domain documents and Request/Response Validation

All application-workflow models in one file for simplicity.
Domain models (Application, Posting, ...) are frozen: a change is a copy.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


# ============================================================
# ENUMS
# ============================================================

class ActorRole(str, Enum):
    student = "student"
    company = "company"


class ApplicationStatus(str, Enum):
    pending = "pending"
    reviewed = "reviewed"
    shortlisted = "shortlisted"
    accepted = "accepted"
    rejected = "rejected"


# Targets a company may pick in the normal review flow.
# PENDING is only reachable again through an audited override.
REVIEW_STATUSES = frozenset({
    ApplicationStatus.reviewed,
    ApplicationStatus.shortlisted,
    ApplicationStatus.accepted,
    ApplicationStatus.rejected,
})


class ChangeKind(str, Enum):
    created = "created"
    updated = "updated"
    deleted = "deleted"


class SubscriptionScope(str, Enum):
    application = "application"
    student = "student"
    posting = "posting"
    company = "company"


# ============================================================
# IDENTITY
# ============================================================

class Actor(BaseModel):
    """The caller of an operation, as supplied by the identity provider."""

    model_config = ConfigDict(frozen=True)

    id: str
    role: ActorRole
    email: Optional[EmailStr] = None
    company_name: Optional[str] = None

    @property
    def is_student(self) -> bool:
        return self.role == ActorRole.student

    @property
    def is_company(self) -> bool:
        return self.role == ActorRole.company


# ============================================================
# EXTERNAL LOOKUP RECORDS
# ============================================================

class Posting(BaseModel):
    model_config = ConfigDict(frozen=True)

    posting_id: str
    title: str
    company_name: str
    is_active: bool = True


class StudentProfile(BaseModel):
    model_config = ConfigDict(frozen=True)

    student_id: str
    name: str
    school: Optional[str] = None
    course: Optional[str] = None
    year_level: Optional[str] = None
    city: Optional[str] = None
    barangay: Optional[str] = None
    preferred_types: List[str] = []
    skills: List[str] = []


# ============================================================
# APPLICATION DOCUMENT
# ============================================================

class StatusChange(BaseModel):
    """One entry of an application's audit trail."""

    model_config = ConfigDict(frozen=True)

    from_status: ApplicationStatus
    to_status: ApplicationStatus
    actor_id: str
    changed_at: datetime
    reason: Optional[str] = None
    override: bool = False


class Application(BaseModel):
    """
    A student's submission against one posting.

    `last_updated` is the optimistic version: epoch milliseconds stamped by
    the store, strictly increasing for a given document.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    posting_id: str
    posting_title: str
    company_name: str
    student_id: str
    student_email: str = ""
    cover_letter: str
    status: ApplicationStatus = ApplicationStatus.pending
    company_notes: str = ""

    # Inline resume (base64 text) plus its metadata
    resume_blob: Optional[str] = None
    resume_file_name: Optional[str] = None
    resume_mime_type: Optional[str] = None
    resume_size: Optional[int] = None

    applied_date: datetime
    last_updated: int = 0
    status_history: List[StatusChange] = []

    @property
    def has_resume(self) -> bool:
        return bool(self.resume_blob)


class ApplicationDetail(BaseModel):
    """An application enriched with live posting and profile lookups."""

    application: Application
    posting: Optional[Posting] = None
    student_profile: Optional[StudentProfile] = None


class ChangeEvent(BaseModel):
    """Emitted by the store after every successful create/update/delete."""

    model_config = ConfigDict(frozen=True)

    kind: ChangeKind
    application: Application
    version: int


# ============================================================
# ATTACHMENTS
# ============================================================

class ResumeUpload(BaseModel):
    """Raw resume bytes handed to submit_application."""

    data: bytes
    file_name: Optional[str] = None
    mime_type: Optional[str] = None


class ResumeAttachment(BaseModel):
    """Encoded form stored on the application record."""

    blob: str
    file_name: str
    mime_type: str
    size: int


class ResumeFile(BaseModel):
    """Decoded form handed to an external viewer."""

    content: bytes
    file_name: str
    mime_type: str


# ============================================================
# APPLICATION REQUEST SCHEMAS
# ============================================================

class StatusUpdateRequest(BaseModel):
    status: ApplicationStatus
    expected_version: Optional[int] = None


class NotesUpdateRequest(BaseModel):
    notes: str
    expected_version: Optional[int] = None


class ReviewRequest(BaseModel):
    status: ApplicationStatus
    notes: str
    expected_version: Optional[int] = None


class StatusOverrideRequest(BaseModel):
    status: ApplicationStatus
    reason: str = Field(..., min_length=1)


# ============================================================
# APPLICATION RESPONSE SCHEMAS
# ============================================================

class ApplicationResponse(BaseModel):
    application_id: str
    posting_id: str
    posting_title: str
    company_name: str
    student_id: str
    student_email: str
    cover_letter: str
    status: ApplicationStatus
    status_label: str
    status_description: str
    company_notes: str
    has_resume: bool
    resume_file_name: Optional[str] = None
    resume_mime_type: Optional[str] = None
    resume_size: Optional[int] = None
    applied_date: datetime
    last_updated: int


class ApplicationDetailResponse(ApplicationResponse):
    posting: Optional[Posting] = None
    student_profile: Optional[StudentProfile] = None
    status_history: List[StatusChange] = []


class StatusTallyResponse(BaseModel):
    counts: Dict[ApplicationStatus, int]
    total: int


class ApplicationListResponse(BaseModel):
    applications: List[ApplicationResponse]
    tally: StatusTallyResponse
    status_filter: Optional[ApplicationStatus] = None


class DashboardResponse(BaseModel):
    total: int
    pending_review: int
    accepted: int
    recent: List[ApplicationResponse]


# ============================================================
# GENERIC SCHEMAS
# ============================================================

class MessageResponse(BaseModel):
    message: str
    success: bool = True


class ErrorResponse(BaseModel):
    detail: str
    error: str
