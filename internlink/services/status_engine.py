"""
Status Transition Engine - every mutation of an application goes through here.

Operations (the acting identity is always passed in explicitly):
- submit_application     student creates, or resubmits in place
- update_status          company, single field
- update_notes           company, single field
- update_status_and_notes company, the "confirm changes" flow
- override_status        company, audited escape hatch (e.g. back to PENDING)
- withdraw               owning student deletes

Status graph: a company may move any application to REVIEWED, SHORTLISTED,
ACCEPTED or REJECTED. ACCEPTED/REJECTED are terminal only by convention;
they are not locked here. Only a return to PENDING needs an override.

Conflicts: a ConflictError from the store is retried once after re-reading
the document and re-validating against it. A second conflict is raised.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Callable, Optional

from internlink.core.errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    PostingInactiveError,
    ValidationError,
)
from internlink.schemas.schemas import (
    REVIEW_STATUSES,
    Actor,
    Application,
    ApplicationDetail,
    ApplicationStatus,
    ResumeUpload,
    StatusChange,
    SubscriptionScope,
)
from internlink.services.application_store import ApplicationStore, Mutator
from internlink.services.attachment_service import ResumeAttachmentService
from internlink.services.lookups import PostingLookup, ProfileLookup

logger = logging.getLogger(__name__)

# Builds a mutator after validating the planned change against `current`
Plan = Callable[[Application], Mutator]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StatusTransitionEngine:

    def __init__(
        self,
        store: ApplicationStore,
        postings: PostingLookup,
        attachments: ResumeAttachmentService,
        profiles: Optional[ProfileLookup] = None,
        min_review_note_length: int = 20,
    ):
        self.store = store
        self.postings = postings
        self.attachments = attachments
        self.profiles = profiles
        self.min_review_note_length = min_review_note_length

    # ============================================================
    # ACCESS CHECKS
    # ============================================================

    @staticmethod
    def _require_company(actor: Actor, application: Application) -> None:
        if not actor.is_company:
            raise ForbiddenError("Only the reviewing company can change an application")
        if actor.company_name and actor.company_name != application.company_name:
            raise ForbiddenError("Application belongs to a different company")

    @staticmethod
    def _require_visible(actor: Actor, application: Application) -> None:
        if actor.is_student:
            if actor.id != application.student_id:
                raise ForbiddenError("Students can only view their own applications")
        elif actor.company_name and actor.company_name != application.company_name:
            raise ForbiddenError("Application belongs to a different company")

    async def authorize_scope(self, actor: Actor, scope: SubscriptionScope, key: str) -> None:
        """
        Check that `actor` may read (list or subscribe to) a scope.

        student scope:  the student themself
        posting scope:  a company actor (of that posting's company, if claimed)
        company scope:  a company actor (of that company, if claimed)
        application:    the owning student or the reviewing company
        """
        if scope == SubscriptionScope.application:
            await self.get_application(actor, key)
            return

        if scope == SubscriptionScope.student:
            if not actor.is_student or actor.id != key:
                raise ForbiddenError("Students can only view their own applications")
            return

        if not actor.is_company:
            raise ForbiddenError("Only companies can view applications for a posting")

        if scope == SubscriptionScope.company:
            company_name = key
        else:
            posting = await self.postings.get(key)
            if posting is None:
                raise NotFoundError(f"Posting '{key}' not found")
            company_name = posting.company_name

        if actor.company_name and actor.company_name != company_name:
            raise ForbiddenError("Applications belong to a different company")

    # ============================================================
    # SUBMIT
    # ============================================================

    async def submit_application(
        self,
        actor: Actor,
        posting_id: str,
        cover_letter: str,
        resume: Optional[ResumeUpload] = None,
    ) -> Application:
        """
        Create an application in PENDING, or resubmit in place when this
        student already applied to the posting (id, status and notes kept).
        """
        if not actor.is_student:
            raise ForbiddenError("Only students can submit applications")
        if not cover_letter or not cover_letter.strip():
            raise ValidationError("Cover letter must not be blank")

        posting = await self.postings.get(posting_id)
        if posting is None:
            raise NotFoundError(f"Posting '{posting_id}' not found")
        if not posting.is_active:
            raise PostingInactiveError(f"Posting '{posting.title}' is not accepting applications")

        resume_fields = {}
        if resume is not None:
            attachment = await self.attachments.encode(resume)
            resume_fields = {
                "resume_blob": attachment.blob,
                "resume_file_name": attachment.file_name,
                "resume_mime_type": attachment.mime_type,
                "resume_size": attachment.size,
            }

        application = Application(
            id=uuid.uuid4().hex,
            posting_id=posting.posting_id,
            posting_title=posting.title,
            company_name=posting.company_name,
            student_id=actor.id,
            student_email=actor.email or "",
            cover_letter=cover_letter.strip(),
            status=ApplicationStatus.pending,
            applied_date=_utcnow(),
            **resume_fields,
        )
        stored = await self.store.create(application)

        if stored.id == application.id:
            logger.info("Application %s submitted by %s to posting %s (resume: %s)",
                        stored.id, actor.id, posting_id, stored.resume_file_name or "none")
        else:
            logger.info("Application %s resubmitted by %s to posting %s", stored.id, actor.id, posting_id)
        return stored

    # ============================================================
    # READS
    # ============================================================

    async def get_application(self, actor: Actor, application_id: str) -> Application:
        application = await self.store.get(application_id)
        self._require_visible(actor, application)
        return application

    async def get_application_detail(self, actor: Actor, application_id: str) -> ApplicationDetail:
        """Application plus posting and profile; missing lookups become None."""
        application = await self.get_application(actor, application_id)
        posting = await self.postings.get(application.posting_id)
        profile = await self.profiles.get(application.student_id) if self.profiles else None
        return ApplicationDetail(application=application, posting=posting, student_profile=profile)

    # ============================================================
    # COMPANY MUTATIONS
    # ============================================================

    def _status_mutator(
        self,
        actor: Actor,
        status: Optional[ApplicationStatus],
        notes: Optional[str] = None,
        reason: Optional[str] = None,
        override: bool = False,
    ) -> Mutator:
        def mutate(current: Application) -> Application:
            changes = {}
            if status is not None and status != current.status:
                changes["status"] = status
                changes["status_history"] = current.status_history + [StatusChange(
                    from_status=current.status, to_status=status, actor_id=actor.id,
                    changed_at=_utcnow(), reason=reason, override=override,
                )]
            if notes is not None:
                changes["company_notes"] = notes
            return current.model_copy(update=changes)
        return mutate

    async def _mutate(
        self,
        actor: Actor,
        application_id: str,
        expected_version: Optional[int],
        plan: Plan,
    ) -> Application:
        current = await self.store.get(application_id)
        self._require_company(actor, current)
        version = current.last_updated if expected_version is None else expected_version
        try:
            return await self.store.update(application_id, plan(current), version)
        except ConflictError as e:
            logger.info("Version conflict on %s (expected %s, stored %s), retrying once",
                        application_id, e.expected_version, e.current_version)

        fresh = await self.store.get(application_id)
        self._require_company(actor, fresh)
        try:
            return await self.store.update(application_id, plan(fresh), fresh.last_updated)
        except ConflictError:
            logger.warning("Version conflict on %s persisted after retry", application_id)
            raise

    def _check_review_status(self, status: ApplicationStatus) -> None:
        if status not in REVIEW_STATUSES:
            raise ValidationError(
                f"Status '{status.value}' cannot be set during review; use an override"
            )

    async def update_status(
        self,
        actor: Actor,
        application_id: str,
        status: ApplicationStatus,
        expected_version: Optional[int] = None,
    ) -> Application:
        self._check_review_status(status)

        def plan(current: Application) -> Mutator:
            return self._status_mutator(actor, status)

        updated = await self._mutate(actor, application_id, expected_version, plan)
        logger.info("Application %s status -> %s by %s", application_id, status.value, actor.id)
        return updated

    async def update_notes(
        self,
        actor: Actor,
        application_id: str,
        notes: str,
        expected_version: Optional[int] = None,
    ) -> Application:
        def plan(current: Application) -> Mutator:
            return self._status_mutator(actor, None, notes=notes.strip())

        updated = await self._mutate(actor, application_id, expected_version, plan)
        logger.info("Application %s notes updated by %s", application_id, actor.id)
        return updated

    async def update_status_and_notes(
        self,
        actor: Actor,
        application_id: str,
        status: ApplicationStatus,
        notes: str,
        expected_version: Optional[int] = None,
    ) -> Application:
        """
        The "confirm changes" flow. Unlike the single-field operations it
        requires notes of at least `min_review_note_length` characters
        (trimmed) and an actual status change.
        """
        self._check_review_status(status)
        trimmed = (notes or "").strip()
        if len(trimmed) < self.min_review_note_length:
            raise ValidationError(
                f"Notes must be at least {self.min_review_note_length} characters "
                f"(got {len(trimmed)})"
            )

        def plan(current: Application) -> Mutator:
            if status == current.status:
                raise ValidationError(f"Application is already '{status.value}'")
            return self._status_mutator(actor, status, notes=trimmed)

        updated = await self._mutate(actor, application_id, expected_version, plan)
        logger.info("Application %s reviewed: status -> %s by %s", application_id, status.value, actor.id)
        return updated

    async def override_status(
        self,
        actor: Actor,
        application_id: str,
        status: ApplicationStatus,
        reason: str,
    ) -> Application:
        """Set any status, PENDING included. The reason is kept in the audit trail."""
        if not reason or not reason.strip():
            raise ValidationError("A reason is required to override a status")

        def plan(current: Application) -> Mutator:
            if status == current.status:
                raise ValidationError(f"Application is already '{status.value}'")
            return self._status_mutator(actor, status, reason=reason.strip(), override=True)

        updated = await self._mutate(actor, application_id, None, plan)
        logger.warning("Application %s status overridden -> %s by %s: %s",
                       application_id, status.value, actor.id, reason.strip())
        return updated

    # ============================================================
    # STUDENT WITHDRAWAL
    # ============================================================

    async def withdraw(self, actor: Actor, application_id: str) -> None:
        """
        Delete the application. Only the owning student may do this, in any
        status (an ACCEPTED application can still be withdrawn).
        """
        application = await self.store.get(application_id)
        if not actor.is_student or actor.id != application.student_id:
            raise ForbiddenError("Only the student who applied can withdraw this application")

        await self.store.delete(application_id)
        logger.info("Application %s withdrawn by %s (was %s)",
                    application_id, actor.id, application.status.value)
