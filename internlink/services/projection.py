"""
View Projection - filtered lists and status counters for application screens.

A projection is a pure function of the live list a subscription delivers:
- the visible list is filtered by an optional status, in received order
- the tally is ALWAYS computed over the unfiltered list, so picking a
  filter changes what is shown, never the counts

There is no polling here; `watch()` recomputes only when the bus delivers.
"""

from typing import AsyncIterator, Dict, List, Optional

from pydantic import BaseModel

from internlink.core.errors import ValidationError
from internlink.schemas.schemas import Application, ApplicationStatus
from internlink.services.notification_bus import Subscription

RECENT_LIMIT = 5


# ============================================================
# DISPLAY LABELS
# Strings only exist for display; the core works on the enum.
# ============================================================

_LABELS = {
    ApplicationStatus.pending: "Pending",
    ApplicationStatus.reviewed: "Reviewed",
    ApplicationStatus.shortlisted: "Shortlisted",
    ApplicationStatus.accepted: "Accepted",
    ApplicationStatus.rejected: "Rejected",
}

_DESCRIPTIONS = {
    ApplicationStatus.pending: "Awaiting review",
    ApplicationStatus.reviewed: "Applicant has been reviewed",
    ApplicationStatus.shortlisted: "Candidate is shortlisted",
    ApplicationStatus.accepted: "Offer extended",
    ApplicationStatus.rejected: "Not moving forward",
}


def status_label(status: ApplicationStatus) -> str:
    return _LABELS[status]


def status_description(status: ApplicationStatus) -> str:
    return f"{_LABELS[status]} - {_DESCRIPTIONS[status]}"


def parse_status_filter(value: Optional[str]) -> Optional[ApplicationStatus]:
    """
    Turn a UI filter key into a status.

    None, "" and "all" mean no filter. Both the enum value ("shortlisted")
    and the upper-case name ("SHORTLISTED") are accepted.
    """
    if value is None:
        return None
    key = value.strip().lower()
    if key in ("", "all"):
        return None
    try:
        return ApplicationStatus(key)
    except ValueError:
        raise ValidationError(f"Unknown status filter '{value}'") from None


# ============================================================
# PROJECTIONS
# ============================================================

class StatusTally(BaseModel):
    counts: Dict[ApplicationStatus, int]
    total: int

    @classmethod
    def from_applications(cls, applications: List[Application]) -> "StatusTally":
        counts = {status: 0 for status in ApplicationStatus}
        for app in applications:
            counts[app.status] += 1
        return cls(counts=counts, total=len(applications))


class ProjectedView(BaseModel):
    applications: List[Application]
    tally: StatusTally
    status_filter: Optional[ApplicationStatus] = None


class DashboardSummary(BaseModel):
    """Headline numbers for student and company dashboards; `recent` is newest first."""

    total: int
    pending_review: int
    accepted: int
    recent: List[Application]

    @classmethod
    def from_applications(cls, applications: List[Application]) -> "DashboardSummary":
        tally = StatusTally.from_applications(applications)
        return cls(
            total=tally.total,
            pending_review=tally.counts[ApplicationStatus.pending],
            accepted=tally.counts[ApplicationStatus.accepted],
            recent=sorted(applications, key=lambda app: app.applied_date, reverse=True)[:RECENT_LIMIT],
        )


def project(
    applications: List[Application],
    status_filter: Optional[ApplicationStatus] = None,
) -> ProjectedView:
    if status_filter is None:
        visible = list(applications)
    else:
        visible = [app for app in applications if app.status == status_filter]
    return ProjectedView(
        applications=visible,
        tally=StatusTally.from_applications(applications),
        status_filter=status_filter,
    )


async def watch(
    subscription: Subscription,
    status_filter: Optional[ApplicationStatus] = None,
) -> AsyncIterator[ProjectedView]:
    """Yield a fresh projection for every delivery of a list subscription."""
    if subscription.is_single:
        raise ValueError("watch() needs a list subscription")
    async for applications in subscription:
        yield project(applications, status_filter)
