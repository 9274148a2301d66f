"""
Posting & Profile Lookups - read-only views of data owned by other services.

Postings and student profiles live in PostgreSQL and are edited elsewhere.
The workflow only needs point reads:
- PostingLookup.get(posting_id)  -> title, company name, active flag
- ProfileLookup.get(student_id)  -> profile used to enrich a detail view

Both return None for unknown ids; the caller decides whether that is an error.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Dict, Iterable, Optional

from internlink.schemas.schemas import Posting, StudentProfile


class PostingLookup(ABC):
    @abstractmethod
    async def get(self, posting_id: str) -> Optional[Posting]:
        ...


class ProfileLookup(ABC):
    @abstractmethod
    async def get(self, student_id: str) -> Optional[StudentProfile]:
        ...


# ============================================================
# POSTGRESQL IMPLEMENTATIONS
# ============================================================

def _split_list(value) -> list:
    """Skills/types are stored either as text[] or as a comma separated string."""
    if not value:
        return []
    if isinstance(value, str):
        return [v.strip() for v in value.split(",") if v.strip()]
    return list(value)


class SqlPostingLookup(PostingLookup):
    """Reads the `jobs` table joined with `companies`."""

    async def get(self, posting_id: str) -> Optional[Posting]:
        from internlink.db.postgres import fetch_rows

        try:
            job_id = int(posting_id)
        except ValueError:
            return None

        rows = await asyncio.to_thread(fetch_rows, """
            SELECT j.job_id, j.title, c.company_name, j.status
            FROM jobs j JOIN companies c ON j.company_id = c.company_id
            WHERE j.job_id = :jid
        """, {"jid": job_id})
        if not rows:
            return None

        r = rows[0]
        return Posting(
            posting_id=str(r["job_id"]), title=r["title"], company_name=r["company_name"],
            is_active=r["status"] == "open"
        )


class SqlProfileLookup(ProfileLookup):
    """Reads the `students` table."""

    async def get(self, student_id: str) -> Optional[StudentProfile]:
        from internlink.db.postgres import fetch_rows

        rows = await asyncio.to_thread(fetch_rows, """
            SELECT s.student_id, s.full_name, s.school, s.course, s.year_level,
                   s.city, s.barangay, s.preferred_types, s.skills
            FROM students s WHERE CAST(s.student_id AS TEXT) = :sid
        """, {"sid": student_id})
        if not rows:
            return None

        r = rows[0]
        return StudentProfile(
            student_id=str(r["student_id"]), name=r["full_name"], school=r["school"],
            course=r["course"], year_level=r["year_level"] and str(r["year_level"]),
            city=r["city"], barangay=r["barangay"],
            preferred_types=_split_list(r["preferred_types"]), skills=_split_list(r["skills"])
        )


# ============================================================
# STATIC IMPLEMENTATIONS (memory backend, tests)
# ============================================================

class StaticPostingLookup(PostingLookup):

    def __init__(self, postings: Iterable[Posting] = ()):
        self._postings: Dict[str, Posting] = {p.posting_id: p for p in postings}

    def put(self, posting: Posting) -> None:
        self._postings[posting.posting_id] = posting

    async def get(self, posting_id: str) -> Optional[Posting]:
        return self._postings.get(posting_id)


class StaticProfileLookup(ProfileLookup):

    def __init__(self, profiles: Iterable[StudentProfile] = ()):
        self._profiles: Dict[str, StudentProfile] = {p.student_id: p for p in profiles}

    def put(self, profile: StudentProfile) -> None:
        self._profiles[profile.student_id] = profile

    async def get(self, student_id: str) -> Optional[StudentProfile]:
        return self._profiles.get(student_id)
