"""
Application Store - durable storage for application documents.

Two backends share one contract:
1. InMemoryApplicationStore - single process, used for development and tests
2. MongoApplicationStore    - production, one MongoDB document per application

Concurrency control is optimistic. Every stored document carries a
`last_updated` version; `update()` only succeeds when the caller's
expected version still matches, otherwise it raises ConflictError.
This is the only primitive the rest of the system relies on.

Every successful create/update/delete is announced to the registered
change listeners (the notification bus) after the write lands.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from pymongo.asynchronous.collection import AsyncCollection
from pymongo.errors import DuplicateKeyError

from internlink.core.errors import ConflictError, DuplicateError, NotFoundError
from internlink.schemas.schemas import Application, ChangeEvent, ChangeKind

logger = logging.getLogger(__name__)

Mutator = Callable[[Application], Application]
ChangeListener = Callable[[ChangeEvent], Awaitable[None]]

# Fields a resubmission replaces on the existing record.
# Resume fields are only replaced when the resubmission carries a resume,
# the email only when the resubmission carries one.
RESUBMIT_FIELDS = ("cover_letter",)
RESUME_FIELDS = ("resume_blob", "resume_file_name", "resume_mime_type", "resume_size")


def now_ms() -> int:
    return int(time.time() * 1000)


def next_version(previous: int = 0) -> int:
    """Strictly greater than `previous`, wall-clock based when the clock allows."""
    return max(now_ms(), previous + 1)


def _resubmitted(existing: Application, incoming: Application) -> Application:
    fields = RESUBMIT_FIELDS + RESUME_FIELDS if incoming.has_resume else RESUBMIT_FIELDS
    changes = {field: getattr(incoming, field) for field in fields}
    if incoming.student_email:
        changes["student_email"] = incoming.student_email
    changes["last_updated"] = next_version(existing.last_updated)
    return existing.model_copy(update=changes)


# ============================================================
# CONTRACT
# ============================================================

class ApplicationStore(ABC):
    """
    Async storage contract for applications.

    Subclasses implement the _do_* primitives; this class stamps events and
    fans them out to listeners.
    """

    def __init__(self):
        self._listeners: List[ChangeListener] = []

    def add_change_listener(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    def remove_change_listener(self, listener: ChangeListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def _emit(self, kind: ChangeKind, application: Application, version: int) -> None:
        event = ChangeEvent(kind=kind, application=application, version=version)
        for listener in list(self._listeners):
            await listener(event)

    async def create(self, application: Application) -> Application:
        """
        Insert a new application, or resubmit in place when the
        (student_id, posting_id) pair already exists.

        Raises DuplicateError if the application id itself is taken.
        """
        stored, created = await self._do_create(application)
        kind = ChangeKind.created if created else ChangeKind.updated
        await self._emit(kind, stored, stored.last_updated)
        return stored

    async def update(self, application_id: str, mutator: Mutator, expected_version: int) -> Application:
        """
        Apply `mutator` to the stored document if its version is still
        `expected_version`. The store stamps the new version.
        """
        stored = await self._do_update(application_id, mutator, expected_version)
        await self._emit(ChangeKind.updated, stored, stored.last_updated)
        return stored

    async def delete(self, application_id: str) -> None:
        removed = await self._do_delete(application_id)
        # Deletion is one more step in the document's history
        await self._emit(ChangeKind.deleted, removed, removed.last_updated + 1)

    @abstractmethod
    async def get(self, application_id: str) -> Application:
        ...

    @abstractmethod
    async def query_by_student(self, student_id: str) -> List[Application]:
        ...

    @abstractmethod
    async def query_by_posting(self, posting_id: str) -> List[Application]:
        ...

    @abstractmethod
    async def query_by_company(self, company_name: str) -> List[Application]:
        ...

    @abstractmethod
    async def _do_create(self, application: Application) -> Tuple[Application, bool]:
        ...

    @abstractmethod
    async def _do_update(self, application_id: str, mutator: Mutator, expected_version: int) -> Application:
        ...

    @abstractmethod
    async def _do_delete(self, application_id: str) -> Application:
        ...


# ============================================================
# IN-MEMORY BACKEND
# ============================================================

class InMemoryApplicationStore(ApplicationStore):
    """
    Dictionary-backed store. The lock only guards in-process dictionary
    work; nothing is awaited while it is held.
    """

    def __init__(self):
        super().__init__()
        self._docs: Dict[str, Application] = {}
        self._by_pair: Dict[Tuple[str, str], str] = {}
        self._lock = asyncio.Lock()

    async def get(self, application_id: str) -> Application:
        doc = self._docs.get(application_id)
        if doc is None:
            raise NotFoundError(f"Application '{application_id}' not found")
        return doc

    async def query_by_student(self, student_id: str) -> List[Application]:
        return [d for d in self._docs.values() if d.student_id == student_id]

    async def query_by_posting(self, posting_id: str) -> List[Application]:
        return [d for d in self._docs.values() if d.posting_id == posting_id]

    async def query_by_company(self, company_name: str) -> List[Application]:
        return [d for d in self._docs.values() if d.company_name == company_name]

    async def _do_create(self, application: Application) -> Tuple[Application, bool]:
        pair = (application.student_id, application.posting_id)
        async with self._lock:
            existing_id = self._by_pair.get(pair)
            if existing_id is not None:
                stored = _resubmitted(self._docs[existing_id], application)
                self._docs[existing_id] = stored
                return stored, False

            if application.id in self._docs:
                raise DuplicateError(f"Application id '{application.id}' already exists")

            stored = application.model_copy(update={"last_updated": next_version()})
            self._docs[stored.id] = stored
            self._by_pair[pair] = stored.id
            return stored, True

    async def _do_update(self, application_id: str, mutator: Mutator, expected_version: int) -> Application:
        async with self._lock:
            current = self._docs.get(application_id)
            if current is None:
                raise NotFoundError(f"Application '{application_id}' not found")
            if current.last_updated != expected_version:
                raise ConflictError(
                    f"Application '{application_id}' was modified by someone else",
                    expected_version=expected_version,
                    current_version=current.last_updated,
                )
            stored = mutator(current).model_copy(update={
                # identity and scope keys never change through update()
                "id": current.id,
                "student_id": current.student_id,
                "posting_id": current.posting_id,
                "company_name": current.company_name,
                "last_updated": next_version(current.last_updated),
            })
            self._docs[application_id] = stored
            return stored

    async def _do_delete(self, application_id: str) -> Application:
        async with self._lock:
            removed = self._docs.pop(application_id, None)
            if removed is None:
                raise NotFoundError(f"Application '{application_id}' not found")
            self._by_pair.pop((removed.student_id, removed.posting_id), None)
            return removed


# ============================================================
# MONGODB BACKEND
# ============================================================

def _to_document(application: Application) -> dict:
    doc = application.model_dump()
    doc["_id"] = doc.pop("id")
    return doc


def _from_document(doc: dict) -> Application:
    doc = dict(doc)
    doc["id"] = doc.pop("_id")
    return Application.model_validate(doc)


class MongoApplicationStore(ApplicationStore):
    """
    One document per application, `_id` = application id.

    The compare-and-swap is a replace_one filtered on both `_id` and
    `last_updated`, so the version check and the write are a single atomic
    server-side operation.
    """

    def __init__(self, collection: AsyncCollection):
        super().__init__()
        self.collection = collection

    async def _find(self, query: dict) -> List[Application]:
        cursor = self.collection.find(query).sort([("applied_date", 1), ("_id", 1)])
        return [_from_document(doc) async for doc in cursor]

    async def get(self, application_id: str) -> Application:
        doc = await self.collection.find_one({"_id": application_id})
        if doc is None:
            raise NotFoundError(f"Application '{application_id}' not found")
        return _from_document(doc)

    async def query_by_student(self, student_id: str) -> List[Application]:
        return await self._find({"student_id": student_id})

    async def query_by_posting(self, posting_id: str) -> List[Application]:
        return await self._find({"posting_id": posting_id})

    async def query_by_company(self, company_name: str) -> List[Application]:
        return await self._find({"company_name": company_name})

    async def _find_pair(self, student_id: str, posting_id: str) -> Optional[Application]:
        doc = await self.collection.find_one({"student_id": student_id, "posting_id": posting_id})
        return _from_document(doc) if doc else None

    async def _resubmit(self, existing: Application, incoming: Application) -> Application:
        stored = _resubmitted(existing, incoming)
        result = await self.collection.replace_one(
            {"_id": existing.id, "last_updated": existing.last_updated},
            _to_document(stored),
        )
        if result.matched_count == 0:
            raise ConflictError(
                f"Application '{existing.id}' changed during resubmission",
                expected_version=existing.last_updated,
            )
        return stored

    async def _do_create(self, application: Application) -> Tuple[Application, bool]:
        existing = await self._find_pair(application.student_id, application.posting_id)
        if existing is not None:
            return await self._resubmit(existing, application), False

        stored = application.model_copy(update={"last_updated": next_version()})
        try:
            await self.collection.insert_one(_to_document(stored))
        except DuplicateKeyError as e:
            # Lost a race on the (student, posting) unique index: resubmit instead
            existing = await self._find_pair(application.student_id, application.posting_id)
            if existing is None:
                raise DuplicateError(f"Application id '{application.id}' already exists") from e
            return await self._resubmit(existing, application), False
        return stored, True

    async def _do_update(self, application_id: str, mutator: Mutator, expected_version: int) -> Application:
        current = await self.get(application_id)
        if current.last_updated != expected_version:
            raise ConflictError(
                f"Application '{application_id}' was modified by someone else",
                expected_version=expected_version,
                current_version=current.last_updated,
            )
        stored = mutator(current).model_copy(update={
            "id": current.id,
            "student_id": current.student_id,
            "posting_id": current.posting_id,
            "company_name": current.company_name,
            "last_updated": next_version(current.last_updated),
        })
        result = await self.collection.replace_one(
            {"_id": application_id, "last_updated": expected_version},
            _to_document(stored),
        )
        if result.matched_count == 0:
            # Deleted or rewritten between our read and our write
            if await self.collection.count_documents({"_id": application_id}, limit=1) == 0:
                raise NotFoundError(f"Application '{application_id}' not found")
            raise ConflictError(
                f"Application '{application_id}' was modified by someone else",
                expected_version=expected_version,
            )
        return stored

    async def _do_delete(self, application_id: str) -> Application:
        doc = await self.collection.find_one_and_delete({"_id": application_id})
        if doc is None:
            raise NotFoundError(f"Application '{application_id}' not found")
        return _from_document(doc)


# ============================================================
# FACTORY
# ============================================================

def build_application_store(backend: str) -> ApplicationStore:
    """Create the store for the configured backend ("memory" or "mongo")."""
    if backend == "mongo":
        from internlink.db.mongodb import get_applications_collection
        return MongoApplicationStore(get_applications_collection())
    if backend == "memory":
        return InMemoryApplicationStore()
    raise ValueError(f"Unknown store backend '{backend}'")
