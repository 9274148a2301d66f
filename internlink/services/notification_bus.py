"""
Change Notification Bus - push every store mutation to live observers.

Subscription kinds:
1. subscribe_one(application_id)        - one application (detail screens)
2. subscribe_by_student(student_id)     - a student's list
3. subscribe_by_posting(posting_id)     - a company reviewing one posting
4. subscribe_by_company(company_name)   - a company dashboard

Usage:
    async with bus.subscribe_by_posting(posting_id) as stream:
        async for applications in stream:
            ...

Delivery rules:
- The first delivery is always the current snapshot from the store.
- Each subscription holds the latest full document per id and only accepts
  an event whose version is newer than what it holds. Duplicates and stale
  events are dropped, so a consumer never sees `last_updated` go backwards.
- A slow consumer is handed the latest state, not a backlog of every step.
- Deletes leave a tombstone so a snapshot loaded concurrently with the
  delete cannot bring the document back.
"""

import asyncio
import logging
from collections import defaultdict
from typing import Dict, List, Optional, Set, Tuple, Union

from internlink.schemas.schemas import Application, ChangeEvent, ChangeKind, SubscriptionScope
from internlink.services.application_store import ApplicationStore

logger = logging.getLogger(__name__)

SubscriptionKey = Tuple[SubscriptionScope, str]
Snapshot = Union[List[Application], Optional[Application]]


class Subscription:
    """
    A live view over one application or one query's result set.

    Acquire with `async with` (or `await open()` / `close()`); iterate with
    `async for`. List scopes yield `List[Application]` in received order.
    The single scope yields an `Application`, then `None` once if the
    application is deleted, and then ends.
    """

    def __init__(self, bus: "NotificationBus", scope: SubscriptionScope, key: str):
        self.bus = bus
        self.scope = scope
        self.key = key
        self._docs: Dict[str, Application] = {}
        self._tombstones: Dict[str, int] = {}
        self._changed = asyncio.Event()
        self._pending = False
        self._ready = False
        self._ended = False
        self._closed = False

    @property
    def is_single(self) -> bool:
        return self.scope == SubscriptionScope.application

    @property
    def closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------

    async def open(self) -> "Subscription":
        if self._ready or self._closed:
            return self
        # Register before reading so no change between read and register is lost
        self.bus._register(self)
        try:
            snapshot = await self.bus._load(self.scope, self.key)
        except BaseException:
            self.close()
            raise
        self._merge_snapshot(snapshot)
        self._ready = True
        self._notify()
        logger.debug("Subscription %s:%s opened with %d document(s)",
                     self.scope.value, self.key, len(self._docs))
        return self

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.bus._unregister(self)
        # Wake a consumer blocked in __anext__ so it can finish
        self._changed.set()
        logger.debug("Subscription %s:%s closed", self.scope.value, self.key)

    async def __aenter__(self) -> "Subscription":
        return await self.open()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ------------------------------------------------------------
    # state
    # ------------------------------------------------------------

    def current(self) -> Snapshot:
        if self.is_single:
            return self._docs.get(self.key)
        return list(self._docs.values())

    def _merge_snapshot(self, applications: List[Application]) -> None:
        merged: Dict[str, Application] = {}
        for app in applications:
            if self._tombstones.get(app.id, -1) >= app.last_updated:
                continue
            known = self._docs.get(app.id)
            merged[app.id] = known if known and known.last_updated >= app.last_updated else app
        # Documents created after the snapshot query ran go after it
        for app_id, doc in self._docs.items():
            merged.setdefault(app_id, doc)
        self._docs = merged

    def _apply(self, event: ChangeEvent) -> bool:
        """Fold one event into the view. Returns True if the view changed."""
        app = event.application
        if self._tombstones.get(app.id, -1) >= event.version:
            return False

        if event.kind == ChangeKind.deleted:
            self._tombstones[app.id] = event.version
            removed = self._docs.pop(app.id, None)
            if self.is_single:
                self._ended = True
                return True
            return removed is not None

        known = self._docs.get(app.id)
        if known is not None and known.last_updated >= event.version:
            return False
        # Replacing an existing key keeps its position; a new key is appended
        self._docs[app.id] = app
        return True

    def _notify(self) -> None:
        if self._ready and not self._closed:
            self._pending = True
            self._changed.set()

    # ------------------------------------------------------------
    # iteration
    # ------------------------------------------------------------

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> Snapshot:
        if not self._ready and not self._closed:
            await self.open()
        while True:
            if self._closed:
                raise StopAsyncIteration
            if self._pending:
                self._pending = False
                return self.current()
            if self._ended:
                self.close()
                raise StopAsyncIteration
            self._changed.clear()
            await self._changed.wait()


class NotificationBus:
    """
    In-process fan-out from the store to subscriptions.

    The bus registers itself as a change listener on the store, so every
    create/update/delete reaches it as part of the store operation.
    """

    def __init__(self, store: ApplicationStore):
        self.store = store
        self._subscriptions: Dict[SubscriptionKey, Set[Subscription]] = defaultdict(set)
        store.add_change_listener(self.publish)

    # ============================================================
    # SUBSCRIBE
    # ============================================================

    def subscribe_one(self, application_id: str) -> Subscription:
        return Subscription(self, SubscriptionScope.application, application_id)

    def subscribe_by_student(self, student_id: str) -> Subscription:
        return Subscription(self, SubscriptionScope.student, student_id)

    def subscribe_by_posting(self, posting_id: str) -> Subscription:
        return Subscription(self, SubscriptionScope.posting, posting_id)

    def subscribe_by_company(self, company_name: str) -> Subscription:
        return Subscription(self, SubscriptionScope.company, company_name)

    @property
    def subscription_count(self) -> int:
        return sum(len(subs) for subs in self._subscriptions.values())

    def close_all(self) -> None:
        for subs in list(self._subscriptions.values()):
            for sub in list(subs):
                sub.close()

    # ============================================================
    # PUBLISH
    # ============================================================

    async def publish(self, event: ChangeEvent) -> None:
        app = event.application
        keys = (
            (SubscriptionScope.application, app.id),
            (SubscriptionScope.student, app.student_id),
            (SubscriptionScope.posting, app.posting_id),
            (SubscriptionScope.company, app.company_name),
        )
        delivered = 0
        for key in keys:
            for sub in list(self._subscriptions.get(key, ())):
                if sub._apply(event):
                    sub._notify()
                    delivered += 1
        logger.debug("%s %s v%d delivered to %d subscription(s)",
                     event.kind.value, app.id, event.version, delivered)

    # ============================================================
    # INTERNALS
    # ============================================================

    def _register(self, sub: Subscription) -> None:
        self._subscriptions[(sub.scope, sub.key)].add(sub)

    def _unregister(self, sub: Subscription) -> None:
        key = (sub.scope, sub.key)
        subs = self._subscriptions.get(key)
        if subs is None:
            return
        subs.discard(sub)
        if not subs:
            del self._subscriptions[key]

    async def _load(self, scope: SubscriptionScope, key: str) -> List[Application]:
        if scope == SubscriptionScope.application:
            return [await self.store.get(key)]
        if scope == SubscriptionScope.student:
            return await self.store.query_by_student(key)
        if scope == SubscriptionScope.posting:
            return await self.store.query_by_posting(key)
        return await self.store.query_by_company(key)
