"""
Service wiring for the API layer.

Everything shares one store and one bus per process, so the services are
built once (singleton pattern) and handed to routes through Depends().
Tests replace them with app.dependency_overrides[get_services].
"""

import logging
from dataclasses import dataclass
from typing import Optional

from internlink.core.config import Settings, get_settings
from internlink.services.application_store import ApplicationStore, build_application_store
from internlink.services.attachment_service import ResumeAttachmentService
from internlink.services.lookups import (
    PostingLookup,
    ProfileLookup,
    SqlPostingLookup,
    SqlProfileLookup,
    StaticPostingLookup,
    StaticProfileLookup,
)
from internlink.services.notification_bus import NotificationBus
from internlink.services.status_engine import StatusTransitionEngine

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    store: ApplicationStore
    bus: NotificationBus
    engine: StatusTransitionEngine
    attachments: ResumeAttachmentService


def build_services(
    settings: Settings,
    store: Optional[ApplicationStore] = None,
    postings: Optional[PostingLookup] = None,
    profiles: Optional[ProfileLookup] = None,
) -> Services:
    """
    Assemble store -> bus -> engine.

    With the memory backend and no lookups given, empty static lookups are
    used; the mongo backend reads postings and profiles from PostgreSQL.
    """
    store = store or build_application_store(settings.store_backend)
    if postings is None:
        postings = SqlPostingLookup() if settings.store_backend == "mongo" else StaticPostingLookup()
    if profiles is None:
        profiles = SqlProfileLookup() if settings.store_backend == "mongo" else StaticProfileLookup()

    attachments = ResumeAttachmentService(max_bytes=settings.max_resume_bytes)
    bus = NotificationBus(store)
    engine = StatusTransitionEngine(
        store=store,
        postings=postings,
        attachments=attachments,
        profiles=profiles,
        min_review_note_length=settings.min_review_note_length,
    )
    logger.info("Services built with %s store", settings.store_backend)
    return Services(settings=settings, store=store, bus=bus, engine=engine, attachments=attachments)


# Singleton instance
_services: Services = None


def get_services() -> Services:
    """Get or create the process-wide services (singleton pattern)"""
    global _services
    if _services is None:
        _services = build_services(get_settings())
    return _services
