"""
Stream Routes - live application views over WebSocket

WS /ws/applications/{id}?token= - One application; {"deleted": true} when withdrawn
WS /ws/students/{student_id}/applications?token=&status= - A student's list + tally
WS /ws/postings/{posting_id}/applications?token=&status= - One posting's list + tally
WS /ws/companies/{company_name}/applications?token=&status= - A company's list + tally

Every message is a full view (never a delta); the first message is the
current state. Errors are sent as {"error", "detail"} and the socket is
closed with code 4000 + HTTP status (e.g. 4403, 4404).
"""

import asyncio
import logging
from typing import AsyncIterator, Optional

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from internlink.api.deps import Services, get_services
from internlink.api.responses import application_response, error_response, list_response
from internlink.core.auth import get_websocket_actor
from internlink.core.errors import ApplicationError
from internlink.schemas.schemas import Actor, Application, ApplicationStatus
from internlink.services.notification_bus import Subscription
from internlink.services.projection import parse_status_filter, watch

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ws", tags=["Streams"])


def _render_single(application: Optional[Application]) -> dict:
    if application is None:
        return {"deleted": True, "application": None}
    return {"deleted": False, "application": application_response(application).model_dump(mode="json")}


async def _single_messages(subscription: Subscription) -> AsyncIterator[dict]:
    async for application in subscription:
        yield _render_single(application)


async def _list_messages(subscription: Subscription, status_filter: Optional[ApplicationStatus]) -> AsyncIterator[dict]:
    async for view in watch(subscription, status_filter):
        yield list_response(view).model_dump(mode="json")


async def _send_error(websocket: WebSocket, exc: ApplicationError) -> None:
    await websocket.send_json(error_response(exc).model_dump())
    await websocket.close(code=4000 + exc.status_code)


async def _watch_disconnect(websocket: WebSocket, subscription: Subscription) -> None:
    """Closing the subscription ends the send loop when the client goes away."""
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        subscription.close()


async def _stream(
    websocket: WebSocket,
    services: Services,
    actor: Actor,
    subscription: Subscription,
    messages: AsyncIterator[dict],
) -> None:
    await websocket.accept()
    try:
        await services.engine.authorize_scope(actor, subscription.scope, subscription.key)
        await subscription.open()
    except ApplicationError as e:
        await _send_error(websocket, e)
        return

    watcher = asyncio.create_task(_watch_disconnect(websocket, subscription))
    try:
        async for message in messages:
            await websocket.send_json(message)
    except WebSocketDisconnect:
        pass
    finally:
        subscription.close()
        await messages.aclose()
        disconnected = watcher.done()
        watcher.cancel()
        logger.debug("Stream %s:%s ended (client disconnected: %s)",
                     subscription.scope.value, subscription.key, disconnected)

    if not disconnected:
        # Single-application stream ended because the application was withdrawn
        await websocket.close()


async def _stream_list(websocket, services, actor, subscription, status: Optional[str]) -> None:
    try:
        status_filter = parse_status_filter(status)
    except ApplicationError as e:
        await websocket.accept()
        await _send_error(websocket, e)
        return

    await _stream(websocket, services, actor, subscription, _list_messages(subscription, status_filter))


@router.websocket("/applications/{application_id}")
async def stream_application(
    websocket: WebSocket,
    application_id: str,
    actor: Actor = Depends(get_websocket_actor),
    services: Services = Depends(get_services),
):
    subscription = services.bus.subscribe_one(application_id)
    await _stream(websocket, services, actor, subscription, _single_messages(subscription))


@router.websocket("/students/{student_id}/applications")
async def stream_student_applications(
    websocket: WebSocket,
    student_id: str,
    status: Optional[str] = None,
    actor: Actor = Depends(get_websocket_actor),
    services: Services = Depends(get_services),
):
    subscription = services.bus.subscribe_by_student(student_id)
    await _stream_list(websocket, services, actor, subscription, status)


@router.websocket("/postings/{posting_id}/applications")
async def stream_posting_applications(
    websocket: WebSocket,
    posting_id: str,
    status: Optional[str] = None,
    actor: Actor = Depends(get_websocket_actor),
    services: Services = Depends(get_services),
):
    subscription = services.bus.subscribe_by_posting(posting_id)
    await _stream_list(websocket, services, actor, subscription, status)


@router.websocket("/companies/{company_name}/applications")
async def stream_company_applications(
    websocket: WebSocket,
    company_name: str,
    status: Optional[str] = None,
    actor: Actor = Depends(get_websocket_actor),
    services: Services = Depends(get_services),
):
    subscription = services.bus.subscribe_by_company(company_name)
    await _stream_list(websocket, services, actor, subscription, status)
