"""Inbound ecosystem events."""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel

from claim_engine.schemas.events import InboundEvent

router = APIRouter()


class InboundEventAck(BaseModel):
    event_id: str
    event_type: str
    handled: bool


@router.post(
    "/events/inbound",
    response_model=InboundEventAck,
    summary="Deliver an ecosystem event",
    description="Unsubscribed event types are acknowledged with handled=false.",
)
async def receive_event(event: InboundEvent, request: Request) -> InboundEventAck:
    consumer = request.app.state.services.consumer
    handled = await run_in_threadpool(consumer.handle, event)
    return InboundEventAck(event_id=event.event_id, event_type=event.event_type, handled=handled)
