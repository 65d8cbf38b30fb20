"""
Control API.

This module exposes:
- Read API: list sessions, get session details, query events
- Write API: stop (leave the voice channel of) a guild

Writes go through the same VoiceController as chat commands, so they take
the same per-guild lock. Every write emits control.command_received and
control.command_applied events.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional

from fastapi import APIRouter, FastAPI, HTTPException, Query, Request
from pydantic import BaseModel, Field

from logging_setup import get_logger, Component
from observability.event_store import EventStore, event_store
from observability.events import Component as EventComponent, EventEmitter, Severity
from .controller import VoiceController
from .outcomes import outcome_to_dict
from .session import GroupVoiceSession, SessionRegistry

GuildResolver = Callable[[int], Any]

router = APIRouter(prefix="/control", tags=["control"])
logger = get_logger(Component.CONTROL_API)
emitter = EventEmitter(EventComponent.CONTROL_API)


class SessionSummary(BaseModel):
    guild_id: str
    channel_id: str
    channel_name: Optional[str] = None
    state: str
    connected_at: str


class StopResponse(BaseModel):
    outcome: str
    channel_id: Optional[str] = None


class EventsResponse(BaseModel):
    guild_id: str
    events: List[dict] = Field(default_factory=list)
    count: int


def _new_correlation_id() -> str:
    return f"cmd_{int(time.time() * 1000)}"


def _parse_timestamp(value: Optional[str], name: str) -> Optional[datetime]:
    """Parse an ISO timestamp query param; naive values are taken as UTC."""
    if not value:
        return None
    # A '+' in the query string may arrive decoded as a space
    cleaned = value.replace(" ", "+").replace("Z", "+00:00")
    try:
        parsed = datetime.fromisoformat(cleaned)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {name} timestamp: {value}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _summary(session: GroupVoiceSession, controller: VoiceController) -> SessionSummary:
    return SessionSummary(
        guild_id=session.guild_id,
        channel_id=session.channel_id,
        channel_name=session.channel_name,
        state=controller.state(session.guild_id).value,
        connected_at=session.connected_at.isoformat(),
    )


@router.get("/sessions", response_model=List[SessionSummary])
async def list_sessions(request: Request) -> List[SessionSummary]:
    registry: SessionRegistry = request.app.state.registry
    controller: VoiceController = request.app.state.controller
    return [_summary(s, controller) for s in registry.all()]


@router.get("/sessions/{guild_id}", response_model=SessionSummary)
async def get_session(guild_id: str, request: Request) -> SessionSummary:
    session = request.app.state.registry.lookup(guild_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return _summary(session, request.app.state.controller)


@router.post("/sessions/{guild_id}/stop", response_model=StopResponse)
async def stop_session(guild_id: str, request: Request) -> StopResponse:
    """Leave the guild's voice channel, like `@bot stop`."""
    correlation_id = _new_correlation_id()
    emitter.emit(
        "control.command_received",
        guild_id,
        correlation_id=correlation_id,
        command="voice.stop",
    )

    if not guild_id.isdigit():
        emitter.emit(
            "control.command_applied",
            guild_id,
            severity=Severity.WARN,
            correlation_id=correlation_id,
            command="voice.stop",
            result="invalid_guild_id",
        )
        raise HTTPException(status_code=400, detail=f"Invalid guild id: {guild_id}")
    guild = request.app.state.guild_resolver(int(guild_id))
    if guild is None:
        emitter.emit(
            "control.command_applied",
            guild_id,
            severity=Severity.WARN,
            correlation_id=correlation_id,
            command="voice.stop",
            result="guild_not_found",
        )
        raise HTTPException(status_code=404, detail="Guild not found")

    outcome = await request.app.state.controller.handle("stop", guild)
    payload = outcome_to_dict(outcome)
    emitter.emit(
        "control.command_applied",
        guild_id,
        correlation_id=correlation_id,
        command="voice.stop",
        result=outcome.kind,
    )
    return StopResponse(outcome=payload["outcome"], channel_id=payload.get("channel_id"))


@router.get("/sessions/{guild_id}/events", response_model=EventsResponse)
async def get_session_events(
    guild_id: str,
    request: Request,
    event_type: Optional[str] = Query(None, description="Filter by event_type"),
    component: Optional[str] = Query(None, description="Filter by component"),
    since: Optional[str] = Query(None, description="ISO timestamp (inclusive)"),
    until: Optional[str] = Query(None, description="ISO timestamp (inclusive)"),
    limit: Optional[int] = Query(None, ge=1, le=1000, description="Max events to return"),
) -> EventsResponse:
    """Events for a guild. Works after the session is gone."""
    store: EventStore = request.app.state.event_store
    events = store.query(
        guild_id=guild_id,
        event_type=event_type,
        component=component,
        since=_parse_timestamp(since, "since"),
        until=_parse_timestamp(until, "until"),
        limit=limit,
    )
    return EventsResponse(guild_id=guild_id, events=events, count=len(events))


def create_app(
    registry: SessionRegistry,
    controller: VoiceController,
    guild_resolver: GuildResolver,
    store: Optional[EventStore] = None,
) -> FastAPI:
    """Build the control API around explicit registry/controller instances."""
    app = FastAPI(title="Audio Bridge Control API")
    app.state.registry = registry
    app.state.controller = controller
    app.state.guild_resolver = guild_resolver
    app.state.event_store = store if store is not None else event_store
    app.include_router(router)

    @app.get("/health")
    async def health() -> dict:
        return {
            "status": "ok",
            "component": "audio_bridge",
            "stream": controller.pipeline.status.value,
            "sessions": len(registry),
        }

    logger.debug("Control API created")
    return app
