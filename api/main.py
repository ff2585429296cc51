"""
Local emulator for the waiver notifier.

Stands in for the Realtime Database, Cloud Storage and the trigger framework
so the handler can be exercised end to end without a Firebase project:
1. Upload a PDF        PUT /emulator/storage/{path}
2. Seed team/player    PUT /emulator/database/teams/{teamId}
3. Write the pdfPath   PUT /emulator/database/teams/{teamId}/players/{playerId}/pdfPath
   -> fires the waiver handler, response carries the outcome
4. Inspect the email   GET /emulator/outbox

Emails are recorded, never sent.

Run with:
    uv run uvicorn api.main:app --reload
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from fastapi import Body, FastAPI, HTTPException, Request
from pydantic import BaseModel

from notifier.event_bus import EventBus, Invocation, RetryPolicy
from notifier.waiver_service import WaiverNotificationService
from waivers.channels import RecordingEmailChannel
from waivers.database import InMemoryDatabase, RecordStore
from waivers.logging_config import setup_logging
from waivers.models import NotificationOutcome
from waivers.settings import get_settings
from waivers.storage import InMemoryObjectStorage

logger = logging.getLogger("emulator")


# Response models
class InvocationSummary(BaseModel):
    """One trigger invocation caused by a write."""
    handler: str
    attempts: int
    succeeded: bool
    outcome: Optional[NotificationOutcome] = None
    error: Optional[str] = None


class WriteResult(BaseModel):
    path: str
    created: bool
    invocations: list[InvocationSummary]


class AttachmentSummary(BaseModel):
    filename: str
    type: str
    size: int


class OutboxEntry(BaseModel):
    to: str
    cc: Optional[str]
    subject: str
    text: str
    attachments: list[AttachmentSummary]


@dataclass
class EmulatorState:
    """Everything the emulator holds in memory."""
    database: InMemoryDatabase
    storage: InMemoryObjectStorage
    channel: RecordingEmailChannel
    event_bus: EventBus
    service: WaiverNotificationService
    invocations: list[Invocation] = field(default_factory=list)

    @classmethod
    def create(
        cls,
        database: Optional[InMemoryDatabase] = None,
        storage: Optional[InMemoryObjectStorage] = None,
        channel: Optional[RecordingEmailChannel] = None,
        retry_policy: Optional[RetryPolicy] = None,
        organizer_email: Optional[str] = None,
    ) -> "EmulatorState":
        settings = get_settings()
        if database is None:
            if settings.emulator_seed_file:
                database = InMemoryDatabase.from_json_file(Path(settings.emulator_seed_file))
            else:
                database = InMemoryDatabase()
        storage = storage or InMemoryObjectStorage()
        channel = channel or RecordingEmailChannel()
        event_bus = EventBus(retry_policy or RetryPolicy(max_attempts=settings.emulator_max_attempts))

        service = WaiverNotificationService(
            records=RecordStore(database),
            storage=storage,
            channel=channel,
            organizer_email=organizer_email or settings.organizer_email,
        )
        service.start(event_bus)

        state = cls(
            database=database,
            storage=storage,
            channel=channel,
            event_bus=event_bus,
            service=service,
        )
        database.on_create(state._fire_triggers)
        return state

    def _fire_triggers(self, path: str, value: Any) -> None:
        self.invocations.extend(self.event_bus.publish(path, value))


# Module-level state (reset between tests)
_state: Optional[EmulatorState] = None


def get_state() -> EmulatorState:
    global _state
    if _state is None:
        _state = EmulatorState.create()
    return _state


def reset_emulator_state(state: Optional[EmulatorState] = None) -> None:
    """Replace the emulator state (None means rebuild lazily from settings)."""
    global _state
    if _state is not None:
        _state.service.stop()
    _state = state


def _summarize(invocation: Invocation) -> InvocationSummary:
    outcome = invocation.result if isinstance(invocation.result, NotificationOutcome) else None
    error = None
    if invocation.error is not None:
        cause = invocation.error.__cause__
        error = str(invocation.error) if cause is None else f"{invocation.error} ({cause})"
    return InvocationSummary(
        handler=invocation.handler_name,
        attempts=invocation.attempts,
        succeeded=invocation.succeeded,
        outcome=outcome,
        error=error,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown."""
    setup_logging()
    logger.info("Starting waiver notifier emulator")
    yield
    logger.info("Shutting down")


app = FastAPI(
    title="Waiver Notifier Emulator",
    description="Local Realtime Database / Storage / trigger emulation for the waiver email function.",
    version="1.0.0",
    lifespan=lifespan,
)


@app.get("/health", tags=["Health"])
def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "waiver-notifier-emulator"}


# =============================================================================
# Database
# =============================================================================

@app.put("/emulator/database/{path:path}", response_model=WriteResult, tags=["Database"])
def write_value(path: str, value: Any = Body(...)):
    """
    Write a JSON value at a database path.

    Creating a node that matches a trigger reference runs the handler
    synchronously; overwriting an existing node does not.
    """
    state = get_state()
    before = len(state.invocations)
    created = state.database.get(path) is None
    state.database.set(path, value)
    fired = state.invocations[before:]
    return WriteResult(
        path="/" + path.strip("/"),
        created=created,
        invocations=[_summarize(i) for i in fired],
    )


@app.get("/emulator/database/{path:path}", tags=["Database"])
def read_value(path: str):
    """Read the JSON value at a database path."""
    value = get_state().database.get(path)
    if value is None:
        raise HTTPException(status_code=404, detail=f"No value at /{path}")
    return value


# =============================================================================
# Storage
# =============================================================================

@app.put("/emulator/storage/{path:path}", tags=["Storage"])
async def upload_object(path: str, request: Request):
    """Upload the raw request body as an object."""
    data = await request.body()
    content_type = request.headers.get("content-type", "application/pdf")
    get_state().storage.upload(path, data, content_type=content_type)
    return {"path": path, "size": len(data), "content_type": content_type}


# =============================================================================
# Outbox
# =============================================================================

@app.get("/emulator/outbox", response_model=list[OutboxEntry], tags=["Outbox"])
def list_outbox():
    """Emails the handler has sent, oldest first."""
    entries = []
    for result in get_state().channel.sent_messages:
        message = result.message
        if message is None:
            continue
        entries.append(OutboxEntry(
            to=message.to,
            cc=message.cc,
            subject=message.subject,
            text=message.text,
            attachments=[
                AttachmentSummary(filename=a.filename, type=a.type, size=len(a.decoded()))
                for a in message.attachments
            ],
        ))
    return entries


@app.delete("/emulator/outbox", tags=["Outbox"])
def clear_outbox():
    get_state().channel.clear_history()
    return {"status": "cleared"}
