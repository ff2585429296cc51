"""
Shared pytest fixtures for the waiver notifier tests.

These fixtures provide a seeded in-memory database and storage, a recording
email channel, and a service with a fixed clock.
"""

from datetime import datetime, timezone

import pytest

from notifier.event_bus import EventBus
from notifier.waiver_service import WaiverNotificationService
from waivers.channels import RecordingEmailChannel
from waivers.database import InMemoryDatabase, RecordStore
from waivers.models import WaiverEvent
from waivers.storage import InMemoryObjectStorage

ORGANIZER_EMAIL = "rbalakr@gmail.com"

TEAM_ID = "team-001"
PLAYER_ID = "player-001"
PDF_PATH = "waivers/team-001/player-001.pdf"

# Ten bytes, a truncated PDF header is enough for the handler
PDF_BYTES = b"%PDF-1.4\n%"

FIXED_NOW = datetime(2026, 1, 12, 9, 30, 0, tzinfo=timezone.utc)


# =============================================================================
# Identifier Fixtures
# =============================================================================

@pytest.fixture
def team_id() -> str:
    """Team ID for the Red Hawks."""
    return TEAM_ID


@pytest.fixture
def player_id() -> str:
    """Player ID for Jane Doe (on the Red Hawks, not yet notified)."""
    return PLAYER_ID


@pytest.fixture
def pdf_path() -> str:
    """Storage path of Jane's signed waiver."""
    return PDF_PATH


@pytest.fixture
def pdf_bytes() -> bytes:
    return PDF_BYTES


@pytest.fixture
def fixed_now() -> datetime:
    """Clock value used by the service fixture."""
    return FIXED_NOW


# =============================================================================
# Record Fixtures
# =============================================================================

@pytest.fixture
def jane_player() -> dict:
    """Jane Doe: vegetarian lunch, waiver signed on January 10, 2026."""
    return {
        "name": "Jane Doe",
        "email": "jane@example.com",
        "lunchChoice": "veg",
        "waiverSignedAt": "2026-01-10T00:00:00Z",
        "pdfPath": PDF_PATH,
    }


@pytest.fixture
def red_hawks_team() -> dict:
    """Red Hawks: regular volleyball league."""
    return {
        "name": "Red Hawks",
        "leagueId": "regular-volleyball",
    }


@pytest.fixture
def seed_data(jane_player, red_hawks_team) -> dict:
    """Database tree with one team holding Jane."""
    team = dict(red_hawks_team)
    team["players"] = {PLAYER_ID: jane_player}
    return {"teams": {TEAM_ID: team}}


# =============================================================================
# Infrastructure Fixtures
# =============================================================================

@pytest.fixture
def database(seed_data) -> InMemoryDatabase:
    """Fresh seeded database for each test."""
    return InMemoryDatabase(seed_data)


@pytest.fixture
def record_store(database) -> RecordStore:
    return RecordStore(database)


@pytest.fixture
def storage() -> InMemoryObjectStorage:
    """Storage holding Jane's signed waiver."""
    return InMemoryObjectStorage({PDF_PATH: PDF_BYTES})


@pytest.fixture
def channel() -> RecordingEmailChannel:
    """Fresh configured recording channel for each test."""
    return RecordingEmailChannel()


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def service(record_store, storage, channel) -> WaiverNotificationService:
    """Waiver service wired to in-memory backends and a fixed clock."""
    return WaiverNotificationService(
        records=record_store,
        storage=storage,
        channel=channel,
        organizer_email=ORGANIZER_EMAIL,
        clock=lambda: FIXED_NOW,
    )


@pytest.fixture
def waiver_event() -> WaiverEvent:
    """The pdfPath creation for Jane."""
    return WaiverEvent(team_id=TEAM_ID, player_id=PLAYER_ID, pdf_path=PDF_PATH)
