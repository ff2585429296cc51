"""
Tests for the waiver notification handler.

These tests verify the full flow for one pdfPath creation:
1. Player and team records are read
2. The PDF is checked and downloaded
3. One email goes to the player with the organizer copied
4. The player record is marked as notified

and that every missing precondition ends the invocation without a send or
a write.
"""

import base64
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from notifier.events import pdf_path_created
from notifier.waiver_service import (
    WaiverNotificationError,
    WaiverNotificationService,
    already_notified,
    to_iso8601,
)
from waivers.channels import DeliveryError, RecordingEmailChannel
from waivers.database import RecordStore
from waivers.models import OutcomeStatus, PlayerRecord, SkipReason, WaiverEvent


def player_node(database, team_id, player_id):
    return database.get(f"/teams/{team_id}/players/{player_id}")


class TestSuccessfulDelivery:
    """A valid event with player, team and PDF present."""

    def test_sends_exactly_one_email(self, service, channel, waiver_event):
        outcome = service.handle(waiver_event)

        assert outcome.sent is True
        assert outcome.status == OutcomeStatus.SENT
        assert channel.get_sent_count() == 1

    def test_end_to_end_scenario(self, service, channel, database, waiver_event, team_id, player_id):
        service.handle(waiver_event)

        message = channel.find_message_to("jane@example.com")
        assert message is not None
        assert message.cc == "rbalakr@gmail.com"
        assert message.from_email == "rbalakr@gmail.com"
        assert message.subject == "Tournament Waiver Received - Jane Doe - Red Hawks"
        assert "Regular Volleyball League" in message.text
        assert "Vegetarian Menu" in message.text
        assert "January 10, 2026" in message.text
        assert len(message.attachments) == 1
        assert len(message.attachments[0].decoded()) == 10

        assert player_node(database, team_id, player_id)["emailSent"] is True

    def test_attachment_round_trips_downloaded_bytes(self, service, channel, waiver_event, pdf_bytes):
        service.handle(waiver_event)

        attachment = channel.sent_messages[0].message.attachments[0]
        assert base64.b64decode(attachment.content) == pdf_bytes
        assert attachment.filename == "Waiver_Jane_Doe_Red_Hawks.pdf"
        assert attachment.type == "application/pdf"
        assert attachment.disposition == "attachment"

    def test_completion_marker_written(self, service, database, waiver_event, team_id, player_id):
        outcome = service.handle(waiver_event)

        player = player_node(database, team_id, player_id)
        assert player["emailSent"] is True
        assert player["emailSentAt"] == "2026-01-12T09:30:00.000Z"
        assert outcome.sent_at == player["emailSentAt"]
        # Other fields are untouched by the merge-write
        assert player["lunchChoice"] == "veg"
        assert player["pdfPath"] == waiver_event.pdf_path

    def test_completion_timestamp_not_before_start(self, record_store, storage, channel, database,
                                                   waiver_event, team_id, player_id):
        service = WaiverNotificationService(records=record_store, storage=storage, channel=channel)
        started = datetime.now(timezone.utc)

        service.handle(waiver_event)

        sent_at = player_node(database, team_id, player_id)["emailSentAt"]
        parsed = datetime.fromisoformat(sent_at.replace("Z", "+00:00"))
        assert parsed >= started.replace(microsecond=(started.microsecond // 1000) * 1000)

    def test_outcome_details(self, service, waiver_event):
        outcome = service.handle(waiver_event)

        assert outcome.recipient == "jane@example.com"
        assert outcome.attachment_size == 10
        assert outcome.reason is None

    def test_unmapped_codes_pass_through(self, service, channel, database, waiver_event, team_id, player_id):
        database.update(f"/teams/{team_id}", {"leagueId": "beach-doubles"})
        database.update(f"/teams/{team_id}/players/{player_id}", {"lunchChoice": "vegan"})

        service.handle(waiver_event)

        body = channel.sent_messages[0].message.text
        assert "League: beach-doubles" in body
        assert "Lunch Preference: vegan" in body


class TestRepeatSigning:
    """A player notified for an earlier waiver who signs again."""

    def test_newer_waiver_is_sent(self, service, channel, storage, database, team_id, player_id):
        database.update(f"/teams/{team_id}/players/{player_id}", {
            "emailSent": True,
            "emailSentAt": "2025-06-01T12:00:00.000Z",
        })
        storage.upload("waivers/new.pdf", b"%PDF-1.7 re-signed")
        event = WaiverEvent(team_id=team_id, player_id=player_id, pdf_path="waivers/new.pdf")

        outcome = service.handle(event)

        assert outcome.sent is True
        assert channel.get_sent_count() == 1
        assert channel.sent_messages[0].message.attachments[0].decoded() == b"%PDF-1.7 re-signed"
        assert player_node(database, team_id, player_id)["emailSentAt"] == "2026-01-12T09:30:00.000Z"

    def test_marker_without_timestamp_does_not_block(self, service, channel, database, waiver_event,
                                                     team_id, player_id):
        database.update(f"/teams/{team_id}/players/{player_id}", {"emailSent": True})

        outcome = service.handle(waiver_event)

        assert outcome.sent is True
        assert channel.get_sent_count() == 1


class TestAlreadyNotified:
    def make_player(self, **fields):
        return PlayerRecord(name="Jane Doe", email="jane@example.com", **fields)

    def test_not_sent(self):
        assert already_notified(self.make_player()) is False

    def test_marker_after_signing(self):
        player = self.make_player(
            emailSent=True, emailSentAt="2026-01-12T09:30:00.000Z", waiverSignedAt="2026-01-10T00:00:00Z",
        )
        assert already_notified(player) is True

    def test_marker_before_signing(self):
        player = self.make_player(
            emailSent=True, emailSentAt="2025-06-01T12:00:00.000Z", waiverSignedAt="2026-01-10T00:00:00Z",
        )
        assert already_notified(player) is False

    def test_epoch_signing_compared(self):
        # 1768003200000 is 2026-01-10T00:00:00Z
        player = self.make_player(
            emailSent=True, emailSentAt="2026-01-09T23:59:59.000Z", waiverSignedAt=1768003200000,
        )
        assert already_notified(player) is False

    def test_no_signing_time_trusts_marker(self):
        player = self.make_player(emailSent=True, emailSentAt="2026-01-12T09:30:00.000Z")
        assert already_notified(player) is True


class TestSkippedPreconditions:
    """Each unmet precondition: no send, no write, no exception."""

    def test_no_credential(self, record_store, storage, database, waiver_event, team_id, player_id):
        channel = RecordingEmailChannel(configured=False)
        service = WaiverNotificationService(records=record_store, storage=storage, channel=channel)

        outcome = service.handle(waiver_event)

        assert outcome.status == OutcomeStatus.SKIPPED
        assert outcome.reason == SkipReason.NOT_CONFIGURED
        assert channel.get_sent_count() == 0
        assert "emailSent" not in player_node(database, team_id, player_id)

    def test_no_credential_checked_before_any_read(self, storage, waiver_event):
        records = MagicMock(spec=RecordStore)
        service = WaiverNotificationService(
            records=records, storage=storage, channel=RecordingEmailChannel(configured=False),
        )

        service.handle(waiver_event)

        records.get_player.assert_not_called()

    def test_player_absent(self, service, channel, database, waiver_event, team_id, player_id):
        database.set(f"/teams/{team_id}/players/{player_id}", None)

        outcome = service.handle(waiver_event)

        assert outcome.reason == SkipReason.PLAYER_NOT_FOUND
        assert channel.get_sent_count() == 0
        assert player_node(database, team_id, player_id) is None

    def test_team_absent(self, record_store, storage, channel, waiver_event):
        records = MagicMock(wraps=record_store)
        records.get_team.return_value = None
        service = WaiverNotificationService(records=records, storage=storage, channel=channel)

        outcome = service.handle(waiver_event)

        assert outcome.reason == SkipReason.TEAM_NOT_FOUND
        assert channel.get_sent_count() == 0
        records.mark_email_sent.assert_not_called()

    def test_team_node_holding_only_players(self, service, channel, database, waiver_event, team_id, player_id):
        database.set(f"/teams/{team_id}/name", None)
        database.set(f"/teams/{team_id}/leagueId", None)

        outcome = service.handle(waiver_event)

        assert outcome.status == OutcomeStatus.SKIPPED
        assert outcome.reason == SkipReason.TEAM_NOT_FOUND
        assert channel.get_sent_count() == 0
        assert "emailSent" not in player_node(database, team_id, player_id)

    def test_pdf_absent(self, service, channel, storage, database, waiver_event, team_id, player_id):
        missing = waiver_event.model_copy(update={"pdf_path": "waivers/missing.pdf"})

        outcome = service.handle(missing)

        assert outcome.reason == SkipReason.PDF_NOT_FOUND
        assert channel.get_sent_count() == 0
        assert "emailSent" not in player_node(database, team_id, player_id)

    def test_already_notified(self, service, channel, database, waiver_event, team_id, player_id):
        database.update(
            f"/teams/{team_id}/players/{player_id}",
            {"emailSent": True, "emailSentAt": "2026-01-11T00:00:00.000Z"},
        )

        outcome = service.handle(waiver_event)

        assert outcome.reason == SkipReason.ALREADY_NOTIFIED
        assert channel.get_sent_count() == 0
        assert player_node(database, team_id, player_id)["emailSentAt"] == "2026-01-11T00:00:00.000Z"


class TestFailures:
    """Failures after the preconditions are logged and re-raised."""

    def test_delivery_rejection_raises_without_marking(self, record_store, storage, database,
                                                       waiver_event, team_id, player_id):
        rejection = DeliveryError("Forbidden", status_code=403, detail={"errors": [{"message": "unverified sender"}]})
        service = WaiverNotificationService(
            records=record_store, storage=storage, channel=RecordingEmailChannel(fail_with=rejection),
        )

        with pytest.raises(WaiverNotificationError) as excinfo:
            service.handle(waiver_event)

        assert excinfo.value.step == "deliver"
        assert excinfo.value.email_sent is False
        assert excinfo.value.__cause__ is rejection
        assert "emailSent" not in player_node(database, team_id, player_id)

    def test_delivery_detail_logged(self, record_store, storage, waiver_event, caplog):
        rejection = DeliveryError("Bad Request", status_code=400, detail={"errors": [{"message": "bad cc"}]})
        service = WaiverNotificationService(
            records=record_store, storage=storage, channel=RecordingEmailChannel(fail_with=rejection),
        )

        with caplog.at_level("ERROR", logger="waiver_service"):
            with pytest.raises(WaiverNotificationError):
                service.handle(waiver_event)

        assert "bad cc" in caplog.text

    def test_download_failure(self, record_store, channel, waiver_event):
        storage = MagicMock()
        storage.exists.return_value = True
        storage.download.side_effect = ConnectionError("storage unavailable")
        service = WaiverNotificationService(records=record_store, storage=storage, channel=channel)

        with pytest.raises(WaiverNotificationError) as excinfo:
            service.handle(waiver_event)

        assert excinfo.value.step == "download_pdf"
        assert channel.get_sent_count() == 0

    def test_record_read_failure(self, storage, channel, waiver_event):
        records = MagicMock(spec=RecordStore)
        records.get_player.side_effect = TimeoutError("database timeout")
        service = WaiverNotificationService(records=records, storage=storage, channel=channel)

        with pytest.raises(WaiverNotificationError) as excinfo:
            service.handle(waiver_event)

        assert excinfo.value.step == "fetch_player"

    def test_malformed_player_record(self, service, channel, database, waiver_event, team_id, player_id):
        database.set(f"/teams/{team_id}/players/{player_id}/email", None)

        with pytest.raises(WaiverNotificationError) as excinfo:
            service.handle(waiver_event)

        assert excinfo.value.step == "fetch_player"
        assert channel.get_sent_count() == 0

    def test_completion_write_failure_after_send(self, record_store, storage, channel, waiver_event):
        records = MagicMock(wraps=record_store)
        records.mark_email_sent.side_effect = ConnectionError("write failed")
        service = WaiverNotificationService(records=records, storage=storage, channel=channel)

        with pytest.raises(WaiverNotificationError) as excinfo:
            service.handle(waiver_event)

        assert excinfo.value.step == "mark_sent"
        assert excinfo.value.email_sent is True
        # The email has already gone out
        assert channel.get_sent_count() == 1


class TestBusWiring:
    """The service as a subscriber on the in-process trigger bus."""

    def test_publish_triggers_handler(self, service, channel, event_bus, team_id, player_id, pdf_path):
        service.start(event_bus)

        [invocation] = event_bus.publish(f"/teams/{team_id}/players/{player_id}/pdfPath", pdf_path)

        assert invocation.succeeded is True
        assert invocation.result.sent is True
        assert channel.get_sent_count() == 1

    def test_stop_unsubscribes(self, service, channel, event_bus, team_id, player_id, pdf_path):
        service.start(event_bus)
        service.stop()

        invocations = event_bus.publish(f"/teams/{team_id}/players/{player_id}/pdfPath", pdf_path)

        assert invocations == []
        assert channel.get_sent_count() == 0

    def test_host_retry_after_success_does_not_resend(self, service, channel, team_id, player_id, pdf_path):
        event = pdf_path_created(team_id, player_id, pdf_path)

        first = service.handle_database_event(event)
        second = service.handle_database_event(event)

        assert first.sent is True
        assert second.reason == SkipReason.ALREADY_NOTIFIED
        assert channel.get_sent_count() == 1

    def test_invalid_value_fails_invocation(self, service, event_bus, team_id, player_id):
        service.start(event_bus)

        [invocation] = event_bus.publish(f"/teams/{team_id}/players/{player_id}/pdfPath", 123)

        assert invocation.succeeded is False
        assert isinstance(invocation.error, ValueError)


class TestIsoTimestamp:
    def test_millisecond_precision_with_z(self):
        moment = datetime(2026, 1, 12, 9, 30, 0, 123456, tzinfo=timezone.utc)

        assert to_iso8601(moment) == "2026-01-12T09:30:00.123Z"
