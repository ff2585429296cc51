"""
Waiver notification service.

Handles the creation of a player's pdfPath: looks up the player and team,
downloads the signed PDF, emails it to the player with the organizer copied,
and marks the player record as notified.

Design decisions:
- Strictly sequential: two record reads, existence check, download, send, write
- Missing preconditions return a "skipped" outcome instead of raising
- Anything that fails after the preconditions is logged and re-raised as a
  WaiverNotificationError, so the host can retry or alert
- The completion marker is written only after the send succeeds
- A player whose completion marker is not older than waiverSignedAt is
  skipped, so a host retry after a successful run does not send a second
  email, while a newer signing is still sent

Known gap: if the final write fails, the email has already gone out. A retry
of that invocation will send it again.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from notifier.event_bus import EventBus
from notifier.events import PDF_PATH_REFERENCE, DatabaseEvent, waiver_event_from
from waivers.channels import DeliveryError, EmailChannel
from waivers.database import RecordStore
from waivers.models import NotificationOutcome, OutcomeStatus, PlayerRecord, SkipReason, WaiverEvent
from waivers.settings import DEFAULT_ORGANIZER_EMAIL
from waivers.storage import ObjectStorage
from waivers.templates import build_waiver_message, parse_timestamp

logger = logging.getLogger("waiver_service")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso8601(moment: datetime) -> str:
    """UTC, millisecond precision, 'Z' suffix: 2026-01-10T08:30:00.000Z"""
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def already_notified(player: PlayerRecord) -> bool:
    """
    True when the completion marker covers the player's current waiver.

    A marker written before waiverSignedAt belongs to an earlier signing.
    Without a usable emailSentAt there is nothing to compare, so the waiver
    is sent again; without a usable waiverSignedAt the marker is trusted.
    """
    if not player.email_sent or not player.email_sent_at:
        return False
    sent_at = parse_timestamp(player.email_sent_at)
    if sent_at is None:
        return False
    if player.waiver_signed_at is None:
        return True
    signed_at = parse_timestamp(player.waiver_signed_at)
    return signed_at is None or sent_at >= signed_at


class WaiverNotificationError(Exception):
    """
    An invocation failed after its preconditions passed.

    Attributes:
        step: The step that failed (fetch_player, fetch_team, check_pdf,
              download_pdf, compose, deliver, mark_sent)
        email_sent: True when the email went out but the completion write failed
    """

    def __init__(self, step: str, event: WaiverEvent, email_sent: bool = False):
        super().__init__(
            f"Waiver email failed at {step} for player {event.player_id} in team {event.team_id}"
        )
        self.step = step
        self.team_id = event.team_id
        self.player_id = event.player_id
        self.email_sent = email_sent


class WaiverNotificationService:
    """
    The waiver trigger handler.

    Example:
        service = WaiverNotificationService(
            records=RecordStore(FirebaseDatabase()),
            storage=FirebaseObjectStorage(),
            channel=SendGridEmailChannel(api_key),
        )
        outcome = service.handle(WaiverEvent(team_id="t1", player_id="p1", pdf_path="waivers/p1.pdf"))
    """

    def __init__(
        self,
        records: RecordStore,
        storage: ObjectStorage,
        channel: EmailChannel,
        organizer_email: str = DEFAULT_ORGANIZER_EMAIL,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Args:
            records: Player/team lookups and the completion write
            storage: Where the signed PDFs live
            channel: Email delivery client, already holding its credential
            organizer_email: Sender address, also copied on every email
            clock: Source of the completion timestamp (defaults to UTC now)
        """
        self.records = records
        self.storage = storage
        self.channel = channel
        self.organizer_email = organizer_email
        self.clock = clock or utc_now

        self._event_bus: Optional[EventBus] = None

    # =========================================================================
    # Bus wiring (local emulation)
    # =========================================================================

    def start(self, event_bus: EventBus) -> None:
        """Subscribe to pdfPath creation on an in-process event bus."""
        if self._event_bus is not None:
            logger.warning("WaiverNotificationService already started")
            return
        event_bus.subscribe(PDF_PATH_REFERENCE, self.handle_database_event)
        self._event_bus = event_bus
        logger.info("WaiverNotificationService started - subscribed to pdfPath creation")

    def stop(self) -> None:
        if self._event_bus is None:
            return
        self._event_bus.unsubscribe(PDF_PATH_REFERENCE, self.handle_database_event)
        self._event_bus = None
        logger.info("WaiverNotificationService stopped")

    def handle_database_event(self, event: DatabaseEvent) -> NotificationOutcome:
        """Adapter from a raw trigger event to `handle`."""
        return self.handle(waiver_event_from(event.params, event.data))

    # =========================================================================
    # Handler
    # =========================================================================

    def handle(self, event: WaiverEvent) -> NotificationOutcome:
        """
        Process one pdfPath creation.

        Returns:
            A "sent" outcome, or a "skipped" outcome naming the unmet precondition

        Raises:
            WaiverNotificationError: If a read, the download, the send or the
                completion write fails. The original error is chained.
        """
        team_id, player_id = event.team_id, event.player_id
        logger.info(f"Processing waiver email for player {player_id} in team {team_id}")
        logger.info(f"PDF path: {event.pdf_path}")

        if not self.channel.is_configured():
            logger.error("SendGrid API key not configured. Set the SENDGRID_API_KEY secret for this function.")
            return NotificationOutcome.skipped(event, SkipReason.NOT_CONFIGURED)

        step = "fetch_player"
        try:
            player = self.records.get_player(team_id, player_id)
            if player is None:
                logger.error(f"Player data not found for {player_id}")
                return NotificationOutcome.skipped(event, SkipReason.PLAYER_NOT_FOUND)
            if already_notified(player):
                logger.info(f"Waiver email already sent to player {player_id} at {player.email_sent_at}")
                return NotificationOutcome.skipped(event, SkipReason.ALREADY_NOTIFIED)

            step = "fetch_team"
            team = self.records.get_team(team_id)
            if team is None:
                logger.error(f"Team data not found for {team_id}")
                return NotificationOutcome.skipped(event, SkipReason.TEAM_NOT_FOUND)

            logger.info(f"Player: {player.name}, Team: {team.name}, Email: {player.email}")

            step = "check_pdf"
            if not self.storage.exists(event.pdf_path):
                logger.error(f"PDF file not found at path: {event.pdf_path}")
                return NotificationOutcome.skipped(event, SkipReason.PDF_NOT_FOUND)

            step = "download_pdf"
            pdf_bytes = self.storage.download(event.pdf_path)
            logger.info(f"Downloaded PDF, size: {len(pdf_bytes)} bytes")

            step = "compose"
            message = build_waiver_message(player, team, pdf_bytes, self.organizer_email)

            step = "deliver"
            result = self.channel.send(message)
            if not result.success:
                raise DeliveryError(f"Delivery to {message.to} was not accepted", status_code=result.status_code)
            logger.info(f"Waiver email sent successfully to {player.email} and {self.organizer_email}")

            step = "mark_sent"
            sent_at = to_iso8601(self.clock())
            self.records.mark_email_sent(team_id, player_id, sent_at)

        except Exception as exc:
            logger.error(f"Error sending waiver email: {exc}")
            if isinstance(exc, DeliveryError) and exc.detail is not None:
                logger.error(f"SendGrid error response: {exc.detail}")
            if step == "mark_sent":
                logger.error(
                    f"Email to player {player_id} was delivered but the record was not updated; "
                    "a retry will send it again"
                )
            raise WaiverNotificationError(step, event, email_sent=step == "mark_sent") from exc

        return NotificationOutcome(
            status=OutcomeStatus.SENT,
            team_id=team_id,
            player_id=player_id,
            recipient=player.email,
            attachment_size=len(pdf_bytes),
            sent_at=sent_at,
        )
