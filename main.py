"""
Cloud Functions entry point.

Deploy with:
    firebase deploy --only functions

The SENDGRID_API_KEY secret must be set first:
    firebase functions:secrets:set SENDGRID_API_KEY
"""

import logging
from functools import lru_cache
from typing import Any

import firebase_admin
from firebase_functions import db_fn

from notifier.events import PDF_PATH_REFERENCE, waiver_event_from
from notifier.waiver_service import WaiverNotificationService
from waivers.channels import SendGridEmailChannel
from waivers.database import FirebaseDatabase, RecordStore
from waivers.logging_config import setup_logging
from waivers.settings import get_settings
from waivers.storage import FirebaseObjectStorage

logger = logging.getLogger("functions")


@lru_cache(maxsize=1)
def get_service() -> WaiverNotificationService:
    """
    Build the handler once per function instance.

    Settings (including the SendGrid credential) are read here and never
    re-read for the lifetime of the instance.
    """
    settings = get_settings()
    setup_logging(settings.log_level)

    try:
        firebase_admin.get_app()
    except ValueError:
        options = {}
        if settings.database_url:
            options["databaseURL"] = settings.database_url
        if settings.storage_bucket:
            options["storageBucket"] = settings.storage_bucket
        # Without options the SDK falls back to FIREBASE_CONFIG from the runtime
        firebase_admin.initialize_app(options=options or None)

    if not settings.sendgrid_api_key:
        logger.error("SENDGRID_API_KEY is not set; waiver emails will be skipped")

    return WaiverNotificationService(
        records=RecordStore(FirebaseDatabase(settings.database_url)),
        storage=FirebaseObjectStorage(settings.storage_bucket),
        channel=SendGridEmailChannel(settings.sendgrid_api_key),
        organizer_email=settings.organizer_email,
    )


def handle_pdf_path_created(params: dict[str, str], data: Any) -> None:
    """
    Run the waiver handler for one trigger event.

    Skipped outcomes end the invocation normally. Errors propagate so the
    platform marks the invocation failed (and retries it if retry is enabled).
    """
    outcome = get_service().handle(waiver_event_from(params, data))
    if not outcome.sent:
        logger.info(f"Waiver email skipped for player {outcome.player_id}: {outcome.reason}")


@db_fn.on_value_created(reference=PDF_PATH_REFERENCE, secrets=["SENDGRID_API_KEY"])
def send_waiver_email(event: db_fn.Event[Any]) -> None:
    handle_pdf_path_created(event.params, event.data)
