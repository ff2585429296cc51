"""
Local emulator API for the waiver notifier.

A FastAPI application that emulates the Realtime Database, Cloud Storage and
the database trigger, so the waiver handler can be run end to end locally.
"""

from api.main import app

__all__ = ["app"]
