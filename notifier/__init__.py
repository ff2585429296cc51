"""
Trigger side of the waiver notifier.

Contains:
- Database trigger events and reference matching
- An in-process event bus standing in for the trigger framework
- The waiver notification service (the handler itself)
"""
