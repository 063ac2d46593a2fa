"""
Change bus for docstore.

Storage backends publish row-level ChangeEvents here; document and query
handles subscribe to turn them into snapshot callbacks.
"""

from docstore.bus.events import (
    CHANGE,
    PROFILE,
    ChangeEvent,
    ChangeKind,
    ProfileEvent,
)
from docstore.bus.memory import ChangeBus, Handler, Unsubscribe

__all__ = [
    "CHANGE",
    "PROFILE",
    "ChangeBus",
    "ChangeEvent",
    "ChangeKind",
    "Handler",
    "ProfileEvent",
    "Unsubscribe",
]
