"""State synchronization: debounced auto-save and the user session."""

from opportunity_iq.sync.autosave import AutoSaveController, DebouncedTask, SliceState
from opportunity_iq.sync.session import UserSession, diff_by_id

__all__ = [
    "AutoSaveController",
    "DebouncedTask",
    "SliceState",
    "UserSession",
    "diff_by_id",
]
