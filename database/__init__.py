from database.history import (
    History, HistoryError, HistoryPathError, Store, default_history_path,
    event_from_report, top_owners,
)
from database.models import OwnershipEvent, Pattern, TopOwner, View, owner_label
from database.patterns import detect_patterns
from database.migrations import migrate_document

__all__ = [
    "History", "HistoryError", "HistoryPathError", "Store", "default_history_path",
    "event_from_report", "top_owners",
    "OwnershipEvent", "Pattern", "TopOwner", "View", "owner_label",
    "detect_patterns", "migrate_document",
]
