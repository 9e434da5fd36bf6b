"""View layer: per-screen view models and the shared application state."""

from flowdeck.views.app_state import AppState, Snapshot
from flowdeck.views.models import (
    ConfigView,
    DagListView,
    DagRunListView,
    ErrorPopup,
    LogView,
    ScreenViews,
    TaskInstanceListView,
)
from flowdeck.views.sortable import SortableTable

__all__ = [
    "AppState",
    "ConfigView",
    "DagListView",
    "DagRunListView",
    "ErrorPopup",
    "LogView",
    "ScreenViews",
    "Snapshot",
    "SortableTable",
    "TaskInstanceListView",
]
