# src/flowdeck/core/__init__.py
"""Core infrastructure: Configuration, Logging, Ordering, Layout, Cache."""

from flowdeck.core.config import (
    AuthSettings,
    FlowdeckSettings,
    ServerSettings,
    load_settings,
)
from flowdeck.core.graph_layout import (
    build_graph_layout,
    build_graph_layout_ordered,
)
from flowdeck.core.log_archive import LogArchive
from flowdeck.core.logging import (
    configure_logging,
    get_logger,
)
from flowdeck.core.ordering import (
    invert_dependencies,
    topological_sort,
)
from flowdeck.core.store import EnvironmentStore

__all__ = [
    "AuthSettings",
    "EnvironmentStore",
    "FlowdeckSettings",
    "LogArchive",
    "ServerSettings",
    "build_graph_layout",
    "build_graph_layout_ordered",
    "configure_logging",
    "get_logger",
    "invert_dependencies",
    "load_settings",
    "topological_sort",
]
