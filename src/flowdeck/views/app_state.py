# src/flowdeck/views/app_state.py
"""Shared application state: the cache plus the view models behind one lock.

AppState is created once and passed explicitly to the worker, the view
synchronizer and the dashboard. Everyone reading or writing the store or a
view model holds `state.lock` for the duration of that access, and nobody
holds it across network I/O.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass

from flowdeck.contracts.enums import Screen
from flowdeck.core.store import EnvironmentStore
from flowdeck.views.models import ScreenViews


@dataclass(frozen=True)
class Snapshot:
    """Which environment and screen were active at some point in time."""

    environment: str | None
    screen: Screen


class AppState:
    """Lock-guarded store and view models."""

    def __init__(
        self,
        store: EnvironmentStore | None = None,
        run_page_size: int = 40,
        log_lru_size: int = 5,
    ) -> None:
        self.store = store if store is not None else EnvironmentStore(max_cached_attempts=log_lru_size)
        self.lock: threading.RLock = self.store.lock
        self.views = ScreenViews(run_page_size=run_page_size, log_lru_size=log_lru_size)
        self.active_screen = Screen.CONFIG
        self.loading = False

    def navigate(self, screen: Screen) -> None:
        with self.lock:
            self.active_screen = screen

    def set_loading(self, loading: bool) -> None:
        with self.lock:
            self.loading = loading

    def snapshot(self) -> Snapshot:
        with self.lock:
            return Snapshot(self.store.active_environment, self.active_screen)

    def is_current(self, snapshot: Snapshot) -> bool:
        """True if neither the environment nor the screen changed since snapshot."""
        with self.lock:
            return snapshot == Snapshot(self.store.active_environment, self.active_screen)

    def show_error(self, screen: Screen, message: str) -> None:
        with self.lock:
            self.views.for_screen(screen).show_error(message)

    def reset_views(self) -> None:
        """Reset per-screen view state (the cache is untouched)."""
        with self.lock:
            self.views.reset()
