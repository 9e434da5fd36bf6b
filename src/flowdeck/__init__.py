"""Flowdeck: terminal dashboard for Airflow-style orchestration servers."""

__version__ = "0.1.0"
