"""Scheduled jobs."""

from .google_tasks_sync import GoogleTasksSyncJob, register_google_tasks_sync

__all__ = [
    "GoogleTasksSyncJob",
    "register_google_tasks_sync",
]
