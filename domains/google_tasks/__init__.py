"""Google Tasks sync for Markdown reminders.

Reminders in a notes vault are mirrored as tasks in one Google Tasks list.
Each reminder line carries a hidden link block with the task ID and a
checksum of the synced fields.
"""

from .checksum import reminder_checksum
from .engine import SyncEngine
from .errors import (
    GoogleTasksError,
    AuthError,
    TokenExpiredError,
    ApiError,
    NotFoundError,
    RateLimitError,
    DocumentIOError,
    SyncError,
)
from .metadata import encode_metadata, parse_metadata, read_metadata, strip_metadata
from .notifier import LogNotifier, NtfyNotifier, build_notifier
from .services import TasksApi, TokenManager, TokenStore
from .types import (
    AuthState,
    LinkMetadata,
    Location,
    ReminderItem,
    RemoteTask,
    SyncAction,
    SyncResult,
    SyncSettings,
    TaskList,
    TokenSet,
)
from .vault import MarkdownVault

__all__ = [
    "reminder_checksum",
    "SyncEngine",
    "GoogleTasksError",
    "AuthError",
    "TokenExpiredError",
    "ApiError",
    "NotFoundError",
    "RateLimitError",
    "DocumentIOError",
    "SyncError",
    "encode_metadata",
    "parse_metadata",
    "read_metadata",
    "strip_metadata",
    "LogNotifier",
    "NtfyNotifier",
    "build_notifier",
    "TasksApi",
    "TokenManager",
    "TokenStore",
    "AuthState",
    "LinkMetadata",
    "Location",
    "ReminderItem",
    "RemoteTask",
    "SyncAction",
    "SyncResult",
    "SyncSettings",
    "TaskList",
    "TokenSet",
    "MarkdownVault",
]
