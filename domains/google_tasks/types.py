"""Type definitions for the Google Tasks sync."""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional, Union

from . import config as domain_config


class TaskStatus(str, Enum):
    """Google Tasks task status."""
    NEEDS_ACTION = "needsAction"
    COMPLETED = "completed"


class AuthState(str, Enum):
    """Token lifecycle states."""
    UNAUTHENTICATED = "unauthenticated"
    AUTHORIZING = "authorizing"
    AUTHENTICATED = "authenticated"
    REFRESHING = "refreshing"


class SyncAction(str, Enum):
    """Outcome of reconciling one reminder."""
    CREATED = "created"
    UPDATED = "updated"
    RECREATED = "recreated"
    COMPLETED_LOCALLY = "completed_locally"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class Location:
    """Where a reminder lives: document path (relative to the vault) and 0-based line."""
    document: str
    line: int

    def __str__(self) -> str:
        return f"{self.document}:{self.line + 1}"


@dataclass(frozen=True)
class ReminderItem:
    """A reminder discovered in a document.

    ``due`` is a ``date`` for date-only reminders and a ``datetime`` when a
    time of day was given.
    """
    title: str
    location: Location
    due: Optional[Union[date, datetime]] = None
    completed: bool = False

    @property
    def has_time(self) -> bool:
        return isinstance(self.due, datetime)


@dataclass
class RemoteTask:
    """A task as returned by the Google Tasks API."""
    id: str
    title: str
    status: str = TaskStatus.NEEDS_ACTION.value
    notes: Optional[str] = None
    due: Optional[str] = None
    deleted: bool = False
    hidden: bool = False

    @property
    def is_completed(self) -> bool:
        return self.status == TaskStatus.COMPLETED.value

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "RemoteTask":
        """Create RemoteTask from an API task resource."""
        return cls(
            id=data["id"],
            title=data.get("title", ""),
            status=data.get("status", TaskStatus.NEEDS_ACTION.value),
            notes=data.get("notes"),
            due=data.get("due"),
            deleted=bool(data.get("deleted", False)),
            hidden=bool(data.get("hidden", False)),
        )


@dataclass(frozen=True)
class TaskList:
    """A Google Tasks task list."""
    id: str
    title: str

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "TaskList":
        return cls(id=data["id"], title=data.get("title", ""))


@dataclass(frozen=True)
class LinkMetadata:
    """Link between a reminder line and its remote task."""
    id: str
    checksum: str


@dataclass
class TokenSet:
    """OAuth tokens. ``expires_at`` is a Unix timestamp in seconds."""
    access_token: str
    refresh_token: Optional[str]
    expires_at: float

    def expires_within(self, seconds: float, now: float) -> bool:
        return self.expires_at - seconds <= now

    def to_dict(self) -> dict[str, Any]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_at": self.expires_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TokenSet":
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            expires_at=float(data["expires_at"]),
        )


@dataclass(frozen=True)
class AuthSession:
    """PKCE artifacts kept only between authorization start and code exchange."""
    code_verifier: str
    redirect_uri: str


@dataclass
class SyncSettings:
    """Settings consumed by the token manager, engine and periodic job."""
    client_id: str
    list_name: str = "Obsidian Reminders"
    enabled: bool = True
    oauth_port: int = 8080
    poll_interval: int = 300
    auth_timeout: float = 300.0
    client_secret: Optional[str] = None
    stale_status_policy: str = domain_config.STALE_POLICY_RECREATE

    @property
    def redirect_uri(self) -> str:
        return f"http://localhost:{self.oauth_port}{domain_config.CALLBACK_PATH}"

    @classmethod
    def from_config(cls) -> "SyncSettings":
        """Build settings from the global (environment-backed) config."""
        import config

        policy = config.GTASKS_STALE_STATUS_POLICY.strip().lower()
        if policy not in domain_config.STALE_POLICIES:
            raise ValueError(
                f"GTASKS_STALE_STATUS_POLICY must be one of {domain_config.STALE_POLICIES}, got {policy!r}"
            )

        return cls(
            client_id=config.GOOGLE_CLIENT_ID,
            client_secret=config.GOOGLE_CLIENT_SECRET,
            list_name=config.GTASKS_LIST_NAME,
            enabled=config.GTASKS_ENABLED,
            oauth_port=config.GTASKS_OAUTH_PORT,
            poll_interval=max(config.GTASKS_POLL_INTERVAL, domain_config.MIN_POLL_INTERVAL),
            auth_timeout=float(config.GTASKS_AUTH_TIMEOUT),
            stale_status_policy=policy,
        )


@dataclass
class SyncResult:
    """Counts for one reconciliation pass."""
    created: int = 0
    updated: int = 0
    recreated: int = 0
    completed_locally: int = 0
    skipped: int = 0
    errored: int = 0
    errors: list[str] = field(default_factory=list)

    def record(self, action: SyncAction) -> None:
        setattr(self, action.value, getattr(self, action.value) + 1)

    def record_error(self, message: str) -> None:
        self.errored += 1
        self.errors.append(message)

    @property
    def total(self) -> int:
        return (
            self.created + self.updated + self.recreated
            + self.completed_locally + self.skipped + self.errored
        )

    def summary(self) -> str:
        return (
            f"Google Tasks sync complete: {self.created} created, {self.updated} updated, "
            f"{self.recreated} recreated, {self.completed_locally} completed locally, "
            f"{self.skipped} skipped, {self.errored} errors."
        )
