"""Google Tasks service clients: OAuth, token persistence and the REST API."""

from .auth import TokenManager, code_challenge, generate_code_verifier
from .callback_server import CallbackServer
from .retry import execute_with_retry
from .tasks_api import TasksApi
from .token_store import TokenStore

__all__ = [
    "TokenManager",
    "code_challenge",
    "generate_code_verifier",
    "CallbackServer",
    "execute_with_retry",
    "TasksApi",
    "TokenStore",
]
