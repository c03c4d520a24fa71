"""Google Tasks REST API client.

Every call goes through execute_with_retry, which adds the bearer token,
backs off on 429 and refreshes the token on 401.
"""

from typing import Any, Optional

import httpx

from logger import logger
from .. import config
from ..errors import ApiError
from ..types import RemoteTask, TaskList
from .retry import AccessTokenProvider, execute_with_retry


class TasksApi:
    """Thin async client for the task list and task endpoints."""

    def __init__(
        self,
        tokens: AccessTokenProvider,
        base_url: str = config.TASKS_API_URL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        max_retries: int = config.MAX_RETRIES,
        base_delay: float = config.BASE_RETRY_DELAY,
    ):
        self.tokens = tokens
        self.base_url = base_url.rstrip("/")
        self.max_retries = max_retries
        self.base_delay = base_delay
        self._transport = transport

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[dict[str, Any]] = None,
        json: Optional[dict[str, Any]] = None,
    ) -> Any:
        url = f"{self.base_url}{path}"

        async def send(access_token: str) -> httpx.Response:
            async with httpx.AsyncClient(transport=self._transport, timeout=config.REQUEST_TIMEOUT) as client:
                return await client.request(
                    method,
                    url,
                    params=params,
                    json=json,
                    headers={"Authorization": f"Bearer {access_token}"},
                )

        response = await execute_with_retry(
            send,
            self.tokens,
            max_retries=self.max_retries,
            base_delay=self.base_delay,
        )
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    # =========================================================================
    # TASK LISTS
    # =========================================================================

    async def get_task_lists(self) -> list[TaskList]:
        """All task lists of the user (follows pagination)."""
        lists: list[TaskList] = []
        page_token: Optional[str] = None

        while True:
            params: dict[str, Any] = {"maxResults": config.MAX_PAGE_SIZE}
            if page_token:
                params["pageToken"] = page_token
            data = await self._request("GET", "/users/@me/lists", params=params) or {}
            lists.extend(TaskList.from_api(item) for item in data.get("items", []))
            page_token = data.get("nextPageToken")
            if not page_token:
                break

        logger.debug(f"Retrieved {len(lists)} Google Tasks lists")
        return lists

    async def get_task_list_by_name(self, name: str) -> Optional[TaskList]:
        for task_list in await self.get_task_lists():
            if task_list.title == name:
                return task_list
        return None

    async def get_task_list(self, list_id: str) -> TaskList:
        data = await self._request("GET", f"/users/@me/lists/{list_id}")
        return TaskList.from_api(data)

    async def create_task_list(self, title: str) -> TaskList:
        data = await self._request("POST", "/users/@me/lists", json={"title": title})
        logger.info(f"Created Google Tasks list \"{title}\"")
        return TaskList.from_api(data)

    async def ensure_task_list(self, name: str) -> TaskList:
        """Find the list by name, creating it if it does not exist."""
        task_list = await self.get_task_list_by_name(name)
        if task_list is None:
            logger.info(f"Task list \"{name}\" not found. Creating it...")
            task_list = await self.create_task_list(name)
        return task_list

    async def verify_authentication(self) -> bool:
        """Check the credentials by listing task lists."""
        try:
            task_lists = await self.get_task_lists()
        except ApiError as e:
            logger.error(f"Authentication verification failed: {e}")
            return False
        logger.info(f"Authentication verified, {len(task_lists)} task lists visible")
        return True

    # =========================================================================
    # TASKS
    # =========================================================================

    async def get_tasks(
        self,
        list_id: str,
        show_completed: bool = False,
        show_hidden: bool = False,
    ) -> list[RemoteTask]:
        """Tasks in a list. By default only active (open, visible) tasks."""
        tasks: list[RemoteTask] = []
        page_token: Optional[str] = None

        while True:
            params: dict[str, Any] = {
                "maxResults": config.MAX_PAGE_SIZE,
                "showCompleted": str(show_completed).lower(),
                "showHidden": str(show_hidden).lower(),
            }
            if page_token:
                params["pageToken"] = page_token
            data = await self._request("GET", f"/lists/{list_id}/tasks", params=params) or {}
            tasks.extend(RemoteTask.from_api(item) for item in data.get("items", []))
            page_token = data.get("nextPageToken")
            if not page_token:
                break

        return tasks

    async def get_task(self, list_id: str, task_id: str) -> RemoteTask:
        """Fetch one task. Raises NotFoundError if it no longer exists."""
        data = await self._request("GET", f"/lists/{list_id}/tasks/{task_id}")
        return RemoteTask.from_api(data)

    async def create_task(self, list_id: str, payload: dict[str, Any]) -> RemoteTask:
        data = await self._request("POST", f"/lists/{list_id}/tasks", json=payload)
        return RemoteTask.from_api(data)

    async def update_task(self, list_id: str, task_id: str, payload: dict[str, Any]) -> RemoteTask:
        """Patch the given fields of a task."""
        data = await self._request("PATCH", f"/lists/{list_id}/tasks/{task_id}", json=payload)
        return RemoteTask.from_api(data)
