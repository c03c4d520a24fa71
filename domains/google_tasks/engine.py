"""Reconciliation engine: one sync pass of reminders against Google Tasks.

For each reminder, serially:
- no link metadata           → create the task, write the link
- linked, task active        → skip if the checksum matches, otherwise update
- linked, task not active    → fetch it directly:
    404 or deleted           → recreate (old link removed first)
    completed                → tick the reminder locally
    anything else            → stale-status policy (recreate by default)

Item failures are counted and never stop the pass. Failing to resolve the
list or fetch the active snapshot aborts the pass with SyncError.
"""

from dataclasses import replace
from typing import Optional

from logger import logger
from . import config
from .checksum import reminder_checksum
from .converter import to_task_payload
from .errors import DocumentIOError, NotFoundError, SyncError
from .metadata import encode_metadata, read_metadata
from .notifier import Notifier
from .services.auth import TokenManager
from .services.tasks_api import TasksApi
from .types import LinkMetadata, Location, ReminderItem, RemoteTask, SyncAction, SyncResult, SyncSettings
from .vault import DocumentStore, ReminderSource, mark_line_done


class SyncEngine:
    """Runs reconciliation passes between a reminder source and one task list."""

    def __init__(
        self,
        settings: SyncSettings,
        tokens: TokenManager,
        api: TasksApi,
        source: ReminderSource,
        documents: DocumentStore,
        notifier: Notifier,
    ):
        self.settings = settings
        self.tokens = tokens
        self.api = api
        self.source = source
        self.documents = documents
        self.notifier = notifier

    async def run_sync(self) -> Optional[SyncResult]:
        """Run one pass.

        Returns:
            The pass result, or None if the integration is disabled or not
            authenticated

        Raises:
            SyncError: if the target list or the active snapshot could not be loaded
        """
        if not self.settings.enabled:
            self.notifier.notify("Google Tasks integration is disabled in settings.")
            return None

        if not await self.tokens.ensure_valid():
            self.notifier.notify("Not authenticated with Google Tasks. Please authenticate first.")
            return None

        logger.info("Starting Google Tasks synchronization...")

        try:
            task_list = await self.api.ensure_task_list(self.settings.list_name)
            active = {task.id: task for task in await self.api.get_tasks(task_list.id)}
            reminders = list(self.source.iter_reminders())
        except Exception as e:
            message = f"Google Tasks sync failed: {e}"
            logger.error(message)
            self.notifier.notify(message)
            raise SyncError(message) from e

        logger.info(f"Found {len(reminders)} reminders and {len(active)} active tasks in \"{task_list.title}\"")

        result = SyncResult()
        for item in reminders:
            try:
                action = await self.sync_item(item, task_list.id, active)
            except Exception as e:
                logger.error(f"Failed to sync reminder \"{item.title}\" ({item.location}): {type(e).__name__}: {e}")
                result.record_error(f"{item.location}: {e}")
                continue
            result.record(action)

        logger.info(result.summary())
        self.notifier.notify(result.summary())
        return result

    async def sync_item(self, item: ReminderItem, list_id: str, active: dict[str, RemoteTask]) -> SyncAction:
        """Reconcile one reminder and return what was done."""
        line = self.documents.read_line(item.location)
        metadata = read_metadata(line)
        checksum = reminder_checksum(item)
        payload = to_task_payload(item)

        if metadata is None:
            created = await self.api.create_task(list_id, payload)
            self._write_metadata(item.location, LinkMetadata(id=created.id, checksum=checksum))
            logger.info(f"Created task \"{item.title}\" ({created.id})")
            return SyncAction.CREATED

        if metadata.id in active:
            if metadata.checksum == checksum:
                return SyncAction.SKIPPED

            await self.api.update_task(list_id, metadata.id, payload)
            self._write_metadata(item.location, LinkMetadata(id=metadata.id, checksum=checksum))
            logger.info(f"Updated task \"{item.title}\" ({metadata.id})")
            return SyncAction.UPDATED

        return await self._resolve_stale_link(item, list_id, metadata, checksum, payload)

    async def _resolve_stale_link(
        self,
        item: ReminderItem,
        list_id: str,
        metadata: LinkMetadata,
        checksum: str,
        payload: dict,
    ) -> SyncAction:
        """Handle a linked task that is missing from the active snapshot."""
        try:
            remote = await self.api.get_task(list_id, metadata.id)
        except NotFoundError:
            logger.warning(f"Task {metadata.id} (\"{item.title}\") not found. Recreating...")
            return await self._recreate(item, list_id, payload, checksum)

        if remote.deleted:
            logger.warning(f"Task {metadata.id} (\"{item.title}\") is marked deleted. Recreating...")
            return await self._recreate(item, list_id, payload, checksum)

        if remote.is_completed:
            if item.completed and metadata.checksum == checksum:
                return SyncAction.SKIPPED
            return self._complete_locally(item, metadata)

        logger.warning(
            f"Task {metadata.id} (\"{item.title}\") is not in the active list but has "
            f"status {remote.status!r} (hidden={remote.hidden}); policy: {self.settings.stale_status_policy}"
        )
        if self.settings.stale_status_policy == config.STALE_POLICY_SKIP:
            return SyncAction.SKIPPED
        return await self._recreate(item, list_id, payload, checksum)

    async def _recreate(self, item: ReminderItem, list_id: str, payload: dict, checksum: str) -> SyncAction:
        # Old link is removed before the replacement exists
        try:
            self._write_metadata(item.location, None)
        except DocumentIOError as e:
            logger.warning(f"Could not remove stale link for \"{item.title}\": {e}")

        created = await self.api.create_task(list_id, payload)
        try:
            self._write_metadata(item.location, LinkMetadata(id=created.id, checksum=checksum))
        except DocumentIOError:
            logger.error(f"Recreated task \"{item.title}\" ({created.id}) but failed to write its link")
            raise

        logger.info(f"Recreated task \"{item.title}\" with new ID {created.id}")
        return SyncAction.RECREATED

    def _complete_locally(self, item: ReminderItem, metadata: LinkMetadata) -> SyncAction:
        """Tick the reminder and store the checksum of its completed state."""
        completed = replace(item, completed=True)
        line = self.documents.read_line(item.location)
        new_metadata = LinkMetadata(id=metadata.id, checksum=reminder_checksum(completed))
        self.documents.replace_line(item.location, encode_metadata(mark_line_done(line), new_metadata))
        logger.info(f"Task {metadata.id} completed in Google Tasks, marked \"{item.title}\" done")
        return SyncAction.COMPLETED_LOCALLY

    def _write_metadata(self, location: Location, metadata: Optional[LinkMetadata]) -> None:
        line = self.documents.read_line(location)
        self.documents.replace_line(location, encode_metadata(line, metadata))
