"""Google Tasks sync CLI.

Usage:
    gtasks-sync authorize
    gtasks-sync verify
    gtasks-sync sync
    gtasks-sync run                 # keep syncing every GTASKS_POLL_INTERVAL seconds
    gtasks-sync get-tasks --completed
    gtasks-sync clear-auth
"""

import argparse
import asyncio
import logging
import sys
from dataclasses import dataclass

from apscheduler.schedulers.asyncio import AsyncIOScheduler

import config
from logger import logger
from domains.google_tasks import (
    GoogleTasksError,
    MarkdownVault,
    NtfyNotifier,
    SyncEngine,
    SyncSettings,
    TasksApi,
    TokenManager,
    TokenStore,
    build_notifier,
)
from jobs import GoogleTasksSyncJob, register_google_tasks_sync


@dataclass
class Components:
    settings: SyncSettings
    store: TokenStore
    tokens: TokenManager
    api: TasksApi
    engine: SyncEngine


def build_components() -> Components:
    """Wire the sync from the global config."""
    settings = SyncSettings.from_config()
    store = TokenStore(config.TOKEN_STORE_DB)
    tokens = TokenManager(settings, store)
    api = TasksApi(tokens)
    vault = MarkdownVault(config.REMINDER_VAULT_PATH)
    engine = SyncEngine(
        settings=settings,
        tokens=tokens,
        api=api,
        source=vault,
        documents=vault,
        notifier=build_notifier(),
    )
    return Components(settings=settings, store=store, tokens=tokens, api=api, engine=engine)


async def _flush_notifications(components: Components) -> None:
    notifier = components.engine.notifier
    if isinstance(notifier, NtfyNotifier):
        await notifier.drain()


async def cmd_authorize(components: Components) -> None:
    """Run the browser authorization flow."""
    await components.tokens.initialize()
    if components.tokens.is_authenticated():
        print("Already authenticated. Run clear-auth first to switch accounts.")
        return

    print(f"Opening browser, waiting up to {components.settings.auth_timeout:.0f}s for authorization...")
    if not await components.tokens.authorize():
        print("Authorization already in progress.")
        return
    print("Successfully authenticated with Google Tasks.")


async def cmd_clear_auth(components: Components) -> None:
    components.tokens.clear()
    print("Authentication data cleared.")


async def cmd_verify(components: Components) -> None:
    """Check stored credentials against the API."""
    await components.tokens.initialize()
    if not components.tokens.is_authenticated():
        print("Not authenticated. Run authorize first.")
        return

    if await components.api.verify_authentication():
        print("Authentication verified.")
    else:
        print("Authentication failed. Run authorize again.")


async def cmd_refresh_token(components: Components) -> None:
    await components.tokens.initialize()
    if components.tokens.tokens is None:
        print("Not authenticated. Run authorize first.")
        return

    await components.tokens.refresh_access_token()
    print("Access token refreshed.")


async def cmd_get_list(components: Components) -> None:
    """Show the configured task list."""
    await components.tokens.initialize()
    task_list = await components.api.get_task_list_by_name(components.settings.list_name)
    if task_list is None:
        print(f"Task list \"{components.settings.list_name}\" does not exist yet (created on first sync).")
        return
    print(f"{task_list.title}  (id: {task_list.id})")


async def cmd_get_tasks(components: Components, show_completed: bool) -> None:
    """List tasks in the configured list."""
    await components.tokens.initialize()
    task_list = await components.api.get_task_list_by_name(components.settings.list_name)
    if task_list is None:
        print(f"Task list \"{components.settings.list_name}\" not found.")
        return

    tasks = await components.api.get_tasks(
        task_list.id,
        show_completed=show_completed,
        show_hidden=show_completed,
    )
    print(f"\n=== {task_list.title} ({len(tasks)} tasks) ===\n")
    for task in tasks:
        mark = "x" if task.is_completed else " "
        due = f"  (due {task.due[:10]})" if task.due else ""
        print(f"[{mark}] {task.title}{due}")


async def cmd_sync(components: Components) -> None:
    """Run a single sync pass."""
    await components.tokens.initialize()
    try:
        result = await components.engine.run_sync()
    finally:
        await _flush_notifications(components)

    if result is None:
        print("Sync skipped (disabled or not authenticated).")
        return

    print(result.summary())
    for error in result.errors:
        print(f"  - {error}")


async def cmd_run(components: Components) -> None:
    """Sync now, then every poll interval until interrupted."""
    await components.tokens.initialize()
    job = GoogleTasksSyncJob(components.engine)

    await job.run()

    scheduler = AsyncIOScheduler()
    register_google_tasks_sync(scheduler, job, components.settings.poll_interval)
    scheduler.start()
    logger.info("Google Tasks sync running, press Ctrl+C to stop")

    try:
        await asyncio.Event().wait()
    finally:
        scheduler.shutdown(wait=False)
        await _flush_notifications(components)


async def cmd_config(components: Components) -> None:
    """Print the effective settings (secrets masked)."""
    settings = components.settings
    print("\n=== Google Tasks Sync Configuration ===\n")
    print(f"Enabled:            {settings.enabled}")
    print(f"Task list:          {settings.list_name}")
    print(f"Client ID:          {settings.client_id or '(not set)'}")
    print(f"Client secret:      {'(set)' if settings.client_secret else '(not set)'}")
    print(f"OAuth port:         {settings.oauth_port}")
    print(f"Redirect URI:       {settings.redirect_uri}")
    print(f"Poll interval:      {settings.poll_interval}s")
    print(f"Auth timeout:       {settings.auth_timeout:.0f}s")
    print(f"Stale task policy:  {settings.stale_status_policy}")
    print(f"Vault:              {config.REMINDER_VAULT_PATH}")
    print(f"Token store:        {config.TOKEN_STORE_DB}")
    print(f"Notifications:      {'ntfy/' + config.NTFY_TOPIC if config.NTFY_TOPIC else 'log only'}")


def main():
    parser = argparse.ArgumentParser(
        description="Sync Markdown reminders with Google Tasks",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--debug", action="store_true", help="Verbose logging and full tracebacks")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("authorize", help="Connect a Google account")
    subparsers.add_parser("clear-auth", help="Forget stored tokens")
    subparsers.add_parser("verify", help="Check the stored credentials")
    subparsers.add_parser("refresh-token", help="Force an access token refresh")
    subparsers.add_parser("get-list", help="Show the configured task list")

    tasks_parser = subparsers.add_parser("get-tasks", help="List tasks in the configured list")
    tasks_parser.add_argument("--completed", action="store_true", help="Include completed tasks")

    subparsers.add_parser("sync", help="Run one sync pass")
    subparsers.add_parser("run", help="Sync periodically until interrupted")
    subparsers.add_parser("config", help="Show effective configuration")

    args = parser.parse_args()

    if args.debug:
        logger.setLevel(logging.DEBUG)
        for handler in logger.handlers:
            handler.setLevel(logging.DEBUG)

    try:
        components = build_components()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(2)

    commands = {
        "authorize": lambda: cmd_authorize(components),
        "clear-auth": lambda: cmd_clear_auth(components),
        "verify": lambda: cmd_verify(components),
        "refresh-token": lambda: cmd_refresh_token(components),
        "get-list": lambda: cmd_get_list(components),
        "get-tasks": lambda: cmd_get_tasks(components, args.completed),
        "sync": lambda: cmd_sync(components),
        "run": lambda: cmd_run(components),
        "config": lambda: cmd_config(components),
    }

    try:
        asyncio.run(commands[args.command]())
    except KeyboardInterrupt:
        print("\nStopped.")
    except GoogleTasksError as e:
        if args.debug:
            raise
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        components.store.close()


if __name__ == "__main__":
    main()
