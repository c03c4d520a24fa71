"""Local HTTP listener that receives the OAuth redirect.

Only runs for the duration of an authorization flow. Use it as an async
context manager so the port is released on every exit path:

    async with CallbackServer(port) as server:
        webbrowser.open(auth_url)
        code = await server.wait_for_code()
"""

import asyncio
import html
from typing import Optional

from aiohttp import web

from logger import logger
from .. import config
from ..errors import AuthError

_PAGE_TEMPLATE = """<!DOCTYPE html>
<html>
  <head>
    <title>{title}</title>
    <style>
      body {{
        font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", Roboto, Helvetica, Arial, sans-serif;
        line-height: 1.6;
        color: #333;
        max-width: 500px;
        margin: 0 auto;
        padding: 2rem;
        text-align: center;
      }}
      .icon {{ font-size: 3rem; color: {color}; margin-bottom: 1rem; }}
    </style>
  </head>
  <body>
    <div class="icon">{icon}</div>
    <h1>{title}</h1>
    <p>{message}</p>
    <p>You can close this window and return to your notes.</p>
  </body>
</html>
"""

SUCCESS_PAGE = _PAGE_TEMPLATE.format(
    title="Authentication Successful",
    color="#4caf50",
    icon="&#10003;",
    message="You have successfully authenticated with Google Tasks.",
)


def _failure_page(error: str) -> str:
    return _PAGE_TEMPLATE.format(
        title="Authentication Failed",
        color="#f44336",
        icon="&#10007;",
        message=f"No authorization code was received from Google ({html.escape(error)}).",
    )


class CallbackServer:
    """Single-use listener for ``GET {path}?code=...``."""

    def __init__(
        self,
        port: int,
        host: str = config.CALLBACK_HOST,
        path: str = config.CALLBACK_PATH,
        shutdown_delay: float = config.CALLBACK_SHUTDOWN_DELAY,
    ):
        self.host = host
        self.path = path
        self.shutdown_delay = shutdown_delay
        self._requested_port = port
        self._runner: Optional[web.AppRunner] = None
        self._code_future: Optional[asyncio.Future] = None
        self._shutdown_task: Optional[asyncio.Task] = None

    @property
    def port(self) -> int:
        """Bound port (resolves port 0 to the one the OS picked)."""
        if self._runner is not None and self._runner.addresses:
            return self._runner.addresses[0][1]
        return self._requested_port

    @property
    def running(self) -> bool:
        return self._runner is not None

    async def start(self) -> None:
        """Bind the listener. Raises OSError if the port is taken."""
        if self._runner is not None:
            return

        self._code_future = asyncio.get_running_loop().create_future()

        app = web.Application()
        app.add_routes([web.get(self.path, self._handle_callback)])

        runner = web.AppRunner(app, access_log=None)
        await runner.setup()
        try:
            await web.TCPSite(runner, self.host, self._requested_port).start()
        except Exception:
            await runner.cleanup()
            raise
        self._runner = runner

        logger.info(f"Auth callback listening on http://localhost:{self.port}{self.path}")

    async def stop(self) -> None:
        """Stop the listener. Safe to call more than once."""
        # Only ever cancelled while still sleeping; it clears itself before stopping
        if self._shutdown_task is not None:
            self._shutdown_task.cancel()
            self._shutdown_task = None

        if self._code_future is not None and not self._code_future.done():
            self._code_future.set_exception(AuthError("Callback server stopped"))
            # Retrieved so an unawaited failure is not reported on garbage collection
            self._code_future.exception()

        if self._runner is not None:
            runner, self._runner = self._runner, None
            await runner.cleanup()
            logger.info(f"Auth callback server on port {self._requested_port} stopped")

    async def wait_for_code(self) -> str:
        """Wait for the redirect and return the authorization code."""
        if self._code_future is None:
            raise AuthError("Callback server not started")
        return await asyncio.shield(self._code_future)

    async def _handle_callback(self, request: web.Request) -> web.Response:
        code = request.query.get("code")

        if code:
            if self._code_future is not None and not self._code_future.done():
                self._code_future.set_result(code)
                self._schedule_shutdown()
            return web.Response(text=SUCCESS_PAGE, content_type="text/html")

        error = request.query.get("error", "no code parameter in callback URL")
        logger.warning(f"OAuth callback without code: {error}")
        if self._code_future is not None and not self._code_future.done():
            self._code_future.set_exception(AuthError(f"Authorization failed: {error}", error_code=error))
        return web.Response(status=400, text=_failure_page(error), content_type="text/html")

    def _schedule_shutdown(self) -> None:
        """Stop shortly after answering so the browser gets the page."""

        async def _delayed_stop():
            await asyncio.sleep(self.shutdown_delay)
            self._shutdown_task = None
            await self.stop()

        self._shutdown_task = asyncio.get_running_loop().create_task(_delayed_stop())

    async def __aenter__(self) -> "CallbackServer":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()
