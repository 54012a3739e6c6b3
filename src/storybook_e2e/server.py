"""Static file server for built Storybooks.

Serves the ``storybook-static`` output of a scenario over HTTP so the
integration tests can run against it. Built on aiohttp's static route
support and runs inside the scenario's event loop.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

import httpx
from aiohttp import web

from .config import DEFAULT_PORT
from .errors import E2EError, FilesystemError
from .shared.logging import get_logger

logger = get_logger(__name__)

# Binds every address "localhost" resolves to (IPv4 and IPv6)
DEFAULT_HOST = "localhost"
INDEX_FILE = "index.html"


class StaticServer:
    """Serve a directory of static files on a fixed port.

    Only one server can hold a port at a time; scenarios are expected to
    run one after another.
    """

    def __init__(self, root: str | Path, port: int = DEFAULT_PORT, host: str = DEFAULT_HOST):
        """Initialize static server.

        Args:
            root: Directory to serve
            port: TCP port to listen on
            host: Interface to bind
        """
        self.root = Path(root)
        self.port = port
        self.host = host
        self._runner: web.AppRunner | None = None

    @property
    def url(self) -> str:
        """Base URL of the served directory."""
        return f"http://localhost:{self.port}"

    @property
    def running(self) -> bool:
        """Whether the server is listening."""
        return self._runner is not None

    async def _handle_index(self, request: web.Request) -> web.StreamResponse:
        index = self.root / INDEX_FILE
        if not index.is_file():
            raise web.HTTPNotFound()
        return web.FileResponse(index)

    async def start(self) -> None:
        """Start listening.

        Raises:
            FilesystemError: If root is not a directory
            E2EError: If the port cannot be bound
        """
        if self._runner is not None:
            return
        if not self.root.is_dir():
            raise FilesystemError("serve", self.root, "not a directory")

        app = web.Application()
        app.router.add_get("/", self._handle_index)
        app.router.add_static("/", self.root, show_index=False)

        runner = web.AppRunner(app, access_log=None)
        await runner.setup()
        site = web.TCPSite(runner, self.host, self.port)
        try:
            await site.start()
        except OSError as e:
            await runner.cleanup()
            raise E2EError(f"Cannot listen on port {self.port}: {e}", {"port": self.port}) from e

        self._runner = runner
        logger.info("Static server started", url=self.url, root=str(self.root))

    async def stop(self) -> None:
        """Stop listening. Safe to call more than once."""
        if self._runner is None:
            return
        runner, self._runner = self._runner, None
        await runner.cleanup()
        logger.info("Static server stopped", url=self.url)


@asynccontextmanager
async def serve(root: str | Path, port: int = DEFAULT_PORT) -> AsyncIterator[StaticServer]:
    """Serve `root` for the duration of the block.

    The server is stopped on every exit path, including errors and
    cancellation.
    """
    server = StaticServer(root, port)
    await server.start()
    try:
        yield server
    finally:
        await server.stop()


@dataclass
class ReadinessResult:
    """Result of waiting for a served URL."""

    ready: bool
    attempts: int = 0
    elapsed_seconds: float = 0.0
    error: str | None = None


class ReadinessPoller:
    """Poll a URL until it answers with HTTP 200."""

    def __init__(
        self,
        max_attempts: int = 10,
        interval_seconds: float = 0.5,
        timeout_seconds: float = 5.0,
    ):
        """Initialize readiness poller.

        Args:
            max_attempts: Maximum number of attempts.
            interval_seconds: Seconds between attempts.
            timeout_seconds: Timeout for each HTTP request.
        """
        self.max_attempts = max_attempts
        self.interval_seconds = interval_seconds
        self.timeout_seconds = timeout_seconds

    async def wait_for_ready(
        self,
        url: str,
        on_attempt: Callable[[int, int, str | None], None] | None = None,
    ) -> ReadinessResult:
        """Poll `url` until it is served or attempts run out.

        Args:
            url: URL to request.
            on_attempt: Optional callback called with (attempt, max_attempts, error).

        Returns:
            ReadinessResult with status information.
        """
        start = datetime.now()
        last_error: str | None = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                    response = await client.get(url)
                    if response.status_code == 200:
                        return ReadinessResult(
                            ready=True,
                            attempts=attempt,
                            elapsed_seconds=(datetime.now() - start).total_seconds(),
                        )
                    last_error = f"HTTP {response.status_code}"
            except httpx.ConnectError:
                last_error = "Connection refused"
            except httpx.TimeoutException:
                last_error = "Request timeout"
            except httpx.HTTPError as e:
                last_error = str(e)

            if on_attempt:
                on_attempt(attempt, self.max_attempts, last_error)

            if attempt < self.max_attempts:
                await asyncio.sleep(self.interval_seconds)

        return ReadinessResult(
            ready=False,
            attempts=self.max_attempts,
            elapsed_seconds=(datetime.now() - start).total_seconds(),
            error=f"{url} was not served. Last error: {last_error}",
        )
