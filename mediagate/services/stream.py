import asyncio
import logging
from collections import deque
from contextlib import suppress
from typing import Dict, List, Optional

import httpx

from mediagate.services.errors import DownloaderError, ProcessSpawnError, UpstreamError

STDERR_MAX_LINES = 50
DEFAULT_CHUNK_SIZE = 64 * 1024

logger = logging.getLogger(__name__)


class ProcessStream:
    """
    Async byte iterator over the stdout of a conversion process.

    Bytes are forwarded as the process produces them. aclose() kills the
    process if it is still running and always reaps it, so a client that
    disconnects mid-stream does not leave a zombie behind.
    """

    def __init__(self, process: asyncio.subprocess.Process, label: str, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.process = process
        self.label = label
        self.chunk_size = chunk_size
        self._closed = False
        self._stderr_lines = deque(maxlen=STDERR_MAX_LINES)
        self._stderr_task = asyncio.create_task(self._drain_stderr())

    @classmethod
    async def spawn(cls, cmd: List[str], chunk_size: int = DEFAULT_CHUNK_SIZE) -> "ProcessStream":
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                stdin=asyncio.subprocess.DEVNULL
            )
        except OSError as e:
            raise ProcessSpawnError(f"Could not start {cmd[0]}: {e}") from e

        logger.debug(f"Spawned {cmd[0]} (pid {process.pid})")
        return cls(process, label=cmd[0], chunk_size=chunk_size)

    @property
    def stderr_summary(self) -> str:
        return "\n".join(self._stderr_lines)

    async def _drain_stderr(self) -> None:
        """Drain stderr to prevent buffer deadlock"""
        if self.process.stderr is None:
            return
        try:
            while True:
                line = await self.process.stderr.readline()
                if not line:
                    break
                self._stderr_lines.append(line.decode(errors="ignore").strip())
        except (ValueError, ConnectionError):
            return

    def __aiter__(self) -> "ProcessStream":
        return self

    async def __anext__(self) -> bytes:
        if self._closed:
            raise StopAsyncIteration

        chunk = await self.process.stdout.read(self.chunk_size)
        if chunk:
            return chunk

        await self._finish()
        raise StopAsyncIteration

    async def _finish(self) -> None:
        try:
            returncode = await asyncio.wait_for(self.process.wait(), timeout=5.0)
        except asyncio.TimeoutError:
            returncode = None

        # Let the drain task collect the remaining stderr before reporting
        with suppress(asyncio.TimeoutError):
            await asyncio.wait_for(asyncio.shield(self._stderr_task), timeout=1.0)
        await self.aclose()

        if returncode:
            summary = self.stderr_summary[-200:]
            logger.error(f"{self.label} exited with {returncode}: {summary}")
            raise DownloaderError(f"Stream failed: {summary}")

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True

        if self.process.returncode is None:
            with suppress(ProcessLookupError):
                self.process.kill()
            # Reap even if the caller is cancelled (client disconnect)
            await asyncio.shield(self.process.wait())
            logger.info(f"{self.label} (pid {self.process.pid}) terminated before completion")

        self._stderr_task.cancel()
        with suppress(asyncio.CancelledError):
            await self._stderr_task


class HttpStream:
    """Async byte iterator proxying a single upstream URL"""

    def __init__(self, response: httpx.Response, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.response = response
        self.chunk_size = chunk_size
        self._iterator = response.aiter_bytes(chunk_size)
        self._closed = False

    @classmethod
    async def open(
        cls,
        client: httpx.AsyncClient,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE
    ) -> "HttpStream":
        request = client.build_request("GET", url, headers=headers or {})
        try:
            response = await client.send(request, stream=True)
        except httpx.HTTPError as e:
            raise UpstreamError(f"Upstream request failed: {e}") from e

        if response.status_code >= 400:
            await response.aclose()
            raise UpstreamError(f"Upstream answered {response.status_code}")

        return cls(response, chunk_size=chunk_size)

    def __aiter__(self) -> "HttpStream":
        return self

    async def __anext__(self) -> bytes:
        if self._closed:
            raise StopAsyncIteration
        try:
            return await self._iterator.__anext__()
        except StopAsyncIteration:
            await self.aclose()
            raise

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self.response.aclose()
