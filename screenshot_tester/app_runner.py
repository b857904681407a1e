"""Start a local application, wait for it to come up, and stop it afterwards."""

from __future__ import annotations

import asyncio
import logging

logger = logging.getLogger(__name__)

READY_MARKERS = ("ready", "started", "listening", "compiled successfully")
TERMINATE_TIMEOUT = 5.0  # seconds before SIGKILL


class AppStartError(RuntimeError):
    pass


class AppProcess:
    """Runs ``command`` in a shell for the duration of an ``async with`` block.

    Startup waits ``wait_before_capture`` ms. It fails if the process exits
    non-zero in that window, or if it wrote to stderr without ever printing a
    readiness marker.
    """

    def __init__(self, command: str, wait_before_capture: int = 3000, port: int | None = None):
        self.command = command
        self.wait_before_capture = wait_before_capture
        self.port = port
        self.process: asyncio.subprocess.Process | None = None
        self.started = False
        self.error_output = ""
        self._readers: list[asyncio.Future] = []

    async def __aenter__(self) -> "AppProcess":
        try:
            await self.start()
        except BaseException:
            await self.stop()
            raise
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    def is_ready_line(self, line: str) -> bool:
        lower = line.lower()
        if any(marker in lower for marker in READY_MARKERS):
            return True
        return self.port is not None and str(self.port) in line

    async def start(self) -> None:
        logger.info("Starting app with: %s", self.command)
        self.process = await asyncio.create_subprocess_shell(
            self.command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        self._readers = [
            asyncio.ensure_future(self._read_stdout()),
            asyncio.ensure_future(self._read_stderr()),
        ]

        logger.info("Waiting %dms for app to start...", self.wait_before_capture)
        try:
            await asyncio.wait_for(self.process.wait(), timeout=self.wait_before_capture / 1000)
        except asyncio.TimeoutError:
            # Still running after the wait: the normal case
            if not self.started and self.error_output:
                raise AppStartError(f"App failed to start: {self.error_output.strip()}")
            return

        code = self.process.returncode
        if code != 0:
            raise AppStartError(f"App exited with code {code}")
        logger.warning("App exited during startup with code 0")

    async def _read_stdout(self) -> None:
        async for raw in self.process.stdout:
            line = raw.decode(errors="replace").rstrip()
            if not line:
                continue
            logger.info("[app] %s", line)
            if not self.started and self.is_ready_line(line):
                self.started = True
                logger.debug("Readiness marker seen: %s", line)

    async def _read_stderr(self) -> None:
        async for raw in self.process.stderr:
            line = raw.decode(errors="replace").rstrip()
            if not line:
                continue
            logger.warning("[app] %s", line)
            self.error_output += line + "\n"

    async def stop(self) -> None:
        """SIGTERM the app, then SIGKILL if it has not exited after five seconds."""
        process = self.process
        if process is not None and process.returncode is None:
            logger.info("Stopping application...")
            try:
                process.terminate()
                try:
                    await asyncio.wait_for(process.wait(), timeout=TERMINATE_TIMEOUT)
                except asyncio.TimeoutError:
                    logger.warning("App did not exit after SIGTERM, killing it")
                    process.kill()
                    await process.wait()
            except ProcessLookupError:
                pass
        for reader in self._readers:
            reader.cancel()
        if self._readers:
            await asyncio.gather(*self._readers, return_exceptions=True)
        self._readers = []
