"""External process execution with hard timeouts.

Spawns one command, streams its stdout/stderr line by line while it runs,
and classifies the outcome:

* exit 0 before the deadline -> :class:`ProcessResult`;
* deadline reached -> the process is killed and reaped, then
  :class:`InstallTimeout` is raised;
* non-zero exit -> :class:`InstallFailed` with the captured output;
* cannot be started -> :class:`SpawnError`.

There is no retry policy here; callers decide whether to try again.
"""

from __future__ import annotations

import asyncio
import os
import shutil
import signal
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from devweb.errors import InstallFailed, InstallTimeout, SpawnError
from devweb.installer.packages import DETECTION_ORDER, install_args
from devweb.models import InstallRequest, PackageManager

OutputCallback = Callable[[str, str], None]
"""Called as ``callback(stream, line)`` with ``stream`` in {"stdout", "stderr"}."""

_REAP_TIMEOUT = 5.0


@dataclass
class ProcessResult:
    """Structured result of a successful command."""

    command: str
    exit_code: int = 0
    stdout: str = ""
    stderr: str = ""
    duration_seconds: float = 0.0

    def summary(self) -> str:
        """Return a one-line human-readable summary."""
        return f"{self.command} (exit {self.exit_code}, {self.duration_seconds:.1f}s)"


class ProcessRunner:
    """Runs external commands to completion under a wall-clock timeout."""

    def __init__(self, env: dict[str, str] | None = None) -> None:
        """Initialize the runner.

        Args:
            env: Extra environment variables merged on top of ``os.environ``
                for every command.
        """
        self.env = env

    async def run(
        self,
        command: str,
        args: list[str] | tuple[str, ...] = (),
        cwd: str | Path | None = None,
        timeout: float = 300.0,
        on_output: OutputCallback | None = None,
    ) -> ProcessResult:
        """Run *command* with *args* and wait for it to finish.

        Args:
            command: Executable name or path.
            args: Arguments passed after the executable.
            cwd: Working directory for the child process.
            timeout: Maximum wall-clock seconds before the process is killed.
            on_output: Optional callback receiving each output line as it
                arrives.

        Returns:
            ProcessResult for a zero exit status.

        Raises:
            SpawnError: If the process cannot be started.
            InstallTimeout: If the process outlives *timeout*.
            InstallFailed: If the process exits with a non-zero status.
        """
        cmd = [command, *args]
        cmd_str = " ".join(cmd)

        merged_env: dict[str, str] | None = None
        if self.env:
            merged_env = {**os.environ, **self.env}

        start_time = time.monotonic()
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(cwd) if cwd is not None else None,
                env=merged_env,
                start_new_session=os.name == "posix",
            )
        except FileNotFoundError as exc:
            raise SpawnError(
                command, f"executable or working directory not found ({exc.strerror or exc})"
            ) from exc
        except PermissionError as exc:
            raise SpawnError(command, "permission denied") from exc
        except OSError as exc:
            raise SpawnError(command, exc.strerror or str(exc)) from exc

        stdout_lines: list[str] = []
        stderr_lines: list[str] = []
        assert process.stdout is not None  # guaranteed by PIPE
        assert process.stderr is not None

        readers = asyncio.gather(
            _pump(process.stdout, "stdout", stdout_lines, on_output),
            _pump(process.stderr, "stderr", stderr_lines, on_output),
        )

        try:
            await asyncio.wait_for(
                asyncio.gather(readers, process.wait()), timeout=timeout
            )
        except asyncio.TimeoutError:
            await _terminate(process)
            raise InstallTimeout(
                cmd_str,
                timeout,
                stdout="\n".join(stdout_lines),
                stderr="\n".join(stderr_lines),
            ) from None
        except asyncio.CancelledError:
            await _terminate(process)
            raise
        finally:
            if not readers.done():
                readers.cancel()
                try:
                    await readers
                except (asyncio.CancelledError, Exception):
                    pass

        elapsed = time.monotonic() - start_time
        stdout_text = "\n".join(stdout_lines)
        stderr_text = "\n".join(stderr_lines)
        exit_code = process.returncode if process.returncode is not None else -1

        if exit_code != 0:
            raise InstallFailed(cmd_str, exit_code, stdout=stdout_text, stderr=stderr_text)

        return ProcessResult(
            command=cmd_str,
            exit_code=exit_code,
            stdout=stdout_text,
            stderr=stderr_text,
            duration_seconds=elapsed,
        )

    async def install(
        self,
        request: InstallRequest,
        manager: PackageManager = PackageManager.NPM,
        on_output: OutputCallback | None = None,
    ) -> ProcessResult:
        """Run one package-manager install described by *request*."""
        return await self.run(
            manager.value,
            install_args(manager, request.packages, request.dev),
            cwd=request.cwd,
            timeout=request.timeout,
            on_output=on_output,
        )

    @staticmethod
    def which(binary: str) -> str | None:
        """Return the full path of *binary* on ``PATH``, or ``None``."""
        return shutil.which(binary)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _pump(
    stream: asyncio.StreamReader,
    name: str,
    sink: list[str],
    on_output: OutputCallback | None,
) -> None:
    """Read *stream* line by line until EOF."""
    while True:
        line_bytes = await stream.readline()
        if not line_bytes:
            return
        line = line_bytes.decode("utf-8", errors="replace").rstrip("\r\n")
        sink.append(line)
        if on_output is not None:
            on_output(name, line)


async def _terminate(process: asyncio.subprocess.Process) -> None:
    """Kill *process* (and its process group on POSIX) and reap it."""
    if process.returncode is None:
        try:
            if os.name == "posix":
                os.killpg(process.pid, signal.SIGKILL)
            else:
                process.kill()
        except ProcessLookupError:
            pass
    try:
        await asyncio.wait_for(process.wait(), timeout=_REAP_TIMEOUT)
    except asyncio.TimeoutError:
        pass


def detect_package_manager(
    preferred: str | PackageManager | None = None,
    which: Callable[[str], str | None] = shutil.which,
) -> PackageManager:
    """Pick the package manager to drive.

    An explicit *preferred* manager (anything but ``"auto"``) must be on
    ``PATH``.  Otherwise ``npm``, ``yarn`` and ``pnpm`` are tried in that
    order and the first one found wins.

    Raises:
        SpawnError: If the requested manager, or every candidate, is missing.
    """
    if preferred is not None and preferred != "auto":
        manager = PackageManager(preferred)
        if which(manager.value) is None:
            raise SpawnError(manager.value, "not found on PATH")
        return manager

    for candidate in DETECTION_ORDER:
        if which(candidate.value) is not None:
            return candidate
    raise SpawnError(
        "/".join(m.value for m in DETECTION_ORDER), "no supported package manager found on PATH"
    )
