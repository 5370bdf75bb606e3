"""Backend process launcher.

Spawns the workspace's command with three independent pipes and wraps the
resulting asyncio process with wait/terminate helpers.
"""

from __future__ import annotations

import asyncio
import os
import platform
import signal
from pathlib import Path

from lsprelay.config.schema import ShutdownConfig
from lsprelay.errors import SpawnError
from lsprelay.logging import get_logger
from lsprelay.workspace import WorkspaceDescriptor

log = get_logger("launcher")

# Windows-specific subprocess creation flags
_WINDOWS = platform.system() == "Windows"
_CREATE_NEW_PROCESS_GROUP = 0x00000200 if _WINDOWS else 0


def _send_interrupt(process: asyncio.subprocess.Process) -> None:
    """Send interrupt signal to process (Ctrl-Break on Windows, SIGINT on Unix)."""
    if _WINDOWS:
        # CTRL_C_EVENT doesn't work reliably for subprocesses
        try:
            os.kill(process.pid, signal.CTRL_BREAK_EVENT)  # type: ignore[attr-defined]
        except OSError:
            _send_terminate(process)
    else:
        try:
            os.kill(process.pid, signal.SIGINT)
        except ProcessLookupError:
            pass
        except OSError as e:
            log.debug("Cannot interrupt pid %d (%s), terminating instead", process.pid, e)
            _send_terminate(process)


def _send_terminate(process: asyncio.subprocess.Process) -> None:
    """Send terminate signal to process (SIGTERM on Unix, TerminateProcess on Windows)."""
    try:
        process.terminate()
    except ProcessLookupError:
        pass
    except OSError as e:
        log.warning("Cannot terminate pid %d: %s", process.pid, e)


async def graceful_shutdown(
    process: asyncio.subprocess.Process,
    interrupt_timeout: float = 2.0,
    terminate_timeout: float = 3.0,
) -> None:
    """Gracefully shutdown a process: interrupt → terminate → kill.

    Args:
        process: The subprocess to shutdown
        interrupt_timeout: Seconds to wait after sending interrupt signal
        terminate_timeout: Seconds to wait after sending terminate signal
    """
    if process.returncode is not None:
        return

    _send_interrupt(process)
    try:
        await asyncio.wait_for(process.wait(), timeout=interrupt_timeout)
        return
    except asyncio.TimeoutError:
        pass

    log.debug("pid %d ignored interrupt, sending terminate", process.pid)
    _send_terminate(process)
    try:
        await asyncio.wait_for(process.wait(), timeout=terminate_timeout)
        return
    except asyncio.TimeoutError:
        pass

    log.warning("pid %d ignored terminate, killing", process.pid)
    try:
        process.kill()
    except ProcessLookupError:
        pass
    await process.wait()


class ProcessHandle:
    """A running backend process and its three pipes."""

    def __init__(
        self,
        process: asyncio.subprocess.Process,
        descriptor: WorkspaceDescriptor,
        shutdown: ShutdownConfig,
    ) -> None:
        if process.stdin is None or process.stdout is None or process.stderr is None:
            raise SpawnError(
                "Process was started without stdin/stdout/stderr pipes",
                command=descriptor.command,
                cwd=descriptor.root,
            )
        self._process = process
        self._shutdown = shutdown
        self.descriptor = descriptor
        self.stdin: asyncio.StreamWriter = process.stdin
        self.stdout: asyncio.StreamReader = process.stdout
        self.stderr: asyncio.StreamReader = process.stderr

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def returncode(self) -> int | None:
        return self._process.returncode

    async def wait(self) -> int:
        """Suspend until the process exits and return its exit status."""
        return await self._process.wait()

    async def terminate(self) -> None:
        """Stop the process, escalating from interrupt to kill."""
        await graceful_shutdown(
            self._process,
            interrupt_timeout=self._shutdown.interrupt_timeout,
            terminate_timeout=self._shutdown.terminate_timeout,
        )

    def kill(self) -> None:
        if self._process.returncode is None:
            try:
                self._process.kill()
            except ProcessLookupError:
                pass

    def close_stdin(self) -> None:
        """Signal end-of-input to the process."""
        if not self.stdin.is_closing():
            self.stdin.close()

    def __repr__(self) -> str:
        return f"<ProcessHandle pid={self.pid} command={self.descriptor.command!r}>"


class ProcessLauncher:
    """Creates backend processes for workspace descriptors."""

    def __init__(
        self,
        shutdown: ShutdownConfig | None = None,
        env: dict[str, str] | None = None,
    ) -> None:
        """Initialize the launcher.

        Args:
            shutdown: Timeouts used when a process has to be stopped.
            env: Additional environment variables for every backend.
        """
        self.shutdown = shutdown or ShutdownConfig()
        self._env = env

    async def spawn(self, descriptor: WorkspaceDescriptor) -> ProcessHandle:
        """Start ``descriptor.command`` in ``descriptor.root``.

        Raises:
            SpawnError: If the command is empty, the working directory is
                missing, or the OS refuses to create the process. Not retried.
        """
        command = descriptor.command
        cwd = descriptor.root

        if not command.strip():
            raise SpawnError("Empty command", command=command, cwd=cwd)
        if not Path(cwd).is_dir():
            raise SpawnError(f"Working directory does not exist: {cwd}", command=command, cwd=cwd)

        process_env = None
        if self._env:
            process_env = os.environ.copy()
            process_env.update(self._env)

        try:
            process = await asyncio.create_subprocess_exec(
                command,
                *descriptor.args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd,
                env=process_env,
                creationflags=_CREATE_NEW_PROCESS_GROUP,  # type: ignore[arg-type]
            )
        except FileNotFoundError as e:
            raise SpawnError(f"Command not found: {command}", command=command, cwd=cwd) from e
        except PermissionError as e:
            raise SpawnError(f"Permission denied: {command}", command=command, cwd=cwd) from e
        except OSError as e:
            raise SpawnError(f"OS error spawning {command}: {e}", command=command, cwd=cwd) from e

        try:
            handle = ProcessHandle(process, descriptor, self.shutdown)
        except SpawnError:
            process.kill()
            await process.wait()
            raise

        log.info("Spawned %s (pid %d) in %s", " ".join(descriptor.argv()), process.pid, cwd)
        return handle
