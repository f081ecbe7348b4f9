"""Side-table of live stdio child processes, keyed by server id."""

import asyncio
import logging

logger = logging.getLogger(__name__)


class StdioProcess:
    """A running stdio MCP server and the lock guarding its pipes."""

    def __init__(self, server_id: str, process: asyncio.subprocess.Process, command: str):
        self.server_id = server_id
        self.process = process
        self.command = command
        # One request/response exchange on the pipes at a time
        self.lock = asyncio.Lock()

    @property
    def stdin(self) -> asyncio.StreamWriter:
        return self.process.stdin  # type: ignore[return-value]

    @property
    def stdout(self) -> asyncio.StreamReader:
        return self.process.stdout  # type: ignore[return-value]

    def is_alive(self) -> bool:
        return self.process.returncode is None


async def terminate_process(process: asyncio.subprocess.Process, timeout: float = 5.0) -> None:
    """Terminate a child process, killing it if it does not exit in time."""
    if process.returncode is not None:
        return
    try:
        process.terminate()
    except ProcessLookupError:
        return
    try:
        await asyncio.wait_for(process.wait(), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(f"Process {process.pid} did not exit after {timeout}s, killing it")
        try:
            process.kill()
        except ProcessLookupError:
            return
        await process.wait()


class ProcessTable:
    """Owns every stdio child process; at most one per server id."""

    def __init__(self, exit_timeout: float = 5.0) -> None:
        self.exit_timeout = exit_timeout
        self._processes: dict[str, StdioProcess] = {}

    def get(self, server_id: str) -> StdioProcess | None:
        return self._processes.get(server_id)

    async def attach(self, handle: StdioProcess) -> None:
        """Attach a process to its server id, terminating any previous one."""
        previous = self._processes.get(handle.server_id)
        if previous is not None and previous is not handle:
            logger.info(f"Replacing stdio process for {handle.server_id}")
            await terminate_process(previous.process, self.exit_timeout)
        self._processes[handle.server_id] = handle
        logger.info(
            f"Attached stdio process {handle.process.pid} to {handle.server_id}: {handle.command}"
        )

    async def release(self, server_id: str) -> bool:
        """Terminate and forget the process attached to a server id."""
        handle = self._processes.pop(server_id, None)
        if handle is None:
            return False
        await terminate_process(handle.process, self.exit_timeout)
        logger.info(f"Stopped stdio process for {server_id}")
        return True

    async def close_all(self) -> None:
        for server_id in list(self._processes):
            await self.release(server_id)

    def __contains__(self, server_id: str) -> bool:
        return server_id in self._processes

    def __len__(self) -> int:
        return len(self._processes)
