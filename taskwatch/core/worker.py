from __future__ import annotations

import asyncio
import logging
import os
import time
from collections.abc import Mapping
from typing import Any, Dict, List, Optional, Union

from taskwatch.config import WorkerOptions
from taskwatch.core.models import Message
from taskwatch.errors import WorkerError

logger = logging.getLogger("taskwatch.core.worker")

# Exit status a task uses to say "failed, do not retry me"
EXIT_NO_RETRY = 3


class Worker:
    """
    One execution of the configured command for one message.

    Created and started by `Worker.create`; finished once `wait_for` returns or
    raises. A worker is never restarted: one create is one attempt.
    """

    def __init__(self, message: Message, options: Union[WorkerOptions, Mapping[str, Any]]):
        self.message = message
        self.options = options if isinstance(options, WorkerOptions) else WorkerOptions.from_dict(options)
        self.returncode: Optional[int] = None
        self._task: Optional[asyncio.Task[None]] = None

    @classmethod
    def create(cls, message: Message, options: Union[WorkerOptions, Mapping[str, Any]]) -> "Worker":
        """Build a worker and start its process. Needs a running event loop."""
        worker = cls(message, options)
        worker._task = asyncio.get_running_loop().create_task(
            worker._run(), name=f"worker-{message.id}"
        )
        return worker

    async def wait_for(self) -> None:
        """
        Wait for the process to exit.

        Raises:
            WorkerError: non-zero exit, killed by a signal, timed out, or failed to spawn
        """
        if self._task is None:
            raise RuntimeError("Worker was not started; use Worker.create()")
        await self._task

    def environment(self) -> Dict[str, str]:
        """Variables the task sees: configured extras then message fields."""
        env = dict(self.options.environment)
        env.update(self.message.env)
        return env

    @property
    def container_name(self) -> str:
        return f"taskwatch-{self.message.id}"

    def argv(self) -> List[str]:
        """docker run command line for container mode."""
        argv = ["docker", "run", "--rm", "--name", self.container_name]
        for volume in self.options.volumes:
            argv += ["-v", f"{volume}:{volume}"]
        for key, value in self.environment().items():
            argv += ["-e", f"{key}={value}"]
        argv += [self.options.image, "sh", "-c", self.options.command]
        return argv

    async def _spawn(self) -> asyncio.subprocess.Process:
        if self.options.image:
            return await asyncio.create_subprocess_exec(*self.argv())
        env = dict(os.environ)
        env.update(self.environment())
        return await asyncio.create_subprocess_shell(self.options.command, env=env)

    async def _kill(self, process: asyncio.subprocess.Process) -> int:
        """SIGKILL the process (it may already be gone), remove its container, reap it."""
        try:
            process.kill()
        except ProcessLookupError:
            pass
        if self.options.image:
            # killing the docker client leaves the container running
            remover = await asyncio.create_subprocess_exec(
                "docker", "rm", "-f", self.container_name,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
            await remover.wait()
        return await process.wait()

    async def _run(self) -> None:
        message_id = self.message.id
        start = time.time()

        try:
            process = await self._spawn()
        except OSError as e:
            raise WorkerError(f"Failed to start worker for {message_id}: {e}", message_id=message_id) from e

        logger.info(
            f"Started worker for message {message_id}",
            extra={"pid": process.pid, "image": self.options.image, "receive_count": self.message.receive_count},
        )

        try:
            self.returncode = await asyncio.wait_for(process.wait(), timeout=self.options.max_job_duration)
        except asyncio.CancelledError:
            logger.warning(f"Worker for {message_id} cancelled, killing it")
            await self._kill(process)
            raise
        except asyncio.TimeoutError:
            logger.warning(f"Worker for {message_id} exceeded {self.options.max_job_duration}s, killing it")
            self.returncode = await self._kill(process)
            raise WorkerError(
                f"Worker for {message_id} timed out after {self.options.max_job_duration}s",
                message_id=message_id,
                signal=-self.returncode if self.returncode < 0 else None,
                timed_out=True,
            )

        elapsed = time.time() - start
        code = self.returncode

        if code == 0:
            logger.info(f"Worker for message {message_id} finished in {elapsed:.1f}s")
            return

        if code < 0:
            raise WorkerError(
                f"Worker for {message_id} killed by signal {-code}",
                message_id=message_id,
                signal=-code,
            )

        raise WorkerError(
            f"Worker for {message_id} exited with status {code}",
            message_id=message_id,
            exit_code=code,
            retryable=code != EXIT_NO_RETRY,
        )

