"""
Tests for Worker process lifecycle.

These spawn real `sh` processes; docker mode is checked through argv and mocked subprocesses.
"""

import asyncio
import os
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from taskwatch.config import WorkerOptions
from taskwatch.core.worker import EXIT_NO_RETRY, Worker
from taskwatch.errors import WorkerError


def run_worker(message, options):
    async def _go():
        worker = Worker.create(message, options)
        await worker.wait_for()
        return worker

    return asyncio.run(_go())


class TestWorkerRun:
    def test_success(self, make_message):
        worker = run_worker(make_message(), WorkerOptions(command="true"))
        assert worker.returncode == 0

    def test_message_in_environment(self, make_message, tmp_path):
        out = tmp_path / "out.txt"
        message = make_message("m-42", body="hello world", subject="greet")
        options = WorkerOptions(
            command=f'echo "$MessageId|$Subject|$Message|$ApproximateReceiveCount|$EXTRA" > {out}',
            environment={"EXTRA": "yes"},
        )
        run_worker(message, options)
        assert out.read_text().strip() == "m-42|greet|hello world|1|yes"

    def test_message_fields_win_over_configured_environment(self, make_message, tmp_path):
        out = tmp_path / "out.txt"
        options = WorkerOptions(command=f'echo "$Message" > {out}', environment={"Message": "configured"})
        run_worker(make_message(body="from-queue"), options)
        assert out.read_text().strip() == "from-queue"

    def test_nonzero_exit_is_retryable(self, make_message):
        with pytest.raises(WorkerError) as excinfo:
            run_worker(make_message("m1"), WorkerOptions(command="exit 1"))

        err = excinfo.value
        assert err.exit_code == 1
        assert err.retryable
        assert err.message_id == "m1"
        assert err.signal is None

    def test_no_retry_exit_code(self, make_message):
        with pytest.raises(WorkerError) as excinfo:
            run_worker(make_message(), WorkerOptions(command=f"exit {EXIT_NO_RETRY}"))

        assert excinfo.value.exit_code == 3
        assert not excinfo.value.retryable

    def test_killed_by_signal(self, make_message):
        with pytest.raises(WorkerError) as excinfo:
            run_worker(make_message(), WorkerOptions(command="kill -9 $$"))

        assert excinfo.value.signal == 9
        assert excinfo.value.exit_code is None

    def test_timeout_kills_process(self, make_message):
        options = WorkerOptions(command="sleep 10", max_job_duration=0.2)
        with pytest.raises(WorkerError) as excinfo:
            asyncio.run(asyncio.wait_for(_create_and_wait(make_message(), options), timeout=5))

        assert excinfo.value.timed_out
        assert excinfo.value.retryable

    def test_spawn_failure(self, make_message):
        options = WorkerOptions(command="true", image="busybox")
        with patch("taskwatch.core.worker.asyncio.create_subprocess_exec", AsyncMock(side_effect=FileNotFoundError("docker"))):
            with pytest.raises(WorkerError, match="Failed to start"):
                run_worker(make_message(), options)

    def test_accepts_option_mapping(self, make_message):
        worker = run_worker(make_message(), {"command": "true", "volumes": ["/tmp"]})
        assert worker.returncode == 0
        assert worker.options == WorkerOptions(command="true", volumes=("/tmp",))

    def test_wait_for_requires_create(self, make_message):
        worker = Worker(make_message(), WorkerOptions(command="true"))
        with pytest.raises(RuntimeError):
            asyncio.run(worker.wait_for())

    def test_create_starts_immediately(self, make_message, tmp_path):
        """The process runs even before anyone waits on it."""
        marker = tmp_path / "ran"

        async def _go():
            worker = Worker.create(make_message(), WorkerOptions(command=f"touch {marker}"))
            for _ in range(200):
                if marker.exists():
                    break
                await asyncio.sleep(0.01)
            await worker.wait_for()

        asyncio.run(_go())
        assert marker.exists()


class TestWorkerKill:
    def test_cancel_kills_process(self, make_message, tmp_path):
        pid_file = tmp_path / "pid"

        async def _go():
            worker = Worker.create(make_message(), WorkerOptions(command=f"echo $$ > {pid_file}; exec sleep 30"))
            for _ in range(200):
                if pid_file.exists() and pid_file.read_text().strip():
                    break
                await asyncio.sleep(0.01)
            worker._task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await worker.wait_for()

        asyncio.run(asyncio.wait_for(_go(), timeout=10))

        pid = int(pid_file.read_text().strip())
        with pytest.raises(ProcessLookupError):
            os.kill(pid, 0)

    def test_timeout_tolerates_process_already_gone(self, make_message):
        process = MagicMock()
        process.pid = 123
        process.kill.side_effect = ProcessLookupError()
        waits = iter([None, -9])

        async def wait():
            code = next(waits)
            if code is None:
                await asyncio.sleep(10)
            return code

        process.wait = wait
        options = WorkerOptions(command="sleep 10", max_job_duration=0.05)
        with patch("taskwatch.core.worker.asyncio.create_subprocess_shell", AsyncMock(return_value=process)):
            with pytest.raises(WorkerError) as excinfo:
                run_worker(make_message(), options)

        assert excinfo.value.timed_out
        assert excinfo.value.signal == 9
        process.kill.assert_called_once()

    def test_container_removed_on_timeout(self, make_message):
        client = MagicMock()
        client.pid = 123
        waits = iter([None, -9])

        async def wait():
            code = next(waits)
            if code is None:
                await asyncio.sleep(10)
            return code

        client.wait = wait
        remover = MagicMock()
        remover.wait = AsyncMock(return_value=0)
        exec_mock = AsyncMock(side_effect=[client, remover])
        options = WorkerOptions(command="sleep 10", image="busybox", max_job_duration=0.05)

        with patch("taskwatch.core.worker.asyncio.create_subprocess_exec", exec_mock):
            with pytest.raises(WorkerError):
                run_worker(make_message("m1"), options)

        client.kill.assert_called_once()
        assert exec_mock.await_args_list[1].args == ("docker", "rm", "-f", "taskwatch-m1")
        remover.wait.assert_awaited_once()


async def _create_and_wait(message, options):
    worker = Worker.create(message, options)
    await worker.wait_for()


class TestDockerMode:
    def test_argv(self, make_message):
        options = WorkerOptions(
            command="process.sh",
            volumes=("/data", "/cache"),
            image="org/task:latest",
            environment={"STAGE": "prod"},
        )
        worker = Worker(make_message("m1", body="payload"), options)
        argv = worker.argv()

        assert argv[:5] == ["docker", "run", "--rm", "--name", "taskwatch-m1"]
        assert argv[-4:] == ["org/task:latest", "sh", "-c", "process.sh"]
        assert "/data:/data" in argv
        assert "/cache:/cache" in argv
        assert argv[argv.index("/data:/data") - 1] == "-v"
        assert "STAGE=prod" in argv
        assert "MessageId=m1" in argv
        assert "Message=payload" in argv

    def test_image_uses_exec(self, make_message):
        options = WorkerOptions(command="true", image="busybox")

        class FakeProcess:
            pid = 123

            async def wait(self):
                return 0

        exec_mock = AsyncMock(return_value=FakeProcess())
        with patch("taskwatch.core.worker.asyncio.create_subprocess_exec", exec_mock):
            worker = run_worker(make_message(), options)

        assert worker.returncode == 0
        args = exec_mock.await_args.args
        assert args[0] == "docker"
        assert args[-1] == "true"
