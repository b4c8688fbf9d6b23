"""
taskwatch watch - poll a queue and run a worker per message.

Usage:
  taskwatch watch --queue-url https://sqs... --command 'process.sh' --volume /data

Environment variables:
  TASKWATCH_QUEUE_URL (default for --queue-url)
  TASKWATCH_REGION (AWS region, default us-east-1)
"""

import asyncio
import logging
import os
import signal
import sys
from typing import Any

import click

logger = logging.getLogger("taskwatch.cli.watch")


def parse_env_pairs(pairs) -> dict:
    """KEY=VALUE strings to a dict."""
    env = {}
    for pair in pairs:
        key, sep, value = pair.partition('=')
        if not sep or not key:
            raise click.BadParameter(f"expected KEY=VALUE, got '{pair}'", param_hint='--env')
        env[key] = value
    return env


def install_signal_handlers(watcher) -> None:
    """
    SIGTERM / SIGINT ask the watcher to stop after the current batch.
    A second signal forces an immediate exit.
    """

    def signal_handler(signum: int, frame: Any) -> None:
        sig_name = signal.Signals(signum).name
        if not watcher.stopped:
            logger.info(f"Received {sig_name} signal. Finishing current batch, then stopping.")
            watcher.stop()
        else:
            logger.warning(f"Received second {sig_name} signal. Forcing immediate shutdown.")
            raise KeyboardInterrupt("Forced shutdown by second signal")

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)


@click.command()
@click.option('--queue-url', type=str, envvar='TASKWATCH_QUEUE_URL', help='SQS queue URL (default: from TASKWATCH_QUEUE_URL env)')
@click.option('--command', 'command', type=str, required=True, help='Shell command each worker runs')
@click.option('--volume', 'volumes', type=str, multiple=True, help='Shared path made writable and mounted into workers (repeatable)')
@click.option('--image', type=str, help='Run workers in this docker image instead of a local shell')
@click.option('--env', 'env_pairs', type=str, multiple=True, help='Extra worker environment variable KEY=VALUE (repeatable)')
@click.option('--max-job-duration', type=float, help='Kill a worker after this many seconds')
@click.option('--poll-wait', type=int, default=20, help='SQS long-poll wait time (seconds)')
@click.option('--max-messages', type=int, default=10, help='Messages (and workers) per batch, 1-10')
@click.option('--region', type=str, help='AWS region (default: from TASKWATCH_REGION env or us-east-1)')
@click.pass_context
def watch(ctx, queue_url, command, volumes, image, env_pairs, max_job_duration, poll_wait, max_messages, region):
    """Poll an SQS queue and run COMMAND once per received message.

    Each worker sees the message in its environment as MessageId, Subject and
    Message. Exit status 3 means "failed, do not retry".
    """
    from taskwatch.logging_setup import setup_logging
    setup_logging(verbose=(ctx.obj or {}).get('verbose', False))

    from taskwatch.config import WatcherConfig
    from taskwatch.core.watcher import Watcher
    from taskwatch.errors import TaskwatchError

    region = region or os.environ.get('TASKWATCH_REGION', 'us-east-1')

    cfg = WatcherConfig(
        region=region,
        poll_wait_seconds=poll_wait,
        max_messages=max_messages,
    )

    try:
        watcher = Watcher(
            queue_url=queue_url,
            worker_options={
                'command': command,
                'volumes': list(volumes),
                'image': image,
                'environment': parse_env_pairs(env_pairs),
                'max_job_duration': max_job_duration,
            },
            config=cfg,
        )
    except TaskwatchError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(2)

    install_signal_handlers(watcher)
    logger.info("Starting watcher", extra={"queue_url": queue_url, "region": region, "image": image})

    try:
        asyncio.run(watcher.listen())
        logger.info("Watcher completed")
    except KeyboardInterrupt:
        logger.info("Watcher interrupted")
    except TaskwatchError as e:
        logger.error(f"Watcher failed: {e}", exc_info=True)
        sys.exit(1)
