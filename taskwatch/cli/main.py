#!/usr/bin/env python3
"""
taskwatch CLI - Main entry point.

Commands:
  taskwatch watch    - Poll a queue and run a worker per message
  taskwatch queue    - Inspect and feed a queue (send, stats)
"""

import sys

import click
from dotenv import load_dotenv
from rich.console import Console

from taskwatch import __version__

console = Console()

# Load environment variables from .env file if present
load_dotenv()


@click.group()
@click.version_option(version=__version__)
@click.option('-v', '--verbose', is_flag=True, help='Enable verbose logging')
@click.pass_context
def cli(ctx, verbose):
    """taskwatch - run a command for every message on an SQS queue."""
    ctx.ensure_object(dict)
    ctx.obj['verbose'] = verbose


# Import subcommands
from taskwatch.cli.watch import watch  # noqa: E402
from taskwatch.cli.queue import queue  # noqa: E402

cli.add_command(watch)
cli.add_command(queue)


def main():
    """Main entry point."""
    try:
        cli(obj={})
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        sys.exit(130)
    except Exception as e:
        console.print(f"[red]Error:[/red] {e}")
        if '--verbose' in sys.argv or '-v' in sys.argv:
            raise
        sys.exit(1)


if __name__ == '__main__':
    main()
