"""
taskwatch queue - feed and inspect a task queue.

Usage:
  taskwatch queue send --queue-url <url> '{"key": "value"}'
  taskwatch queue send --queue-url <url> --subject resize 'photo-123.jpg'
  taskwatch queue stats --queue-url <url>
"""

import os

import click
from rich.console import Console
from rich.table import Table

console = Console()


def get_sqs_client(region=None):
    """Get SQS client from environment."""
    from taskwatch.io.sqs import SQSClient

    region = region or os.environ.get('TASKWATCH_REGION', 'us-east-1')
    return SQSClient(region)


@click.group()
def queue():
    """Feed and inspect task queues (send, stats)."""
    pass


@queue.command()
@click.option('--queue-url', type=str, envvar='TASKWATCH_QUEUE_URL', required=True, help='SQS queue URL')
@click.option('--subject', type=str, help='Message subject, exposed to workers as Subject')
@click.option('--region', type=str, help='AWS region')
@click.argument('body')
def send(queue_url, subject, region, body):
    """Send BODY as one message."""
    sqs = get_sqs_client(region)
    message_id = sqs.send_raw(queue_url, body, subject=subject)
    console.print(f"[green]✓[/green] Sent message {message_id}")


@queue.command()
@click.option('--queue-url', type=str, envvar='TASKWATCH_QUEUE_URL', required=True, help='SQS queue URL')
@click.option('--region', type=str, help='AWS region')
def stats(queue_url, region):
    """Show approximate message counts."""
    sqs = get_sqs_client(region)
    counts = sqs.stats(queue_url)

    table = Table(title="Queue Statistics")
    table.add_column("Metric", style="cyan")
    table.add_column("Count", justify="right", style="magenta")
    table.add_row("Visible", str(counts['visible']))
    table.add_row("In flight", str(counts['in_flight']))
    table.add_row("Delayed", str(counts['delayed']))

    console.print(f"\n[bold]Queue:[/bold] {queue_url}")
    console.print(table)
