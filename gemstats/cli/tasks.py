"""
gemstats task CLI - Process or enqueue individual log objects.

Usage:
  gemstats process --bucket fastly-logs --key 2015/10/12/21.gz
  gemstats process --bucket fastly-logs --key 2015/10/12/21.gz --dry-run
  gemstats enqueue --bucket fastly-logs --key 2015/10/12/21.gz --key 2015/10/12/22.gz
"""

import dataclasses
import sys

import click
from rich.console import Console
from rich.table import Table

console = Console()


@click.command()
@click.option('--bucket', required=True, help='S3 bucket holding the log')
@click.option('--key', required=True, help='S3 object key (not URL-encoded)')
@click.option('--dry-run', is_flag=True, help='Only count downloads; never claim the log or update counters')
@click.option('--region', help='AWS region (default: from GEMSTATS_REGION env or us-west-2)')
@click.option('-n', '--top', type=int, default=20, help='Number of versions to show')
def process(bucket, key, dry_run, region, top):
    """Process a single log object without going through SQS."""
    from gemstats.cli.worker import build_config, build_processor
    from gemstats.core.models import ProcessingTask
    from gemstats.errors import AlreadyProcessedError
    from gemstats.io.db import DBClient

    cfg = build_config(region=region, need_db=not dry_run)
    if dry_run:
        cfg = dataclasses.replace(cfg, processing_enabled=False)

    db = DBClient(cfg.db_dsn)
    processor = build_processor(cfg, db)
    task = ProcessingTask(bucket=bucket, key=key)

    try:
        result = processor.run(task)
    except AlreadyProcessedError as e:
        console.print(f"[yellow]{e}[/yellow]")
        sys.exit(0)
    finally:
        db.close()

    table = Table(title=f"s3://{bucket}/{key} ({result.state.value})")
    table.add_column("Version")
    table.add_column("Downloads", justify="right")
    for full_name, count in result.counts.most_common(top):
        table.add_row(full_name, str(count))
    console.print(table)
    console.print(
        f"[green]{result.total_downloads}[/green] downloads over {len(result.counts)} versions"
        + (f", {len(result.entries)} merged" if result.entries else "")
    )


@click.command()
@click.option('--bucket', required=True, help='S3 bucket holding the logs')
@click.option('--key', 'keys', multiple=True, required=True, help='S3 object key. Can be specified multiple times.')
@click.option('--task-queue-url', help='SQS task queue URL (default: GEMSTATS_TASK_QUEUE_URL)')
@click.option('--region', help='AWS region (default: from GEMSTATS_REGION env or us-west-2)')
def enqueue(bucket, keys, task_queue_url, region):
    """Enqueue log objects for processing (e.g. to replay missed events)."""
    from gemstats.cli.worker import build_config
    from gemstats.core.models import ProcessingTask
    from gemstats.io.sqs import SQSClient
    from gemstats.orch.consume import enqueue_tasks

    cfg = build_config(region=region, task_queue_url=task_queue_url, need_db=False)
    if not cfg.task_queue_url:
        console.print("[red]Error:[/red] Provide --task-queue-url or set GEMSTATS_TASK_QUEUE_URL")
        sys.exit(1)

    tasks = [ProcessingTask(bucket=bucket, key=k) for k in keys]
    count = enqueue_tasks(SQSClient(cfg.aws_region), cfg.task_queue_url, tasks)
    console.print(f"[green]✓[/green] Enqueued {count} tasks")
