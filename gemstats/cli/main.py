#!/usr/bin/env python3
"""
gemstats - count gem downloads from the Fastly logs S3 receives.

Fastly drops access logs into S3; S3 notifies the event queue; `consume`
fans each notification out into one task per log object and `worker` turns
each task into download counter updates.

Commands:
  gemstats consume   - Turn S3 event notifications into log processing tasks
  gemstats worker    - Process log tasks and update download counters
  gemstats process   - Process a single log object directly
  gemstats enqueue   - Enqueue log objects by hand
"""

import logging
import sys

import click
from rich.console import Console
from rich.logging import RichHandler

from gemstats import __version__

# Setup rich console
console = Console()


def setup_logging(verbose: bool = False) -> None:
    """Configure logging with rich handler."""
    level = logging.DEBUG if verbose else logging.INFO

    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)]
    )


@click.group()
@click.version_option(version=__version__)
@click.option('-v', '--verbose', is_flag=True, help='Enable verbose logging')
@click.pass_context
def cli(ctx, verbose):
    """Count gem downloads from Fastly access logs (S3 -> SQS -> Postgres).

    Set FASTLY_LOG_PROCESSOR_ENABLED=true to write counters; otherwise
    workers only log what they counted.
    """
    ctx.ensure_object(dict)
    ctx.obj['verbose'] = verbose
    setup_logging(verbose)


# Import subcommands
from gemstats.cli.worker import consume, worker
from gemstats.cli.tasks import enqueue, process

cli.add_command(consume)
cli.add_command(worker)
cli.add_command(process)
cli.add_command(enqueue)


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
