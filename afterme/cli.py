"""CLI tools for AfterMe operations."""

import asyncio

import click

from afterme.db.session import SessionLocal
from afterme.services import grace_period_service


@click.group()
def cli():
    """AfterMe CLI tools."""
    pass


@cli.command()
def sweep():
    """
    Grant requests whose grace period ended and expire finished access.

    Intended for cron; safe to run repeatedly or from several hosts.

    Example:
        python -m afterme.cli sweep
    """
    with SessionLocal() as db:
        result = grace_period_service.run_sweep(db)
    click.echo(f"Granted: {len(result.granted)}")
    for request_id in result.granted:
        click.echo(f"  {request_id}")
    click.echo(f"Expired: {len(result.expired)}")
    for request_id in result.expired:
        click.echo(f"  {request_id}")


@cli.command("drain-jobs")
@click.option("--batches", default=1, show_default=True, help="Number of batches to process")
@click.option("--limit", default=50, show_default=True, help="Jobs per batch")
def drain_jobs(batches: int, limit: int):
    """
    Process due outbox jobs once, without starting the worker loop.

    Example:
        python -m afterme.cli drain-jobs --batches 5
    """
    from afterme.worker import run_batch

    total = 0
    with SessionLocal() as db:
        for _ in range(batches):
            processed = asyncio.run(run_batch(db, limit=limit))
            total += processed
            if not processed:
                break
    click.echo(f"Processed {total} job(s)")


if __name__ == "__main__":
    cli()
