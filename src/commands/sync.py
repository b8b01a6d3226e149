"""
Sync commands: run the ingestion pipeline.
"""

import click
from tabulate import tabulate
from db import Database
from processors.sync import RumorSync
from settings import ConfigurationError, require_setting


def _parse_max_age(value):
    """Positive integer or None; anything else is ignored with a warning."""
    if value is None:
        return None
    try:
        hours = int(value)
    except ValueError:
        hours = 0
    if hours <= 0:
        click.echo(click.style(f"⚠ Ignoring invalid --max-age-hours '{value}', using default", fg='yellow'))
        return None
    return hours


def _check_configuration(ctx):
    try:
        require_setting('OPENAI_API_KEY')
    except ConfigurationError as e:
        click.echo(click.style(f"✗ {e}", fg='red'))
        ctx.exit(2)


def _print_counts(title, counts):
    click.echo()
    click.echo(click.style(title, fg='cyan', bold=True))
    click.echo(click.style("=" * 40, fg='cyan'))
    rows = [[key.replace('_', ' ').capitalize(), value] for key, value in counts.items()]
    click.echo(tabulate(rows, tablefmt='plain'))
    click.echo()


@click.group()
def sync():
    """Run the rumor ingestion pipeline."""
    pass


@sync.command()
@click.option('--max-age-hours', default=None, help='Maximum news age in hours (default: NEWS_MAX_AGE_HOURS or 24)')
@click.pass_context
def run(ctx, max_age_hours):
    """
    Fetch, deduplicate, classify and store new rumors.

    Items flagged for reassessment are processed first. Exits with code 1 if
    any item failed.

    Examples:
        soylenti sync run
        soylenti sync run --max-age-hours 48
    """
    hours = _parse_max_age(max_age_hours)
    _check_configuration(ctx)

    result = RumorSync(Database()).run(max_age_hours=hours)
    _print_counts("Sync Results", result.to_dict())

    if result.errors > 0:
        click.echo(click.style(f"✗ Completed with {result.errors} error(s)", fg='red'))
        ctx.exit(1)

    click.echo(click.style("✓ Sync completed", fg='green'))


@sync.command('backfill-players')
@click.option('--limit', '-l', type=click.IntRange(min=1), default=None, help='Maximum news items to process')
@click.pass_context
def backfill_players(ctx, limit):
    """
    Extract and link players for analyzed news that have none.

    Examples:
        soylenti sync backfill-players
        soylenti sync backfill-players --limit 50
    """
    _check_configuration(ctx)

    result = RumorSync(Database()).backfill_players(limit=limit)
    _print_counts("Backfill Results", result.to_dict())

    if result.errors > 0:
        click.echo(click.style(f"✗ Completed with {result.errors} error(s)", fg='red'))
        ctx.exit(1)

    click.echo(click.style("✓ Backfill completed", fg='green'))
