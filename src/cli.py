#!/usr/bin/env python3
"""
CLI for the Soylenti rumor pipeline.
"""

import logging
import click
from importlib.metadata import version
from commands import llm, news, player, sync
from settings import LOG_LEVEL


@click.group()
@click.version_option(version=version("soylenti"))
def cli():
    """Soylenti CLI - Ingest, classify and curate Real Betis transfer rumors."""
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL, logging.INFO),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s'
    )


# Register command groups
cli.add_command(sync.sync)
cli.add_command(news.news)
cli.add_command(player.player)
cli.add_command(llm.llm)


if __name__ == "__main__":
    cli()
