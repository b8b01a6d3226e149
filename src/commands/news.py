"""
News curation commands.
"""

import click
from tabulate import tabulate
from db import Database, News
from db.models import news_players


def _get_news(session, news_id):
    news = session.get(News, news_id)
    if news is None:
        click.echo(click.style(f"✗ News #{news_id} not found", fg='red'))
        raise click.Abort()
    return news


def _probability_label(probability):
    if probability is None:
        return 'N/A'
    return f"{probability}%"


@click.group()
def news():
    """Curate stored news and rumors."""
    pass


@news.command('list')
@click.option('--limit', '-l', type=int, default=20, help='Number of news to show (default: 20)')
@click.option('--rumors', is_flag=True, help='Only transfer rumors (probability > 0)')
@click.option('--hidden/--visible', default=None, help='Filter by hidden status')
@click.option('--pending', is_flag=True, help='Only news waiting for reassessment')
@click.option('--source', '-s', help='Filter by source')
def list_news(limit, rumors, hidden, pending, source):
    """
    List stored news, newest first.

    Examples:
        soylenti news list
        soylenti news list --rumors --visible
        soylenti news list --pending
    """
    db = Database()
    session = db.get_session()

    try:
        query = session.query(News).order_by(News.pub_date.desc())

        if rumors:
            query = query.filter(News.ai_probability > 0)
        if hidden is not None:
            query = query.filter(News.is_hidden.is_(hidden))
        if pending:
            query = query.filter(News.needs_reassessment.is_(True))
        if source:
            query = query.filter(News.source == source)

        items = query.limit(limit).all()

        if not items:
            click.echo(click.style("No news found.", fg='yellow'))
            return

        table_data = []
        for item in items:
            flags = ''
            if item.is_hidden:
                flags += 'H'
            if item.needs_reassessment:
                flags += 'R'
            table_data.append([
                item.id,
                _probability_label(item.ai_probability),
                flags,
                item.source[:25],
                item.pub_date.strftime('%Y-%m-%d %H:%M'),
                item.title[:60]
            ])

        click.echo()
        click.echo(tabulate(
            table_data,
            headers=['ID', 'Prob', 'Flags', 'Source', 'Published', 'Title'],
            tablefmt='simple'
        ))
        click.echo()
        click.echo(click.style(f"Showing {len(items)} news item(s)  (H=hidden, R=pending reassessment)", fg='cyan'))

    finally:
        session.close()


@news.command()
@click.argument('news_id', type=int)
def show(news_id):
    """Show a news item with its analysis and players."""
    db = Database()
    session = db.get_session()

    try:
        item = _get_news(session, news_id)

        click.echo()
        click.echo(click.style(f"News #{item.id}: {item.title}", fg='cyan', bold=True))
        click.echo(click.style("=" * 60, fg='cyan'))

        info_table = [
            ['Source', item.source],
            ['Link', item.link],
            ['Published', item.pub_date.strftime('%Y-%m-%d %H:%M UTC')],
            ['Probability', _probability_label(item.ai_probability)],
            ['Relevant', 'yes' if item.is_relevant_to_betis else f"no ({item.irrelevance_reason or '-'})"],
            ['Hidden', 'yes' if item.is_hidden else 'no'],
            ['Analyzed', item.ai_analyzed_at.strftime('%Y-%m-%d %H:%M UTC') if item.ai_analyzed_at else 'N/A'],
            ['Reassessment', 'pending' if item.needs_reassessment else (
                item.reassessed_at.strftime('%Y-%m-%d %H:%M UTC') if item.reassessed_at else '-')],
        ]
        click.echo(tabulate(info_table, tablefmt='plain'))
        click.echo()

        if item.description:
            click.echo(click.style("Description:", fg='yellow', bold=True))
            click.echo(item.description)
            click.echo()

        if item.ai_analysis:
            click.echo(click.style("Analysis:", fg='yellow', bold=True))
            click.echo(item.ai_analysis)
            click.echo()

        if item.admin_context:
            click.echo(click.style("Admin context:", fg='yellow', bold=True))
            click.echo(item.admin_context)
            click.echo()

        links = session.execute(
            news_players.select().where(news_players.c.news_id == item.id)
        ).all()
        roles = {row.player_id: row.role for row in links}
        if item.players:
            click.echo(click.style("Players:", fg='yellow', bold=True))
            player_table = [[p.id, p.display_name or p.name, roles.get(p.id, '-')] for p in item.players]
            click.echo(tabulate(player_table, headers=['ID', 'Name', 'Role'], tablefmt='simple'))
            click.echo()

    finally:
        session.close()


def _set_hidden(news_id, hidden):
    db = Database()
    session = db.get_session()

    try:
        item = _get_news(session, news_id)
        item.is_hidden = hidden
        session.commit()
        state = 'hidden' if hidden else 'visible'
        click.echo(click.style(f"✓ News #{news_id} is now {state}", fg='green'))
    finally:
        session.close()


@news.command()
@click.argument('news_id', type=int)
def hide(news_id):
    """Hide a news item from public listings."""
    _set_hidden(news_id, True)


@news.command()
@click.argument('news_id', type=int)
def unhide(news_id):
    """Make a hidden news item visible again."""
    _set_hidden(news_id, False)


@news.command('set-probability')
@click.argument('news_id', type=int)
@click.argument('probability', type=click.IntRange(0, 100))
def set_probability(news_id, probability):
    """
    Override the rumor probability (0 = not a rumor).

    Example:
        soylenti news set-probability 42 75
    """
    db = Database()
    session = db.get_session()

    try:
        item = _get_news(session, news_id)
        previous = item.ai_probability
        item.ai_probability = probability
        session.commit()
        click.echo(click.style(
            f"✓ News #{news_id} probability: {_probability_label(previous)} -> {probability}%", fg='green'))
    finally:
        session.close()


@news.command()
@click.argument('news_id', type=int)
@click.option('--context', '-c', 'admin_context', required=True, help='Correction for the classifier')
def reassess(news_id, admin_context):
    """
    Queue a news item for reassessment on the next sync run.

    Example:
        soylenti news reassess 42 --context "Es el Betis de baloncesto"
    """
    admin_context = admin_context.strip()
    if not admin_context:
        click.echo(click.style("✗ Context cannot be empty", fg='red'))
        raise click.Abort()

    db = Database()
    session = db.get_session()

    try:
        item = _get_news(session, news_id)
        item.needs_reassessment = True
        item.admin_context = admin_context
        session.commit()
        click.echo(click.style(f"✓ News #{news_id} queued for reassessment", fg='green'))
    finally:
        session.close()
