"""
Player management commands.
"""

import click
from tabulate import tabulate
from db import Database, News, Player
from db.models import news_players
from processors.player_identity import (
    add_player_alias,
    merge_players,
    remove_player_alias,
    set_display_name,
)


def _get_player(session, player_id):
    player = session.get(Player, player_id)
    if player is None:
        click.echo(click.style(f"✗ Player #{player_id} not found", fg='red'))
        raise click.Abort()
    return player


@click.group()
def player():
    """Manage player identities."""
    pass


@player.command('list')
@click.option('--limit', '-l', type=int, default=20, help='Number of players to show (default: 20)')
@click.option('--squad', is_flag=True, help='Only current squad players')
@click.option('--order-by', '-o', type=click.Choice(['rumors', 'recent'], case_sensitive=False), default='rumors',
              help='Order by rumor count or last seen')
def list_players(limit, squad, order_by):
    """
    List players.

    Examples:
        soylenti player list
        soylenti player list --order-by recent --limit 50
    """
    db = Database()
    session = db.get_session()

    try:
        query = session.query(Player)
        if squad:
            query = query.filter(Player.is_current_squad.is_(True))

        if order_by == 'recent':
            query = query.order_by(Player.last_seen_at.desc())
        else:
            query = query.order_by(Player.rumor_count.desc(), Player.last_seen_at.desc())

        players = query.limit(limit).all()

        if not players:
            click.echo(click.style("No players found.", fg='yellow'))
            return

        table_data = [[
            p.id,
            p.display_name or p.name,
            p.rumor_count,
            len(p.aliases or []),
            '✓' if p.is_current_squad else '',
            p.last_seen_at.strftime('%Y-%m-%d')
        ] for p in players]

        click.echo()
        click.echo(tabulate(
            table_data,
            headers=['ID', 'Name', 'Rumors', 'Aliases', 'Squad', 'Last seen'],
            tablefmt='simple'
        ))
        click.echo()

    finally:
        session.close()


@player.command()
@click.argument('player_id', type=int)
@click.option('--news-limit', type=int, default=10, help='Linked news to show (default: 10)')
def show(player_id, news_limit):
    """Show a player with aliases and linked news."""
    db = Database()
    session = db.get_session()

    try:
        p = _get_player(session, player_id)

        click.echo()
        click.echo(click.style(f"Player #{p.id}: {p.display_name or p.name}", fg='cyan', bold=True))
        click.echo(click.style("=" * 60, fg='cyan'))
        info_table = [
            ['Name', p.name],
            ['Display name', p.display_name or '-'],
            ['Normalized', p.normalized_name],
            ['Aliases', ', '.join(p.aliases) if p.aliases else '-'],
            ['Rumors', p.rumor_count],
            ['Current squad', 'yes' if p.is_current_squad else 'no'],
            ['First seen', p.first_seen_at.strftime('%Y-%m-%d %H:%M')],
            ['Last seen', p.last_seen_at.strftime('%Y-%m-%d %H:%M')],
        ]
        click.echo(tabulate(info_table, tablefmt='plain'))
        click.echo()

        rows = (session.query(News, news_players.c.role)
                .join(news_players, news_players.c.news_id == News.id)
                .filter(news_players.c.player_id == p.id)
                .order_by(News.pub_date.desc())
                .limit(news_limit)
                .all())
        if rows:
            click.echo(click.style("Linked news:", fg='yellow', bold=True))
            news_table = [[n.id, role, f"{n.ai_probability}%" if n.ai_probability is not None else 'N/A',
                           n.title[:60]] for n, role in rows]
            click.echo(tabulate(news_table, headers=['ID', 'Role', 'Prob', 'Title'], tablefmt='simple'))
            click.echo()

    finally:
        session.close()


@player.command()
@click.argument('primary_id', type=int)
@click.argument('duplicate_id', type=int)
@click.option('--yes', '-y', is_flag=True, help='Skip confirmation')
def merge(primary_id, duplicate_id, yes):
    """
    Merge DUPLICATE_ID into PRIMARY_ID and delete the duplicate.

    Example:
        soylenti player merge 3 17
    """
    db = Database()
    session = db.get_session()

    try:
        if not yes:
            click.confirm(f"Merge player #{duplicate_id} into #{primary_id}?", abort=True)

        try:
            result = merge_players(session, primary_id, duplicate_id)
        except ValueError as e:
            click.echo(click.style(f"✗ {e}", fg='red'))
            raise click.Abort()

        click.echo(click.style(f"✓ Merged #{duplicate_id} into #{primary_id}", fg='green'))
        click.echo(f"  News transferred: {result.news_transferred}")
        if result.aliases_added:
            click.echo(f"  Aliases added: {', '.join(result.aliases_added)}")

    finally:
        session.close()


@player.command()
@click.argument('player_id', type=int)
@click.argument('alias')
@click.option('--remove', is_flag=True, help='Remove the alias instead of adding it')
def alias(player_id, alias, remove):
    """
    Add (or remove) an alias for a player.

    Examples:
        soylenti player alias 3 "Lo Celso"
        soylenti player alias 3 "lo celso" --remove
    """
    db = Database()
    session = db.get_session()

    try:
        try:
            if remove:
                p = remove_player_alias(session, player_id, alias)
            else:
                p = add_player_alias(session, player_id, alias)
        except ValueError as e:
            click.echo(click.style(f"✗ {e}", fg='red'))
            raise click.Abort()

        click.echo(click.style(f"✓ Aliases of {p.name}: {', '.join(p.aliases) or '-'}", fg='green'))

    finally:
        session.close()


@player.command()
@click.argument('player_id', type=int)
@click.argument('display_name')
def rename(player_id, display_name):
    """
    Set the display name of a player (empty string clears it).

    Example:
        soylenti player rename 3 "Gio Lo Celso"
    """
    db = Database()
    session = db.get_session()

    try:
        try:
            p = set_display_name(session, player_id, display_name)
        except ValueError as e:
            click.echo(click.style(f"✗ {e}", fg='red'))
            raise click.Abort()

        click.echo(click.style(f"✓ Player #{p.id} displayed as '{p.display_name or p.name}'", fg='green'))

    finally:
        session.close()
