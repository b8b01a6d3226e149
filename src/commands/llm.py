"""
CLI commands for classifier call logs.
"""

import click
from datetime import datetime, timedelta
from tabulate import tabulate
from db import Database
from db.models import LLMApiCall
from sqlalchemy import func, desc


@click.group()
def llm():
    """Inspect classifier (LLM) call logs."""
    pass


@llm.command()
@click.option('--days', default=7, help='Number of days to include in stats (default: 7)')
def stats(days):
    """Show classifier usage statistics."""
    db = Database()
    session = db.get_session()

    try:
        cutoff_date = datetime.utcnow() - timedelta(days=days)
        recent = session.query(LLMApiCall).filter(LLMApiCall.started_at >= cutoff_date)

        total_calls = recent.count()
        successful_calls = recent.filter(LLMApiCall.success.is_(True)).count()
        success_rate = (successful_calls / total_calls * 100) if total_calls > 0 else 0

        totals = session.query(
            func.sum(LLMApiCall.input_tokens),
            func.sum(LLMApiCall.output_tokens),
            func.sum(LLMApiCall.total_tokens),
            func.avg(LLMApiCall.duration_ms)
        ).filter(LLMApiCall.started_at >= cutoff_date).one()
        total_input, total_output, total_tokens, avg_duration = totals

        calls_by_model = session.query(
            LLMApiCall.model,
            func.count(LLMApiCall.id).label('count')
        ).filter(
            LLMApiCall.started_at >= cutoff_date
        ).group_by(LLMApiCall.model).order_by(desc('count')).all()

        click.echo(click.style(f"\nClassifier Usage (Last {days} days)", fg='cyan', bold=True))
        click.echo(click.style("=" * 50, fg='cyan'))
        click.echo()

        overview_table = [
            ['Total Calls', click.style(str(total_calls), fg='green')],
            ['Successful', click.style(str(successful_calls), fg='green')],
            ['Failed', click.style(str(total_calls - successful_calls), fg='red')],
            ['Success Rate', click.style(f"{success_rate:.1f}%", fg='green')],
            ['Avg Duration', click.style(f"{int(avg_duration or 0)}ms", fg='blue')],
            ['Input Tokens', f"{total_input or 0:,}"],
            ['Output Tokens', f"{total_output or 0:,}"],
            ['Total Tokens', click.style(f"{total_tokens or 0:,}", bold=True)],
        ]
        click.echo(tabulate(overview_table, tablefmt='plain'))
        click.echo()

        if calls_by_model:
            click.echo(click.style("Calls by Model:", fg='yellow', bold=True))
            click.echo(tabulate(calls_by_model, headers=['Model', 'Calls'], tablefmt='simple'))
            click.echo()

    finally:
        session.close()


@llm.command('list')
@click.option('--limit', default=20, help='Number of recent calls to show (default: 20)')
@click.option('--news', 'news_id', type=int, help='Only calls for this news id')
@click.option('--success/--errors', default=None, help='Filter by success/error status')
def list_calls(limit, news_id, success):
    """List recent classifier calls."""
    db = Database()
    session = db.get_session()

    try:
        query = session.query(LLMApiCall).order_by(desc(LLMApiCall.started_at))
        if success is not None:
            query = query.filter(LLMApiCall.success.is_(success))

        if news_id is not None:
            # context_data is JSON, filter in Python
            calls = [c for c in query.all() if (c.context_data or {}).get('news_id') == news_id][:limit]
        else:
            calls = query.limit(limit).all()

        if not calls:
            click.echo(click.style("No calls found.", fg='yellow'))
            return

        table_data = []
        for call in calls:
            context = call.context_data or {}
            table_data.append([
                call.id,
                click.style('✓', fg='green') if call.success else click.style('✗', fg='red'),
                context.get('news_id') or '-',
                'yes' if context.get('is_reassessment') else '',
                call.total_tokens or 'N/A',
                f"{call.duration_ms}ms" if call.duration_ms is not None else 'N/A',
                call.started_at.strftime('%Y-%m-%d %H:%M:%S'),
                (call.error_message or context.get('title') or '')[:50]
            ])

        click.echo()
        click.echo(tabulate(
            table_data,
            headers=['ID', '✓', 'News', 'Reassess', 'Tokens', 'Duration', 'Started', 'Title / Error'],
            tablefmt='simple'
        ))
        click.echo()
        click.echo(click.style(f"Showing {len(calls)} most recent call(s)", fg='cyan'))

    finally:
        session.close()
