#!/usr/bin/env python3
"""
Squares Settlement Management CLI

Command-line access to the cache, settlement and score feed.
"""

import json
import os

import click
from flask.cli import with_appcontext
from sqlalchemy.exc import SQLAlchemyError

# One-off commands never need the background pollers
os.environ.setdefault("SCHEDULER_ENABLED", "False")

from squares import create_app, db  # noqa: E402
from squares.services.contest_service import contest_service  # noqa: E402
from squares.services.settlement import SettlementOrchestrator  # noqa: E402
from squares.utils.errors import CacheUnavailable, SettlementError  # noqa: E402

app = create_app()


def _echo_json(data):
    click.echo(json.dumps(data, indent=2, default=str))


@click.group()
def cli():
    """Squares Settlement Management CLI"""
    pass


# Cache Commands
@cli.group()
def cache():
    """Cache commands"""
    pass


@cache.command()
@with_appcontext
def status():
    """Show cache tiers and whether the shared store answers"""
    stats = contest_service.tiered.stats()
    store = contest_service.tiered.store

    if hasattr(store, "ping"):
        try:
            stats["layer1_reachable"] = store.ping()
        except CacheUnavailable as e:
            stats["layer1_reachable"] = False
            click.echo(f"⚠ Shared cache unreachable: {e}")

    _echo_json(stats)


@cache.command("clear-contest")
@click.argument("contest_id", type=int)
@click.option("--chain-id", type=int, help="Chain id (defaults to the configured chain)")
@with_appcontext
def clear_contest(contest_id, chain_id):
    """Invalidate a contest in both cache tiers"""
    contest_service.force_refresh(contest_id, chain_id)
    click.echo(f"✅ Cache cleared for contest {contest_id}")


# Settlement Commands
@cli.command()
@click.argument("contest_id", type=int)
@click.option("--page", default=1, type=int, help="Page of winning boxes")
@click.option("--chain-id", type=int, help="Chain id (defaults to the configured chain)")
@with_appcontext
def settle(contest_id, page, chain_id):
    """Show winning boxes and amounts for a contest"""
    try:
        orchestrator = SettlementOrchestrator.from_app(app, contest_service)
        _echo_json(orchestrator.winning_boxes(contest_id, chain_id, page=page))
    except SettlementError as e:
        click.echo(f"❌ Error settling contest {contest_id}: {str(e)}")


@cli.command()
@click.argument("game_id", type=int)
@with_appcontext
def scores(game_id):
    """Fetch the current score for a game"""
    try:
        _echo_json(contest_service.get_game_score(game_id).to_api_dict())
    except SettlementError as e:
        click.echo(f"❌ Error fetching scores: {str(e)}")


# Database Commands
@cli.group()
def db_cmd():
    """Database commands"""
    pass


@db_cmd.command()
@with_appcontext
def init_db():
    """Create the score snapshot table"""
    try:
        db.create_all()
        click.echo("✅ Database tables created successfully!")
    except SQLAlchemyError as e:
        click.echo(f"❌ Error initializing database: {str(e)}")


if __name__ == "__main__":
    with app.app_context():
        cli()
