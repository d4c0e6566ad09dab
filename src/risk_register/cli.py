"""CLI entry point for the risk register."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Awaitable, Callable

import click

from .core.config import Settings, load_settings
from .core.errors import RiskRegisterError

_config_option = click.option("--config", default=None, help="TOML config file path")
_db_option = click.option("--db-url", default=None, help="Database URL override")


def _settings(config: str | None, db_url: str | None, **database: Any) -> Settings:
    if db_url:
        database["url"] = db_url
    settings = load_settings(config)
    if database:
        settings.database = settings.database.model_copy(update=database)
    return settings


def _run(settings: Settings, action: Callable[..., Awaitable[Any]]) -> Any:
    """Open a session, build the SQL repository and run *action* on it."""
    from .infrastructure.event_bus import InMemoryEventBus
    from .observability.logger import new_trace_id, setup_logging
    from .storage.sql.connection import dispose, get_session, init_engine
    from .storage.sql.repository import SqlRiskRepository

    setup_logging(settings.observability.log_level, settings.observability.log_format)
    new_trace_id()

    async def _main() -> Any:
        await init_engine(settings.database, use_null_pool=True)
        try:
            async with get_session() as session:
                repo = SqlRiskRepository(
                    session, InMemoryEventBus(keep_history=False), pagination=settings.pagination,
                )
                return await action(repo)
        finally:
            await dispose()

    try:
        return asyncio.run(_main())
    except RiskRegisterError as exc:
        raise click.ClickException(f"[{exc.code}] {exc.message}") from exc


def _echo(payload: Any) -> None:
    click.echo(json.dumps(payload, indent=2, default=str))


@click.group()
def main() -> None:
    """Risk register administration."""


@main.command("init-db")
@_config_option
@_db_option
def init_db(config: str | None, db_url: str | None) -> None:
    """Create the database schema."""
    settings = _settings(config, db_url, create_tables=True)

    async def action(repo: Any) -> int:
        return await repo.count()

    count = _run(settings, action)
    click.echo(f"Database ready ({count} risks)")


@main.command()
@_config_option
@_db_option
@click.option("--title", required=True)
@click.option("--description", required=True)
@click.option("--category", required=True, help="e.g. cybersecurity, financial")
@click.option("--probability", type=int, required=True, help="1-5")
@click.option("--impact", type=int, required=True, help="1-5")
@click.option("--org", "organization_id", type=int, required=True, help="Organization id")
@click.option("--owner", "owner_id", type=int, required=True, help="Owner user id")
@click.option("--created-by", type=int, required=True, help="Creating user id")
@click.option("--risk-id", default=None, help="Business id (generated when omitted)")
@click.option("--mitigation-plan", default=None)
@click.option("--tag", "tags", multiple=True, help="Repeatable")
def create(config: str | None, db_url: str | None, tags: tuple[str, ...], **fields: Any) -> None:
    """Register a new risk."""
    from .application.commands import CreateRiskCommand
    from .application.handlers import CreateRiskHandler

    settings = _settings(config, db_url)
    command = CreateRiskCommand(tags=list(tags), **fields)

    async def action(repo: Any) -> Any:
        return await CreateRiskHandler(repo, risk_ids=settings.risk_id).execute(command)

    _echo(_run(settings, action).to_api())


@main.command("list")
@_config_option
@_db_option
@click.option("--status", multiple=True, help="Repeatable")
@click.option("--category", multiple=True, help="Repeatable")
@click.option("--level", "risk_level", multiple=True, help="low/medium/high/critical")
@click.option("--org", "organization_id", type=int, default=None)
@click.option("--search", default=None)
@click.option("--sort-by", default="createdAt")
@click.option("--order", "sort_order", default="desc")
@click.option("--page", type=int, default=None)
@click.option("--limit", type=int, default=None, help="Defaults to pagination.default_limit")
def list_risks(config: str | None, db_url: str | None, **params: Any) -> None:
    """List risks with filters and paging."""
    from .application.handlers import ListRisksHandler
    from .application.queries import ListRisksQuery

    settings = _settings(config, db_url)
    for name in ("status", "category", "risk_level"):
        params[name] = list(params[name]) or None
    query = ListRisksQuery(**params)

    async def action(repo: Any) -> Any:
        return await ListRisksHandler(repo, pagination=settings.pagination).execute(query)

    _echo(_run(settings, action).to_api())


@main.command()
@_config_option
@_db_option
@click.argument("identifier")
def show(config: str | None, db_url: str | None, identifier: str) -> None:
    """Show one risk by numeric id or business id (e.g. RISK-001)."""
    from .application.handlers import GetRiskByIdHandler
    from .application.queries import GetRiskByIdQuery

    settings = _settings(config, db_url)
    if identifier.isdigit():
        query = GetRiskByIdQuery(id=int(identifier))
    else:
        query = GetRiskByIdQuery(risk_id=identifier)

    async def action(repo: Any) -> Any:
        return await GetRiskByIdHandler(repo).execute(query)

    _echo(_run(settings, action).to_api())


@main.command("set-status")
@_config_option
@_db_option
@click.argument("id", type=int)
@click.argument("new_status")
@click.option("--reason", default=None)
def set_status(
    config: str | None, db_url: str | None, id: int, new_status: str, reason: str | None,
) -> None:
    """Move a risk to a new lifecycle status."""
    from .application.commands import ChangeRiskStatusCommand
    from .application.handlers import ChangeRiskStatusHandler

    settings = _settings(config, db_url)
    command = ChangeRiskStatusCommand(id=id, new_status=new_status, reason=reason)

    async def action(repo: Any) -> Any:
        return await ChangeRiskStatusHandler(repo).execute(command)

    _echo(_run(settings, action).to_api())


@main.command()
@_config_option
@_db_option
@click.argument("term")
@click.option("--org", "organization_id", type=int, default=None)
@click.option("--limit", type=int, default=None, help="Defaults to pagination.search_limit")
def search(
    config: str | None, db_url: str | None, term: str, organization_id: int | None, limit: int | None,
) -> None:
    """Free-text search over titles and descriptions."""
    from .application.handlers import SearchRisksHandler
    from .application.queries import SearchRisksQuery

    settings = _settings(config, db_url)
    query = SearchRisksQuery(term=term, organization_id=organization_id, limit=limit)

    async def action(repo: Any) -> Any:
        return await SearchRisksHandler(repo, pagination=settings.pagination).execute(query)

    _echo([item.to_api() for item in _run(settings, action)])


@main.command()
@_config_option
@_db_option
@click.argument("id", type=int)
@click.option("--by", "reviewed_by", type=int, default=None, help="Reviewing user id")
def review(config: str | None, db_url: str | None, id: int, reviewed_by: int | None) -> None:
    """Record a review; the next date follows the review settings."""
    from .application.commands import MarkRiskReviewedCommand
    from .application.handlers import MarkRiskReviewedHandler

    settings = _settings(config, db_url)
    command = MarkRiskReviewedCommand(id=id, reviewed_by=reviewed_by)

    async def action(repo: Any) -> Any:
        return await MarkRiskReviewedHandler(repo, review=settings.review).execute(command)

    _echo(_run(settings, action).to_api())


@main.command()
@_config_option
@_db_option
@click.option("--org", "organization_id", type=int, default=None)
def stats(config: str | None, db_url: str | None, organization_id: int | None) -> None:
    """Print aggregate statistics."""
    from .application.handlers import GetRiskStatisticsHandler
    from .application.queries import GetRiskStatisticsQuery

    settings = _settings(config, db_url)
    query = GetRiskStatisticsQuery(organization_id=organization_id)

    async def action(repo: Any) -> Any:
        return await GetRiskStatisticsHandler(repo).execute(query)

    _echo(_run(settings, action).to_api())


if __name__ == "__main__":
    main()
