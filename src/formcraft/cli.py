from __future__ import annotations

import logging

import typer

from formcraft.auth import create_user_record, get_auth_provider
from formcraft.config import Settings
from formcraft.storage import init_storage

cli = typer.Typer(add_completion=False)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def run_server(host: str | None, port: int | None) -> None:
    import uvicorn

    from formcraft.app import create_app

    settings = Settings()
    configure_logging(settings.log_level)
    resolved_host = host or settings.host
    resolved_port = port if port is not None else settings.port
    uvicorn.run(create_app(settings), host=resolved_host, port=resolved_port)


@cli.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    host: str | None = typer.Option(None, help="Address to bind"),
    port: int | None = typer.Option(None, help="Port to bind"),
) -> None:
    ctx.obj = {"host": host, "port": port}
    if ctx.invoked_subcommand is None:
        run_server(host, port)


@cli.command()
def run(
    ctx: typer.Context,
    host: str | None = typer.Option(None, help="Address to bind"),
    port: int | None = typer.Option(None, help="Port to bind"),
) -> None:
    base = ctx.obj or {}
    resolved_host = host or base.get("host")
    resolved_port = port if port is not None else base.get("port")
    run_server(resolved_host, resolved_port)


@cli.command("create-superadmin")
def create_superadmin(
    username: str = typer.Option(..., help="Login name"),
    email: str = typer.Option(..., help="Email address"),
    password: str = typer.Option(..., prompt=True, hide_input=True, help="Password"),
) -> None:
    """Create a super admin account."""
    settings = Settings()
    configure_logging(settings.log_level)
    storage = init_storage(settings)
    try:
        if storage.users.get_user_by_username(username):
            typer.echo(f"User {username} already exists", err=True)
            raise typer.Exit(code=1)
        if storage.users.get_user_by_email(email):
            typer.echo(f"Email {email} already registered", err=True)
            raise typer.Exit(code=1)
        user = create_user_record(
            storage, get_auth_provider(settings), username, email, password, role="super_admin"
        )
    finally:
        storage.close()
    typer.echo(f"Created super admin {user['username']} ({user['id']})")
