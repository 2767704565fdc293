from __future__ import annotations

import asyncio
import json
from typing import Any

import click

from semanami_client.config import get_safe_config_report, get_settings
from semanami_client.errors import ApiError, ConflictError, describe_error
from semanami_client.service import AuthResilienceService
from semanami_client.utils.log import set_log_level

EXIT_SESSION_CONFLICT = 3


def _build_service() -> AuthResilienceService:
    # CLI invocations are short-lived; no background heartbeat.
    return AuthResilienceService(heartbeat=False)


def _echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, sort_keys=True, default=str))


def _fail(ex: ApiError) -> click.ClickException:
    info = describe_error(ex)
    return click.ClickException(f"{info.message} ({info.category.value})")


@click.group()
@click.option("--log-level", default=None, help="Override LOG_LEVEL for this invocation.")
def cli(log_level: str | None) -> None:
    """SemaNami account session tools."""
    if log_level:
        set_log_level(log_level)


@cli.command("login")
@click.option("--email", default=None, help="Defaults to SEMANAMI_EMAIL.")
@click.option("--password", default=None, help="Defaults to SEMANAMI_PASSWORD (prompted when unset).")
@click.option("--force", is_flag=True, default=False, help="End the session on any other device.")
def login_cmd(email: str | None, password: str | None, force: bool) -> None:
    """Sign in and persist the access token."""
    s = get_settings()
    email = email or s.secret.login_email
    if not email:
        email = click.prompt("Email")
    password = password or s.login_password_value()
    if not password:
        password = click.prompt("Password", hide_input=True)
    creds = {"email": email, "password": password}

    async def _run() -> dict[str, Any] | None:
        async with _build_service() as svc:
            try:
                snap = await svc.login(creds)
            except ConflictError as ex:
                if not force:
                    click.echo(describe_error(ex).message, err=True)
                    if ex.current_device:
                        click.echo(f"Active on: {ex.current_device}", err=True)
                    click.echo("Re-run with --force to sign in here anyway.", err=True)
                    raise SystemExit(EXIT_SESSION_CONFLICT) from ex
                snap = await svc.force_login(creds)
            return dict(snap.user) if snap.user is not None else None

    try:
        user = asyncio.run(_run())
    except ApiError as ex:
        raise _fail(ex) from ex
    who = (user or {}).get("email") or email
    click.echo(f"Signed in as {who}")


@cli.command("logout")
def logout_cmd() -> None:
    """End the session (server side when reachable) and drop the local token."""

    async def _run() -> None:
        async with _build_service() as svc:
            await svc.logout()

    asyncio.run(_run())
    click.echo("Signed out")


@cli.command("whoami")
def whoami_cmd() -> None:
    """Print the signed-in user."""

    async def _run() -> dict[str, Any] | None:
        async with _build_service() as svc:
            snap = await svc.initialize()
            return dict(snap.user) if snap.user is not None else None

    user = asyncio.run(_run())
    if user is None:
        click.echo("Not signed in", err=True)
        raise SystemExit(1)
    _echo_json(user)


@cli.command("status")
@click.option("--probe/--no-probe", default=True, show_default=True, help="Measure latency to the API host.")
def status_cmd(probe: bool) -> None:
    """Connectivity and local session status."""

    async def _run() -> dict[str, Any]:
        async with _build_service() as svc:
            if probe:
                await svc.connection.probe()
            st = svc.connection_status()
            return {
                "api_base_url": svc.client.base_url,
                "token_present": svc.tokens.present,
                "online": st.is_online,
                "quality": st.quality.value,
                "latency_ms": svc.connection.last_latency_ms,
                "queued_operations": st.queued_operations,
            }

    _echo_json(asyncio.run(_run()))


@cli.command("config")
def config_cmd() -> None:
    """Print the effective configuration (secrets shown as SET/UNSET)."""
    _echo_json(get_safe_config_report())


def main() -> None:  # pragma: no cover
    cli()


if __name__ == "__main__":  # pragma: no cover
    main()
