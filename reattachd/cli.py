import asyncio
import logging
import os
import sys
from datetime import timedelta

import httpx
import typer

from reattachd.config import settings
from reattachd.services import tmux
from reattachd.services.agent_events import NotifyPayload, parse_agent_payload, title_for_target
from reattachd.services.device_trust import DeviceTrustService, parse_duration

logger = logging.getLogger(__name__)

app = typer.Typer(help="Remote control daemon for tmux sessions")
devices_app = typer.Typer(help="Manage registered devices")
app.add_typer(devices_app, name="devices")


def _trust_service() -> DeviceTrustService:
    return DeviceTrustService.from_data_dir(settings.data_dir)


@app.callback(invoke_without_command=True)
def _root(ctx: typer.Context) -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if ctx.invoked_subcommand is None:
        serve()


@app.command()
def serve() -> None:
    """Run the daemon."""
    import uvicorn

    from reattachd.main import create_app

    logger.info("Starting reattachd on %s:%s", settings.BIND_ADDR, settings.PORT)
    uvicorn.run(create_app(settings), host=settings.BIND_ADDR, port=settings.PORT, log_config=None)


@app.command()
def setup(
    url: str = typer.Option(..., "--url", help="External URL for the server (e.g. https://your-server.example.com)"),
    reusable: bool = typer.Option(False, "--reusable", help="Create a token that can be used multiple times"),
    expires: str = typer.Option("10m", "--expires", help="Token expiration: 10m, 1h, 1d or never"),
) -> None:
    """Issue a setup token for registering a new device."""
    try:
        ttl = parse_duration(expires)
    except ValueError:
        typer.echo(f"Invalid expiration format: {expires}. Using default 10m.", err=True)
        expires, ttl = "10m", timedelta(minutes=10)

    token = asyncio.run(_trust_service().generate_setup_token(reusable=reusable, ttl=ttl))
    setup_url = f"{url}?setup_token={token}"

    notes = ["reusable"] if reusable else []
    notes.append("no expiration" if ttl is None else f"expires in {expires}")

    typer.echo("\n  Open this URL with the Reattach app:\n")
    typer.echo(f"  URL: {setup_url}")
    typer.echo(f"\n  Token: {', '.join(notes)}")
    typer.echo("  Make sure reattachd daemon is running.\n")


@devices_app.callback(invoke_without_command=True)
def _devices(ctx: typer.Context) -> None:
    if ctx.invoked_subcommand is None:
        list_devices()


@devices_app.command("list")
def list_devices() -> None:
    """List all registered devices."""
    devices = asyncio.run(_trust_service().list_devices())
    if not devices:
        typer.echo("No registered devices")
        typer.echo("\nRun 'reattachd setup --url <URL>' to register a device")
        return

    typer.echo("Registered devices:\n")
    for device in devices:
        typer.echo(f"  ID:          {device.id}")
        typer.echo(f"  Name:        {device.name}")
        typer.echo(f"  Registered:  {device.registered_at}")
        if device.last_seen_at:
            typer.echo(f"  Last seen:   {device.last_seen_at}")
        typer.echo()


@devices_app.command("revoke")
def revoke_device(device_id: str = typer.Argument(..., help="Device ID to revoke")) -> None:
    """Revoke a device by ID."""
    if asyncio.run(_trust_service().revoke_device(device_id)):
        typer.echo(f"Device {device_id} revoked successfully")
    else:
        typer.echo(f"Device {device_id} not found")


def _read_stdin() -> str | None:
    if sys.stdin is None or sys.stdin.isatty():
        return None
    data = sys.stdin.read().strip()
    return data or None


async def _resolve_target(target: str | None, payload: NotifyPayload) -> str | None:
    if target or payload.pane_target:
        return target or payload.pane_target
    if pane_id := os.environ.get("TMUX_PANE"):
        if resolved := await tmux.target_for_pane(pane_id):
            return resolved
    if payload.cwd:
        return await tmux.target_for_cwd(payload.cwd)
    return None


async def _post_notification(payload: NotifyPayload, port: int) -> httpx.Response:
    async with httpx.AsyncClient() as client:
        return await client.post(
            f"http://localhost:{port}/notify",
            json={"title": payload.title, "body": payload.body, "pane_target": payload.pane_target},
        )


@app.command()
def notify(
    agent_json: str | None = typer.Argument(None, help="Agent event JSON payload"),
    from_agent_json: str | None = typer.Option(None, "--from-agent-json", help="Agent event JSON payload; read from stdin if omitted"),
    title: str | None = typer.Option(None, "--title", "-t", help="Manual notification title (debug override)"),
    body: str | None = typer.Option(None, "--body", help="Manual notification body (debug override)"),
    target: str | None = typer.Option(None, "--target", help='Tmux pane target, e.g. "dev:0.0"'),
    port: int = typer.Option(settings.PORT, "--port", "-p", help="Daemon port"),
) -> None:
    """Send a push notification to registered devices."""
    if title is not None or body is not None:
        payload = NotifyPayload(title=title or "Reattach", body=body or "Notification")
    else:
        raw = from_agent_json or agent_json or _read_stdin()
        if raw is None:
            typer.echo("No input provided.", err=True)
            typer.echo(
                "Use --from-agent-json '<json>' or pipe JSON via stdin, or pass --body/--title for debug.", err=True
            )
            raise typer.Exit(code=2)
        try:
            parsed = parse_agent_payload(raw)
        except ValueError as exc:
            typer.echo(str(exc), err=True)
            raise typer.Exit(code=2)
        if parsed is None:
            # not a turn-complete event
            return
        payload = parsed

    payload.pane_target = asyncio.run(_resolve_target(target, payload))
    if payload.pane_target:
        payload.title = title_for_target(payload.pane_target, payload.cwd)

    try:
        response = asyncio.run(_post_notification(payload, port))
    except httpx.HTTPError as exc:
        typer.echo(f"Failed to connect to reattachd: {exc}", err=True)
        typer.echo(f"Make sure reattachd daemon is running on port {port}", err=True)
        raise typer.Exit(code=1)

    if response.is_success:
        suffix = f" (target: {payload.pane_target})" if payload.pane_target else ""
        typer.echo(f"Notification sent successfully{suffix}")
    else:
        typer.echo(f"Failed to send notification: HTTP {response.status_code}", err=True)
        raise typer.Exit(code=1)


def main() -> None:
    app()
