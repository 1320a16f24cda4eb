"""Thin CLI wrapper for appwrap.

This module provides the command-line interface using Typer.
Build and push commands talk to a running appwrap API over HTTP; all
other business logic is delegated to core modules.
"""

import json
import threading
from pathlib import Path
from typing import Annotated, Any

import typer
from rich.console import Console

from appwrap import __version__
from appwrap.config import get_settings, print_settings_json
from appwrap.log import configure_logging

app = typer.Typer(
    name="appwrap",
    help="appwrap - wrap a website into an Android app built on Expo EAS",
    no_args_is_help=True,
)
console = Console()


def _print_json(data: Any) -> None:
    console.print(
        json.dumps(data, indent=2), markup=False, highlight=False, soft_wrap=True
    )


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"appwrap version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """appwrap - wrap a website into an Android app built on Expo EAS."""
    configure_logging(get_settings().log_level)


@app.command()
def config(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show effective configuration."""
    settings = get_settings()
    if json_output:
        console.print(print_settings_json(settings), markup=False, soft_wrap=True)
    else:
        console.print("[bold]Effective Configuration:[/bold]")
        console.print()
        console.print("[bold]Service:[/bold]")
        console.print(f"  Database URL:        {settings.db_url}")
        console.print(f"  Status mode:         {settings.status_mode}")
        console.print(f"  Log level:           {settings.log_level}")
        console.print(f"  Listen address:      {settings.host}:{settings.port}")
        console.print()
        console.print("[bold]Expo EAS:[/bold]")
        console.print(f"  API URL:             {settings.eas_api_url}")
        console.print(f"  Project ID:          {settings.eas_project_id or '(not set)'}")
        token_state = "set" if settings.expo_token else "(not set)"
        console.print(f"  Access token:        {token_state}")
        console.print(f"  Push API URL:        {settings.push_api_url}")
        console.print()
        console.print("[bold]Client:[/bold]")
        console.print(f"  API URL:             {settings.api_url}")
        console.print(f"  Poll interval:       {settings.poll_interval}s")
        console.print(f"  Poll max attempts:   {settings.poll_max_attempts}")
        console.print(f"  Poll backoff:        {settings.poll_backoff}")


@app.command()
def serve(
    host: Annotated[
        str | None,
        typer.Option("--host", help="Bind address (default from settings)"),
    ] = None,
    port: Annotated[
        int | None,
        typer.Option("--port", "-p", help="Bind port (default from settings)"),
    ] = None,
    reload: Annotated[
        bool,
        typer.Option("--reload", help="Reload on code changes (development)"),
    ] = False,
) -> None:
    """Run the HTTP API and web GUI."""
    import uvicorn

    from appwrap.log import install_uvicorn_access_log_filters

    settings = get_settings()
    uvicorn_config = uvicorn.Config(
        "web.app:app",
        host=host or settings.host,
        port=port or settings.port,
        log_level=settings.log_level.lower(),
        reload=reload,
    )
    # Load first so uvicorn's loggers exist before the filter is attached
    uvicorn_config.load()
    install_uvicorn_access_log_filters()

    server = uvicorn.Server(uvicorn_config)
    server.run()


# Build commands


build_app = typer.Typer(help="Start and track wrapper builds")
app.add_typer(build_app, name="build")


def _api_client(api_url: str | None) -> Any:
    from appwrap.client import AppwrapClient

    return AppwrapClient(api_url or get_settings().api_url)


def _print_build_status(status: dict[str, Any]) -> None:
    color = {"finished": "green", "error": "red"}.get(status.get("status", ""), "blue")
    console.print(f"[bold]Build {status.get('id')}[/bold]")
    console.print(f"  Status:   [{color}]{status.get('status')}[/{color}]")
    console.print(f"  App:      {status.get('appName')} ({status.get('packageName')})")
    console.print(f"  Type:     {str(status.get('buildType', '')).upper()}")
    console.print(f"  Duration: {status.get('duration')}")
    if status.get("demo"):
        console.print("  [yellow]Demo data, not a real build[/yellow]")
    if status.get("downloadUrl"):
        console.print(f"  Download: {status['downloadUrl']}")
    if status.get("providerDetailUrl"):
        console.print(f"  Details:  {status['providerDetailUrl']}")
    if status.get("errorMessage"):
        console.print(f"  [red]Error: {status['errorMessage']}[/red]")


def _wait_for_build(
    api_url: str | None,
    build_id: str,
    json_output: bool,
) -> dict[str, Any]:
    from appwrap.client import ApiError, PollCancelledError, PollTimeoutError, poll_build

    settings = get_settings()
    cancel_event = threading.Event()
    seen_logs = 0

    def on_update(status: dict[str, Any]) -> None:
        nonlocal seen_logs
        if json_output:
            return
        logs = status.get("logs") or []
        for entry in logs[seen_logs:]:
            console.print(f"  [{entry.get('severity')}] {entry.get('message')}", markup=False)
        seen_logs = len(logs)

    with _api_client(api_url) as client:
        try:
            return poll_build(
                client,
                build_id,
                interval=settings.poll_interval,
                max_attempts=settings.poll_max_attempts,
                backoff=settings.poll_backoff,
                max_interval=settings.poll_max_interval,
                cancel_event=cancel_event,
                on_update=on_update,
            )
        except KeyboardInterrupt:
            cancel_event.set()
            console.print("[yellow]Stopped waiting; the build continues remotely[/yellow]")
            raise typer.Exit(code=130) from None
        except PollCancelledError:
            console.print("[yellow]Polling cancelled[/yellow]")
            raise typer.Exit(code=130) from None
        except PollTimeoutError as e:
            console.print(f"[red]{e}[/red]")
            raise typer.Exit(code=1) from None
        except ApiError as e:
            console.print(f"[red]Error: {e}[/red]")
            raise typer.Exit(code=1) from None


@build_app.command("start")
def build_start(
    url: Annotated[str, typer.Option("--url", "-u", help="Website URL (https)")],
    name: Annotated[str, typer.Option("--name", "-n", help="App display name")],
    package: Annotated[
        str, typer.Option("--package", "-p", help="Android package, e.g. com.acme.app")
    ],
    build_type: Annotated[
        str, typer.Option("--type", "-t", help="Artifact type: apk or aab")
    ] = "apk",
    wait: Annotated[
        bool,
        typer.Option("--wait", "-w", help="Poll until the build finishes"),
    ] = False,
    api_url: Annotated[
        str | None,
        typer.Option("--api-url", help="appwrap API base URL"),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Submit a wrapper build to the appwrap API."""
    from appwrap.client import ApiError

    with _api_client(api_url) as client:
        try:
            created = client.start_build(url, name, package, build_type)
        except ApiError as e:
            if json_output:
                _print_json({"success": False, "error": str(e), "errors": e.errors})
            elif e.errors:
                console.print("[red]Validation failed:[/red]")
                for message in e.errors:
                    console.print(f"  - {message}", markup=False)
            else:
                console.print(f"[red]Error: {e}[/red]")
            raise typer.Exit(code=1) from None

    build_id = created["buildId"]
    if not json_output:
        console.print(f"[green]Build started:[/green] {build_id}")
        console.print(f"  Provider job: {created.get('providerJobId')}")
        console.print(f"  Status:       {created.get('status')}")

    if not wait:
        if json_output:
            _print_json(created)
        return

    final = _wait_for_build(api_url, build_id, json_output)
    if json_output:
        _print_json(final)
    else:
        _print_build_status(final)
    if final.get("status") == "error":
        raise typer.Exit(code=1)


@build_app.command("status")
def build_status(
    build_id: Annotated[str, typer.Argument(help="Local build ID")],
    api_url: Annotated[
        str | None,
        typer.Option("--api-url", help="appwrap API base URL"),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show the current status of a build."""
    from appwrap.client import ApiError

    with _api_client(api_url) as client:
        try:
            status = client.get_build_status(build_id)
        except ApiError as e:
            if json_output:
                _print_json({"success": False, "error": str(e), **e.payload})
            else:
                console.print(f"[red]Error: {e}[/red]")
            raise typer.Exit(code=1) from None

    if json_output:
        _print_json(status)
    else:
        _print_build_status(status)


@build_app.command("wait")
def build_wait(
    build_id: Annotated[str, typer.Argument(help="Local build ID")],
    api_url: Annotated[
        str | None,
        typer.Option("--api-url", help="appwrap API base URL"),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Poll a build until it finishes or fails."""
    final = _wait_for_build(api_url, build_id, json_output)
    if json_output:
        _print_json(final)
    else:
        _print_build_status(final)
    if final.get("status") == "error":
        raise typer.Exit(code=1)


@build_app.command("list")
def build_list(
    status: Annotated[
        str | None,
        typer.Option(
            "--status", "-s", help="Filter by status (queued/building/finished/error)"
        ),
    ] = None,
    limit: Annotated[
        int,
        typer.Option("--limit", "-l", help="Maximum number of records to return"),
    ] = 20,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """List build records stored in the local database."""
    from appwrap.builds.service import list_builds
    from appwrap.db import create_all_tables, get_engine, get_session_factory
    from appwrap.types import BuildStatus

    status_filter: BuildStatus | None = None
    if status:
        try:
            status_filter = BuildStatus(status)
        except ValueError:
            console.print(f"[red]Invalid status: {status}[/red]")
            raise typer.Exit(code=1) from None

    engine = get_engine(get_settings().db_url)
    create_all_tables(engine)
    factory = get_session_factory(engine)

    with factory() as session:
        builds = list_builds(session, status=status_filter, limit=limit)
        rows = [
            {
                "id": b.local_id,
                "status": b.status,
                "appName": b.app_name,
                "packageName": b.package_name,
                "buildType": b.build_type,
                "providerJobId": b.provider_job_id,
                "startedAt": b.started_at.isoformat() if b.started_at else None,
            }
            for b in builds
        ]

    if json_output:
        _print_json(rows)
        return
    if not rows:
        console.print("No builds found")
        return
    for row in rows:
        console.print(
            f"{row['id']}  {row['status']:<9} {row['buildType']:<4} "
            f"{row['appName']} ({row['packageName']})",
            markup=False,
        )


# Push commands


push_app = typer.Typer(help="Relay push notifications")
app.add_typer(push_app, name="push")


@push_app.command("send")
def push_send(
    token: Annotated[
        str, typer.Option("--token", help="Expo push token (ExponentPushToken[...])")
    ],
    title: Annotated[str, typer.Option("--title", help="Notification title")],
    body: Annotated[str, typer.Option("--body", help="Notification body")],
    data: Annotated[
        str | None,
        typer.Option("--data", help="JSON object delivered with the notification"),
    ] = None,
    api_url: Annotated[
        str | None,
        typer.Option("--api-url", help="appwrap API base URL"),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Send a push notification through the appwrap API."""
    from appwrap.client import ApiError

    extra: dict[str, Any] = {}
    if data:
        try:
            extra = json.loads(data)
        except json.JSONDecodeError as e:
            console.print(f"[red]Invalid --data JSON: {e}[/red]")
            raise typer.Exit(code=1) from None
        if not isinstance(extra, dict):
            console.print("[red]--data must be a JSON object[/red]")
            raise typer.Exit(code=1)

    with _api_client(api_url) as client:
        try:
            result = client.send_push(token, title, body, extra)
        except ApiError as e:
            if json_output:
                _print_json({"success": False, "error": str(e)})
            else:
                console.print(f"[red]Error: {e}[/red]")
            raise typer.Exit(code=1) from None

    if json_output:
        _print_json(result)
    else:
        console.print(f"[green]{result.get('message', 'Notification sent')}[/green]")
        if result.get("ticketId"):
            console.print(f"  Ticket: {result['ticketId']}")


# Template commands


template_app = typer.Typer(help="Render wrapper app configuration")
app.add_typer(template_app, name="template")


@template_app.command("render")
def template_render(
    url: Annotated[str, typer.Option("--url", "-u", help="Website URL (https)")],
    name: Annotated[str, typer.Option("--name", "-n", help="App display name")],
    package: Annotated[
        str, typer.Option("--package", "-p", help="Android package, e.g. com.acme.app")
    ],
    project_id: Annotated[
        str | None,
        typer.Option("--project-id", help="EAS project ID (default from settings)"),
    ] = None,
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Write app.json to this path"),
    ] = None,
) -> None:
    """Render the app.json of a wrapper app for local builds."""
    from appwrap.builds.validation import parse_build_request, validate_build_request
    from appwrap.template import render_app_config, write_app_config

    payload = {
        "websiteUrl": url,
        "appName": name,
        "packageName": package,
        "buildType": "apk",
    }
    errors = validate_build_request(payload)
    if errors:
        console.print("[red]Validation failed:[/red]")
        for error in errors:
            console.print(f"  - {error}", markup=False)
        raise typer.Exit(code=1)

    rendered = render_app_config(
        parse_build_request(payload),
        project_id=project_id or get_settings().eas_project_id,
    )
    if output is None:
        _print_json(rendered)
    else:
        written = write_app_config(rendered, output)
        console.print(f"[green]Wrote {written}[/green]")


if __name__ == "__main__":
    app()
