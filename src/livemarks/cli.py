"""Command-line interface for livemarks."""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

import click
import httpx
import uvicorn

from . import __version__
from .config import ConfigError, ConfigManager, configure_logging
from .core.cross_tab import CrossTabSignal
from .core.http_store import HttpBookmarkStore
from .core.list_reconciler import ListState
from .core.local_store import LocalBookmarkStore
from .core.notifier import ConsoleNotifier
from .core.session import FileSessionProvider, SessionError
from .core.store import BookmarkStoreClient
from .core.view import BookmarkView, ViewState
from .models.config import AppConfig, EnvSettings
from .utils.url_utils import display_domain

logger = logging.getLogger(__name__)

config_dir_option = click.option(
    "--config-dir",
    type=click.Path(path_type=Path),
    default=None,
    help="Configuration directory (default: ~/.livemarks)",
)

HELP_TEXT = """Commands:
  add               add a bookmark (prompts for title and URL)
  del N             delete bookmark number N
  refresh           reload the list from the store
  retry             retry after a failed load
  signout           sign out
  help              show this help
  quit              leave"""


@click.group()
@click.version_option(version=__version__, prog_name="livemarks")
def cli():
    """livemarks - personal bookmarks, live across terminals and devices."""
    pass


@cli.command()
@config_dir_option
@click.option(
    "--backend",
    type=click.Choice(["local", "http"], case_sensitive=False),
    default="local",
    show_default=True,
    help="'local' keeps bookmarks in the config directory; 'http' uses a store service.",
)
@click.option(
    "--store-url",
    type=str,
    default="http://127.0.0.1:8000",
    show_default=True,
    help="Store service URL (http backend).",
)
@click.option(
    "--store-api-token",
    type=str,
    default=None,
    help="Shared store service token (saved to .env).",
)
def init(
    config_dir: Optional[Path],
    backend: str,
    store_url: str,
    store_api_token: Optional[str],
):
    """Initialize livemarks configuration."""
    try:
        cm = ConfigManager(config_dir)

        click.echo(f"Initializing livemarks at {cm.config_dir}...")
        cm.config_dir.mkdir(parents=True, exist_ok=True)

        cm.create_env_file(store_api_token)
        click.echo("[OK] Created .env file")

        config = AppConfig(store_backend=backend.lower(), store_url=store_url)
        cm.save_app_config(config)
        config = cm.load_app_config()
        click.echo("[OK] Created config.yaml")

        storage_path = cm.get_storage_path(config)
        (storage_path / "bookmarks").mkdir(parents=True, exist_ok=True)
        cm.signal_dir.mkdir(parents=True, exist_ok=True)
        click.echo(f"[OK] Created storage directory at {storage_path}")

        click.echo("\n" + "=" * 60)
        click.echo("[SUCCESS] livemarks initialized successfully!")
        click.echo("=" * 60)
        click.echo(f"\nConfiguration directory: {cm.config_dir}")
        click.echo(f"Store backend: {config.store_backend}")
        click.echo("\nSign in with: livemarks signin you@example.com")
        click.echo("Then open the view with: livemarks open")

    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    except Exception as e:
        click.echo(f"Unexpected error: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.option("--host", type=str, default=None, help="Host to bind (default: from config)")
@click.option("--port", type=int, default=None, help="Port to bind (default: from config)")
@click.option(
    "--reload",
    is_flag=True,
    default=False,
    help="Enable auto-reload for development",
)
@config_dir_option
def serve(host: Optional[str], port: Optional[int], reload: bool, config_dir: Optional[Path]):
    """Start the livemarks store service."""
    try:
        cm = ConfigManager(config_dir)
        try:
            config = cm.load_app_config()
            cm.load_env_settings()
        except ConfigError as e:
            click.echo(f"Configuration error: {e}", err=True)
            sys.exit(1)

        if config_dir:
            import os
            os.environ["LIVEMARKS_CONFIG_DIR"] = str(config_dir)

        host = host or config.host
        port = port or config.port

        click.echo("=" * 60)
        click.echo("Starting livemarks store service...")
        click.echo("=" * 60)
        click.echo(f"Config directory: {cm.config_dir}")
        click.echo(f"Storage directory: {cm.get_storage_path(config)}")
        click.echo(f"Server URL: http://{host}:{port}")
        click.echo(f"API docs: http://{host}:{port}/docs")
        click.echo("=" * 60)
        click.echo("\nPress Ctrl+C to stop the server\n")

        uvicorn.run(
            "livemarks.api:app",
            host=host,
            port=port,
            reload=reload,
            log_level=config.log_level.lower(),
        )

    except KeyboardInterrupt:
        click.echo("\n\nShutting down server...")
        sys.exit(0)
    except Exception as e:
        click.echo(f"Error starting server: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.argument("email")
@config_dir_option
def signin(email: str, config_dir: Optional[Path]):
    """Sign in as EMAIL."""
    cm = ConfigManager(config_dir)
    provider = FileSessionProvider(cm.session_file)
    try:
        session = asyncio.run(provider.sign_in(email))
    except (ValueError, SessionError) as e:
        click.echo(f"Sign-in failed: {e}", err=True)
        sys.exit(1)

    click.echo(f"Signed in as {session.email}")


@cli.command()
@config_dir_option
def signout(config_dir: Optional[Path]):
    """Sign out."""
    cm = ConfigManager(config_dir)
    provider = FileSessionProvider(cm.session_file)
    try:
        asyncio.run(provider.sign_out())
    except SessionError as e:
        click.echo(f"Sign-out failed: {e}", err=True)
        sys.exit(1)

    click.echo("Signed out")


@cli.command()
@config_dir_option
def whoami(config_dir: Optional[Path]):
    """Show the signed-in user."""
    cm = ConfigManager(config_dir)
    session = asyncio.run(FileSessionProvider(cm.session_file).get_current_session())
    if session is None:
        click.echo("Not signed in")
        sys.exit(1)

    click.echo(f"{session.email} ({session.user_id})")


@cli.command(name="open")
@config_dir_option
@click.option("--verbose", is_flag=True, default=False, help="Show log output")
def open_view(config_dir: Optional[Path], verbose: bool):
    """Open the live bookmark view."""
    cm = ConfigManager(config_dir)
    try:
        config = cm.load_app_config()
        env_settings = cm.load_env_settings()
    except ConfigError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(1)

    configure_logging(config.log_level if verbose else "WARNING")

    try:
        asyncio.run(_run_view(cm, config, env_settings))
    except KeyboardInterrupt:
        click.echo("")


def create_store(
    cm: ConfigManager, config: AppConfig, env_settings: EnvSettings
) -> BookmarkStoreClient:
    """Build the store client selected by config."""
    if config.store_backend == "http":
        return HttpBookmarkStore(
            config.store_url,
            api_token=env_settings.store_api_token,
            timeout=config.request_timeout_seconds,
        )

    return LocalBookmarkStore(cm.get_storage_path(config))


def create_signal(cm: ConfigManager, config: AppConfig) -> CrossTabSignal:
    return CrossTabSignal(
        cm.signal_dir,
        key=config.signal_key,
        poll_interval=config.signal_poll_interval_ms / 1000,
    )


def render_view(view: BookmarkView) -> None:
    """Print the current view state."""
    if view.state is ViewState.LOADING:
        click.echo("Loading...")
        return

    if view.state is ViewState.SIGNED_OUT:
        click.echo("Not signed in.")
        return

    bookmark_list = view.bookmark_list
    click.echo("")
    click.secho(f"Bookmarks - {view.session.email}", bold=True)
    click.echo("-" * 60)

    if bookmark_list is None or bookmark_list.state is ListState.LOADING:
        click.echo("Loading your bookmarks...")
    elif bookmark_list.state is ListState.LOAD_FAILED:
        click.echo("Could not load your bookmarks. Type 'retry' to try again.")
    elif not len(bookmark_list):
        click.echo("No bookmarks yet")
        click.echo("Add your first one with 'add'")
    else:
        click.echo(f"Your bookmarks ({len(bookmark_list)})")
        for number, bookmark in enumerate(bookmark_list.bookmarks, start=1):
            created = bookmark.created_at.strftime("%b %d, %Y").replace(" 0", " ")
            click.echo(f"{number:>3}. {bookmark.title}")
            click.echo(f"     {bookmark.url}  [{display_domain(bookmark.url)}, {created}]")


async def dispatch(view: BookmarkView, line: str, prompt=click.prompt) -> bool:
    """Run one command typed into the view.

    Returns:
        False when the user asked to quit
    """
    command, _, argument = line.strip().partition(" ")
    command = command.lower()

    if command in ("q", "quit", "exit"):
        return False

    if command in ("h", "help", "?", ""):
        click.echo(HELP_TEXT)
        return True

    if view.state is not ViewState.SIGNED_IN:
        click.echo("Sign in first.")
        return True

    form = view.form
    bookmark_list = view.bookmark_list

    if command in ("a", "add"):
        title = await asyncio.to_thread(prompt, "Title", default=form.title or "", show_default=False)
        url = await asyncio.to_thread(prompt, "URL", default=form.url or "", show_default=False)
        form.set_title(title)
        form.set_url(url)
        bookmark = await form.submit()
        if bookmark is not None:
            click.echo(f"Added: {bookmark.title}")
    elif command in ("d", "del", "delete"):
        bookmarks = bookmark_list.bookmarks
        try:
            index = int(argument) - 1
            if not 0 <= index < len(bookmarks):
                raise ValueError(argument)
        except ValueError:
            click.echo(f"No bookmark number {argument or '(missing)'}")
            return True
        # Deletes run in the background so several can be in flight at once
        view.schedule(bookmark_list.delete(bookmarks[index].id))
    elif command in ("r", "refresh"):
        await bookmark_list.refresh()
    elif command == "retry":
        await bookmark_list.retry()
    elif command in ("signout", "logout"):
        await view.sign_out()
    else:
        click.echo(f"Unknown command: {command}. Type 'help' for commands.")

    return True


async def _run_view(cm: ConfigManager, config: AppConfig, env_settings: EnvSettings) -> None:
    store = create_store(cm, config, env_settings)
    provider = FileSessionProvider(
        cm.session_file, poll_interval=config.signal_poll_interval_ms / 1000
    )
    view = BookmarkView(
        session_provider=provider,
        store=store,
        signal=create_signal(cm, config),
        notifier=ConsoleNotifier(),
        refresh_on_add=config.refresh_on_add,
        rollback_failed_deletes=config.rollback_failed_deletes,
        on_render=render_view,
    )

    try:
        if isinstance(store, LocalBookmarkStore):
            await store.initialize()

        async with provider, view:
            while True:
                if view.state is ViewState.SIGNED_OUT:
                    email = await asyncio.to_thread(
                        click.prompt, "Email to sign in (blank to quit)", default="", show_default=False
                    )
                    if not email.strip():
                        break
                    try:
                        await provider.sign_in(email)
                        await view.wait_idle()
                    except (ValueError, SessionError) as e:
                        click.echo(f"Sign-in failed: {e}", err=True)
                    continue

                line = await asyncio.to_thread(
                    click.prompt, "livemarks", default="help", show_default=False
                )
                if not await dispatch(view, line):
                    break

            # Let scheduled deletes and refreshes reach the store before leaving
            await view.wait_idle()
    except click.Abort:
        click.echo("")
    finally:
        await store.aclose()


def _is_placeholder_secret(value: Optional[str]) -> bool:
    """Detect placeholder/empty secret values that should be replaced."""
    if value is None:
        return True

    normalized = value.strip().lower()
    if not normalized:
        return True

    markers = ("your-", "replace-with", "<random", "example", "changeme")
    return any(marker in normalized for marker in markers)


@cli.command()
@config_dir_option
def doctor(config_dir: Optional[Path]):
    """Validate local setup and report actionable fixes."""
    cm = ConfigManager(config_dir)
    failures = 0
    warnings = 0
    app_config = None
    env_settings = None

    def report(status: str, message: str, fix: Optional[str] = None) -> None:
        click.echo(f"[{status}] {message}")
        if fix:
            click.echo(f"      Fix: {fix}")

    click.echo("=" * 60)
    click.echo("livemarks doctor")
    click.echo("=" * 60)
    click.echo(f"Config directory: {cm.config_dir}")

    if cm.config_file.exists():
        try:
            app_config = cm.load_app_config()
            report("PASS", "config.yaml parsed successfully")
        except ConfigError as e:
            failures += 1
            report("FAIL", f"config.yaml validation failed: {e}")
    else:
        failures += 1
        report("FAIL", f"Missing config file: {cm.config_file}", "Run: livemarks init")

    try:
        env_settings = cm.load_env_settings()
        report("PASS", ".env parsed successfully")
    except ConfigError as e:
        failures += 1
        report("FAIL", f".env validation failed: {e}")

    if app_config is not None and app_config.store_backend == "local":
        try:
            cm.validate_storage_access(app_config)
            report("PASS", f"Storage is accessible: {cm.get_storage_path(app_config)}")
        except ConfigError as e:
            failures += 1
            report("FAIL", f"Storage is not accessible: {e}", "Run: livemarks init")

    if app_config is not None and app_config.store_backend == "http":
        if env_settings is not None and _is_placeholder_secret(env_settings.store_api_token):
            warnings += 1
            report(
                "WARN",
                "STORE_API_TOKEN is unset; the store service must run without auth",
                f"Set STORE_API_TOKEN in {cm.env_file}",
            )

        health_url = f"{app_config.store_url.rstrip('/')}/api/v1/health"
        try:
            response = httpx.get(health_url, timeout=3.0)
            if response.status_code == 200:
                report("PASS", f"Store service is reachable: {health_url}")
            else:
                failures += 1
                report(
                    "FAIL",
                    f"Store health check returned HTTP {response.status_code}: {health_url}",
                    "Start the store: livemarks serve",
                )
        except httpx.HTTPError as e:
            failures += 1
            report(
                "FAIL",
                f"Store service is not reachable at {health_url} ({e})",
                "Start the store and check store_url in config.yaml",
            )

    if cm.session_file.exists():
        session = asyncio.run(FileSessionProvider(cm.session_file).get_current_session())
        if session is None:
            warnings += 1
            report("WARN", "Session file is unreadable", "Run: livemarks signin <email>")
        else:
            report("PASS", f"Signed in as {session.email}")
    else:
        warnings += 1
        report("WARN", "Not signed in", "Run: livemarks signin <email>")

    click.echo("-" * 60)
    click.echo(f"Summary: {failures} fail, {warnings} warn")

    if failures:
        sys.exit(1)
    sys.exit(0)


def main():
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
