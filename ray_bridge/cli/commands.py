"""CLI commands for ray-bridge."""

import asyncio
import sys
from typing import Any

import typer
from loguru import logger
from rich.console import Console
from rich.markdown import Markdown
from rich.table import Table

from ray_bridge import __brand__, __logo__, __version__

app = typer.Typer(
    name="ray-bridge",
    help=f"{__logo__} {__brand__} - Run a remote agent's tool calls against your workspace",
    no_args_is_help=True,
)

console = Console()

# Synchronous outcomes whose final turn arrives later through the webhook.
WEBHOOK_PENDING_REASONS = ("acknowledged", "working")


def _cli_fail(cause: str, fix: str | None = None, *, exit_code: int = 1) -> None:
    """Print a consistent CLI error block and exit."""
    console.print(f"[red]{cause}[/red]")
    if fix:
        console.print(f"[dim]Fix: {fix}[/dim]")
    raise typer.Exit(exit_code)


def _configure_logging(verbose: bool) -> None:
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "WARNING")


def render_event(event: dict[str, Any]) -> None:
    """Print one UI event emitted by the orchestrator."""
    kind = event.get("type")
    data = event.get("data") or {}
    if kind == "rayResponse":
        content = str(data.get("content", ""))
        if data.get("isWorking"):
            console.print(f"[dim]… {content}[/dim]")
        elif data.get("isFinal"):
            console.print(f"\n{__logo__} ", end="")
            console.print(Markdown(content))
            console.print()
        else:
            console.print(f"[cyan]{content}[/cyan]")
        return

    if kind != "toolStatus":
        return
    status = data.get("status")
    tools = ", ".join(str(t) for t in data.get("tools") or [])
    if status == "starting":
        console.print(f"[dim]▶ Running {data.get('totalCount', 0)} tool(s): {tools}[/dim]")
    elif status == "working":
        console.print(f"[dim]  ({data.get('currentIndex')}/{data.get('totalCount')}) {tools}[/dim]")
    elif status in ("completed", "partial"):
        color = "green" if status == "completed" else "yellow"
        console.print(
            f"[{color}]✓[/{color}] {data.get('successCount', 0)} succeeded, "
            f"{data.get('failedCount', 0)} failed"
        )
    elif status == "failed":
        console.print(f"[red]✗ Tool batch failed:[/red] {data.get('error', '')}")


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} {__brand__} v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(None, "--version", "-v", callback=version_callback, is_eager=True),
):
    """ray-bridge - Run a remote agent's tool calls against your workspace."""
    pass


@app.command("version")
def version_command():
    """Show ray-bridge version."""
    console.print(f"{__logo__} {__brand__} v{__version__}")


# ============================================================================
# Conversation Commands
# ============================================================================


async def _wait_for_final(bridge: Any, timeout: float) -> bool:
    from ray_bridge.agent.turn import TurnState

    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        if bridge.orchestrator.state == TurnState.FINALIZED:
            return True
        await asyncio.sleep(0.2)
    return False


@app.command()
def chat(
    message: str = typer.Option(None, "--message", "-m", help="Message to send to the agent"),
    wait: float = typer.Option(120.0, "--wait", help="Seconds to wait for a webhook-delivered answer"),
    verbose: bool = typer.Option(False, "--verbose", help="Show debug logs"),
):
    """Talk to the remote agent; tool calls run locally."""
    from ray_bridge.agent.turn import Ignored
    from ray_bridge.bridge import Bridge
    from ray_bridge.config.loader import load_config

    _configure_logging(verbose)
    config = load_config()
    bridge = Bridge(config, ui_sink=render_event)

    async def start_webhook() -> None:
        try:
            await bridge.serve()
        except OSError as e:
            console.print(f"[yellow]Webhook server not started:[/yellow] {e}")

    if message:
        async def run_once():
            async with bridge:
                await start_webhook()
                outcome = await bridge.ask(message)
                if isinstance(outcome, Ignored) and outcome.reason in WEBHOOK_PENDING_REASONS:
                    if bridge.webhook.is_running and not await _wait_for_final(bridge, wait):
                        console.print("[yellow]No final answer received before timeout.[/yellow]")

        asyncio.run(run_once())
        return

    from prompt_toolkit import PromptSession
    from prompt_toolkit.history import FileHistory
    from prompt_toolkit.styles import Style

    from ray_bridge.utils.helpers import ensure_dir

    history_file = ensure_dir(bridge.data_dir) / "cli_history"
    prompt = PromptSession(history=FileHistory(str(history_file)))
    style = Style.from_dict({"prompt": "bold blue"})

    console.print(f"{__logo__} Interactive mode (Ctrl+C to exit, /new for a new chat, /cancel to stop)\n")

    async def run_interactive():
        async with bridge:
            await start_webhook()
            while True:
                try:
                    user_input = await prompt.prompt_async("You: ", style=style)
                except (KeyboardInterrupt, EOFError):
                    console.print("\nGoodbye!")
                    break
                text = user_input.strip()
                if not text:
                    continue
                if text == "/new":
                    chat_id = bridge.session.start_new_chat()
                    console.print(f"[dim]New chat: {chat_id}[/dim]")
                    continue
                if text == "/cancel":
                    result = await bridge.cancel()
                    console.print(f"[dim]Cancelled: {result.cancelled}[/dim]")
                    continue
                await bridge.ask(text)

    asyncio.run(run_interactive())


@app.command()
def serve(
    port: int = typer.Option(None, "--port", "-p", help="Webhook port"),
    verbose: bool = typer.Option(False, "--verbose", help="Show debug logs"),
):
    """Run only the webhook server and process pushed turns."""
    from ray_bridge.bridge import Bridge
    from ray_bridge.config.loader import load_config

    _configure_logging(verbose)
    config = load_config()
    if port is not None:
        config.webhook.port = port
    if not config.webhook.enabled:
        _cli_fail("Webhook server is disabled.", "Set webhook.enabled=true in config.json")

    bridge = Bridge(config, ui_sink=render_event)
    console.print(
        f"{__logo__} Listening on {config.webhook.host}:{config.webhook.port}{config.webhook.path} "
        "(Ctrl+C to stop)"
    )
    try:
        asyncio.run(bridge.serve_forever())
    except KeyboardInterrupt:
        console.print("\nStopped.")
    except OSError as e:
        _cli_fail(f"Webhook server failed to start: {e}", "Choose another port with --port")


@app.command()
def cancel(
    task_id: str = typer.Option(None, "--task-id", help="Task to cancel"),
    chat_id: str = typer.Option(None, "--chat-id", help="Chat to cancel"),
):
    """Ask the remote agent to stop a task or chat."""
    from ray_bridge.agent.session import SessionContext
    from ray_bridge.channel.client import RemoteClient
    from ray_bridge.config.loader import load_config

    if not task_id and not chat_id:
        _cli_fail("Nothing to cancel.", "Pass --task-id or --chat-id")

    config = load_config()
    session = SessionContext(config.workspace_path, user_id=config.session.user_id or None)

    async def run():
        async with RemoteClient(
            config.remote.api_endpoint,
            session,
            cancel_endpoint=config.remote.cancel_endpoint or None,
            timeout=config.remote.timeout_seconds,
            headers=config.remote.headers,
        ) as client:
            return await client.cancel(task_id=task_id, chat_id=chat_id)

    result = asyncio.run(run())
    if result.error:
        _cli_fail(f"Cancel failed: {result.error}")
    state = "[green]cancelled[/green]" if result.cancelled else "[yellow]not cancelled[/yellow]"
    console.print(f"{state} task={result.task_id or '-'} chat={result.chat_id or '-'}")


# ============================================================================
# Session Commands
# ============================================================================


@app.command()
def login(user_id: str = typer.Argument(..., help="User id issued by the Ray service")):
    """Store the user id sent with every turn."""
    from ray_bridge.agent.session import SessionContext
    from ray_bridge.config.loader import load_config, save_config

    config = load_config()
    try:
        SessionContext(config.workspace_path).login(user_id)
    except ValueError as e:
        _cli_fail(str(e), "Pass a non-empty user id")
    config.session.user_id = user_id.strip()
    path = save_config(config)
    console.print(f"[green]✓[/green] Logged in as {config.session.user_id} ({path})")


@app.command()
def logout():
    """Forget the stored user id."""
    from ray_bridge.config.loader import load_config, save_config

    config = load_config()
    config.session.user_id = ""
    save_config(config)
    console.print("[green]✓[/green] Logged out")


@app.command()
def status():
    """Show configuration, session identifiers and recent metrics."""
    from ray_bridge.agent.session import SessionContext
    from ray_bridge.channel.client import derive_cancel_endpoint
    from ray_bridge.config.loader import get_config_path, get_data_dir, load_config
    from ray_bridge.observability.metrics import MetricsStore

    config_path = get_config_path()
    config = load_config()
    session = SessionContext(
        config.workspace_path,
        project_id=config.session.project_id or None,
        user_id=config.session.user_id or None,
    )

    table = Table(title=f"{__logo__} {__brand__} status")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    table.add_row("Config", f"{config_path} {'[green]✓[/green]' if config_path.exists() else '[dim](defaults)[/dim]'}")
    table.add_row("Workspace", str(config.workspace_path))
    table.add_row("API endpoint", config.remote.api_endpoint)
    table.add_row(
        "Cancel endpoint",
        config.remote.cancel_endpoint or derive_cancel_endpoint(config.remote.api_endpoint),
    )
    webhook = config.webhook
    table.add_row(
        "Webhook",
        f"{webhook.host}:{webhook.port}{webhook.path}" if webhook.enabled else "[dim]disabled[/dim]",
    )
    table.add_row("Project id", session.project_id)
    table.add_row("User id", session.user_id + ("" if session.is_logged_in else " [dim](default)[/dim]"))

    metrics = MetricsStore(get_data_dir() / "metrics" / "events.jsonl").snapshot(hours=24)
    table.add_row(
        "Commands (24h)",
        f"{metrics['command_calls']} calls, {metrics['command_success_rate']}% ok",
    )
    table.add_row(
        "Remote requests (24h)",
        f"{metrics['remote_requests']} requests, {metrics['remote_success_rate']}% ok",
    )
    console.print(table)


@app.command()
def history(
    all_projects: bool = typer.Option(False, "--all", "-a", help="Include other projects"),
):
    """List stored chats for this workspace."""
    from ray_bridge.agent.history import ChatHistoryStore
    from ray_bridge.agent.session import SessionContext
    from ray_bridge.config.loader import get_data_dir, load_config

    config = load_config()
    session = SessionContext(config.workspace_path, project_id=config.session.project_id or None)
    store = ChatHistoryStore(get_data_dir() / "history")
    sessions = store.list_sessions(None if all_projects else session.project_id)
    if not sessions:
        console.print("[dim]No chats found.[/dim]")
        raise typer.Exit(0)

    table = Table(title="Chats")
    table.add_column("Chat", style="cyan")
    table.add_column("Messages", justify="right")
    table.add_column("Updated")
    for item in sessions:
        table.add_row(item["chat_id"], str(item["message_count"]), item["updated_at"])
    console.print(table)


@app.command("commands")
def list_commands():
    """List commands available to the agent (built-in and plugins)."""
    from ray_bridge.commands.registry import CommandRegistry
    from ray_bridge.config.loader import load_config
    from ray_bridge.plugins.base import PluginContext
    from ray_bridge.plugins.loader import filter_plugins, load_installed_plugins, register_command_plugins

    config = load_config()
    registry = CommandRegistry()
    plugins = filter_plugins(
        load_installed_plugins(),
        enabled=config.plugins.enabled,
        allow=config.plugins.allow,
        deny=config.plugins.deny,
    )
    register_command_plugins(plugins, PluginContext(workspace=config.workspace_path, config=config), registry=registry)

    table = Table(title="Commands")
    table.add_column("Name", style="cyan")
    table.add_column("Description")
    table.add_column("Usage", style="dim")
    for item in registry.describe():
        table.add_row(item["name"], item["description"], item["usage"])
    console.print(table)


if __name__ == "__main__":
    app()
