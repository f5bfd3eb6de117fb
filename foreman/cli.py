import asyncio

import click
from rich.console import Console

from foreman.config import Config, get_config
from foreman.events import Update, UpdateType
from foreman.logging import configure_logging, uvicorn_log_config

console = Console()

STYLES = {
    UpdateType.STATUS_UPDATE: "dim",
    UpdateType.APPROVAL_REQUIRED: "yellow",
    UpdateType.TASK_COMPLETE: "green",
    UpdateType.ERROR: "red",
}

CLI_USER = "cli"


@click.group(invoke_without_command=True)
@click.pass_context
def main(ctx):
    """foreman - run coding agents with human approval for sensitive actions"""
    try:
        ctx.ensure_object(dict)
        ctx.obj["config"] = get_config()
    except ValueError as e:
        # Only fail if we're running a command that needs config
        ctx.obj["config_error"] = str(e)

    if ctx.invoked_subcommand is None:
        console.print("[bold]foreman[/bold] - instruction execution and approval workflow\n")
        console.print("Run [cyan]foreman serve[/cyan] to start the server.")
        console.print("\nUse [cyan]foreman --help[/cyan] for all commands.")


def _config(ctx) -> Config:
    if "config_error" in ctx.obj:
        console.print(f"[red]Error:[/red] {ctx.obj['config_error']}")
        raise SystemExit(1)
    return ctx.obj["config"]


@main.command()
@click.pass_context
def status(ctx):
    """Show the current configuration."""
    config = _config(ctx)

    console.print("[bold]foreman status[/bold]")
    console.print()
    console.print(f"Agent: [cyan]{config.agent}[/cyan]")
    console.print(f"Working directory: [cyan]{config.working_directory}[/cyan]")
    console.print(f"Codex model: {config.codex_model}")
    console.print(f"Token limit: {config.token_limit} (warn at {config.token_warning_ratio:.0%})")
    console.print(f"Approval timeout: {config.approval_timeout:g}s")
    console.print(f"API auth: {'enabled' if config.secret else '[yellow]disabled[/yellow]'}")
    if not config.anthropic_api_key:
        console.print("[dim]ANTHROPIC_API_KEY not set; Claude Code uses its own login[/dim]")
    if not config.openai_api_key:
        console.print("[dim]OPENAI_API_KEY not set; codex agent unavailable[/dim]")


@main.command()
@click.option("--host", default=None, help="Host to bind to")
@click.option("--port", default=None, type=int, help="Port to bind to")
@click.option("--reload", is_flag=True, help="Enable auto-reload for development")
@click.pass_context
def serve(ctx, host: str | None, port: int | None, reload: bool):
    """Start the foreman API server."""
    config = _config(ctx)
    host = host or config.host
    port = port or config.port

    import uvicorn

    console.print(f"[bold]foreman server[/bold] starting on http://{host}:{port}")
    console.print("[dim]Press Ctrl+C to stop[/dim]")
    console.print()

    uvicorn.run(
        "foreman.server.app:app",
        host=host,
        port=port,
        reload=reload,
        log_config=uvicorn_log_config(config.log_level, json_output=config.log_json),
    )


@main.command()
@click.option("-p", "--prompt", required=True, help="The instruction to execute")
@click.option("--yes", is_flag=True, help="Approve every sensitive action without asking")
@click.pass_context
def run(ctx, prompt: str, yes: bool):
    """Run one instruction (headless). Sensitive actions are confirmed on the terminal."""
    config = _config(ctx)
    configure_logging(config.log_level, json_output=config.log_json)
    ok = asyncio.run(_run_headless(config, prompt, yes))
    if not ok:
        raise SystemExit(1)


async def _run_headless(config: Config, prompt: str, auto_approve: bool) -> bool:
    from foreman.server.runtime import Runtime

    runtime = Runtime(config=config)
    await runtime.connect()
    pending: set[asyncio.Task] = set()
    outcome: list[UpdateType] = []

    async def answer(update: Update) -> None:
        details = update.approval_details
        if details:
            console.print(f"  repo: {details.repo}\n  details: {details.details}")
        approved = auto_approve or await asyncio.to_thread(click.confirm, "Approve?", default=False)
        runtime.gate.handle_response(update.approval_id, approved, update.user_id)

    def show(update: Update) -> None:
        console.print(update.message, style=STYLES[update.type], markup=False)
        if update.type is UpdateType.APPROVAL_REQUIRED and update.approval_id:
            task = asyncio.get_running_loop().create_task(answer(update))
            pending.add(task)
            task.add_done_callback(pending.discard)
        elif update.type in (UpdateType.TASK_COMPLETE, UpdateType.ERROR):
            outcome.append(update.type)

    try:
        session = runtime.sessions.get_or_create(CLI_USER)
        session.feed.subscribe(show)
        console.print(f"[dim]Running: {prompt}[/dim]\n")
        await session.process_instruction(prompt, CLI_USER)
    finally:
        await runtime.close()

    return bool(outcome) and outcome[-1] is UpdateType.TASK_COMPLETE


if __name__ == "__main__":
    main()
