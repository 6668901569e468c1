"""Command line interface for termcraft.

This module defines the ``ai`` command using the ``click`` library.
It exposes several subcommands:

``ai configure``
    Set the provider, model, API key and safety level.  Writes
    ``~/.termcraft/config.yaml``.

``ai models``
    List the models the provider knows with their rate limits.

``ai run <prompt> [--file PATH]...``
    Generate a command for the prompt, validate it and, after
    confirmation, execute it.  ``--yes`` skips the edit and
    confirmation prompts for commands that pass validation.

``ai chat``
    Interactive session.  The conversation context (last command and
    its output) carries over between requests.

``ai serve``
    Launch a FastAPI server exposing a JSON API for external
    integrations.  The server listens on port 5005 by default.
"""

from __future__ import annotations

import copy
import logging
from typing import Optional, Tuple

import click

from . import __version__
from .attachments import FileReader
from .config import DEFAULT_CONFIG, api_key_from, load_config, save_config
from .errors import TermcraftError
from .executor import CommandExecutor
from .models import DEFAULT_MODEL_NAME
from .providers import get_provider
from .session import ChatSession, Response, build_system_instruction
from .sysinfo import get_system_info
from .validator import SAFETY_LEVELS, SafetyValidator


CHAT_HELP = """Commands:
  /file PATH MESSAGE  send MESSAGE with PATH attached
  history             show executed commands
  usage               show rate limit usage
  clear               clear the command history
  help                show this help
  exit, quit          leave the session"""


class Application:
    """Everything one CLI invocation needs, built from the config."""

    def __init__(self, config: dict, provider_name: Optional[str], model: Optional[str]):
        self.config = config
        info = get_system_info()
        name = provider_name or config["provider"]
        api_key = api_key_from(config) if name == "gemini" else None
        self.provider = get_provider(
            name,
            api_key=api_key,
            system_instruction=build_system_instruction(info),
            default_model=model or config["model"] or DEFAULT_MODEL_NAME,
        )
        self.validator = SafetyValidator(
            platform=info.os,
            safety_level=config["safety_level"],
            disallowed_commands=config["disallowed_commands"],
            protected_paths=config["protected_paths"],
        )
        self.executor = CommandExecutor(
            self.validator,
            working_dir=info.working_dir,
            history_size=config["history_size"],
        )
        self.session: ChatSession = self.provider.chat(
            file_reader=FileReader(max_size=config["max_file_size"]),
        )

    def close(self) -> None:
        self.session.close()
        self.provider.close()


def _setup_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _application(ctx: click.Context) -> Application:
    obj = ctx.obj
    config = load_config(obj["config_path"])
    _setup_logging(obj["debug"] or bool(config.get("debug")))
    return Application(config, obj["provider"], obj["model"])


def _show_response(response: Response) -> None:
    click.echo(response.full_output.rstrip())
    if response.metadata.get("token_limit_exceeded"):
        click.echo(
            f"Warning: token limit reached, next request in "
            f"{response.metadata['retry_after']:.0f}s",
            err=True,
        )


def _confirm_and_execute(app: Application, command: str, auto_yes: bool) -> bool:
    """Validate, optionally edit and confirm, then run ``command``."""
    if not auto_yes:
        click.echo("Command to execute. Press Enter to accept or edit:")
        edited = click.prompt("", default=command, show_default=False)
        command = edited.strip() or command
    allowed, reason = app.validator.validate(command)
    if not allowed:
        click.echo(f"Cannot execute command: {reason}", err=True)
        return False
    if not auto_yes:
        confirm = click.prompt("Run this command? [y/N]", default="n", show_default=False)
        if confirm.lower() not in ("y", "yes"):
            click.echo("Command not executed.")
            return True
    result = app.executor.execute(command)
    if result.output:
        click.echo(result.output.rstrip())
    if result.error:
        click.echo(f"Command failed: {result.error}", err=True)
    app.session.record_output(result.output)
    return result.ok


def _display_history(app: Application, limit: Optional[int] = None) -> None:
    history = app.executor.history(limit)
    if not history:
        click.echo("No history available.")
        return
    for idx, entry in enumerate(history, start=1):
        status = "ok" if entry.ok else f"exit {entry.exit_code}"
        click.echo(f"{idx}: {entry.command}  [{status}]")


def _display_usage(app: Application) -> None:
    usage = app.session.usage()
    current, limits, percent = usage["current"], usage["limits"], usage["percent_used"]
    click.echo(
        f"Requests/min: {current['requests_per_minute']}/{limits['rpm']} "
        f"({percent['rpm']:.1f}%)"
    )
    click.echo(
        f"Tokens/min:   {current['tokens_per_minute']}/{limits['tpm']} "
        f"({percent['tpm']:.1f}%)"
    )
    click.echo(
        f"Requests/day: {current['requests_per_day']}/{limits['rpd']} "
        f"({percent['rpd']:.1f}%)"
    )


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("--config", "-c", "config_path", type=click.Path(dir_okay=False), default=None,
              help="Configuration file path")
@click.option("--provider", "-p", default=None, help="Provider to use (gemini, mock)")
@click.option("--model", "-m", default=None, help="Model to use")
@click.option("--debug", "-d", is_flag=True, help="Enable debug logging")
@click.version_option(__version__, "--version", "-v", prog_name="termcraft")
@click.pass_context
def cli(ctx: click.Context, config_path, provider, model, debug) -> None:
    """termcraft - translate natural language into shell commands."""
    ctx.ensure_object(dict)
    ctx.obj.update(config_path=config_path, provider=provider, model=model, debug=debug)


@cli.command()
@click.option("--provider", "provider_name", type=click.Choice(["gemini", "mock"]), default=None)
@click.option("--model", "model_name", type=str, default=None, help="Default model name")
@click.option("--api-key", type=str, default=None, help="Gemini API key")
@click.option("--safety-level", type=click.Choice(SAFETY_LEVELS), default=None)
@click.option("--reset", is_flag=True, help="Reset configuration to defaults")
@click.pass_context
def configure(ctx, provider_name, model_name, api_key, safety_level, reset) -> None:
    """Update the configuration file."""
    if reset:
        config = copy.deepcopy(DEFAULT_CONFIG)
    else:
        try:
            config = load_config(ctx.obj["config_path"])
        except TermcraftError as exc:
            click.echo(str(exc), err=True)
            ctx.exit(1)
    updates = {
        "provider": provider_name,
        "model": model_name,
        "api_key": api_key,
        "safety_level": safety_level,
    }
    config.update({k: v for k, v in updates.items() if v is not None})
    path = save_config(config, ctx.obj["config_path"])
    click.echo(f"Configuration saved to {path}")


@cli.command(name="models")
@click.pass_context
def list_models(ctx) -> None:
    """List available models and their rate limits."""
    try:
        app = _application(ctx)
    except TermcraftError as exc:
        click.echo(str(exc), err=True)
        ctx.exit(1)
    for name in app.provider.list_models():
        info = app.provider.model_info(name)
        marker = "*" if name == app.provider.default_model else " "
        click.echo(f"{marker} {name}  rpm={info['rpm']} tpm={info['tpm']} rpd={info['rpd']}")
    app.close()


@cli.command(name="run")
@click.argument("prompt", nargs=-1, type=str)
@click.option("--file", "-f", "files", multiple=True, type=click.Path(),
              help="Attach a file (text, image)")
@click.option("--yes", "auto_yes", is_flag=True,
              help="Run a valid command without editing or confirmation.")
@click.pass_context
def run_prompt(ctx, prompt: Tuple[str, ...], files: Tuple[str, ...], auto_yes: bool) -> None:
    """Generate, validate and optionally execute a command for PROMPT."""
    prompt_text = " ".join(prompt).strip()
    if not prompt_text:
        click.echo('Please provide a prompt, e.g. ai run "list files by size"', err=True)
        ctx.exit(1)
    try:
        app = _application(ctx)
        try:
            response = app.session.send(prompt_text, attachments=files)
            _show_response(response)
            ok = True
            if response.command:
                ok = _confirm_and_execute(app, response.command, auto_yes)
        finally:
            app.close()
    except TermcraftError as exc:
        click.echo(str(exc), err=True)
        ctx.exit(1)
    if not ok:
        ctx.exit(1)


def _handle_chat_line(app: Application, line: str) -> bool:
    """Process one line of the interactive session.  False means quit."""
    word = line.strip().lower()
    if word in ("exit", "quit"):
        return False
    if word == "help":
        click.echo(CHAT_HELP)
        return True
    if word == "history":
        _display_history(app)
        return True
    if word == "usage":
        _display_usage(app)
        return True
    if word == "clear":
        app.executor.clear_history()
        click.echo("History cleared.")
        return True
    attachments: Tuple[str, ...] = ()
    message = line
    if line.startswith("/file "):
        parts = line.split(maxsplit=2)
        if len(parts) < 3:
            click.echo("Usage: /file PATH MESSAGE")
            return True
        attachments, message = (parts[1],), parts[2]
    try:
        response = app.session.send(message, attachments=attachments)
        _show_response(response)
        if response.command:
            _confirm_and_execute(app, response.command, auto_yes=False)
    except TermcraftError as exc:
        click.echo(str(exc), err=True)
    return True


@cli.command(name="chat")
@click.pass_context
def chat(ctx) -> None:
    """Start an interactive session."""
    try:
        app = _application(ctx)
    except TermcraftError as exc:
        click.echo(str(exc), err=True)
        ctx.exit(1)
    click.echo(f"termcraft {__version__} ({app.session.model_config.name}). Type 'help' for commands.")
    try:
        while True:
            try:
                line = click.prompt(">", prompt_suffix=" ")
            except (EOFError, click.Abort):
                break
            if line.strip() and not _handle_chat_line(app, line):
                break
    finally:
        app.close()
    click.echo("Goodbye.")


@cli.command(name="serve")
@click.option("--host", default="127.0.0.1", help="Bind address for the API server")
@click.option("--port", default=5005, help="Port for the API server")
@click.pass_context
def serve(ctx, host: str, port: int) -> None:
    """Run the JSON API server for generating commands."""
    # Imported lazily so plain CLI use does not load the web stack.
    import uvicorn

    from .server import create_app

    try:
        app = _application(ctx)
    except TermcraftError as exc:
        click.echo(str(exc), err=True)
        ctx.exit(1)
    click.echo(f"API server running on http://{host}:{port}")
    try:
        uvicorn.run(create_app(app.session, app.validator), host=host, port=port)
    finally:
        app.close()


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
