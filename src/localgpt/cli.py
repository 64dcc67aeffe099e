"""CLI entry point for localgpt."""

import asyncio
import signal
from pathlib import Path
from typing import Optional

import click
import yaml
from rich.console import Console
from rich.live import Live
from rich.table import Table
from rich.text import Text

from localgpt import __version__
from localgpt.config import DEFAULT_CONFIG_PATH, ConfigManager
from localgpt.models.action import Action
from localgpt.models.config import ProviderKind
from localgpt.services.cancellation import CancelToken
from localgpt.services.exceptions import (
    Cancelled,
    ProviderUnreachable,
    StreamProtocolError,
)
from localgpt.services.registry import create_provider
from localgpt.utils.logging import configure_logging, get_logger


logger = get_logger(__name__)
console = Console()

config_option = click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=DEFAULT_CONFIG_PATH,
    show_default=True,
    help="Path to config.yaml",
)


def load_config(path: Path) -> ConfigManager:
    """
    Load configuration from `path`.

    Raises:
        click.ClickException: If config is missing, has invalid permissions, or validation fails
    """
    try:
        return ConfigManager.load_from_path(path)
    except (FileNotFoundError, PermissionError, ValueError) as e:
        raise click.ClickException(str(e))


def _find_action(config_mgr: ConfigManager, name: str) -> Action:
    """Exact name match first, then a unique case-insensitive substring match."""
    try:
        return config_mgr.config.get_action(name)
    except KeyError:
        pass

    matches = [a for a in config_mgr.actions if name.lower() in a.name.lower()]
    if len(matches) == 1:
        return matches[0]

    names = ", ".join(f'"{a.name}"' for a in (matches or config_mgr.actions))
    if matches:
        raise click.ClickException(f'Action name "{name}" is ambiguous: {names}')
    raise click.ClickException(f'No action named "{name}". Available: {names}')


async def _run_action(
    config_mgr: ConfigManager,
    action: Action,
    text: str,
    context_document: Optional[str],
) -> Optional[str]:
    """Run an action with a live display; returns None if the user cancelled."""
    cancel_token = CancelToken()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancel_token.cancel)
    except (NotImplementedError, RuntimeError):
        # Not available on this platform or outside the main thread
        pass

    try:
        with Live(Text(""), console=console, refresh_per_second=12, transient=False) as live:

            def on_update(accumulated: str) -> None:
                live.update(Text(accumulated))

            def on_fallback(error: ProviderUnreachable) -> None:
                logger.warning("run_command_fallback", error=str(error))
                live.update(Text(""))
                console.print("[yellow]Primary provider unreachable, trying fallback provider[/yellow]")

            return await config_mgr.runner.run(
                action,
                text,
                on_update=on_update,
                cancel_token=cancel_token,
                context_document=context_document,
                on_fallback=on_fallback,
            )
    except Cancelled:
        logger.info("run_command_cancelled", action=action.name)
        return None
    finally:
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except (NotImplementedError, RuntimeError):
            pass


@click.group()
@click.version_option(version=__version__, prog_name="localgpt")
def cli():
    """localgpt: run prompt actions against local or OpenAI-compatible models."""
    configure_logging()


@cli.command()
@click.argument("action_name", metavar="ACTION")
@click.option(
    "--input",
    "input_file",
    type=click.File("r", encoding="utf-8"),
    default="-",
    help="Input text file (defaults to stdin)",
)
@click.option(
    "--context",
    "context_file",
    type=click.File("r", encoding="utf-8"),
    default=None,
    help="Document to retrieve context passages from",
)
@config_option
def run(action_name: str, input_file, context_file, config_path: Path):
    """
    Run an action on some text and stream the result.

    Examples:
        localgpt run Summarize --input notes.md
        echo "teh cat" | localgpt run "Fix spelling"
        localgpt run "General help" --input question.txt --context handbook.md
    """
    logger.info("run_command_started", action=action_name)

    config_mgr = load_config(config_path)
    action = _find_action(config_mgr, action_name)

    text = input_file.read()
    context_document = context_file.read() if context_file is not None else None

    try:
        result = asyncio.run(_run_action(config_mgr, action, text, context_document))
    except ProviderUnreachable as e:
        logger.error("run_command_unreachable", error=str(e))
        raise click.ClickException(str(e))
    except StreamProtocolError as e:
        logger.error("run_command_protocol_error", error=str(e))
        raise click.ClickException(f"Provider error: {e}")

    if result is None:
        click.echo("Cancelled.", err=True)
        raise click.exceptions.Exit(130)

    logger.info("run_command_completed", action=action.name, output_length=len(result))


@cli.command()
@click.option(
    "--provider",
    "provider_kind",
    type=click.Choice([kind.value for kind in ProviderKind]),
    default=None,
    help="Only list models of this provider (default: all configured)",
)
@config_option
def models(provider_kind: Optional[str], config_path: Path):
    """
    List models available on configured providers.

    Examples:
        localgpt models
        localgpt models --provider ollama
    """
    config_mgr = load_config(config_path)
    providers = config_mgr.config.providers

    if provider_kind is not None:
        kind = ProviderKind(provider_kind)
        if kind not in providers:
            raise click.ClickException(f"Provider '{kind.value}' is not configured")
        kinds = [kind]
    else:
        kinds = list(providers)

    for kind in kinds:
        provider = create_provider(providers[kind])
        console.print(f"[bold]{kind.value}[/bold] ({provider.base_url})")

        try:
            available = asyncio.run(provider.get_models())
        except ProviderUnreachable as e:
            logger.warning("models_command_unreachable", provider=kind.value, error=str(e))
            available = {}

        if not available:
            console.print("  no models known")
            continue

        for _, label in sorted(available.items()):
            console.print(f"  {label}", markup=False, highlight=False)


@cli.command()
@click.option("--share", is_flag=True, help="Print sharing strings instead of a table")
@config_option
def actions(share: bool, config_path: Path):
    """
    List configured actions.

    Examples:
        localgpt actions
        localgpt actions --share
    """
    config_mgr = load_config(config_path)

    if share:
        for action in config_mgr.actions:
            click.echo(action.to_sharing_string())
            click.echo()
        return

    table = Table("Name", "Model", "Temperature", "Replace")
    default_model = config_mgr.config.primary_provider.default_model
    for action in config_mgr.actions:
        table.add_row(
            action.name,
            action.model or f"{default_model} (default)",
            "default" if action.temperature is None else str(action.temperature),
            "yes" if action.replace_selection else "",
        )
    console.print(table)


@cli.command("action-import")
@click.argument("sharing_string")
def action_import(sharing_string: str):
    """
    Parse a sharing string and print the action as config YAML.

    Example:
        localgpt action-import "Name: Haiku ✂️
        Prompt: Rewrite as a haiku"
    """
    try:
        action = Action.from_sharing_string(sharing_string)
    except ValueError as e:
        raise click.ClickException(f"Invalid sharing string: {e}")

    data = action.model_dump(exclude_defaults=True)
    click.echo(yaml.safe_dump({"actions": [data]}, allow_unicode=True, sort_keys=False), nl=False)


def main():
    """Main entry point for setuptools console script."""
    cli()


if __name__ == "__main__":
    main()
