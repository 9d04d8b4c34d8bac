"""Exec-args command for CLI Agent Loop CLI."""

import json

import click

from cli_agent_loop.constants import DEFAULT_PROVIDER
from cli_agent_loop.models.provider import CliOptions
from cli_agent_loop.providers.registry import ProviderError, get_provider_adapter


@click.command("exec-args")
@click.option(
    "--provider", default=DEFAULT_PROVIDER, help=f"Provider to use (default: {DEFAULT_PROVIDER})"
)
@click.option("--prompt", required=True, help="Prompt passed to the agent")
@click.option("--model", default=None, help="Model override (default: provider default)")
@click.option(
    "--reasoning-effort",
    type=click.Choice(["low", "medium", "high"]),
    default=None,
    help="Reasoning effort (codex only)",
)
@click.option("--no-yolo", is_flag=True, help="Keep the tool's permission prompts")
@click.option(
    "--last-message",
    "last_message_path",
    default="last-message.txt",
    help="Where the tool should write its final message (codex only)",
)
def exec_args(provider, prompt, model, reasoning_effort, no_yolo, last_message_path):
    """Print the argument list that would be spawned for one agent."""
    try:
        adapter = get_provider_adapter(provider)
    except ProviderError as e:
        raise click.ClickException(str(e))

    overrides = {}
    if model is not None:
        overrides["model"] = model
    if reasoning_effort is not None:
        overrides["reasoning_effort"] = reasoning_effort
    if no_yolo:
        overrides["yolo"] = False
    options = CliOptions.from_defaults(adapter.name, adapter.defaults, **overrides)

    args = adapter.build_exec_args(prompt, last_message_path, options)
    click.echo(json.dumps([options.command, *args]))
