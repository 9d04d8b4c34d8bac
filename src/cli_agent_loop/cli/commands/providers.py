"""Providers command for CLI Agent Loop CLI."""

import click

from cli_agent_loop.providers.registry import PROVIDERS, list_provider_names


@click.command()
def providers():
    """List supported providers and their defaults."""
    for name in list_provider_names():
        adapter = PROVIDERS[name]
        defaults = adapter.defaults
        model = defaults.model or "(tool default)"
        click.echo(f"{name} ({adapter.display_name})")
        click.echo(f"  command: {defaults.command}")
        click.echo(f"  model: {model}")
        click.echo(f"  reasoning effort: {defaults.reasoning_effort}")
        click.echo(f"  yolo: {'on' if defaults.yolo else 'off'}")
        click.echo(f"  log dir: {defaults.log_dir}")
