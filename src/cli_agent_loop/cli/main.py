"""Main CLI entry point for CLI Agent Loop."""

import logging

import click

from cli_agent_loop.cli.commands.exec_args import exec_args
from cli_agent_loop.cli.commands.inspect import inspect
from cli_agent_loop.cli.commands.providers import providers
from cli_agent_loop.cli.commands.review_verdict import review_verdict
from cli_agent_loop.utils.env import _is_truthy_env


@click.group()
@click.option("--verbose", is_flag=True, help="Enable debug logging (also: CAL_DEBUG=1)")
def cli(verbose):
    """CLI Agent Loop - inspect and drive coding-agent CLI output."""
    if verbose or _is_truthy_env("CAL_DEBUG"):
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )


cli.add_command(providers)
cli.add_command(inspect)
cli.add_command(exec_args)
cli.add_command(review_verdict)


if __name__ == "__main__":
    cli()
