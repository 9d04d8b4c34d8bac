"""Review-verdict command for CLI Agent Loop CLI."""

import click

from cli_agent_loop.services.review import ReviewFailure, parse_reviewer_verdict


@click.command("review-verdict")
@click.argument("reply_file", type=click.Path(exists=True, dir_okay=False))
def review_verdict(reply_file):
    """Parse a saved reviewer reply and print its verdict."""
    with open(reply_file, encoding="utf-8", errors="replace") as f:
        raw = f.read()

    result = parse_reviewer_verdict(raw)
    if isinstance(result, ReviewFailure):
        raise click.ClickException(f"Reviewer reply rejected: {result.reason}")

    click.echo(f"verdict: {result.verdict}")
    if result.follow_up_prompt:
        click.echo("follow-up prompt:")
        click.echo(result.follow_up_prompt)
