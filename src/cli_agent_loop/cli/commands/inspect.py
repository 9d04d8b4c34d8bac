"""Inspect command for CLI Agent Loop CLI."""

import shutil

import click

from cli_agent_loop.constants import DEFAULT_PREVIEW_LINES, DEFAULT_PROVIDER
from cli_agent_loop.providers.registry import ProviderError, get_provider_adapter
from cli_agent_loop.services.stop_policy import should_stop_from_provider_output
from cli_agent_loop.utils.text import wrap_text

# Label column width in the preview listing
LABEL_WIDTH = 12


def _read_text(path):
    with open(path, encoding="utf-8", errors="replace") as f:
        return f.read()


@click.command()
@click.argument("log_file", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--provider",
    default=DEFAULT_PROVIDER,
    help=f"Provider that wrote the log (default: {DEFAULT_PROVIDER})",
)
@click.option(
    "--preview-count",
    type=int,
    default=DEFAULT_PREVIEW_LINES,
    show_default=True,
    help="Number of trailing preview entries to show",
)
@click.option(
    "--last-message",
    "last_message_path",
    type=click.Path(exists=True, dir_okay=False),
    help="Captured last-message file, also checked for stop markers",
)
@click.option("--raw", is_flag=True, help="Show trailing raw JSON lines instead of previews")
def inspect(log_file, provider, preview_count, last_message_path, raw):
    """Summarize a captured agent output log."""
    try:
        adapter = get_provider_adapter(provider)
    except ProviderError as e:
        raise click.ClickException(str(e))

    output = _read_text(log_file)
    last_message = _read_text(last_message_path) if last_message_path else ""
    entries = adapter.collect_messages(output)
    width = shutil.get_terminal_size((100, 24)).columns - LABEL_WIDTH - 3

    click.echo(f"{adapter.display_name}: {len(entries)} preview entries")
    if raw:
        for line in adapter.collect_raw_json_lines(output, preview_count):
            click.echo(line)
    else:
        tail = entries[-preview_count:] if preview_count > 0 else []
        for entry in tail:
            wrapped = wrap_text(entry.text, width) or [""]
            click.echo(f"{entry.label:<{LABEL_WIDTH}} | {wrapped[0]}")
            for continuation in wrapped[1:]:
                click.echo(f"{'':<{LABEL_WIDTH}} | {continuation}")

    usage = adapter.extract_usage_summary(output)
    if usage is None:
        click.echo("usage: n/a")
    else:
        click.echo(
            f"usage: input={usage.input_tokens} cached={usage.cached_input_tokens} "
            f"output={usage.output_tokens} total={usage.total_tokens}"
        )

    delay = adapter.extract_retry_delay_seconds(output)
    click.echo(f"retry delay: {'none' if delay is None else f'{delay}s'}")

    stop = should_stop_from_provider_output(adapter, entries, last_message)
    click.echo(f"stop: {'yes' if stop else 'no'}")
