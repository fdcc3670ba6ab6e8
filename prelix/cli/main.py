"""Prelix CLI — prelix command."""

from __future__ import annotations

import json
from typing import Any

import click

from prelix.cli.client import PrelixClient

CONFIRM_EXACT = "Yes, that's exactly what I want to do."
PROCEED_ANYWAY = "User chose to proceed with current understanding"


def _format_table(rows: list[dict], columns: list[str]) -> str:
    """Simple table formatter."""
    if not rows:
        return "No results."
    widths = {c: len(c) for c in columns}
    for row in rows:
        for c in columns:
            widths[c] = max(widths[c], len(str(row.get(c, ""))))

    header = "  ".join(c.upper().ljust(widths[c]) for c in columns)
    separator = "  ".join("-" * widths[c] for c in columns)
    lines = [header, separator]
    for row in rows:
        lines.append("  ".join(str(row.get(c, "")).ljust(widths[c]) for c in columns))
    return "\n".join(lines)


@click.group()
@click.option("--api", default="http://localhost:8400", envvar="PRELIX_API", help="API base URL")
@click.option("--format", "output_format", type=click.Choice(["table", "json"]), default="table")
@click.option("--token", default=None, envvar="PRELIX_TOKEN", help="Auth token")
@click.pass_context
def cli(ctx: click.Context, api: str, output_format: str, token: str | None) -> None:
    """Prelix CLI — clarify a request and optimize it for a model."""
    ctx.obj = PrelixClient(base_url=api, auth_token=token)
    ctx.meta["output_format"] = output_format


def _output(ctx: click.Context, data: Any, columns: list[str] | None = None) -> None:
    fmt = ctx.meta.get("output_format", "table")
    if fmt == "json":
        click.echo(json.dumps(data, indent=2, default=str))
    elif isinstance(data, list) and columns:
        click.echo(_format_table(data, columns))
    else:
        click.echo(json.dumps(data, indent=2, default=str))


def _show_state(ctx: click.Context, state: dict) -> None:
    if ctx.meta.get("output_format") == "json":
        _output(ctx, state)
        return
    click.echo(f"Session: {state.get('chat_session_id')}")
    click.echo(f"  Stage: {state.get('stage')}  Confidence: {state.get('confidence')}")
    if state.get("stage") == "questioning" and state.get("current_question"):
        click.echo(f"  Question: {state['current_question']}")
    elif state.get("understanding"):
        click.echo(f"  Understanding: {state['understanding']}")


def _call(fn, *args: Any, **kwargs: Any) -> Any:
    try:
        return fn(*args, **kwargs)
    except RuntimeError as e:
        raise click.ClickException(str(e)) from e


# --- Clarification ---


@cli.command()
@click.argument("text")
@click.option("--type", "prompt_type", default=None, help="Research, Creative, Instructional, ...")
@click.pass_context
def start(ctx: click.Context, text: str, prompt_type: str | None) -> None:
    """Start a new session with a request."""
    client: PrelixClient = ctx.obj
    result = _call(client.workflow, "send_message", message=text, prompt_type=prompt_type)
    _show_state(ctx, result["state"])


@cli.command()
@click.argument("session_id")
@click.argument("text")
@click.pass_context
def say(ctx: click.Context, session_id: str, text: str) -> None:
    """Send free text to a session and let the server route it."""
    client: PrelixClient = ctx.obj
    result = _call(client.workflow, "send_message", chat_session_id=session_id, message=text)
    if "state" in result:
        _show_state(ctx, result["state"])
    else:
        _output(ctx, result.get("response", result))


@cli.command()
@click.argument("session_id")
@click.argument("text")
@click.pass_context
def answer(ctx: click.Context, session_id: str, text: str) -> None:
    """Answer the current clarifying question."""
    client: PrelixClient = ctx.obj
    state = _call(
        client.workflow, "process_clarification", chat_session_id=session_id, message=text
    )
    _show_state(ctx, state)


@cli.command()
@click.argument("session_id")
@click.option("--proceed", is_flag=True, help="Proceed with the current understanding as-is.")
@click.pass_context
def confirm(ctx: click.Context, session_id: str, proceed: bool) -> None:
    """Confirm the understanding."""
    client: PrelixClient = ctx.obj
    message = PROCEED_ANYWAY if proceed else CONFIRM_EXACT
    state = _call(
        client.workflow, "confirm_understanding", chat_session_id=session_id, message=message
    )
    _show_state(ctx, state)


@cli.command()
@click.argument("session_id")
@click.pass_context
def clarify(ctx: click.Context, session_id: str) -> None:
    """Say you want to add detail before confirming."""
    client: PrelixClient = ctx.obj
    _show_state(ctx, _call(client.workflow, "request_clarification", chat_session_id=session_id))


@cli.command()
@click.argument("session_id")
@click.pass_context
def state(ctx: click.Context, session_id: str) -> None:
    """Show a session's clarification state."""
    client: PrelixClient = ctx.obj
    _show_state(ctx, _call(client.state, session_id))


@cli.command()
@click.argument("session_id")
@click.pass_context
def history(ctx: click.Context, session_id: str) -> None:
    """Show a session's turns."""
    client: PrelixClient = ctx.obj
    data = _call(client.messages, session_id)
    _output(ctx, data, ["message_type", "content", "confidence_score"])


# --- Catalogue ---


@cli.command()
@click.pass_context
def models(ctx: click.Context) -> None:
    """List target models."""
    client: PrelixClient = ctx.obj
    _output(ctx, _call(client.list_models), ["id", "name", "provider", "category"])


@cli.command()
@click.option("--category", default=None)
@click.pass_context
def templates(ctx: click.Context, category: str | None) -> None:
    """List active templates."""
    client: PrelixClient = ctx.obj
    params = {"category": category} if category else {}
    data = _call(client.list_templates, **params)
    _output(ctx, data, ["id", "category", "subcategory", "usage_count", "effectiveness_score"])


# --- Optimization ---


@cli.command()
@click.argument("session_id")
@click.option("--model", "selected_model", required=True)
@click.option("--template", "template_id", default=None)
@click.pass_context
def optimize(
    ctx: click.Context, session_id: str, selected_model: str, template_id: str | None
) -> None:
    """Optimize the confirmed request for a model."""
    client: PrelixClient = ctx.obj
    result = _call(
        client.workflow,
        "optimize_prompt",
        chat_session_id=session_id,
        selected_model=selected_model,
        template_id=template_id,
    )
    if ctx.meta.get("output_format") == "json":
        _output(ctx, result)
    else:
        click.echo(result["optimized_prompt"])


@cli.command()
@click.argument("session_id")
@click.pass_context
def respond(ctx: click.Context, session_id: str) -> None:
    """Publish the optimized prompt as the session's answer."""
    client: PrelixClient = ctx.obj
    result = _call(client.workflow, "generate_response", chat_session_id=session_id)
    if ctx.meta.get("output_format") == "json":
        _output(ctx, result)
    else:
        click.echo(result["optimized_prompt"])


@cli.command()
@click.argument("session_id")
@click.pass_context
def execute(ctx: click.Context, session_id: str) -> None:
    """Run the optimized prompt and print the model's answer."""
    client: PrelixClient = ctx.obj
    result = _call(client.workflow, "execute_prompt", chat_session_id=session_id)
    if ctx.meta.get("output_format") == "json":
        _output(ctx, result)
    else:
        click.echo(result["response"])


if __name__ == "__main__":
    cli()
