"""
CLI interface for an obsidian vault of typed markdown documents.

Usage:
    obsidian-tools query -t task -w 'status == "open"'
    obsidian-tools capture "Quick thought" --context "standup"
    obsidian-tools add task --title "Fix bug" --priority 1
"""

import logging
import os
import sys
from contextlib import contextmanager
from enum import Enum
from pathlib import Path
from typing import Iterator, Optional

import typer
from typer.core import TyperGroup
from typing_extensions import Annotated

from .backend import open_collection
from .config import load_user_config, resolve_vault_path
from .errors import FlagError, QueryFileError, state_dir
from .flags import RUN_FLAGS, tokenize
from .logging_config import configure_ops_log, configure_quiet_mode, enable_debug_mode, remove_ops_log
from .protocol import CollectionProtocol
from .query_spec import (
    QueryRequest,
    QueryView,
    build_capture_request,
    build_create_request,
    build_query_from_flags,
    inbox_request,
    load_query_file,
    parse_capture_args,
    task_request,
)
from .render import (
    render_file_list,
    render_help,
    render_inbox,
    render_json,
    render_query_results,
    render_report,
    render_table,
    render_validation,
)
from .types import QueryResult, utc_now

logger = logging.getLogger(__name__)

PROG_NAME = "obsidian-tools"


class Command(str, Enum):
    """Every command the CLI dispatches."""
    ADD = "add"
    CAPTURE = "capture"
    QUERY = "query"
    RUN = "run"
    INBOX = "inbox"
    REPORT = "report"
    VALIDATE = "validate"
    LIST = "list"
    HELP = "help"


USAGE = {
    Command.ADD: (f"{PROG_NAME} add <type> [--field value]...",
                  f"{PROG_NAME} add task --title 'New task' --priority 1"),
    Command.CAPTURE: (f"{PROG_NAME} capture <content> [--context ...] [--source ...]",
                      f'{PROG_NAME} capture "Quick thought to remember"'),
    Command.QUERY: (f"{PROG_NAME} query [-t type] [-w expr] [-o field:dir] [-l N] [--json]",
                    f"{PROG_NAME} query -t task -w 'priority <= 2'"),
    Command.RUN: (f"{PROG_NAME} run <query-file.yaml> [--json]",
                  f"{PROG_NAME} run queries/overdue.yaml"),
}

# Raw-argument commands hand their tokens to the flag tokenizer
RAW_ARGS = {"allow_extra_args": True, "ignore_unknown_options": True}

GLOBAL_VALUE_FLAGS = ("--vault",)
GLOBAL_SWITCHES = ("--verbose",)


# Quiet by default; OBSIDIAN_TOOLS_VERBOSE=1 enables debug output
if os.environ.get("OBSIDIAN_TOOLS_VERBOSE") == "1":
    enable_debug_mode()
else:
    configure_quiet_mode(quiet=True)


# Global state for CLI options
_vault_override: Optional[str] = None


def _vault_callback(value: Optional[str]):
    global _vault_override
    _vault_override = value


def _get_vault_override() -> Optional[str]:
    return _vault_override


def _verbose_callback(value: bool):
    if value:
        enable_debug_mode()


def _current_vault_path() -> Path:
    try:
        config = load_user_config()
    except ValueError:
        config = None
    return resolve_vault_path(_get_vault_override(), config)


def _print_help():
    typer.echo(render_help(_current_vault_path()))


def _version_callback(value: bool):
    if value:
        from . import __version__
        print(f"{PROG_NAME} {__version__}")
        raise typer.Exit()


class _CommandGroup(TyperGroup):
    """Reports unknown commands with the full help text instead of click's short error."""

    def resolve_command(self, ctx, args):
        name = args[0] if args else ""
        if name and not name.startswith("-") and self.get_command(ctx, name) is None:
            typer.echo(f"Unknown command: {name}", err=True)
            _print_help()
            raise typer.Exit(1)
        return super().resolve_command(ctx, args)


app = typer.Typer(
    name=PROG_NAME,
    cls=_CommandGroup,
    help="Vault management CLI.",
    no_args_is_help=False,
    invoke_without_command=True,
    rich_markup_mode=None,
    add_completion=False,
    context_settings={"help_option_names": []},
)


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    vault: Annotated[Optional[str], typer.Option(
        "--vault",
        envvar="VAULT_PATH",
        help="Override vault path",
        callback=_vault_callback,
        is_eager=True,
    )] = None,
    verbose: Annotated[bool, typer.Option(
        "--verbose", "-v",
        help="Enable debug-level logging to stderr",
        callback=_verbose_callback,
        is_eager=True,
    )] = False,
    show_help: Annotated[bool, typer.Option(
        "--help", "-h",
        help="Show help and exit",
    )] = False,
    version: Annotated[Optional[bool], typer.Option(
        "--version",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    )] = None,
):
    """Vault management CLI."""
    if show_help:
        _print_help()
        raise typer.Exit()
    # No command: show help
    if ctx.invoked_subcommand is None:
        _print_help()


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------

def _usage_error(command: Command, message: Optional[str] = None):
    """Print a usage message to stderr and exit 1."""
    usage, example = USAGE[command]
    if message:
        typer.echo(message, err=True)
    typer.echo(f"Usage: {usage}", err=True)
    typer.echo(f"Example: {example}", err=True)
    raise typer.Exit(1)


@contextmanager
def _open_vault() -> Iterator[CollectionProtocol]:
    """Open the configured vault, closing it on every exit path.

    Exits 1 with a message if the config is invalid or the vault cannot
    be opened.
    """
    try:
        config = load_user_config()
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    vault_path = resolve_vault_path(_get_vault_override(), config)

    ops_handler = configure_ops_log(state_dir())
    opened = open_collection(vault_path, config.backend)
    if opened.error is not None or opened.collection is None:
        remove_ops_log(ops_handler)
        message = opened.error.message if opened.error else "no collection returned"
        typer.echo(f"Failed to open vault at {vault_path}: {message}", err=True)
        raise typer.Exit(1)

    collection = opened.collection
    try:
        yield collection
    finally:
        collection.close()
        remove_ops_log(ops_handler)


def _run_query(request: QueryRequest, as_json: bool = False) -> QueryResult:
    """Run a query, exiting 1 if the collection reports an error.

    In JSON mode the error is printed as the JSON response.
    """
    with _open_vault() as collection:
        result = collection.query(request)
    if result.error is not None:
        if as_json:
            typer.echo(render_json(result))
        else:
            typer.echo(f"Query failed: {result.error.message}", err=True)
        raise typer.Exit(1)
    return result


def _wants_help(args: list[str]) -> bool:
    return "--help" in args


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------

@app.command(Command.ADD.value, context_settings=RAW_ARGS)
def add(ctx: typer.Context):
    """Create a new document: add <type> [--field value]..."""
    args = list(ctx.args)
    if not args:
        _usage_error(Command.ADD)
    if _wants_help(args):
        _print_help()
        return
    try:
        request = build_create_request(args)
    except FlagError as e:
        _usage_error(Command.ADD, str(e))

    with _open_vault() as collection:
        result = collection.create(request)
    if result.error is not None:
        typer.echo(f"Failed to create {request.type}: {result.error.message}", err=True)
        raise typer.Exit(1)
    typer.echo(f"Created {request.type}: {result.path}")


@app.command(Command.CAPTURE.value, context_settings=RAW_ARGS)
def capture(ctx: typer.Context):
    """Quick capture a fleeting note to the inbox."""
    args = list(ctx.args)
    if _wants_help(args):
        _print_help()
        return
    content, context, source = parse_capture_args(args)
    try:
        request = build_capture_request(content, context, source)
    except FlagError:
        _usage_error(Command.CAPTURE)

    with _open_vault() as collection:
        result = collection.create(request)
    if result.error is not None:
        typer.echo(f"Failed to capture: {result.error.message}", err=True)
        raise typer.Exit(1)
    typer.echo(f"Captured: {result.path}")


@app.command(Command.QUERY.value, context_settings=RAW_ARGS)
def query(ctx: typer.Context):
    """Query the vault with filters (default: open tasks by priority)."""
    args = list(ctx.args)
    if _wants_help(args):
        _print_help()
        return
    try:
        plan = build_query_from_flags(args)
    except FlagError as e:
        _usage_error(Command.QUERY, str(e))
    if plan.invalid:
        _usage_error(Command.QUERY, f"Invalid integer for --{plan.invalid[0]}")

    as_json = plan.output_format == "json"
    result = _run_query(plan.request, as_json=as_json)
    if as_json:
        typer.echo(render_json(result))
    elif plan.output_format == "table":
        typer.echo(render_table(result.results, result.meta))
    else:
        typer.echo(render_query_results(result.results, result.meta, plan.view))


@app.command(Command.RUN.value, context_settings=RAW_ARGS)
def run(ctx: typer.Context):
    """Run a query from a YAML file."""
    args = list(ctx.args)
    if _wants_help(args):
        _print_help()
        return
    flags = tokenize(args, RUN_FLAGS)
    if not flags.positional:
        _usage_error(Command.RUN)
    as_json = bool(flags.get("json"))

    path = Path(flags.positional[0]).expanduser().resolve()
    try:
        request = load_query_file(path)
    except QueryFileError as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(1)
    logger.debug("Loaded query file %s: %s", path, request.to_dict())

    result = _run_query(request, as_json=as_json)
    if as_json:
        typer.echo(render_json(result))
    else:
        typer.echo(render_query_results(result.results, result.meta, QueryView.EXPLICIT))


@app.command(Command.INBOX.value)
def inbox():
    """List unprocessed inbox notes."""
    result = _run_query(inbox_request())
    typer.echo(render_inbox(result, utc_now()))


@app.command(Command.REPORT.value)
def report():
    """Generate a vault status report."""
    with _open_vault() as collection:
        all_docs = collection.query(QueryRequest())
        tasks = collection.query(task_request())
        validation = collection.validate()
    for result in (all_docs, tasks):
        if result.error is not None:
            typer.echo(f"Query failed: {result.error.message}", err=True)
            raise typer.Exit(1)
    typer.echo(render_report(all_docs, tasks, validation))


@app.command(Command.VALIDATE.value)
def validate():
    """Validate all files against their type schemas."""
    with _open_vault() as collection:
        validation = collection.validate()
    typer.echo(render_validation(validation))


@app.command(Command.LIST.value)
def list_files():
    """List all files with their types."""
    result = _run_query(QueryRequest())
    typer.echo(render_file_list(result))


@app.command(Command.HELP.value)
def help_():
    """Show help."""
    _print_help()


# -----------------------------------------------------------------------------

def strip_global_flags(argv: list[str]) -> list[str]:
    """Move --vault/--verbose from anywhere in argv to before the command.

    Global flags may follow the command (``add task --vault ~/v ...``);
    the command's own tokenizer never sees them.
    """
    globals_: list[str] = []
    rest: list[str] = []
    i = 0
    while i < len(argv):
        arg = argv[i]
        if arg in GLOBAL_VALUE_FLAGS:
            globals_.extend(argv[i:i + 2])
            i += 2
            continue
        if arg.startswith("--vault="):
            globals_.append(arg)
        elif arg in GLOBAL_SWITCHES:
            globals_.append(arg)
        else:
            rest.append(arg)
        i += 1
    return globals_ + rest


def main():
    args = strip_global_flags(sys.argv[1:])
    try:
        app(args=args, prog_name=PROG_NAME)
    except SystemExit:
        raise  # Let typer handle exit codes
    except KeyboardInterrupt:
        raise SystemExit(130)  # Standard exit code for Ctrl+C
    except Exception as e:
        # Log full traceback to file, show clean message to user
        from .errors import log_exception
        log_path = log_exception(e, context=f"{PROG_NAME} CLI")
        typer.echo(f"Error: {e}", err=True)
        typer.echo(f"Details logged to {log_path}", err=True)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
