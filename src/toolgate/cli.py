from __future__ import annotations

import json
import logging
import sys
from typing import List, Optional

import anyio
import typer
from pydantic import ValidationError

from toolgate.core.errors import StartupValidationError
from toolgate.core.types import CommandSpec
from toolgate.observability.metrics import get_metrics_registry
from toolgate.security.command_policy import (
    ALLOWED_COMMANDS_BY_CATEGORY,
    DENY_PATTERNS,
    POLICY_VERSION,
    SECONDARY_DENIED_TOKENS,
)
from toolgate.security.commands import CommandGate
from toolgate.security.confinement import AllowedRootSet, ConfinementChecker
from toolgate.settings import get_gateway_settings

app = typer.Typer(no_args_is_help=True, help="Confined file and shell tools for MCP clients")

logger = logging.getLogger("toolgate")

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _configure_logging(level: str) -> None:
    # stdout carries the MCP protocol; diagnostics go to stderr only.
    logging.basicConfig(stream=sys.stderr, level=level, format=_LOG_FORMAT)


def _load_roots(directories: List[str]) -> AllowedRootSet:
    try:
        return AllowedRootSet.from_arguments(directories)
    except StartupValidationError as exc:
        typer.echo(exc.message, err=True)
        raise typer.Exit(1)


@app.command("serve")
def serve(
    directories: List[str] = typer.Argument(..., help="Allowed directories (at least one)"),
) -> None:
    """Start the MCP stdio server confined to DIRECTORIES.

    Example client configuration:

        {
          "mcpServers": {
            "toolgate": {
              "command": "toolgate",
              "args": ["serve", "/path/to/project"]
            }
          }
        }
    """
    try:
        settings = get_gateway_settings()
    except ValidationError as exc:
        typer.echo(f"Error: invalid configuration: {exc}", err=True)
        raise typer.Exit(1)

    _configure_logging(settings.LOG_LEVEL)
    roots = _load_roots(directories)

    try:
        from toolgate.mcp.server_provider import create_server
    except ImportError as e:
        typer.echo(
            "Error: MCP SDK not installed. Install with: pip install 'mcp<2'",
            err=True,
        )
        raise typer.Exit(1) from e

    server = create_server(roots, settings)
    try:
        server.run(transport="stdio")
    except Exception as e:
        typer.echo(f"MCP server failed: {e}", err=True)
        raise typer.Exit(2)
    finally:
        snapshot = get_metrics_registry().snapshot()
        logger.info("Shutting down; metrics: %s", json.dumps(snapshot.as_dict(), sort_keys=True))


@app.command("check-path")
def check_path(
    path: str = typer.Argument(..., help="Path to check"),
    roots: List[str] = typer.Option(..., "--root", "-r", help="Allowed directory (repeatable)"),
    workdir: Optional[str] = typer.Option(
        None, "--workdir", "-w", help="Base for relative paths (defaults to the first root)"
    ),
) -> None:
    """Show how PATH is resolved and whether it is confined."""
    root_set = _load_roots(roots)
    checker = ConfinementChecker(root_set)
    base = workdir or root_set.primary

    lexical = checker.check_lexical(path, base=base)
    full = checker.check_sync(path, base=base)

    typer.echo(f"lexical: {'allowed' if lexical.allowed else 'denied'} ({lexical.canonical})")
    verdict = "allowed" if full.allowed else "denied"
    detail = full.matched_root if full.allowed else full.reason
    typer.echo(f"resolved: {verdict} ({full.canonical}) {detail or ''}".rstrip())
    if not full.allowed:
        raise typer.Exit(1)


@app.command("check-command")
def check_command(
    command: str = typer.Argument(..., help="Command line to evaluate"),
    roots: List[str] = typer.Option(..., "--root", "-r", help="Allowed directory (repeatable)"),
    workdir: Optional[str] = typer.Option(
        None, "--workdir", "-w", help="Working directory (defaults to the first root)"
    ),
) -> None:
    """Run COMMAND through the command gate without executing it."""
    root_set = _load_roots(roots)
    gate = CommandGate(ConfinementChecker(root_set))
    spec = CommandSpec(command=command, working_dir=workdir)

    decision = anyio.run(gate.evaluate, spec, root_set.primary)
    if decision.permitted:
        typer.echo(f"permitted: {decision.main_verb} (cwd={decision.working_dir})")
        return
    typer.echo(f"denied at {decision.stage}: {decision.reason}")
    raise typer.Exit(1)


@app.command("policy")
def policy(
    json_output: bool = typer.Option(False, "--json", help="Output machine readable JSON"),
) -> None:
    """Print the command policy in force."""
    if json_output:
        payload = {
            "version": POLICY_VERSION,
            "allowed": {
                name: sorted(verbs) for name, verbs in ALLOWED_COMMANDS_BY_CATEGORY.items()
            },
            "secondary_denied": sorted(SECONDARY_DENIED_TOKENS),
            "deny_patterns": [
                {
                    "name": deny.name,
                    "description": deny.description,
                    "pattern": deny.pattern.pattern,
                }
                for deny in DENY_PATTERNS
            ],
        }
        typer.echo(json.dumps(payload, indent=2, ensure_ascii=True))
        return

    typer.echo(f"Policy version: {POLICY_VERSION}")
    typer.echo("Allowed commands:")
    for name, verbs in ALLOWED_COMMANDS_BY_CATEGORY.items():
        typer.echo(f"  {name:<22} {', '.join(sorted(verbs))}")
    typer.echo(f"Denied secondary tokens: {', '.join(sorted(SECONDARY_DENIED_TOKENS))}")
    typer.echo("Deny patterns:")
    for deny in DENY_PATTERNS:
        typer.echo(f"  {deny.name:<24} {deny.description}")


if __name__ == "__main__":
    app()
