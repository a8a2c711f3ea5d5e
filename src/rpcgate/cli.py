"""
CLI entry point for rpcgate.

This module provides the Typer-based command-line interface for inspecting
rules files without starting a server.

Commands:
    check       Load a rules file and print the normalized rule table
    explain     Show the decision for one service/method/roles/token

Architecture Note:
    The CLI is intentionally thin - it parses arguments and delegates to
    the Authorizer, so the same code paths run here and in a live server.
"""

import asyncio
import json
from pathlib import Path
from typing import Annotated, Any, List, Optional

import typer
from rich.console import Console
from rich.table import Table

from rpcgate import __version__
from rpcgate.authorizer import Authorizer
from rpcgate.errors import RulesConfigError
from rpcgate.log import configure_logging
from rpcgate.rules import DEFAULT_KEY, RuleList, RuleTable
from rpcgate.schema import DEFAULT_RULES_FILE, CallContext, Outcome

app = typer.Typer(
    name="rpcgate",
    help="Inspect and test RPC authorization rules.",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold]rpcgate[/bold] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
    log_level: Annotated[
        str,
        typer.Option(
            "--log-level",
            help="Log level for authorizer events (debug, info, warning, error).",
        ),
    ] = "warning",
) -> None:
    """
    rpcgate - declarative authorization for RPC service calls.
    """
    try:
        configure_logging(log_level)
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1)


def _describe_rules(rules: RuleList) -> str:
    if not rules:
        return "[dim](deny)[/dim]"
    return ", ".join(rule.describe() for rule in rules)


def _table_rows(table: RuleTable) -> list[tuple[str, str, RuleList]]:
    rows: list[tuple[str, str, RuleList]] = []
    for service_name, entry in table.items():
        if isinstance(entry, tuple):
            rows.append((service_name, "*", entry))
            continue
        for method_name, rules in entry.items():
            rows.append((service_name, method_name, rules))
    return rows


def _load_authorizer(rules_path: Path, **options: Any) -> Authorizer:
    try:
        return Authorizer(rules_file=rules_path, **options)
    except RulesConfigError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1)


@app.command()
def check(
    rules_path: Annotated[
        Path,
        typer.Argument(help="Path to the rules file (YAML or Python)."),
    ] = Path(DEFAULT_RULES_FILE),
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output the table in JSON format."),
    ] = False,
) -> None:
    """
    Load a rules file and print the normalized rule table.

    Example:
        $ rpcgate check access-rules.yaml
    """
    authorizer = _load_authorizer(rules_path)
    rows = _table_rows(authorizer.rules)

    if json_output:
        payload = [
            {
                "service": service_name,
                "method": method_name,
                "rules": [rule.describe() for rule in rules],
            }
            for service_name, method_name, rules in rows
        ]
        print(json.dumps(payload, indent=2))
        return

    table = Table(title=f"Rules: {rules_path}")
    table.add_column("Service", style="cyan")
    table.add_column("Method")
    table.add_column("Rules (any of)")
    for service_name, method_name, rules in rows:
        style = "bold" if service_name == DEFAULT_KEY else None
        table.add_row(service_name, method_name, _describe_rules(rules), style=style)

    console.print(table)
    if authorizer.rules.default is None:
        console.print("[yellow]No default rules: unlisted methods are denied.[/yellow]")


@app.command()
def explain(
    service: Annotated[str, typer.Argument(help="Full service name, e.g. myapp.Greeter.")],
    method: Annotated[str, typer.Argument(help="Method name, e.g. sayHello.")],
    rules_path: Annotated[
        Path,
        typer.Option("--rules", "-r", help="Path to the rules file (YAML or Python)."),
    ] = Path(DEFAULT_RULES_FILE),
    roles: Annotated[
        Optional[List[str]],
        typer.Option("--role", help="Role held by the caller (repeatable)."),
    ] = None,
    token: Annotated[
        Optional[str],
        typer.Option("--token", "-t", help="Authentication token sent by the caller."),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output the decision in JSON format."),
    ] = False,
) -> None:
    """
    Show which rules apply to a call and the resulting outcome.

    Exits with code 0 when the call would be allowed, 1 otherwise.

    Example:
        $ rpcgate explain myapp.Greeter sayHello --role admin --token abc
    """
    role_set = frozenset(roles or ())
    authorizer = _load_authorizer(rules_path, get_permissions=lambda _: role_set)
    rules = authorizer.find_rules(service, method)
    context = CallContext.for_call(service, method, token=token)

    decision = asyncio.run(authorizer.authorize(context))

    if json_output:
        print(json.dumps({
            "service": service,
            "method": method,
            "rules": [rule.describe() for rule in rules],
            "outcome": decision.outcome.value,
            "code": decision.code,
        }, indent=2))
    else:
        console.print(f"[bold]{service}/{method}[/bold]")
        console.print(f"  Rules:  {_describe_rules(rules)}")
        console.print(f"  Roles:  {', '.join(sorted(role_set)) or '[dim](none)[/dim]'}")
        console.print(f"  Token:  {'yes' if token else 'no'}")
        if decision.outcome is Outcome.ALLOWED:
            console.print("  Result: [green]ALLOWED[/green]")
        else:
            console.print(
                f"  Result: [red]{decision.outcome.value.upper()}[/red] (code {decision.code})"
            )

    if not decision.allowed:
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
