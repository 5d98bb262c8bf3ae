import json
import typer
from typing import Any, List
from pydantic import BaseModel
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from spindle.utils.diagnostics import LoadDiagnostic

# Create a stderr console for logging
error_console = Console(stderr=True)

class OutputFormatter:
    """
    Handles output formatting for the CLI.
    System messages go to stderr; data (settings, status payloads) to stdout.
    """

    @staticmethod
    def log(message: str, severity: str = "info") -> None:
        """
        Print system messages to stderr with color coding.
        """
        style = "white"
        prefix = "[SPINDLE]"

        if severity == "warning":
            style = "yellow"
        elif severity == "error":
            style = "red"
        elif severity == "critical":
            style = "bold red"
        elif severity == "success":
            style = "green"

        error_console.print(f"[{style}]{prefix} {escape(message)}[/{style}]")

    @staticmethod
    def print_diagnostics(diagnostics: List[LoadDiagnostic]) -> None:
        """
        Prints a table of files that failed to load.
        """
        if not diagnostics:
            return

        table = Table(title="Spindle Boot Diagnostics", border_style="red", header_style="bold red")
        table.add_column("Severity", style="bold")
        table.add_column("Code")
        table.add_column("Message")
        table.add_column("Location")

        for diag in diagnostics:
            color = "red"
            if diag.severity == "warning":
                color = "yellow"
            elif diag.severity == "critical":
                color = "bold red"

            loc = f"{diag.file_path}"
            if diag.line_number:
                loc += f":{diag.line_number}"

            table.add_row(
                f"[{color}]{diag.severity.upper()}[/{color}]",
                diag.error_code,
                escape(diag.message),
                escape(loc)
            )

        error_console.print(table)
        error_console.print() # spacing

    @staticmethod
    def print_data(data: Any) -> None:
        """
        Print a payload to stdout as JSON. Strings are echoed unchanged.
        """
        if isinstance(data, str):
            typer.echo(data)
            return

        def json_serializer(obj):
            if isinstance(obj, BaseModel):
                return obj.model_dump(mode='json')
            return str(obj)

        try:
            output = json.dumps(data, indent=2, default=json_serializer)
            typer.echo(output)
        except TypeError as e:
            OutputFormatter.log(f"JSON Serialization failed: {e}", severity="error")
            typer.echo(str(data))
