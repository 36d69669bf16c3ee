import json
import logging
import typer
from typing import Any
from pydantic import BaseModel
from rich.console import Console
from rich.logging import RichHandler

# Create a stderr console for logging
error_console = Console(stderr=True)


def configure_logging(level: str = "INFO") -> None:
    """
    Route runtime log records to the stderr console.
    """
    handler = RichHandler(console=error_console, show_path=False, rich_tracebacks=True)
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))

    root = logging.getLogger("compctl")
    root.handlers = [handler]
    root.setLevel(level.upper())
    root.propagate = False


class OutputFormatter:
    """
    Handles output formatting for the CLI.
    Ensures separation of concerns between System Logs (stderr) and Data (stdout).
    """

    @staticmethod
    def log(message: str, severity: str = "info") -> None:
        """
        Print system messages to stderr with color coding.
        """
        style = "white"
        prefix = "[COMPCTL]"

        if severity == "warning":
            style = "yellow"
        elif severity == "error":
            style = "red"
        elif severity == "critical":
            style = "bold red"
        elif severity == "success":
            style = "green"

        error_console.print(f"[{style}]{prefix} {message}[/{style}]")

    @staticmethod
    def print_data(data: Any) -> None:
        """
        Print a call result to stdout as JSON.
        """
        if isinstance(data, str):
            typer.echo(data)
            return

        def json_serializer(obj):
            if isinstance(obj, BaseModel):
                return obj.model_dump(mode='json')
            if isinstance(obj, bytes):
                return obj.hex()
            return str(obj)

        try:
            output = json.dumps(data, indent=2, default=json_serializer)
            typer.echo(output)
        except TypeError as e:
            OutputFormatter.log(f"JSON Serialization failed: {e}", severity="error")
            typer.echo(str(data))
