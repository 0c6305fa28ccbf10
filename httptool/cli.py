from __future__ import annotations

import asyncio
import json
import logging
from typing import Optional

import typer

from httptool.config import Settings
from httptool.errors import ToolError
from httptool.logging_utils import configure_logging

app = typer.Typer(add_completion=False, help="Agent-facing HTTP request tool.")


def _build_tool(config_path: str, settings: Settings):
    from httptool.credentials import EncryptedCredentialProvider
    from httptool.crypto import get_crypto_box
    from httptool.tool import HttpRequestTool, load_tool_config
    from httptool.trace import JsonlTraceSink, LoggingTraceSink

    config = load_tool_config(config_path)
    credentials = None
    if settings.credentials_file:
        credentials = EncryptedCredentialProvider(
            settings.credentials_file, crypto=get_crypto_box(settings.secret_key)
        )
    trace = JsonlTraceSink(settings.trace_file) if settings.trace_file else LoggingTraceSink()
    return HttpRequestTool.from_config(config, credentials=credentials, trace=trace, settings=settings)


@app.command()
def schema(
    config: str = typer.Argument(..., help="Path to a tool config JSON file."),
    describe: bool = typer.Option(False, "--describe", help="Print the text description instead."),
) -> None:
    """
    Print the function-tool definition for a tool config.
    """
    configure_logging(level=logging.WARNING)
    try:
        tool = _build_tool(config, Settings())
    except ToolError as exc:
        typer.echo(f"Configuration error: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    if describe:
        print(tool.description)
    else:
        print(json.dumps(tool.tool_def(), indent=2, ensure_ascii=False))


@app.command()
def invoke(
    config: str = typer.Argument(..., help="Path to a tool config JSON file."),
    payload: Optional[str] = typer.Argument(None, help="Tool input: JSON object or free text."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """
    Run the tool once and print the string it returns.
    """
    settings = Settings()
    level = logging.DEBUG if verbose else getattr(logging, settings.log_level.upper(), logging.INFO)
    configure_logging(level=level)
    try:
        tool = _build_tool(config, settings)
    except ToolError as exc:
        typer.echo(f"Configuration error: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    print(asyncio.run(tool.ainvoke(payload)))


@app.command("encrypt-credential")
def encrypt_credential(
    name: str = typer.Argument(..., help="Credential name (as referenced by tool configs)."),
    value: str = typer.Argument(..., help='Credential material as JSON, e.g. {"token": "..."}.'),
) -> None:
    """
    Encrypt credential material into HTTPTOOL_CREDENTIALS_FILE.
    """
    from httptool.credentials import EncryptedCredentialProvider
    from httptool.crypto import get_crypto_box

    settings = Settings()
    if not settings.credentials_file:
        typer.echo("HTTPTOOL_CREDENTIALS_FILE is not set.", err=True)
        raise typer.Exit(code=1)
    try:
        material = json.loads(value)
    except json.JSONDecodeError as exc:
        typer.echo(f"Credential value is not valid JSON: {exc.msg}", err=True)
        raise typer.Exit(code=1) from exc
    if not isinstance(material, dict):
        typer.echo("Credential value must be a JSON object.", err=True)
        raise typer.Exit(code=1)
    try:
        provider = EncryptedCredentialProvider(
            settings.credentials_file, crypto=get_crypto_box(settings.secret_key)
        )
        provider.store(name, material)
    except ToolError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc
    print(f"Stored credential '{name}' in {settings.credentials_file}")


@app.command()
def doctor() -> None:
    """
    Print the effective settings.
    """
    configure_logging(level=logging.INFO)
    Settings().print_diagnostics()


if __name__ == "__main__":
    app()
