"""
Serial Flasher CLI

Command-line front end for the flashing session: list ports, identify,
reset, erase and program a board.
"""

import asyncio
import logging
import sys
from typing import Awaitable, Callable, List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import BarColumn, Progress, TaskID, TextColumn
from rich.table import Table

from serial_flasher.config import CONNECT_MODES, FlasherSettings, load_settings
from serial_flasher.core.images import DEFAULT_IMAGE_NAME, default_rows, rows_from_args
from serial_flasher.core.messages import MessageLevel, WarningItem, result_to_warnings
from serial_flasher.core.results import OperationResult
from serial_flasher.core.session import FlashSession, SessionListener
from serial_flasher.core.types import ImageRow, ProgressReport, SessionState
from serial_flasher.core.validation import validate_image_rows
from serial_flasher.protocol.devices import (
    DeviceHandle,
    DeviceSelector,
    fixed_selector,
    list_devices,
    prompt_selector,
)

logger = logging.getLogger("serial_flasher")

# Setup Rich console
console = Console()

app = typer.Typer(help="⚡ Serial Flasher - program ESP boards over USB serial")


class _CliState:
    """Options shared by every command (set by the app callback)."""
    settings: FlasherSettings = FlasherSettings()


state = _CliState()


def print_header(text: str) -> None:
    """Print fancy header."""
    console.print(Panel(text, expand=False, style="bold blue"))


def print_success(text: str) -> None:
    """Print success message."""
    console.print(f"✓ {text}", style="green")


def print_warning(text: str) -> None:
    """Print warning message."""
    console.print(f"⚠️  {text}", style="yellow")


def print_error(text: str) -> None:
    """Print error message."""
    console.print(f"❌ {text}", style="red")


def print_structured_warning(warning: WarningItem, verbose: bool = False) -> None:
    """Print a structured warning with optional remediation."""
    if warning.level == MessageLevel.ERROR:
        style = "red"
        icon = "❌"
    elif warning.level == MessageLevel.WARN:
        style = "yellow"
        icon = "⚠️"
    else:
        style = "blue"
        icon = "ℹ️"

    console.print(f"{icon} [{warning.code.value}] {warning.title}", style=style)
    if verbose and warning.detail:
        console.print(f"   {warning.detail}", style="dim")
    if verbose and warning.remediation:
        console.print(f"   → {warning.remediation}", style="cyan")


def print_warnings_from_result(result: OperationResult, verbose: bool = True) -> None:
    """Print all warnings from an OperationResult using structured format."""
    for warning in result_to_warnings(result):
        print_structured_warning(warning, verbose=verbose)


class ConsoleListener(SessionListener):
    """Reports session state changes on the console."""

    def on_state_changed(self, new_state: SessionState, chip: Optional[str]) -> None:
        if new_state == SessionState.CONNECTED and chip:
            console.print(f"Connected to device: [bold]{chip}[/bold]")
        elif new_state == SessionState.DISCONNECTED:
            logger.debug("Session disconnected")


def _choose_device(devices: List[DeviceHandle]) -> Optional[int]:
    """Interactive device picker used when --port is omitted."""
    if len(devices) == 1:
        console.print(f"Using {devices[0]}")
        return 0

    table = Table(title="Select a serial port")
    table.add_column("#", style="cyan")
    table.add_column("Port", style="magenta")
    table.add_column("Description", style="green")
    for index, device in enumerate(devices):
        table.add_row(str(index), device.port, device.description or "-")
    console.print(table)

    choice = typer.prompt("Port number (blank to cancel)", default="", show_default=False)
    if not choice.strip():
        return None
    try:
        return int(choice)
    except ValueError:
        return None


def make_selector(port: Optional[str]) -> DeviceSelector:
    """Fixed selector for --port, interactive picker otherwise."""
    if port:
        return fixed_selector(port)
    return prompt_selector(_choose_device)


def make_session(port: Optional[str]) -> FlashSession:
    return FlashSession(
        selector=make_selector(port),
        settings=state.settings,
        listeners=[ConsoleListener()],
    )


def run_with_session(
    port: Optional[str],
    action: Callable[[FlashSession], Awaitable[OperationResult]],
) -> OperationResult:
    """
    Connect, run one action, and always disconnect.

    Returns the connect result if connecting failed, otherwise the
    action's result.
    """
    async def _run() -> OperationResult:
        session = make_session(port)
        connected = await session.connect()
        if not connected.ok:
            return connected
        try:
            return await action(session)
        finally:
            if session.state != SessionState.DISCONNECTED:
                await session.disconnect()

    return asyncio.run(_run())


def finish(result: OperationResult, success_message: str) -> None:
    """Print the outcome of an action and exit non-zero on failure."""
    if result.ok:
        for warning in result.warnings:
            print_warning(warning)
        print_success(success_message)
        return
    print_error(f"{result.operation} failed")
    print_warnings_from_result(result, verbose=True)
    sys.exit(1)


@app.callback()
def main_options(
    debug: bool = typer.Option(False, "--debug", help="Verbose logging and serial packet trace"),
    baud: Optional[int] = typer.Option(None, "--baud", "-b", help="Baud rate (default 115200)"),
    connect_mode: Optional[str] = typer.Option(
        None,
        "--connect-mode",
        help=f"Reset sequence used to enter the bootloader: {', '.join(CONNECT_MODES)}",
    ),
) -> None:
    """Global options, applied on top of SERIAL_FLASHER_* environment variables."""
    try:
        settings = load_settings().with_overrides(
            baud_rate=baud,
            connect_mode=connect_mode,
            trace=True if debug else None,
        )
    except ValueError as e:
        raise typer.BadParameter(str(e))

    state.settings = settings

    # Setup logging
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=debug)],
        force=True,
    )


@app.command()
def ports() -> None:
    """List available serial ports."""
    print_header("Available Serial Ports")

    devices = list_devices()
    if not devices:
        print_warning("No serial ports found")
        return

    table = Table(title="Serial Ports")
    table.add_column("Port", style="cyan")
    table.add_column("USB ID", style="magenta")
    table.add_column("Description", style="green")
    table.add_column("Likely board", style="yellow")

    for device in devices:
        table.add_row(
            device.port,
            device.usb_id,
            device.description or "-",
            "yes" if device.is_preferred else "",
        )

    console.print(table)


@app.command()
def detect(
    port: Optional[str] = typer.Option(None, "--port", "-p", help="Serial port (prompted if omitted)"),
) -> None:
    """Connect, identify the chip, and disconnect."""
    print_header("Detect Chip")

    async def _identify(session: FlashSession) -> OperationResult:
        return OperationResult.success("detect", chip=session.chip_identity or "")

    result = run_with_session(port, _identify)
    finish(result, f"Chip: {result.chip}")


@app.command()
def reset(
    port: Optional[str] = typer.Option(None, "--port", "-p", help="Serial port (prompted if omitted)"),
) -> None:
    """Hardware-reset the board by pulsing the RTS line."""
    print_header("Reset Device")
    result = run_with_session(port, lambda session: session.reset_device())
    finish(result, "Reset pulse sent")


@app.command()
def erase(
    port: Optional[str] = typer.Option(None, "--port", "-p", help="Serial port (prompted if omitted)"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt"),
) -> None:
    """Erase the entire flash."""
    print_header("Erase Flash")

    if not yes and not typer.confirm("Erase the ENTIRE flash of the device?", default=False):
        print_warning("Erase cancelled")
        raise typer.Exit(0)

    with console.status("Erasing flash (this may take a while)..."):
        result = run_with_session(port, lambda session: session.erase_all())
    finish(result, "Flash erased")


def _show_job(rows: List[ImageRow]) -> None:
    table = Table(title="Images")
    table.add_column("Row", style="cyan")
    table.add_column("Offset", style="magenta")
    table.add_column("Size", style="green")
    for index, row in enumerate(rows, start=1):
        size = f"{len(row.data):,} bytes" if row.data else "-"
        table.add_row(str(index), row.offset, size)
    console.print(table)


@app.command()
def flash(
    images: Optional[List[str]] = typer.Argument(
        None,
        help=f"Images as OFFSET=PATH (e.g. 0x1000=app.bin). Default: 0x0={DEFAULT_IMAGE_NAME}",
    ),
    port: Optional[str] = typer.Option(None, "--port", "-p", help="Serial port (prompted if omitted)"),
    reset_after: bool = typer.Option(False, "--reset", help="Pulse reset after programming"),
) -> None:
    """
    Program one or more binary images.

    Every OFFSET=PATH pair becomes one row of the image table. Rows are
    validated before connecting: offsets must be valid and unique, and
    every row needs an existing file.
    """
    print_header("Program Flash")

    try:
        rows = rows_from_args(images) if images else default_rows()
    except ValueError as e:
        print_error(str(e))
        sys.exit(1)

    _show_job(rows)

    validation = validate_image_rows(rows)
    if not validation.ok:
        print_error(validation.error)
        sys.exit(1)

    with Progress(
        TextColumn("[{task.description}]"),
        BarColumn(),
        TextColumn("[{task.percentage:.0f}%]"),
        console=console,
    ) as progress:
        tasks = {}

        def on_progress(report: ProgressReport) -> None:
            task: Optional[TaskID] = tasks.get(report.file_index)
            if task is None:
                row = rows[report.file_index]
                task = progress.add_task(f"Writing {row.offset}", total=report.bytes_total)
                tasks[report.file_index] = task
            progress.update(task, completed=report.bytes_written)

        async def _program(session: FlashSession) -> OperationResult:
            result = await session.program_images(rows, progress_cb=on_progress)
            if result.ok and reset_after:
                reset_result = await session.reset_device()
                if not reset_result.ok:
                    result.add_warning(f"Reset failed: {reset_result.message}")
            return result

        result = run_with_session(port, _program)

    if result.ok:
        table = Table(title="Flash Results")
        table.add_column("Offset", style="cyan")
        table.add_column("MD5", style="green")
        for offset, digest in result.hashes.items():
            table.add_row(offset, digest)
        console.print(table)
        console.print(f"Chip: {result.chip}  Bytes: {result.bytes_len:,}")

    finish(result, "Flashing completed successfully!")


def main() -> None:
    """Main entry point."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled by user[/yellow]")
        sys.exit(0)
    except Exception as e:
        console.print(f"\n[red bold]Fatal error:[/red bold] {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
