"""
gbxlink - Cartridge Reader Command-Line Interface
=================================================

This module implements the command-line interface for the Arduino Game
Boy cartridge reader/writer. It reads the cartridge header, dumps ROM and
save RAM to files, and writes save files back to the cartridge.

Usage Examples
--------------
List available serial ports:
    $ gbxlink ports

Show the cartridge header:
    $ gbxlink header

Dump the ROM (file name taken from the cartridge title):
    $ gbxlink read-rom
    $ gbxlink read-rom backup.gb

Dump and restore the save RAM:
    $ gbxlink read-ram
    $ gbxlink write-ram "POKEMON RED.sav" --verify

Hardware Setup
--------------
Before using gbxlink, ensure:
1. The reader is connected over USB and the firmware is loaded
2. The serial port has proper permissions (dialout group on Linux)
3. A cartridge is inserted

Opening the port resets most Arduino boards; gbxlink waits for the board
to come back before sending the first request.

Ctrl+C aborts the running transfer cleanly. A dump cut short is kept as
"<name>.partial" so it is never mistaken for a complete image.

Exit Codes
----------
0 - Success (or aborted by the user)
1 - Communication, transfer or cartridge error
2 - Invalid arguments or file problems
3 - Internal error
"""

import logging
import signal
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

import click

from gbx_link import __version__
from gbx_link.cartridge import CartridgeMetadata
from gbx_link.cli.errors import ExitCode, handle_cli_exception
from gbx_link.comms import (
    DEFAULT_BAUD_RATE,
    VALID_BAUD_RATES,
    CancelToken,
    CartridgeClient,
    LinkConfig,
    VerifyResult,
    find_device_port,
    format_port_list,
    list_serial_ports,
    open_serial_transport,
)
from gbx_link.errors import CommsError, ConnectionError, MetadataError

# Configure logging
logger = logging.getLogger(__name__)


# =============================================================================
# CLI Context and Utilities
# =============================================================================

class Context:
    """
    Shared context for CLI commands.

    Stores common options like port and verbosity, plus the link
    configuration built from the environment and the command line.
    """

    def __init__(self) -> None:
        self.port: Optional[str] = None
        self.verbose: bool = False
        self.config: LinkConfig = LinkConfig()

    def setup_logging(self) -> None:
        """Configure logging based on verbosity."""
        level = logging.DEBUG if self.verbose else logging.WARNING
        logging.basicConfig(
            level=level,
            format="%(levelname)s: %(message)s" if self.verbose else "%(message)s",
        )

    def resolve_port(self) -> str:
        """Return the selected port, auto-detecting one if none was given."""
        device = self.port or find_device_port()
        if not device:
            raise ConnectionError(
                "No serial port specified and auto-detect failed. "
                "Use --port option or 'gbxlink ports' to find available ports."
            )
        return device


pass_context = click.make_pass_decorator(Context, ensure=True)


def progress_bar(total: int, remaining: int) -> None:
    """Simple text progress bar driven by (total, remaining) updates."""
    if total == 0:
        return
    done = total - remaining
    percent = done * 100 // total
    filled = percent // 2
    bar = "=" * filled + "-" * (50 - filled)
    click.echo(f"\r[{bar}] {percent:3d}% ({done}/{total} bytes)", nl=False)
    if remaining <= 0:
        click.echo()


@contextmanager
def cancel_on_interrupt(token: CancelToken) -> Iterator[CancelToken]:
    """
    Turn Ctrl+C into a cancellation request for the running operation.

    The previous SIGINT handler is restored on exit.
    """
    def handler(signum, frame):
        logger.debug("SIGINT received, cancelling")
        token.cancel()

    previous = signal.signal(signal.SIGINT, handler)
    try:
        yield token
    finally:
        signal.signal(signal.SIGINT, previous)


@contextmanager
def open_client(ctx: Context) -> Iterator[CartridgeClient]:
    """Open the serial link and yield a client; the port is always closed."""
    device = ctx.resolve_port()
    click.echo(f"Connecting to cartridge reader on {device}...")
    transport = open_serial_transport(device, ctx.config)
    try:
        yield CartridgeClient(transport, ctx.config)
    finally:
        transport.close()


def keep_partial(path: Path) -> Optional[Path]:
    """Rename an incomplete dump to "<name>.partial"."""
    if not path.exists():
        return None
    partial = path.with_name(path.name + ".partial")
    path.replace(partial)
    logger.warning("Incomplete dump kept as %s", partial)
    click.echo(f"\nIncomplete dump kept as: {partial}", err=True)
    return partial


def read_valid_header(client: CartridgeClient) -> CartridgeMetadata:
    """Read the header and fail if no cartridge answered."""
    meta = client.read_header()
    if not meta.checksum_valid:
        raise MetadataError("No cartridge inserted or cartridge read failed!")
    return meta


# =============================================================================
# Main CLI Group
# =============================================================================

@click.group()
@click.option(
    "-p", "--port",
    type=str,
    default=None,
    help="Serial port device (auto-detect if not specified)",
)
@click.option(
    "-b", "--baud",
    type=click.Choice([str(b) for b in VALID_BAUD_RATES]),
    default=None,
    help=f"Baud rate (default: {DEFAULT_BAUD_RATE})",
)
@click.option(
    "-v", "--verbose",
    is_flag=True,
    help="Enable verbose output",
)
@click.option(
    "--timeout",
    type=float,
    default=None,
    help="Seconds without data before giving up (default: 3)",
)
@click.version_option(version=__version__, prog_name="gbxlink")
@pass_context
def main(
    ctx: Context,
    port: Optional[str],
    baud: Optional[str],
    verbose: bool,
    timeout: Optional[float],
) -> None:
    """
    Read and write Game Boy cartridges with an Arduino cartridge reader.

    Link tuning can also be set with GBX_* environment variables
    (e.g. GBX_TIMEOUT=5, GBX_SEND_CHUNK_DELAY=0.02).

    Use 'gbxlink ports' to list available serial ports.
    """
    ctx.port = port
    ctx.verbose = verbose
    ctx.setup_logging()
    try:
        ctx.config = LinkConfig.from_env().with_overrides(
            baud_rate=int(baud) if baud else None,
            timeout=timeout,
        )
    except ValueError as e:
        raise click.BadParameter(str(e)) from e


# =============================================================================
# Ports Command
# =============================================================================

@main.command()
@click.option(
    "--detailed", "-d",
    is_flag=True,
    help="Show detailed port information",
)
@pass_context
def ports(ctx: Context, detailed: bool) -> None:
    """
    List available serial ports.

    USB boards are marked with their vendor (e.g., Arduino, QinHeng).

    Example:
        gbxlink ports
        gbxlink ports --detailed
    """
    port_list = list_serial_ports()

    if not port_list:
        click.echo("No serial ports found.")
        click.echo("\nTips:")
        click.echo("  - Connect the cartridge reader over USB")
        click.echo("  - On Linux, ensure you have permission (dialout group)")
        return

    click.echo("Available serial ports:")
    click.echo(format_port_list(port_list, verbose=detailed))

    auto_port = find_device_port()
    if auto_port:
        click.echo(f"\nSuggested port for the reader: {auto_port}")
    else:
        click.echo("\nNo USB serial device auto-detected.")


# =============================================================================
# Header Command
# =============================================================================

@main.command()
@pass_context
def header(ctx: Context) -> None:
    """
    Show the header of the inserted cartridge.

    Example:
        gbxlink header
        gbxlink --port /dev/ttyACM0 header
    """
    try:
        with open_client(ctx) as client:
            with cancel_on_interrupt(client.cancel):
                meta = client.read_header()

        click.echo("")
        click.echo(str(meta))
        if not meta.checksum_valid:
            raise MetadataError("No cartridge inserted or cartridge read failed!")

    except Exception as e:
        handle_cli_exception(e, verbose=ctx.verbose)


# =============================================================================
# Dump Commands
# =============================================================================

def _dump(ctx: Context, output: Optional[str], what: str) -> None:
    """Shared body of read-rom and read-ram."""
    try:
        with open_client(ctx) as client:
            with cancel_on_interrupt(client.cancel):
                meta = read_valid_header(client)
                click.echo(f"Cartridge: {meta.title} ({meta.cartridge_type_name})")

                if what == "ROM":
                    output_path = Path(output or meta.rom_filename)
                    dump = client.read_rom
                else:
                    output_path = Path(output or meta.ram_filename)
                    dump = client.read_ram

                click.echo(f"Reading {what} to {output_path}...")
                try:
                    with output_path.open("wb") as sink:
                        count = dump(sink, progress_bar)
                except (CommsError, OSError):
                    keep_partial(output_path)
                    raise

        click.echo(f"Saved {count} bytes to: {output_path}")

    except Exception as e:
        handle_cli_exception(e, verbose=ctx.verbose, error_type="Transfer")


@main.command("read-rom")
@click.argument("output", type=click.Path(dir_okay=False), required=False)
@pass_context
def read_rom(ctx: Context, output: Optional[str]) -> None:
    """
    Dump the cartridge ROM to a file.

    OUTPUT defaults to "<title>.gb".

    Example:
        gbxlink read-rom
        gbxlink read-rom tetris.gb
    """
    _dump(ctx, output, "ROM")


@main.command("read-ram")
@click.argument("output", type=click.Path(dir_okay=False), required=False)
@pass_context
def read_ram(ctx: Context, output: Optional[str]) -> None:
    """
    Dump the cartridge save RAM to a file.

    OUTPUT defaults to "<title>.sav".

    Example:
        gbxlink read-ram
        gbxlink read-ram backup.sav
    """
    _dump(ctx, output, "RAM")


# =============================================================================
# Write RAM Command
# =============================================================================

@main.command("write-ram")
@click.argument("input_file", metavar="INPUT", type=click.Path(dir_okay=False), required=False)
@click.option(
    "--verify/--no-verify",
    default=None,
    help="Read the RAM back and compare (asked if not given)",
)
@click.option(
    "--yes", "-y",
    is_flag=True,
    help="Do not ask for confirmation before overwriting the save",
)
@pass_context
def write_ram(
    ctx: Context,
    input_file: Optional[str],
    verify: Optional[bool],
    yes: bool,
) -> None:
    """
    Write a save file to the cartridge RAM.

    INPUT defaults to "<title>.sav". Its size must match the cartridge
    RAM size exactly.

    Example:
        gbxlink write-ram
        gbxlink write-ram "POKEMON RED.sav" --verify -y
    """
    try:
        with open_client(ctx) as client:
            with cancel_on_interrupt(client.cancel):
                meta = read_valid_header(client)
                ram_size = client.get_ram_size()
            click.echo(f"Cartridge: {meta.title} ({meta.cartridge_type_name})")

            input_path = Path(input_file or meta.ram_filename)
            if not input_path.is_file():
                raise FileNotFoundError(f"Save file not found: {input_path}")
            if ram_size == 0:
                raise MetadataError("Cartridge has no RAM to write")

            file_size = input_path.stat().st_size
            if file_size != ram_size:
                raise click.BadParameter(
                    f"{input_path} is {file_size} bytes, cartridge RAM is {ram_size} bytes"
                )

            if not yes and not click.confirm(
                f"Overwrite cartridge RAM with {input_path}?", default=False
            ):
                click.echo("Aborted")
                return
            if verify is None:
                verify = click.confirm("Verify RAM?", default=True)

            click.echo(f"Writing {ram_size} bytes of RAM...")
            with cancel_on_interrupt(client.cancel):
                with input_path.open("rb") as source:
                    result = client.write_ram(
                        source, ram_size, progress_bar,
                        verify=verify, verify_progress=progress_bar,
                    )

        if result is None:
            click.echo("RAM written.")
            return

        click.echo(f"=> {result.describe()}")
        if result is not VerifyResult.MATCH:
            raise SystemExit(ExitCode.COMMS_ERROR)

    except Exception as e:
        handle_cli_exception(e, verbose=ctx.verbose, error_type="Transfer")


if __name__ == "__main__":
    main()
