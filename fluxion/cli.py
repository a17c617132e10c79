"""
Fluxion CLI

Command-line interface for encrypted peer-to-peer file transfer.

Usage:
    fluxion relay                          # Run the signaling relay
    fluxion send FILE                      # Send a file, prints code + key
    fluxion receive CODE --key KEY         # Receive a file
    fluxion init-config                    # Write an example config.json
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn, BarColumn

from .config import Config, EXAMPLE_CONFIG, load_config
from .endpoint import ReceiverEndpoint, SenderEndpoint
from .errors import FluxionError
from .session import Session, Status, StatusType

console = Console()

STATUS_STYLES = {
    StatusType.INFO: "blue",
    StatusType.SUCCESS: "green",
    StatusType.WARNING: "yellow",
    StatusType.ERROR: "red",
}


def setup_logging(verbose: bool = False, level_name: str = 'INFO'):
    """Configure logging with rich output."""
    level = logging.DEBUG if verbose else getattr(logging, level_name.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_time=False, show_path=False)]
    )


def print_status(status: Status):
    style = STATUS_STYLES[status.type]
    console.print(f"[{style}]{status.message}[/{style}]")


def watch_session(session: Session, verbose: bool = False):
    """Print every status update with a colour per classification."""
    if not verbose:
        # print_status shows these; the session log line would repeat them
        logging.getLogger("fluxion.session").setLevel(logging.CRITICAL)
    session.on_status(print_status)


@click.group()
@click.option('-v', '--verbose', is_flag=True, help='Enable verbose output')
@click.option('--config', 'config_path', type=click.Path(dir_okay=False),
              help='Path to config.json')
@click.pass_context
def cli(ctx, verbose, config_path):
    """Fluxion - Encrypted peer-to-peer file transfer."""
    config = load_config(Path(config_path) if config_path else None)
    setup_logging(verbose, config.log_level)
    ctx.ensure_object(dict)
    ctx.obj['config'] = config
    ctx.obj['verbose'] = verbose


@cli.command()
@click.option('--host', default=None, help='Interface to bind')
@click.option('--port', default=None, type=int, help='Port to listen on')
@click.pass_context
def relay(ctx, host, port):
    """Run the signaling relay."""
    config: Config = ctx.obj['config']
    if host:
        config.relay_host = host
    if port:
        config.relay_port = port

    async def run():
        from .relay import run_relay_server
        await run_relay_server(config)

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        console.print("\n[yellow]Relay stopped[/yellow]")


@cli.command()
@click.argument('file_path', type=click.Path(exists=True, dir_okay=False))
@click.option('--relay-url', default=None, help='Relay WebSocket URL')
@click.pass_context
def send(ctx, file_path, relay_url):
    """Send a file. Share the printed code and key with the receiver."""
    config: Config = ctx.obj['config']
    if relay_url:
        config.relay_url = relay_url

    async def run() -> Optional[int]:
        endpoint = SenderEndpoint(config)

        console.print(Panel.fit(
            f"[bold]Room Code:[/bold] [green]{endpoint.room_code}[/green]\n\n"
            f"[bold]Encryption Key (share securely!):[/bold]\n"
            f"[cyan]{endpoint.key}[/cyan]\n\n"
            f"[dim]Receiver: fluxion receive {endpoint.room_code} --key <key>[/dim]",
            title="Share with receiver"
        ))
        watch_session(endpoint.session, ctx.obj['verbose'])

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            console=console,
        ) as progress:
            task = progress.add_task("Waiting for receiver...", total=100)

            def update_progress(p):
                progress.update(
                    task,
                    completed=p.progress_percent,
                    description=f"Sending... ({p.chunks_done}/{p.total_chunks} chunks)"
                )

            try:
                return await endpoint.send_file(Path(file_path), update_progress)
            finally:
                # outcome already printed; forget the code and key
                endpoint.session.reset()

    try:
        sent = asyncio.run(run())
    except (FluxionError, OSError) as e:
        console.print(f"[red]✗ {e}[/red]")
        raise SystemExit(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Cancelled[/yellow]")
        raise SystemExit(130)

    if sent is None:
        console.print("[red]✗ Transfer failed[/red]")
        raise SystemExit(1)
    console.print(f"[green]✓ Sent {format_size(sent)}[/green]")


@cli.command()
@click.argument('code')
@click.option('--key', '-k', required=True, help='64-character hex key from the sender')
@click.option('--output', '-o', type=click.Path(file_okay=False), help='Output directory')
@click.option('--relay-url', default=None, help='Relay WebSocket URL')
@click.pass_context
def receive(ctx, code, key, output, relay_url):
    """Receive a file from the sender using CODE."""
    config: Config = ctx.obj['config']
    if relay_url:
        config.relay_url = relay_url
    output_dir = Path(output) if output else None

    async def run() -> Optional[Path]:
        endpoint = ReceiverEndpoint(config)
        watch_session(endpoint.session, ctx.obj['verbose'])

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            console=console,
        ) as progress:
            task = progress.add_task("Connecting...", total=100)

            def update_progress(p):
                progress.update(
                    task,
                    completed=p.progress_percent,
                    description=f"Receiving {p.file_name} ({p.chunks_done}/{p.total_chunks} chunks)"
                )

            try:
                return await endpoint.receive_file(code, key, output_dir, update_progress)
            finally:
                endpoint.session.reset()

    try:
        result = asyncio.run(run())
    except (FluxionError, OSError) as e:
        console.print(f"[red]✗ {e}[/red]")
        raise SystemExit(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Cancelled[/yellow]")
        raise SystemExit(130)

    if result is None:
        console.print("[red]✗ Transfer failed[/red]")
        raise SystemExit(1)
    console.print(f"[green]✓ Saved to: {result}[/green]")


@cli.command('init-config')
@click.argument('path', default='config.json', type=click.Path(dir_okay=False))
def init_config(path):
    """Write an example configuration file."""
    path = Path(path)
    if path.exists():
        console.print(f"[yellow]{path} already exists[/yellow]")
        return
    path.write_text(EXAMPLE_CONFIG.lstrip())
    console.print(f"[green]✓ Wrote {path}[/green]")


def format_size(bytes_count: float) -> str:
    """Format bytes as human-readable size."""
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if bytes_count < 1024:
            return f"{bytes_count:.1f} {unit}"
        bytes_count /= 1024
    return f"{bytes_count:.1f} PB"


if __name__ == '__main__':
    cli()
