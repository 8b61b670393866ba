from __future__ import annotations
import json
import logging
import threading
from typing import Optional
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
from .config import FollowConfig, build_config, load_config
from .errors import FileRemovedError, FileTruncatedError, FollowError
from .follower import follow as follow_file

app = typer.Typer(help="tailf - follow a growing file like tail -f, across rotation and truncation")
# stdout carries the followed bytes, so status goes to stderr
console = Console(stderr=True)


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _load(config: Optional[str]) -> FollowConfig:
    if config is None:
        return FollowConfig()
    return load_config(config)


@app.command()
def follow(
    file: str = typer.Option(..., "--file", "-f", help="Path to the file to follow"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to a tailf YAML config"),
    from_start: bool = typer.Option(False, "--from-start", help="Output the whole file first (default: new bytes only)"),
    polling: Optional[bool] = typer.Option(None, "--polling/--native", help="Poll the directory instead of using OS events"),
    poll_interval: Optional[float] = typer.Option(None, "--poll", help="Polling interval seconds (with --polling)"),
    grace: Optional[float] = typer.Option(None, "--grace", help="Seconds a removed file may stay missing"),
    duration: Optional[float] = typer.Option(None, "--duration", help="Stop following after this many seconds"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log watch activity to stderr"),
):
    """
    Copy bytes appended to FILE to stdout until interrupted.
    """
    _setup_logging(verbose)
    try:
        cfg = _load(config)
        # command line wins over the config file
        overrides = {"polling": polling, "poll_interval": poll_interval, "removal_grace": grace}
        cfg = build_config({**cfg.to_dict(), **{k: v for k, v in overrides.items() if v is not None}})
        stream = follow_file(file, from_start=from_start, config=cfg)
    except FileNotFoundError as e:
        console.print(f"[bold red]Error:[/bold red] {e}", style="red")
        raise typer.Exit(1)
    except PermissionError as e:
        console.print(f"[bold red]Error:[/bold red] {e}", style="red")
        raise typer.Exit(1)
    except ValueError as e:
        console.print(f"[bold red]Configuration Error:[/bold red] {e}", style="red")
        raise typer.Exit(1)
    except OSError as e:
        console.print(f"[bold red]Error:[/bold red] cannot follow {file}: {e}", style="red")
        raise typer.Exit(1)

    timer = None
    if duration is not None:
        timer = threading.Timer(duration, stream.close)
        timer.daemon = True
        timer.start()

    try:
        for chunk in stream.iter_chunks(cfg.chunk_size):
            typer.echo(chunk, nl=False)
    except KeyboardInterrupt:
        console.print("[yellow]Stopped.[/yellow]")
    except FileRemovedError as e:
        console.print(f"[bold yellow]File removed:[/bold yellow] {e}")
        console.print("Follow it again once it reappears.")
        raise typer.Exit(2)
    except FileTruncatedError as e:
        console.print(f"[bold yellow]File truncated:[/bold yellow] {e}")
        raise typer.Exit(2)
    except FollowError as e:
        console.print(f"[bold red]Error:[/bold red] {e}", style="red")
        raise typer.Exit(1)
    except OSError as e:
        console.print(f"[bold red]Error:[/bold red] reading {file} failed: {e}", style="red")
        raise typer.Exit(1)
    finally:
        if timer is not None:
            timer.cancel()
        try:
            stream.close()
        except OSError as e:
            console.print(f"[bold red]Error:[/bold red] {e}", style="red")


@app.command("config")
def show_config(
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to a tailf YAML config"),
    json_out: bool = typer.Option(False, "--json", help="Output JSON instead of a table"),
):
    """
    Show the effective follow configuration.
    """
    try:
        cfg = _load(config)
    except FileNotFoundError as e:
        console.print(f"[bold red]Error:[/bold red] {e}", style="red")
        raise typer.Exit(1)
    except ValueError as e:
        console.print(f"[bold red]Configuration Error:[/bold red] {e}", style="red")
        raise typer.Exit(1)

    if json_out:
        print(json.dumps(cfg.to_dict(), ensure_ascii=False, indent=2))
        raise typer.Exit(0)

    defaults = FollowConfig().to_dict()
    table = Table(title=f"Follow configuration ({config or 'defaults'})", show_header=True, header_style="bold magenta")
    table.add_column("Option", style="cyan")
    table.add_column("Value", style="green")
    table.add_column("Default", style="dim")

    for key, value in cfg.to_dict().items():
        table.add_row(key, str(value), str(defaults[key]))

    Console().print(table)


if __name__ == "__main__":
    app()
