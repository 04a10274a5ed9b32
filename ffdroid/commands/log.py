import click
import os
from collections import deque
from colorama import Fore, Style
from ..cli_logger import get_latest_log_file, LOG_DIR

LEVEL_COLORS = [
    ("[WARNING]", Fore.YELLOW),
    ("[ERROR]", Fore.RED),
    ("[TRACEBACK]", Fore.RED),
    ("[LOG]", Fore.WHITE + Style.DIM),
    ("[DEBUG]", Fore.WHITE + Style.DIM),
    ("[SUCCESS]", Fore.GREEN),
]

def _colorize(line):
    color = next((c for marker, c in LEVEL_COLORS if marker in line), Fore.CYAN)
    return f"{color}{line.rstrip()}{Style.RESET_ALL}"

def _session_logs():
    if not os.path.isdir(LOG_DIR):
        return []
    return sorted(name for name in os.listdir(LOG_DIR) if name.endswith(".log"))

@click.command()
@click.option("--filename", default=None, help="Session log to show (default: the latest).")
@click.option("--list", "list_files", is_flag=True, help="List the session logs.")
@click.option("--tail", "tail", type=int, default=None, help="Only show the last N lines.")
def log(filename, list_files, tail):
    """Show an ffdroid session log, or list them."""
    if list_files:
        names = _session_logs()
        if not names:
            click.echo("No log files found.")
            return
        click.echo("Available log files:")
        for name in names:
            click.echo(f"  {name}")
        return

    log_file = os.path.join(LOG_DIR, filename) if filename else get_latest_log_file()
    if not log_file or not os.path.isfile(log_file):
        click.echo("No log files found.")
        return

    click.echo(f"Displaying log file: {log_file}")
    with open(log_file, "r", errors="replace") as f:
        lines = deque(f, maxlen=tail) if tail else f.readlines()
    for line in lines:
        click.echo(_colorize(line))
