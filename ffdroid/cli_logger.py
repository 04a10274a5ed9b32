import datetime
import os
import sys
import time
import traceback
from collections import deque
from colorama import Fore, Style, init

init(autoreset=True)

LOG_DIR = os.path.join(os.path.expanduser("~"), ".ffdroid", "logs")
os.makedirs(LOG_DIR, exist_ok=True)

# level -> (color, marker shown before the message)
LEVEL_STYLES = {
    "INFO": (Fore.CYAN, ""),
    "STEP": (Fore.CYAN, ""),
    "SUCCESS": (Fore.GREEN, "✓ "),
    "WARNING": (Fore.YELLOW, "⚠ "),
    "ERROR": (Fore.RED, "✖ "),
    "TRACEBACK": (Fore.RED, ">> "),
    "DEBUG": (Fore.WHITE + Style.DIM, ""),
    "LOG": (Fore.WHITE + Style.DIM, ""),
}

STDERR_LEVELS = {"WARNING", "ERROR", "TRACEBACK", "LOG"}


def format_size(num_bytes):
    for unit, factor in (("GB", 1 << 30), ("MB", 1 << 20), ("KB", 1 << 10)):
        if num_bytes >= factor:
            return f"{num_bytes / factor:.1f} {unit}"
    return f"{int(num_bytes)} B"


class Logger:
    """Terminal logger that mirrors every message into a session log file."""

    def __init__(self, log_dir=LOG_DIR):
        stamp = datetime.datetime.now().strftime("%Y%m%d_%H%M%S")
        self.log_file = os.path.join(log_dir, f"ffdroid_{stamp}.log")

    def _log(self, level, message, indent=0, timestamp=True):
        color, marker = LEVEL_STYLES[level]
        stream = sys.stderr if level in STDERR_LEVELS else sys.stdout
        padding = " " * indent
        if timestamp:
            now = datetime.datetime.now().strftime("%H:%M:%S")
            print(f"{color}{Style.BRIGHT}[{now}]{Style.RESET_ALL} {color}{marker}{padding}{message}", file=stream)
            record = f"[{now}] [{level}] {padding}{message}\n"
        else:
            print(f"{color}{marker}{padding}{message}", file=stream)
            record = f"[{level}] {padding}{message}\n"

        with open(self.log_file, "a") as f:
            f.write(record)

    def info(self, message):
        self._log("INFO", message)

    def step_info(self, message, indent=0):
        self._log("STEP", message, indent=indent, timestamp=False)

    def success(self, message):
        self._log("SUCCESS", message)

    def warning(self, message):
        self._log("WARNING", message)

    def error(self, message):
        self._log("ERROR", message)

    def debug(self, message):
        self._log("DEBUG", message)

    def progress(self, chunks, description="Downloading", total=None, bar_length=30, unit="b"):
        """Yield ``chunks`` unchanged while drawing a byte progress bar."""
        if not total:
            yield from chunks
            return

        print(f"{description}...")
        started = time.time()
        done = 0
        for chunk in chunks:
            yield chunk
            done += len(chunk) if unit == "b" else 1

            fraction = min(1.0, done / total)
            filled = int(bar_length * fraction)
            bar = Fore.GREEN + "━" * filled + Style.RESET_ALL + "━" * (bar_length - filled)
            elapsed = time.time() - started
            rate = done / elapsed if elapsed > 0 else 0
            line = (
                f"{fraction * 100:3.0f}% | {bar} | {format_size(done)}/{format_size(total)}"
                f" • {rate / (1 << 20):.1f} MB/s • {time.strftime('%M:%S', time.gmtime(elapsed))}"
            )
            sys.stdout.write("\r" + line)
            sys.stdout.flush()

        print()
        print(f"✅ {description} complete")

    def dump_tail(self, path, lines=200, title=None):
        """Print the last ``lines`` lines of a build log to stderr."""
        if not path or not os.path.isfile(path):
            return False
        with open(path, "r", errors="replace") as f:
            tail = deque(f, maxlen=lines)
        self._log("ERROR", f"=== {title or 'Tail of ' + path} ===")
        for line in tail:
            self._log("LOG", line.rstrip("\n"), timestamp=False)
        return True

    def exception(self, exc_type, exc_value, exc_traceback):
        self.error(f"An unhandled exception occurred: {exc_value}")
        for chunk in traceback.format_exception(exc_type, exc_value, exc_traceback):
            for line in chunk.splitlines():
                if line.strip():
                    self._log("TRACEBACK", line)


logger = Logger()


def get_latest_log_file():
    """Return the path to the newest session log, or None."""
    logs = [os.path.join(LOG_DIR, name) for name in os.listdir(LOG_DIR) if name.endswith(".log")]
    return max(logs, key=os.path.getctime) if logs else None
