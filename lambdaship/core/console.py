"""User-facing terminal output for the lambdaship commands."""

import os
import sys


# ANSI Escape Codes for Colors
class Color:
    BLUE = "\033[94m"
    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    RED = "\033[91m"
    CYAN = "\033[96m"
    BOLD = "\033[1m"
    END = "\033[0m"


def _paint(color: str, text: str, stream) -> str:
    # Plain text when piped (CI logs) or when NO_COLOR is set.
    if os.environ.get("NO_COLOR") or not stream.isatty():
        return text
    return f"{color}{text}{Color.END}"


def _say(color: str, text: str, stream=None) -> None:
    stream = stream or sys.stdout
    print(_paint(color, text, stream), file=stream)


def step(msg: str):
    _say(Color.BLUE + Color.BOLD, f"➜ {msg}")


def info(msg: str):
    _say(Color.CYAN, f"ℹ {msg}")


def success(msg: str):
    _say(Color.GREEN, f"✅ {msg}")


def warning(msg: str):
    _say(Color.YELLOW, f"⚠️ {msg}")


def error(msg: str):
    _say(Color.RED, f"❌ {msg}", sys.stderr)


def field(label: str, value) -> None:
    """One aligned `label: value` line of a deploy summary."""
    shown = "N/A" if value in (None, "") else value
    print(f"  {label + ':':<15}{shown}")
