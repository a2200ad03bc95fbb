"""Color output support for nupm CLI.

Color palette:
  - Red: errors
  - Orange: warnings
  - Green: installed / success
  - Blue: versions and sources
"""

import os
import sys

# ANSI color codes
_COLORS = {
    'reset': '\033[0m',
    'bold': '\033[1m',
    'red': '\033[91m',
    'orange': '\033[93m',   # No true orange in ANSI
    'green': '\033[92m',
    'blue': '\033[94m',
    'dim': '\033[2m',
}

_colors_enabled = True


def init(nocolor: bool = False, stream=None):
    """Initialize color support.

    Args:
        nocolor: If True, disable colors unconditionally
        stream: Stream whose tty-ness decides (default: stdout)
    """
    global _colors_enabled
    stream = stream or sys.stdout

    if nocolor or os.environ.get('NO_COLOR'):
        # https://no-color.org/
        _colors_enabled = False
    else:
        _colors_enabled = hasattr(stream, 'isatty') and stream.isatty()


def enabled() -> bool:
    return _colors_enabled


def _wrap(text: str, color: str) -> str:
    if not _colors_enabled:
        return text
    return f"{_COLORS.get(color, '')}{text}{_COLORS['reset']}"


def error(text: str) -> str:
    return _wrap(text, 'red')


def warning(text: str) -> str:
    return _wrap(text, 'orange')


def success(text: str) -> str:
    return _wrap(text, 'green')


def info(text: str) -> str:
    return _wrap(text, 'blue')


def dim(text: str) -> str:
    return _wrap(text, 'dim')


def bold(text: str) -> str:
    return _wrap(text, 'bold')


def package(pkg) -> str:
    """Format a package as 'id version'."""
    return f"{bold(pkg.id)} {info(str(pkg.version))}"
