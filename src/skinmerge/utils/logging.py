"""Colored console diagnostics and step timing for skinmerge passes."""

import sys
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass


class Colors:
    """ANSI escape codes for terminal colors."""

    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"

    CYAN = "\033[36m"
    MAGENTA = "\033[35m"

    BRIGHT_RED = "\033[91m"
    BRIGHT_GREEN = "\033[92m"
    BRIGHT_YELLOW = "\033[93m"
    BRIGHT_CYAN = "\033[96m"


def _supports_color() -> bool:
    """Check if stdout is an interactive terminal."""
    isatty = getattr(sys.stdout, "isatty", None)
    return bool(isatty and isatty())


_USE_COLOR = _supports_color()
_VERBOSE = True


@contextmanager
def verbosity(verbose: bool) -> Iterator[None]:
    """Show or hide DEBUG output inside the block; the previous setting returns on exit."""
    global _VERBOSE
    previous = _VERBOSE
    _VERBOSE = verbose
    try:
        yield
    finally:
        _VERBOSE = previous


def _c(color: str, text: str) -> str:
    if not _USE_COLOR:
        return text
    return f"{color}{text}{Colors.RESET}"


def bold(text: str) -> str:
    return _c(Colors.BOLD, text)


def dim(text: str) -> str:
    return _c(Colors.DIM, text)


def cyan(text: str) -> str:
    return _c(Colors.CYAN, text)


def magenta(text: str) -> str:
    return _c(Colors.MAGENTA, text)


def bright_red(text: str) -> str:
    return _c(Colors.BRIGHT_RED, text)


def bright_green(text: str) -> str:
    return _c(Colors.BRIGHT_GREEN, text)


def bright_yellow(text: str) -> str:
    return _c(Colors.BRIGHT_YELLOW, text)


def bright_cyan(text: str) -> str:
    return _c(Colors.BRIGHT_CYAN, text)


def log_info(msg: str) -> None:
    """Print info message."""
    print(f"  {cyan('INFO')}  {msg}")


def log_ok(msg: str) -> None:
    """Print success message."""
    print(f"    {bright_green('OK')}  {msg}")


def log_warn(msg: str) -> None:
    """Print warning message."""
    print(f"  {bright_yellow('WARN')}  {msg}")


def log_error(msg: str) -> None:
    """Print error message."""
    print(f" {bright_red('ERROR')}  {msg}")


def log_debug(msg: str) -> None:
    """Print debug message (dimmed), unless running quiet."""
    if _VERBOSE:
        print(f" {dim('DEBUG')}  {dim(msg)}")


def log_would(msg: str) -> None:
    """Report a mutation a dry run skipped."""
    print(f" {magenta('WOULD')}  {msg}")


def log_step(current: int, total: int, msg: str) -> None:
    """Print step progress message."""
    print(f"\n{cyan(f'[{current}/{total}]')} {msg}")


def log_detail(msg: str, indent: int = 6) -> None:
    """Print indented detail message."""
    print(f"{' ' * indent}{msg}")


def print_header(title: str, char: str = "=", width: int = 60) -> None:
    """Print a header with decorative borders."""
    border = char * width
    print(f"\n{cyan(border)}")
    print(f"  {bold(title)}")
    print(f"{cyan(border)}")


def format_duration(seconds: float) -> str:
    """Format seconds into human-readable duration."""
    if seconds < 0.001:
        return f"{seconds * 1000000:.0f}μs"
    if seconds < 1:
        return f"{seconds * 1000:.1f}ms"
    if seconds < 60:
        return f"{seconds:.2f}s"
    mins = int(seconds // 60)
    return f"{mins}m {seconds % 60:.1f}s"


def format_count(count: int, singular: str, plural: str | None = None) -> str:
    """Format count with proper singular/plural form."""
    if plural is None:
        plural = singular + "s"
    word = singular if count == 1 else plural
    return f"{count:,} {word}"


def format_delta(before: int, after: int, unit: str = "") -> str:
    """Format a before/after change with color."""
    diff = after - before
    if diff == 0:
        return dim("no change")
    if diff < 0:
        return bright_green(f"-{abs(diff):,}{unit}")
    return bright_red(f"+{diff:,}{unit}")


@dataclass
class TimingResult:
    """Result from a timed operation."""

    elapsed: float
    message: str


@contextmanager
def timed(description: str, print_on_exit: bool = True) -> Iterator[TimingResult]:
    """Time the wrapped block, optionally printing the duration on exit.

    Usage:
        with timed("Merging group", print_on_exit=False) as t:
            merge()
        log_detail(format_duration(t.elapsed))
    """
    result = TimingResult(elapsed=0.0, message=description)
    start = time.perf_counter()
    try:
        yield result
    finally:
        result.elapsed = time.perf_counter() - start
        if print_on_exit:
            print(f"  {dim('TIME')}  {description}: {bright_cyan(format_duration(result.elapsed))}")


class StepTimer:
    """Track timing for the stages of a pass."""

    def __init__(self, total_steps: int) -> None:
        self.total = total_steps
        self.current = 0
        self.timings: list[tuple[str, float]] = []
        self._step_start = 0.0
        self._total_start = time.perf_counter()

    def _close_step(self, now: float) -> None:
        if self.timings and self._step_start > 0:
            name = self.timings[-1][0]
            self.timings[-1] = (name, now - self._step_start)

    def step(self, message: str) -> None:
        """Start a new step, recording timing for the previous one."""
        now = time.perf_counter()
        self._close_step(now)
        self.current += 1
        self._step_start = now
        self.timings.append((message, 0.0))
        log_step(self.current, self.total, message)

    def finish(self) -> None:
        """Record the final step."""
        self._close_step(time.perf_counter())

    def total_elapsed(self) -> float:
        return time.perf_counter() - self._total_start

    def print_summary(self) -> None:
        """Print timing summary for all steps."""
        print(f"\n{dim('-' * 50)}")
        print("  Timing Summary")
        print(f"{dim('-' * 50)}")
        for name, elapsed in self.timings:
            padding = 40 - len(name)
            print(f"  {name}{' ' * max(1, padding)}{bright_cyan(format_duration(elapsed))}")
        print(f"{dim('-' * 50)}")
        total = format_duration(self.total_elapsed())
        print(f"  {bold('Total')}{' ' * 33}{bright_green(total)}")
