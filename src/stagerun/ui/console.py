"""Console output formatting utilities for stagerun."""

from __future__ import annotations

import sys
from typing import Iterable, Optional


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
        """
        self.debug = debug

    def print_header(self, title: str) -> None:
        """Print a section header."""
        print(f"\n{title}")
        print("-" * len(title))

    def print_run_started(
        self,
        job: str,
        variety: str,
        target: str,
        toolchain: str,
        stage_count: int,
    ) -> None:
        """Print run start information."""
        print("\nRUN STARTED")
        print(f"Job: {job} ({variety})")
        print(f"Target: {target}")
        print(f"Toolchain: {toolchain}")
        print(f"Stages: {stage_count}")
        print()

    def print_banner(self, stage: str) -> None:
        """Print the stage entry marker."""
        line = "=" * 60
        print(f"\n{line}")
        print(f"=== {stage.upper()}")
        print(line, flush=True)

    def print_step(self, stage: str, name: str) -> None:
        """Print step start message."""
        print(f"[{stage}] ▶ {name}", flush=True)

    def print_command(self, cmd: str) -> None:
        """Trace a command before it runs."""
        print(f"+ {cmd}", flush=True)

    def print_output(self, line: str) -> None:
        """Echo one line of child output as it arrives."""
        sys.stdout.write(line if line.endswith("\n") else line + "\n")
        sys.stdout.flush()

    def print_measurement(
        self,
        name: str,
        duration: float,
        peak_rss_kb: Optional[int] = None,
    ) -> None:
        """Print wall time and peak memory of a measured step."""
        print(f"\nreal     {duration:.3f}s")
        if peak_rss_kb is not None:
            print(f"peak rss {peak_rss_kb} KiB ({peak_rss_kb / 1024:.1f} MiB)")
        print(f"         ({name})")

    def print_success(self, name: str) -> None:
        """Print success message."""
        print(f"STATUS: {name} success")

    def print_failure(
        self,
        name: str,
        reason: str,
        exit_code: Optional[int] = None,
        output: Iterable[str] = (),
        is_stage: bool = False,
    ) -> None:
        """
        Print failure message.

        Args:
            name: Stage or step name
            reason: Failure reason/error message
            exit_code: Optional exit code
            output: Captured output tail of the failing command
            is_stage: If True, print "STAGE FAILED", otherwise "STEP FAILED"
        """
        prefix = "STAGE FAILED" if is_stage else "STEP FAILED"
        print(f"{prefix}: {name}", file=sys.stderr)
        if exit_code is not None:
            print(f"Exit code: {exit_code}", file=sys.stderr)
        print(f"Error: {reason.splitlines()[0] if reason else 'Unknown error'}", file=sys.stderr)
        tail = list(output)
        if tail:
            print("Output (last lines):", file=sys.stderr)
            for line in tail:
                print(f"  | {line}", file=sys.stderr)
        if self.debug:
            print(f"Error details: {reason}", file=sys.stderr)

    def print_artifacts(self, pairs: Iterable[tuple], copied: bool) -> None:
        """Print the resolved artifact set."""
        pairs = list(pairs)
        verb = "copied" if copied else "matched"
        print(f"\nARTIFACTS ({len(pairs)} {verb})")
        for src, dst in pairs:
            print(f"  {src} -> {dst}")

    def print_rule_empty(self, rule: str) -> None:
        print(f"  (rule {rule!r} matched nothing)")

    def print_rule_skipped(self, rule: str, path, reason: str) -> None:
        print(f"  (rule {rule!r}: skipping {path}, {reason})")

    def print_warning(self, message: str) -> None:
        """Print a non-fatal problem."""
        print(f"WARNING: {message}", file=sys.stderr)

    def print_results(self, results: dict[str, str]) -> None:
        """Print final results summary."""
        print("\n" + "=" * 40)
        print("RESULTS")
        print("=" * 40)
        for stage, status in results.items():
            status_display = status.upper() if status != "ok" else "SUCCESS"
            print(f"  {stage}: {status_display}")

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        print(f"\nERROR: {title}", file=sys.stderr)
        print(f"{message}", file=sys.stderr)
        if details:
            for detail in details:
                print(f"  {detail}", file=sys.stderr)
        if suggestion:
            print(f"\n{suggestion}", file=sys.stderr)

    def print_exception(self, exc: Exception) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            traceback.print_exc()
        else:
            print(f"Error: {exc}", file=sys.stderr)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        print(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            print(f"[DEBUG] {message}", file=sys.stderr)


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
