# runner.py
from __future__ import annotations

import os
import subprocess
import sys
import time
from collections import deque
from typing import Dict, List, Optional, Tuple

from .errors import SpawnError
from .model import ExecutionResult, Step
from .ui.console import Console, get_console


TOOL_HINTS = {
    "cargo": "Install a Rust toolchain (rustup) or fix PATH.",
    "rustc": "Install a Rust toolchain (rustup) or fix PATH.",
    "git": "Install Git or fix PATH.",
    "ninja": "Install ninja or fix PATH.",
}


# ----------------------------------------------------------------------
# Process helpers
# ----------------------------------------------------------------------

def _wait(proc: subprocess.Popen) -> Optional[int]:
    """
    Reap a child and return its peak RSS in KiB (None where rusage is unavailable).

    os.wait4 gives per-child rusage, unlike getrusage(RUSAGE_CHILDREN) which
    accumulates the maximum over every child this process ever had.
    """
    if not hasattr(os, "wait4"):
        proc.wait()
        return None

    _pid, status, usage = os.wait4(proc.pid, 0)
    proc.returncode = os.waitstatus_to_exitcode(status)
    # ru_maxrss is bytes on macOS, KiB elsewhere
    if sys.platform == "darwin":
        return usage.ru_maxrss // 1024
    return usage.ru_maxrss


def _pipefail(codes: List[int]) -> Tuple[int, Optional[int]]:
    """
    Fold pipeline exit statuses the way `set -o pipefail` does:
    the rightmost failing member decides, 0 only if all succeeded.

    Returns (exit_code, signal).
    """
    for code in reversed(codes):
        if code < 0:
            return code, -code
        if code != 0:
            return code, None
    return 0, None


class CommandRunner:
    """Runs one Step as a child process (or pipeline of child processes)."""

    def __init__(
        self,
        env: Optional[Dict[str, str]] = None,
        console: Optional[Console] = None,
        tail_lines: int = 50,
    ):
        self.env = dict(env or {})
        self.console = console
        self.tail_lines = tail_lines

    def _console(self) -> Console:
        return self.console or get_console()

    def _environ(self, step: Step) -> Dict[str, str]:
        env = os.environ.copy()
        env.update(self.env)
        env.update(step.env)
        return env

    def _spawn(self, argv, step: Step, **kwargs) -> subprocess.Popen:
        try:
            return subprocess.Popen(list(argv), **kwargs)
        except FileNotFoundError as e:
            tool = argv[0]
            raise SpawnError(
                message=f"executable not found: {tool}",
                step=step.name,
                details={"cmd": step.display(), "hint": TOOL_HINTS.get(tool, f"Install {tool} or fix PATH.")},
                exit_code=127,
            ) from e
        except PermissionError as e:
            raise SpawnError(
                message=f"executable not runnable: {argv[0]}",
                step=step.name,
                details={"cmd": step.display()},
                exit_code=126,
            ) from e

    def run(self, step: Step) -> ExecutionResult:
        console = self._console()
        cwd = step.cwd if step.cwd is not None else os.getcwd()
        console.print_command(step.display())
        console.print_debug(f"cwd {cwd}")
        overrides = {**self.env, **step.env}
        if overrides:
            console.print_debug("env " + " ".join(f"{k}={v}" for k, v in sorted(overrides.items())))

        if not os.path.isdir(cwd):
            raise SpawnError(
                message=f"working directory not found: {cwd}",
                step=step.name,
                details={"cmd": step.display()},
                exit_code=127,
            )

        env = self._environ(step)
        commands = step.commands
        procs: List[subprocess.Popen] = []
        tail: deque = deque(maxlen=self.tail_lines)
        peaks: List[int] = []

        upstream = None
        started = time.monotonic()
        try:
            for i, argv in enumerate(commands):
                last = i == len(commands) - 1
                proc = self._spawn(
                    argv,
                    step,
                    cwd=str(cwd),
                    env=env,
                    stdin=upstream,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.STDOUT if last else None,
                    text=True,
                    errors="replace",
                )
                if upstream is not None:
                    # the child holds its own copy now
                    upstream.close()
                procs.append(proc)
                upstream = proc.stdout

            tail_proc = procs[-1]
            for line in tail_proc.stdout:
                console.print_output(line)
                tail.append(line.rstrip("\n"))
            tail_proc.stdout.close()
        finally:
            if upstream is not None and not upstream.closed:
                upstream.close()
            for proc in procs:
                if proc.returncode is None:
                    peak = _wait(proc)
                    if peak is not None:
                        peaks.append(peak)
        duration = time.monotonic() - started

        exit_code, signal = _pipefail([p.returncode for p in procs])
        peak_rss = max(peaks) if (step.measure and peaks) else None
        if step.measure:
            console.print_measurement(step.name, duration, peak_rss)

        return ExecutionResult(
            argv=tuple(step.argv),
            exit_code=exit_code,
            duration=duration,
            peak_rss_kb=peak_rss,
            output_tail=tuple(tail),
            signal=signal,
        )
