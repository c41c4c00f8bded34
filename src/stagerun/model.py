# model.py
from __future__ import annotations

import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterator, Optional, Tuple, Type, Union

from .errors import AbnormalTermination, CIError, CommandFailure


@dataclass(frozen=True)
class JobDescriptor:
    """The job's metadata: who it is, where it runs, what it leaves behind."""
    name: str
    target_platform: str
    toolchain_version: str
    output_rules: Tuple[str, ...]
    variety: str = "basic"


@dataclass(frozen=True)
class Step:
    """A single external command inside a stage."""
    name: str
    argv: Tuple[str, ...]
    cwd: Path | None = None
    measure: bool = False
    env: Dict[str, str] = field(default_factory=dict)

    # further commands fed by this one's stdout (argv | p1 | p2 ...)
    pipeline: Tuple[Tuple[str, ...], ...] = ()

    # raised when the command exits non-zero
    failure: Type[CommandFailure] = CommandFailure

    def __post_init__(self) -> None:
        if not self.argv:
            raise ValueError(f"step {self.name!r} has an empty argument vector")
        for extra in self.pipeline:
            if not extra:
                raise ValueError(f"step {self.name!r} has an empty pipeline member")

    @property
    def commands(self) -> Tuple[Tuple[str, ...], ...]:
        return (tuple(self.argv),) + tuple(tuple(p) for p in self.pipeline)

    def display(self) -> str:
        return " | ".join(shlex.join(c) for c in self.commands)


@dataclass(frozen=True)
class Action:
    """An in-process step (filesystem work between commands)."""
    name: str
    fn: Callable[[], None]

    def display(self) -> str:
        return f"<{self.name}>"


PlanStep = Union[Step, Action]


@dataclass(frozen=True)
class Stage:
    name: str
    steps: Tuple[PlanStep, ...]


@dataclass(frozen=True)
class ExecutionResult:
    argv: Tuple[str, ...]
    exit_code: int
    duration: float
    peak_rss_kb: Optional[int] = None
    output_tail: Tuple[str, ...] = ()
    signal: Optional[int] = None

    @property
    def abnormal(self) -> bool:
        return self.signal is not None

    @property
    def ok(self) -> bool:
        return self.exit_code == 0 and not self.abnormal

    def error(
        self,
        failure: Type[CommandFailure] = CommandFailure,
        step: str | None = None,
    ) -> Optional[CIError]:
        """Return the error this result stands for, or None if it succeeded."""
        if self.ok:
            return None
        details = {"cmd": shlex.join(self.argv)}
        if self.output_tail:
            details["output"] = "\n" + "\n".join(self.output_tail)
        if self.abnormal:
            return AbnormalTermination(
                message=f"command killed by signal {self.signal}",
                step=step,
                details=details,
                exit_code=128 + int(self.signal or 0),
            )
        return failure(
            message=f"command exited with status {self.exit_code}",
            step=step,
            details=details,
            exit_code=self.exit_code,
        )


@dataclass(frozen=True)
class ArtifactSet:
    """Resolved (source -> destination) pairs, in rule order."""
    pairs: Tuple[Tuple[Path, Path], ...] = ()

    def __iter__(self) -> Iterator[Tuple[Path, Path]]:
        return iter(self.pairs)

    def __len__(self) -> int:
        return len(self.pairs)

    @property
    def sources(self) -> Tuple[Path, ...]:
        return tuple(src for src, _ in self.pairs)

    @property
    def destinations(self) -> Tuple[Path, ...]:
        return tuple(dst for _, dst in self.pairs)
