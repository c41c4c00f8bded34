# errors.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, ClassVar, Dict, Optional

if TYPE_CHECKING:
    from .model import ExecutionResult


# ----------------------------------------------------------------------
# Base error
# ----------------------------------------------------------------------

@dataclass
class CIError(Exception):
    """
    Structured CI error with enough context for:
      - clean CLI output
      - a process exit code traceable to the failing command
      - debugging without full tracebacks
    """
    message: str
    step: str | None = None
    details: Dict[str, Any] = field(default_factory=dict)
    exit_code: int = 1

    kind: ClassVar[str] = "CIError"

    def __str__(self) -> str:
        lines = [f"{self.kind}: {self.message}"]
        if self.step:
            lines.append(f"step={self.step}")
        for k, v in self.details.items():
            lines.append(f"{k}={v}")
        return "\n".join(lines)


class DescriptorError(CIError):
    kind = "DescriptorError"


class SpawnError(CIError):
    """The executable could not be started at all (missing, not runnable, bad cwd)."""
    kind = "SpawnError"


class CommandFailure(CIError):
    """A spawned command exited with a non-zero status."""
    kind = "CommandFailure"


class FetchError(CommandFailure):
    kind = "FetchError"


class AbnormalTermination(CIError):
    """A spawned command was killed by a signal."""
    kind = "AbnormalTermination"


class PackagingError(CIError):
    """An expected build output is missing after a successful build."""
    kind = "PackagingError"


class ManifestGenerationError(CIError):
    kind = "ManifestGenerationError"


class ArtifactRuleError(CIError):
    kind = "ArtifactRuleError"


# ----------------------------------------------------------------------
# Stage failure
# ----------------------------------------------------------------------

@dataclass
class StageFailure(CIError):
    stage: str = ""
    index: int = -1
    result: Optional["ExecutionResult"] = None
    cause: Optional[CIError] = None

    kind: ClassVar[str] = "StageFailure"

    def __str__(self) -> str:
        head = f"stage '{self.stage}' failed at step {self.index + 1} ({self.step})"
        if self.cause is None:
            return head
        return f"{head}\n{self.cause}"


def clamp_exit_code(code: int) -> int:
    """Map an error's exit code onto something a process can return (1..255)."""
    if 0 < code < 256:
        return code
    return 1
