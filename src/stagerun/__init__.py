from .model import Action, ArtifactSet, ExecutionResult, JobDescriptor, Stage, Step
from .descriptor import load_descriptor, parse_descriptor
from .runner import CommandRunner
from .stages import StageExecutor
from .artifacts import ArtifactCollector
from .driver import JobDriver, build_plan
from .settings import Settings

__all__ = [
    "Action", "ArtifactSet", "ExecutionResult", "JobDescriptor", "Stage", "Step",
    "load_descriptor", "parse_descriptor", "CommandRunner", "StageExecutor",
    "ArtifactCollector", "JobDriver", "build_plan", "Settings",
]
