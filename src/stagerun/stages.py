# stages.py
from __future__ import annotations

from typing import Iterable, Optional, Protocol

from .errors import CIError, StageFailure
from .model import Action, ExecutionResult, Stage, Step
from .ui.console import Console, get_console


class Runner(Protocol):
    def run(self, step: Step) -> ExecutionResult: ...


class StageExecutor:
    """
    Runs the steps of a stage strictly in order.

    The first failing step ends the stage: run_stage() returns a StageFailure
    describing it and nothing after it is executed. Success returns None.
    Failures are values here; raising is left to the caller.
    """

    def __init__(self, runner: Runner, console: Optional[Console] = None):
        self.runner = runner
        self.console = console

    def _console(self) -> Console:
        return self.console or get_console()

    def _failure(
        self,
        stage: Stage,
        index: int,
        name: str,
        cause: CIError,
        result: Optional[ExecutionResult] = None,
    ) -> StageFailure:
        failure = StageFailure(
            message=str(cause).splitlines()[0],
            step=name,
            exit_code=cause.exit_code,
            stage=stage.name,
            index=index,
            result=result,
            cause=cause,
        )
        self._console().print_failure(
            name,
            str(cause),
            exit_code=result.exit_code if result is not None else cause.exit_code,
            output=result.output_tail if result is not None else (),
        )
        return failure

    def run_stage(self, stage: Stage) -> Optional[StageFailure]:
        console = self._console()
        console.print_banner(stage.name)

        for index, step in enumerate(stage.steps):
            console.print_step(stage.name, step.name)

            if isinstance(step, Action):
                try:
                    step.fn()
                except CIError as e:
                    if e.step is None:
                        e.step = step.name
                    return self._failure(stage, index, step.name, e)
                continue

            try:
                result = self.runner.run(step)
            except CIError as e:
                return self._failure(stage, index, step.name, e)

            error = result.error(step.failure, step=step.name)
            if error is not None:
                return self._failure(stage, index, step.name, error, result)

        console.print_success(stage.name)
        return None

    def run_stages(self, stages: Iterable[Stage]) -> Optional[StageFailure]:
        """Run stages in declaration order, stopping at the first failure."""
        for stage in stages:
            failure = self.run_stage(stage)
            if failure is not None:
                return failure
        return None
