from __future__ import annotations

from pathlib import Path
from typing import Dict, List

import pytest

from stagerun.model import ExecutionResult, JobDescriptor, Step
from stagerun.settings import Settings
from stagerun.ui.console import Console, set_console


class FakeRunner:
    """
    Records every step it is asked to run and simulates the filesystem
    effects of the real tools (cargo, git, the manifest generator, ninja).
    """

    def __init__(self, settings: Settings, fail: Dict[str, int] | None = None, skip_effects=()):
        self.settings = settings
        self.fail = dict(fail or {})
        self.skip_effects = set(skip_effects)
        self.calls: List[Step] = []

    @property
    def names(self) -> List[str]:
        return [s.name for s in self.calls]

    def _effect(self, step: Step) -> int:
        s = self.settings
        argv = step.argv
        if step.name in self.skip_effects:
            return 0
        if argv == (s.cargo, "build"):
            _touch(s.built_artifact("debug"))
        elif argv == (s.cargo, "build", "--release"):
            _touch(s.built_artifact("release"))
        elif argv[:2] == (s.git, "clone"):
            dest = Path(step.cwd) / argv[-1]
            if dest.exists():
                # git refuses to clone into an existing directory
                return 128
            _touch(dest / "usr" / "src" / "Makefile")
        elif argv[0].endswith(f"target/release/{s.artifact}"):
            _touch(Path(step.cwd) / s.manifest, "rule cc\n")
        elif argv == (s.executor,):
            _touch(Path(step.cwd) / s.build_output / "obj" / "a.o")
        return 0

    def run(self, step: Step) -> ExecutionResult:
        self.calls.append(step)
        code = self.fail.get(step.name)
        if code is None:
            code = self._effect(step)
        return ExecutionResult(
            argv=step.argv,
            exit_code=code,
            duration=0.01,
            peak_rss_kb=1024 if step.measure else None,
            output_tail=("boom",) if code else (),
        )


def _touch(path: Path, text: str = "x") -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)


@pytest.fixture(autouse=True)
def console():
    c = Console(debug=False)
    set_console(c)
    return c


@pytest.fixture
def settings(tmp_path) -> Settings:
    ws = tmp_path / "ws"
    ws.mkdir()
    return Settings(
        workspace=ws,
        output_root=tmp_path / "work",
        scratch_root=tmp_path / "scratch",
    )


@pytest.fixture
def job() -> JobDescriptor:
    return JobDescriptor(
        name="build-and-test",
        variety="basic",
        target_platform="helios",
        toolchain_version="stable",
        output_rules=("debug/*", "release/*", "bld", "build.ninja"),
    )


@pytest.fixture
def fake_runner_factory(settings):
    def make(**kwargs) -> FakeRunner:
        return FakeRunner(settings, **kwargs)
    return make
