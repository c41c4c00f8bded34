# driver.py
from __future__ import annotations

import shutil
from pathlib import Path
from typing import Dict, List, Optional

from .artifacts import ArtifactCollector, copy_entry
from .errors import (
    CIError,
    FetchError,
    ManifestGenerationError,
    PackagingError,
    StageFailure,
    clamp_exit_code,
)
from .model import Action, JobDescriptor, Stage, Step
from .runner import CommandRunner
from .settings import Settings
from .stages import Runner, StageExecutor
from .ui.console import Console, get_console


# ----------------------------------------------------------------------
# In-process actions
# ----------------------------------------------------------------------

def package_artifact(src: Path, out_dir: Path) -> None:
    """Copy one built artifact into a per-profile output directory."""
    out_dir.mkdir(parents=True, exist_ok=True)
    if not src.is_file():
        raise PackagingError(
            message=f"build reported success but {src} does not exist",
            details={"expected": str(src)},
        )
    copy_entry(src, out_dir / src.name)


def remove_tree(path: Path) -> None:
    """rm -rf: a stale tree from an earlier run must not survive."""
    if path.is_symlink() or path.is_file():
        path.unlink()
    elif path.exists():
        shutil.rmtree(path)
    path.parent.mkdir(parents=True, exist_ok=True)


def export_manifest(tree: Path, manifest: str, output_root: Path) -> None:
    src = tree / manifest
    if not src.is_file():
        raise ManifestGenerationError(
            message=f"no manifest produced at {src}",
            details={"expected": str(src)},
        )
    copy_entry(src, output_root / manifest)


def export_build_output(tree: Path, build_output: str, output_root: Path) -> None:
    src = tree / build_output
    if not src.is_dir():
        raise PackagingError(
            message=f"build output directory missing: {src}",
            details={"expected": str(src)},
        )
    copy_entry(src, output_root / build_output)


# ----------------------------------------------------------------------
# Plan
# ----------------------------------------------------------------------

def build_plan(job: JobDescriptor, settings: Settings) -> List[Stage]:
    """
    The fixed stage sequence: probe, build, package, check, test.

    Every step carries its own working directory; the fetched tree is passed
    along explicitly instead of changing the process cwd.
    """
    s = settings
    ws = s.workspace
    tree = s.fetch_path
    release = s.built_artifact("release").resolve()

    probe = Stage("probe", (
        Step("cargo version", (s.cargo, "--version"), cwd=ws),
        Step("rustc version", (s.rustc, "--version"), cwd=ws),
    ))

    build = Stage("build", (
        Step("cargo check", (s.cargo, "check"), cwd=ws),
        Step("debug build", (s.cargo, "build"), cwd=ws),
        Step("release build", (s.cargo, "build", "--release"), cwd=ws),
    ))

    package = Stage("package", tuple(
        Action(
            f"package {profile}",
            lambda profile=profile: package_artifact(
                s.built_artifact(profile), s.output_root / profile
            ),
        )
        for profile in s.profiles
    ))

    check = Stage("check", (
        Step("format check", (s.cargo, "fmt", "--", "--check"), cwd=ws),
        Step("clippy", (s.cargo, "clippy", "--", "--deny", "warnings"), cwd=ws),
    ))

    test = Stage("test", (
        Action("remove stale tree", lambda: remove_tree(tree)),
        Step(
            "fetch",
            (s.git, "clone", "-b", s.fetch_branch, s.fetch_url, s.fetch_dir),
            cwd=s.scratch_root,
            failure=FetchError,
        ),
        Step(f"generate {s.manifest}", (str(release),), cwd=tree, measure=True),
        Action(
            f"export {s.manifest}",
            lambda: export_manifest(tree, s.manifest, s.output_root),
        ),
        Step(f"run {s.executor}", (s.executor,), cwd=tree, measure=True),
        Action(
            f"export {s.build_output}",
            lambda: export_build_output(tree, s.build_output, s.output_root),
        ),
    ))

    return [probe, build, package, check, test]


# ----------------------------------------------------------------------
# Driver
# ----------------------------------------------------------------------

class JobDriver:
    """Runs a job's plan end to end and turns the outcome into an exit code."""

    def __init__(
        self,
        settings: Settings,
        runner: Optional[Runner] = None,
        console: Optional[Console] = None,
        collector: Optional[ArtifactCollector] = None,
    ):
        self.settings = settings
        self.console = console
        self.runner = runner
        self.collector = collector or ArtifactCollector(console=console)

    def _console(self) -> Console:
        return self.console or get_console()

    def _runner_for(self, job: JobDescriptor) -> Runner:
        if self.runner is not None:
            return self.runner
        env: Dict[str, str] = dict(self.settings.env)
        env[self.settings.toolchain_env] = job.toolchain_version
        return CommandRunner(env=env, console=self.console)

    def run(self, job: JobDescriptor) -> int:
        console = self._console()
        stages = build_plan(job, self.settings)
        console.print_run_started(
            job=job.name,
            variety=job.variety,
            target=job.target_platform,
            toolchain=job.toolchain_version,
            stage_count=len(stages),
        )

        executor = StageExecutor(self._runner_for(job), console=console)
        results: Dict[str, str] = {}
        failure: Optional[StageFailure] = None

        for stage in stages:
            if failure is not None:
                results[stage.name] = "not run"
                continue
            failure = executor.run_stage(stage)
            results[stage.name] = "failed" if failure is not None else "ok"

        console.print_results(results)

        if failure is not None:
            console.print_failure(failure.stage, str(failure), exit_code=failure.exit_code, is_stage=True)
            return clamp_exit_code(failure.exit_code)

        self._collect(job)
        return 0

    def _collect(self, job: JobDescriptor) -> None:
        """Output rules describe what to keep; they never fail a passing job."""
        s = self.settings
        try:
            if s.artifacts_dir is None:
                # report what the rules select, leave copying to the harness
                artifacts = self.collector.resolve(job.output_rules, s.output_root, s.output_root)
                self._console().print_artifacts(artifacts, copied=False)
            else:
                self.collector.collect(job.output_rules, s.output_root, s.artifacts_dir)
        except CIError as e:
            self._console().print_warning(f"artifact collection incomplete\n{e}")
