# cli.py
from __future__ import annotations

import sys
from dataclasses import replace
from pathlib import Path

import click

from stagerun.artifacts import ArtifactCollector
from stagerun.descriptor import load_descriptor
from stagerun.driver import JobDriver, build_plan
from stagerun.errors import CIError, clamp_exit_code
from stagerun.model import Action
from stagerun.settings import Settings
from stagerun.ui.console import Console, set_console, get_console


JOB_DIRS = (Path("."), Path(".github/buildomat/jobs"))


def find_job_files() -> list[Path]:
    """
    Find candidate job files.

    Looks for *.job.toml / *.job.sh in the current directory, then for
    job scripts under .github/buildomat/jobs/.
    """
    found: list[Path] = []
    for path in sorted(JOB_DIRS[0].glob("*.job.toml")) + sorted(JOB_DIRS[0].glob("*.job.sh")):
        found.append(path)
    if not found and JOB_DIRS[1].is_dir():
        found.extend(sorted(JOB_DIRS[1].glob("*.sh")))
    return found


def discover_job(job_arg: str | None) -> Path:
    """
    Discover the job file from argument or default.

    Raises:
        SystemExit: If no job file, or more than one, can be found
    """
    console = get_console()

    if job_arg:
        job_path = Path(job_arg)
        if not job_path.exists():
            console.print_error(
                "Job file not found",
                f"Could not find job file: {job_arg}",
                suggestion="Specify an existing job file:\n  stagerun run --job build-and-test.job.sh",
            )
            sys.exit(1)
        return job_path

    job_files = find_job_files()

    if len(job_files) == 0:
        console.print_error(
            "No job file found",
            "Could not find any job files.",
            details=[
                "Looked for:",
                "  *.job.toml",
                "  *.job.sh",
                "  .github/buildomat/jobs/*.sh",
            ],
            suggestion="Specify a job explicitly:\n  stagerun run --job path/to/job.sh",
        )
        sys.exit(1)

    if len(job_files) > 1:
        file_list = "\n".join(f"  {f}" for f in job_files)
        console.print_error(
            "Multiple job files found",
            "Found multiple job files. Please specify which one to use:",
            details=[file_list],
            suggestion=f"Specify a job explicitly:\n  stagerun run --job {job_files[0]}",
        )
        sys.exit(1)

    return job_files[0]


def _settings(workspace, output_root, scratch_root, artifacts_dir) -> Settings:
    settings = Settings.from_env()
    overrides = {}
    if workspace:
        overrides["workspace"] = Path(workspace)
    if output_root:
        overrides["output_root"] = Path(output_root)
    if scratch_root:
        overrides["scratch_root"] = Path(scratch_root)
    if artifacts_dir:
        overrides["artifacts_dir"] = Path(artifacts_dir)
    return replace(settings, **overrides)


def _fail(exc: Exception) -> None:
    console = get_console()
    console.print_exception(exc)
    code = clamp_exit_code(exc.exit_code) if isinstance(exc, CIError) else 1
    sys.exit(code)


def location_options(fn):
    fn = click.option("--artifacts-dir", default=None, help="Copy matched output rules here after success")(fn)
    fn = click.option("--scratch-root", default=None, help="Where the external tree is fetched (default /tmp)")(fn)
    fn = click.option("--output-root", default=None, help="Output root for packaged artifacts (default /work)")(fn)
    fn = click.option("--workspace", default=None, help="Project checkout to build (default .)")(fn)
    fn = click.option("--job", "job_file", default=None, help="Job file (TOML or script with a '#:' header)")(fn)
    return fn


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and detailed output)",
)
def cli(debug):
    """stagerun: a fail-fast, single-job CI pipeline runner."""
    console = Console(debug=debug)
    set_console(console)


@cli.command()
@location_options
def run(job_file, workspace, output_root, scratch_root, artifacts_dir):
    """Run the job's stages and collect its artifacts."""
    console = get_console()
    job_path = discover_job(job_file)

    try:
        job = load_descriptor(job_path)
        settings = _settings(workspace, output_root, scratch_root, artifacts_dir)
        code = JobDriver(settings, console=console).run(job)
    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(130)
    except Exception as e:
        _fail(e)

    sys.exit(code)


@cli.command()
@location_options
def plan(job_file, workspace, output_root, scratch_root, artifacts_dir):
    """Print the stages and steps a run would execute."""
    console = get_console()
    job_path = discover_job(job_file)

    try:
        job = load_descriptor(job_path)
        settings = _settings(workspace, output_root, scratch_root, artifacts_dir)
        stages = build_plan(job, settings)
    except Exception as e:
        _fail(e)

    console.print_header(f"{job.name} ({job.target_platform}, toolchain {job.toolchain_version})")
    for stage in stages:
        console.print_info(f"{stage.name}:")
        for i, step in enumerate(stage.steps, start=1):
            if isinstance(step, Action):
                console.print_info(f"  {i}. {step.name}")
            else:
                flag = " [measured]" if step.measure else ""
                console.print_info(f"  {i}. {step.name}: {step.display()}  (in {step.cwd}){flag}")
    console.print_info("output rules:")
    for rule in job.output_rules:
        console.print_info(f"  {rule}")


@cli.command()
@click.option("--job", "job_file", default=None, help="Job file (TOML or script with a '#:' header)")
def describe(job_file):
    """Parse and print the job descriptor."""
    console = get_console()
    job_path = discover_job(job_file)
    try:
        job = load_descriptor(job_path)
    except Exception as e:
        _fail(e)

    console.print_info(f"name: {job.name}")
    console.print_info(f"variety: {job.variety}")
    console.print_info(f"target: {job.target_platform}")
    console.print_info(f"toolchain: {job.toolchain_version}")
    console.print_info("output_rules:")
    for rule in job.output_rules:
        console.print_info(f"  - {rule}")


@cli.command()
@click.option("--job", "job_file", default=None, help="Job file (TOML or script with a '#:' header)")
@click.option("--root", required=True, help="Tree the output rules are matched against")
@click.option("--dest", default=None, help="Copy matches here (omit for a dry listing)")
def artifacts(job_file, root, dest):
    """Match the job's output rules against a tree."""
    console = get_console()
    job_path = discover_job(job_file)
    collector = ArtifactCollector(console=console)
    try:
        job = load_descriptor(job_path)
        if dest is None:
            found = collector.resolve(job.output_rules, root, root)
            console.print_artifacts(found, copied=False)
        else:
            collector.collect(job.output_rules, root, dest)
    except Exception as e:
        _fail(e)


if __name__ == "__main__":
    cli()
