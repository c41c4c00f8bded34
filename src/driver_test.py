from __future__ import annotations

from dataclasses import replace

from stagerun.artifacts import ArtifactCollector
from stagerun.driver import JobDriver, build_plan, remove_tree
from stagerun.errors import ArtifactRuleError
from stagerun.model import Stage, Step
from stagerun.stages import StageExecutor


EXPECTED_ORDER = [
    "cargo version",
    "rustc version",
    "cargo check",
    "debug build",
    "release build",
    "format check",
    "clippy",
    "fetch",
    "generate build.ninja",
    "run ninja",
]


def test_plan_shape(job, settings):
    stages = build_plan(job, settings)
    assert [s.name for s in stages] == ["probe", "build", "package", "check", "test"]

    test = stages[-1]
    fetch = next(s for s in test.steps if s.name == "fetch")
    assert fetch.argv == ("git", "clone", "-b", "eos", settings.fetch_url, "illumos-gate")
    assert fetch.cwd == settings.scratch_root

    measured = [s for s in test.steps if isinstance(s, Step) and s.measure]
    assert [s.name for s in measured] == ["generate build.ninja", "run ninja"]
    # the fetched tree is passed explicitly to later steps
    assert all(s.cwd == settings.fetch_path for s in measured)
    assert measured[0].argv[0].endswith("target/release/eos")


def test_successful_run(job, settings, fake_runner_factory):
    runner = fake_runner_factory()
    code = JobDriver(settings, runner=runner).run(job)

    assert code == 0
    assert runner.names == EXPECTED_ORDER

    out = settings.output_root
    assert (out / "debug/eos").is_file()
    assert (out / "release/eos").is_file()
    assert (out / "build.ninja").read_text() == "rule cc\n"
    assert (out / "bld/obj/a.o").is_file()


def test_successful_run_collects_artifacts(job, settings, fake_runner_factory, tmp_path):
    settings = replace(settings, artifacts_dir=tmp_path / "artifacts")
    code = JobDriver(settings, runner=fake_runner_factory()).run(job)

    assert code == 0
    dest = tmp_path / "artifacts"
    assert (dest / "debug/eos").is_file()
    assert (dest / "release/eos").is_file()
    assert (dest / "build.ninja").is_file()
    assert (dest / "bld/obj/a.o").is_file()


def test_lint_failure_stops_before_test_stage(job, settings, fake_runner_factory):
    stale = settings.fetch_path / "stale-marker"
    stale.parent.mkdir(parents=True)
    stale.write_text("left over")

    runner = fake_runner_factory(fail={"clippy": 1})
    code = JobDriver(settings, runner=runner).run(job)

    assert code == 1
    assert runner.names == EXPECTED_ORDER[: EXPECTED_ORDER.index("clippy") + 1]
    # no scratch removal, no clone
    assert stale.read_text() == "left over"
    assert not (settings.fetch_path / "usr").exists()
    assert not (settings.output_root / "build.ninja").exists()


def test_exit_code_traces_to_failing_command(job, settings, fake_runner_factory):
    runner = fake_runner_factory(fail={"cargo check": 101})
    assert JobDriver(settings, runner=runner).run(job) == 101
    assert runner.names == EXPECTED_ORDER[:3]


def test_missing_release_binary_is_packaging_error(job, settings, fake_runner_factory, capsys):
    runner = fake_runner_factory(skip_effects={"release build"})
    code = JobDriver(settings, runner=runner).run(job)

    assert code != 0
    assert "format check" not in runner.names
    assert runner.names[-1] == "release build"
    err = capsys.readouterr().err
    assert "PackagingError" in err


def test_missing_manifest_is_manifest_error(job, settings, fake_runner_factory, capsys):
    runner = fake_runner_factory(skip_effects={"generate build.ninja"})
    code = JobDriver(settings, runner=runner).run(job)

    assert code != 0
    assert "run ninja" not in runner.names
    assert "ManifestGenerationError" in capsys.readouterr().err


def test_fetch_failure_is_fetch_error(job, settings, fake_runner_factory, capsys):
    runner = fake_runner_factory(fail={"fetch": 128})
    assert JobDriver(settings, runner=runner).run(job) == 128
    assert runner.names[-1] == "fetch"
    assert "FetchError" in capsys.readouterr().err


def test_toolchain_is_pinned_for_real_runner(job, settings):
    runner = JobDriver(settings)._runner_for(job)
    assert runner.env["RUSTUP_TOOLCHAIN"] == "stable"


def _snapshot(root):
    return sorted(
        (p.relative_to(root).as_posix(), p.read_text() if p.is_file() else None)
        for p in root.rglob("*")
    )


def test_fetch_is_idempotent_over_stale_tree(job, settings, fake_runner_factory):
    fetch_steps = [s for s in build_plan(job, settings)[-1].steps if s.name in ("remove stale tree", "fetch")]
    stage = Stage("fetch", tuple(fetch_steps))

    assert StageExecutor(fake_runner_factory()).run_stage(stage) is None
    once = _snapshot(settings.fetch_path)

    # second run finds the previous tree plus junk and must end identical
    (settings.fetch_path / "junk").write_text("stale")
    assert StageExecutor(fake_runner_factory()).run_stage(stage) is None
    assert _snapshot(settings.fetch_path) == once


def test_remove_tree_tolerates_missing_path(tmp_path):
    target = tmp_path / "scratch" / "tree"
    remove_tree(target)
    assert not target.exists()
    assert target.parent.is_dir()


def test_absolute_work_rules_with_another_output_root(job, settings, fake_runner_factory, tmp_path):
    job = replace(job, output_rules=("/work/debug/*", "/work/release/*", "/work/bld", "/work/build.ninja"))
    settings = replace(settings, artifacts_dir=tmp_path / "artifacts")

    assert JobDriver(settings, runner=fake_runner_factory()).run(job) == 0

    dest = tmp_path / "artifacts"
    assert (dest / "debug/eos").is_file()
    assert (dest / "release/eos").is_file()
    assert (dest / "build.ninja").is_file()
    assert (dest / "bld/obj/a.o").is_file()


class BrokenCollector(ArtifactCollector):
    def collect(self, rules, root, dest):
        raise ArtifactRuleError(message="cannot copy")

    def resolve(self, rules, root, dest):
        raise ArtifactRuleError(message="cannot match")


def test_collection_problems_do_not_fail_a_passing_job(job, settings, fake_runner_factory, tmp_path, capsys):
    for artifacts_dir in (None, tmp_path / "artifacts"):
        settings = replace(settings, artifacts_dir=artifacts_dir)
        driver = JobDriver(settings, runner=fake_runner_factory(), collector=BrokenCollector())
        assert driver.run(job) == 0
    assert "WARNING: artifact collection incomplete" in capsys.readouterr().err
