from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional, Tuple

ENV_PREFIX = "STAGERUN_"


@dataclass(frozen=True)
class Settings:
    """Where the job runs, what it builds and where outputs go."""

    workspace: Path = Path(".")
    output_root: Path = Path("/work")
    scratch_root: Path = Path("/tmp")
    artifacts_dir: Optional[Path] = None

    # build
    artifact: str = "eos"
    profiles: Tuple[str, ...] = ("debug", "release")
    cargo: str = "cargo"
    rustc: str = "rustc"
    toolchain_env: str = "RUSTUP_TOOLCHAIN"

    # test
    git: str = "git"
    fetch_url: str = "https://github.com/oxidecomputer/illumos-gate"
    fetch_branch: str = "eos"
    fetch_dir: str = "illumos-gate"
    manifest: str = "build.ninja"
    executor: str = "ninja"
    build_output: str = "bld"

    env: Mapping[str, str] = field(default_factory=dict)

    @property
    def fetch_path(self) -> Path:
        return self.scratch_root / self.fetch_dir

    def built_artifact(self, profile: str) -> Path:
        return self.workspace / "target" / profile / self.artifact

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Read STAGERUN_* variables, falling back to the defaults above."""
        environ = os.environ if environ is None else environ
        default = cls()

        def get(name: str, fallback: str) -> str:
            return environ.get(ENV_PREFIX + name, fallback)

        artifacts = environ.get(ENV_PREFIX + "ARTIFACTS_DIR")
        return cls(
            workspace=Path(get("WORKSPACE", str(default.workspace))),
            output_root=Path(get("OUTPUT_ROOT", str(default.output_root))),
            scratch_root=Path(get("SCRATCH_ROOT", str(default.scratch_root))),
            artifacts_dir=Path(artifacts) if artifacts else None,
            artifact=get("ARTIFACT", default.artifact),
            cargo=get("CARGO", default.cargo),
            rustc=get("RUSTC", default.rustc),
            toolchain_env=get("TOOLCHAIN_ENV", default.toolchain_env),
            git=get("GIT", default.git),
            fetch_url=get("FETCH_URL", default.fetch_url),
            fetch_branch=get("FETCH_BRANCH", default.fetch_branch),
            fetch_dir=get("FETCH_DIR", default.fetch_dir),
            manifest=get("MANIFEST", default.manifest),
            executor=get("EXECUTOR", default.executor),
            build_output=get("BUILD_OUTPUT", default.build_output),
        )
