# artifacts.py
from __future__ import annotations

import shutil
from pathlib import Path, PurePosixPath
from typing import Iterable, List, Optional, Set, Tuple

from .errors import ArtifactRuleError, PackagingError
from .model import ArtifactSet
from .ui.console import Console, get_console


def check_rule(rule: str) -> str:
    """
    Validate an output rule's glob syntax and return it stripped.

    Rules select entries below a root: no `..` components, `**` only as a
    whole component, balanced `[...]` classes.
    """
    rule = rule.strip()
    parts = [c for c in PurePosixPath(rule).parts if c != "/"]
    if not parts:
        raise ArtifactRuleError(message=f"output rule {rule!r} selects the whole root")
    for comp in parts:
        if comp == "..":
            raise ArtifactRuleError(message=f"output rule {rule!r} escapes its root with '..'")
        if "**" in comp and comp != "**":
            raise ArtifactRuleError(
                message=f"output rule {rule!r} is not a valid glob",
                details={"component": comp, "reason": "'**' can only be an entire path component"},
            )
        if comp.count("[") != comp.count("]"):
            raise ArtifactRuleError(
                message=f"output rule {rule!r} is not a valid glob",
                details={"component": comp, "reason": "unbalanced '[...]'"},
            )
    return rule


def relative_rule(rule: str, root: Path) -> str:
    """
    Express a rule relative to root.

    Rules may be written against an absolute output root ("/work/debug/*").
    Under root they are taken relative to it; elsewhere the leading root
    directory is dropped, so "/work/debug/*" means "debug/*" for any root.
    """
    rule = check_rule(rule)
    p = PurePosixPath(rule)
    if not p.is_absolute():
        return rule
    for base in (root.resolve(), root):
        try:
            return p.relative_to(base.as_posix()).as_posix()
        except ValueError:
            continue
    parts = p.parts[1:]
    if len(parts) > 1:
        parts = parts[1:]
    return PurePosixPath(*parts).as_posix()


def copy_entry(src: Path, dst: Path) -> None:
    """Copy a file (with metadata) or a whole directory tree to dst."""
    try:
        dst.parent.mkdir(parents=True, exist_ok=True)
        if src.is_dir() and not src.is_symlink():
            shutil.copytree(src, dst, symlinks=True, dirs_exist_ok=True)
        else:
            shutil.copy2(src, dst, follow_symlinks=False)
    except OSError as e:
        raise PackagingError(
            message=f"failed to copy {src} -> {dst}",
            details={"error": str(e)},
        ) from e


class ArtifactCollector:
    """Matches output rules against a tree and copies what they select."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console

    def _console(self) -> Console:
        return self.console or get_console()

    def resolve(self, rules: Iterable[str], root: str | Path, dest: str | Path) -> ArtifactSet:
        """
        Apply rules against root without touching the filesystem.

        A rule that matches nothing is reported, not treated as an error.
        """
        root_p = Path(root)
        root_real = root_p.resolve()
        dest_p = Path(dest)
        seen: Set[Path] = set()
        pairs: List[Tuple[Path, Path]] = []

        for rule in rules:
            pattern = relative_rule(rule, root_p)
            if pattern in ("", "."):
                raise ArtifactRuleError(message=f"output rule {rule!r} selects the whole root")

            try:
                matches = sorted(root_p.glob(pattern))
            except ValueError as e:
                raise ArtifactRuleError(
                    message=f"output rule {rule!r} is not a valid glob",
                    details={"error": str(e)},
                ) from e
            if not matches:
                self._console().print_rule_empty(rule)
                continue

            for src in matches:
                if src in seen:
                    continue
                seen.add(src)
                if not src.resolve().is_relative_to(root_real):
                    # a symlink pointing out of the root
                    self._console().print_rule_skipped(rule, src, "resolves outside the root")
                    continue
                pairs.append((src, dest_p / src.relative_to(root_p)))

        return ArtifactSet(pairs=tuple(pairs))

    def collect(self, rules: Iterable[str], root: str | Path, dest: str | Path) -> ArtifactSet:
        """Resolve rules and copy every matched entry under dest."""
        artifacts = self.resolve(rules, root, dest)
        for src, dst in artifacts:
            copy_entry(src, dst)
        self._console().print_artifacts(artifacts, copied=True)
        return artifacts
