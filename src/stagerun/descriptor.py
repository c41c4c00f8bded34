# descriptor.py
#
# Job descriptors live either in a TOML file or as a block of `#:` comments
# at the top of a job script:
#
#   #!/bin/bash
#   #:
#   #: name = "build-and-test"
#   #: variety = "basic"
#   #: target = "helios"
#   #: rust_toolchain = "stable"
#   #: output_rules = [
#   #:   "/work/debug/*",
#   #: ]
#
from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Any, Dict, List

from .artifacts import check_rule
from .errors import ArtifactRuleError, DescriptorError
from .model import JobDescriptor

HEADER_PREFIX = "#:"

# accepted key -> JobDescriptor field
KEY_ALIASES = {
    "name": "name",
    "variety": "variety",
    "target": "target_platform",
    "target_platform": "target_platform",
    "rust_toolchain": "toolchain_version",
    "toolchain": "toolchain_version",
    "toolchain_version": "toolchain_version",
    "output_rules": "output_rules",
}

REQUIRED = ("name", "target_platform", "toolchain_version", "output_rules")


def extract_header(text: str) -> str:
    """
    Pull the `#:` block out of a script and return it as plain TOML.

    Only the leading comment block counts; the first line that is not a
    comment (or a blank line) ends the header.
    """
    out: List[str] = []
    for raw in text.splitlines():
        line = raw.strip()
        if not line:
            continue
        if not line.startswith("#"):
            break
        if line.startswith(HEADER_PREFIX):
            body = line[len(HEADER_PREFIX):]
            out.append(body[1:] if body.startswith(" ") else body)
    return "\n".join(out)


def _require_str(data: Dict[str, Any], field: str) -> str:
    value = data.get(field)
    if not isinstance(value, str) or not value.strip():
        raise DescriptorError(
            message=f"descriptor field '{field}' must be a non-empty string",
            details={"got": repr(value)},
        )
    return value


def descriptor_from_dict(raw: Dict[str, Any]) -> JobDescriptor:
    data: Dict[str, Any] = {}
    unknown = []
    for key, value in raw.items():
        field = KEY_ALIASES.get(key)
        if field is None:
            unknown.append(key)
            continue
        if field in data:
            raise DescriptorError(
                message=f"descriptor field '{field}' given more than once",
                details={"key": key},
            )
        data[field] = value

    if unknown:
        raise DescriptorError(
            message="unknown descriptor keys",
            details={"keys": ", ".join(sorted(unknown)), "known": ", ".join(sorted(KEY_ALIASES))},
        )

    missing = [f for f in REQUIRED if f not in data]
    if missing:
        raise DescriptorError(
            message="descriptor is missing required fields",
            details={"missing": ", ".join(missing)},
        )

    rules = data["output_rules"]
    if not isinstance(rules, list) or not rules:
        raise DescriptorError(message="output_rules must be a non-empty list of glob patterns")
    for rule in rules:
        if not isinstance(rule, str) or not rule.strip():
            raise DescriptorError(
                message="output_rules entries must be non-empty strings",
                details={"got": repr(rule)},
            )
        try:
            check_rule(rule)
        except ArtifactRuleError as e:
            raise DescriptorError(message=e.message, details=e.details) from e

    return JobDescriptor(
        name=_require_str(data, "name"),
        variety=_require_str(data, "variety") if "variety" in data else "basic",
        target_platform=_require_str(data, "target_platform"),
        toolchain_version=_require_str(data, "toolchain_version"),
        output_rules=tuple(r.strip() for r in rules),
    )


def parse_descriptor(text: str, *, header: bool = True) -> JobDescriptor:
    """
    Parse a descriptor.

    Args:
        text: File contents
        header: If True, read the `#:` comment block; otherwise treat the
                whole text as TOML

    Raises:
        DescriptorError: on malformed TOML or invalid fields
    """
    source = extract_header(text) if header else text
    if header and not source.strip():
        raise DescriptorError(message="no '#:' descriptor block found")
    try:
        raw = tomllib.loads(source)
    except tomllib.TOMLDecodeError as e:
        raise DescriptorError(message="descriptor is not valid TOML", details={"error": str(e)}) from e
    return descriptor_from_dict(raw)


def load_descriptor(path: str | Path) -> JobDescriptor:
    """Load a descriptor from a `.toml` file or a job script carrying a `#:` block."""
    p = Path(path).expanduser()
    if not p.is_file():
        raise DescriptorError(message=f"job file not found: {p}")
    text = p.read_text(encoding="utf-8")
    return parse_descriptor(text, header=p.suffix != ".toml")
