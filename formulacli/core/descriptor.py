#!/usr/bin/env python3

"""
Formula files and the immutable descriptors they contain.

A formula is a YAML document describing the successive releases of one
command-line tool. Each entry under ``versions`` becomes a ``Descriptor``:
where to fetch the release, the SHA-256 it must hash to, how to turn it into
a binary, how to place it, and how to check it once installed.
"""

import os
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlparse

import yaml

from .errors import DescriptorError

# Fixed toolchain command lines, one per supported build system
BUILD_COMMANDS: Dict[str, List[str]] = {
    "cargo": ["cargo", "build", "--release"],
    "make": ["make"],
    "go": ["go", "build"],
    "shell": ["sh", "build.sh"],
}

SUPPORTED_SCHEMES = ("http", "https", "file")
INSTALL_ACTIONS = ("rename", "chmod")
DEFAULT_MODE = 0o755
DEFAULT_VERSION_FLAG = "--version"

_DIGEST_RE = re.compile(r"^[0-9a-f]{64}$")


class AcquisitionStrategy(Enum):
    BUILD_FROM_SOURCE = "build_from_source"
    PREBUILT_BINARY = "prebuilt_binary"


@dataclass(frozen=True)
class InstallStep:
    """One placement operation applied to the artifact"""

    action: str
    value: Any


@dataclass(frozen=True)
class TestSpec:
    """Post-install checks: a liveness flag and a piped behavioral check"""

    expected: bytes
    args: Tuple[str, ...] = ()
    input: bytes = b""
    version_flag: str = DEFAULT_VERSION_FLAG

    __test__ = False


@dataclass(frozen=True)
class Descriptor:
    """Immutable definition of one installable version of a formula"""

    name: str
    version: str
    source_url: str
    digest: str
    strategy: AcquisitionStrategy
    test: TestSpec
    bin: Optional[str] = None
    build_system: Optional[str] = None
    artifact: Optional[str] = None
    build_requires: Tuple[str, ...] = ()
    install_steps: Tuple[InstallStep, ...] = ()
    desc: str = ""
    homepage: str = ""

    @property
    def id(self) -> str:
        return f"{self.name}@{self.version}"

    @property
    def binary_name(self) -> str:
        """File name of the installed binary after all rename steps"""
        name = self.bin or self.name
        for step in self.install_steps:
            if step.action == "rename":
                name = step.value
        return name

    @property
    def mode(self) -> int:
        """Permission bits of the installed binary after all chmod steps"""
        mode = DEFAULT_MODE
        for step in self.install_steps:
            if step.action == "chmod":
                mode = step.value
        return mode


@dataclass(frozen=True)
class Formula:
    """All released versions of one tool, oldest first"""

    name: str
    path: str
    descriptors: Tuple[Descriptor, ...] = field(default_factory=tuple)
    desc: str = ""
    homepage: str = ""

    @property
    def versions(self) -> List[str]:
        return [d.version for d in self.descriptors]

    def latest(self) -> Descriptor:
        return self.descriptors[-1]

    def get(self, version: Optional[str] = None) -> Descriptor:
        """Return the descriptor for ``version`` (the newest one if omitted)"""
        if version is None:
            return self.latest()
        wanted = re.sub(r"^v", "", version)
        for descriptor in self.descriptors:
            if descriptor.version == wanted:
                return descriptor
        raise DescriptorError(
            f"{self.name} has no version {version} "
            f"(available: {', '.join(self.versions)})"
        )


def version_key(version: str) -> List[Any]:
    """Natural sort key: digit runs compare numerically"""
    return [int(u) if u.isdigit() else u.lower() for u in re.split(r"(\d+)", version)]


def normalize_digest(digest: Any) -> str:
    """Return the bare lowercase hex form of a SHA-256 digest"""
    if not isinstance(digest, str):
        raise DescriptorError(f"sha256 must be a string, got {digest!r}")
    value = digest.strip().lower()
    if value.startswith("sha256:"):
        value = value[len("sha256:"):]
    if not _DIGEST_RE.match(value):
        raise DescriptorError(
            f"sha256 must be 64 hexadecimal characters, got {digest!r}"
        )
    return value


def _parse_mode(value: Any) -> int:
    # YAML 1.1 reads an unquoted 0755 as the integer 493
    if isinstance(value, bool):
        raise DescriptorError(f"Invalid chmod mode: {value!r}")
    if isinstance(value, int):
        mode = value
    else:
        try:
            mode = int(str(value), 8)
        except ValueError:
            raise DescriptorError(f"Invalid chmod mode: {value!r}")
    if not 0 <= mode <= 0o7777:
        raise DescriptorError(f"Invalid chmod mode: {value!r}")
    if not mode & 0o100:
        raise DescriptorError(
            f"chmod mode {oct(mode)} would leave the binary non-executable"
        )
    return mode


def _valid_binary_name(value: Any) -> bool:
    """A bare file name that stays inside the install directory"""
    return (
        isinstance(value, str)
        and bool(value)
        and os.sep not in value
        and "/" not in value
        and value not in (".", "..")
    )


def _parse_install_steps(raw: Any, context: str) -> Tuple[InstallStep, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, list):
        raise DescriptorError(f"{context}: install must be a list of steps")

    steps = []
    for item in raw:
        if not isinstance(item, dict) or len(item) != 1:
            raise DescriptorError(
                f"{context}: each install step must be a single-key mapping, got {item!r}"
            )
        action, value = next(iter(item.items()))
        if action not in INSTALL_ACTIONS:
            raise DescriptorError(
                f"{context}: unknown install action '{action}' "
                f"(expected one of {', '.join(INSTALL_ACTIONS)})"
            )
        if action == "rename":
            if not _valid_binary_name(value):
                raise DescriptorError(f"{context}: invalid rename target {value!r}")
        else:
            value = _parse_mode(value)
        steps.append(InstallStep(action, value))
    return tuple(steps)


def _to_bytes(value: Any) -> bytes:
    if value is None:
        return b""
    if isinstance(value, bytes):
        return value
    return str(value).encode("utf-8")


def _parse_test(raw: Any, context: str) -> TestSpec:
    if not isinstance(raw, dict):
        raise DescriptorError(f"{context}: a test section is required")
    if raw.get("expected") is None:
        raise DescriptorError(f"{context}: test.expected is required")

    args = raw.get("args") or []
    if isinstance(args, str):
        args = args.split()
    if not isinstance(args, list):
        raise DescriptorError(f"{context}: test.args must be a list")

    return TestSpec(
        expected=_to_bytes(raw["expected"]),
        args=tuple(str(a) for a in args),
        input=_to_bytes(raw.get("input", "")),
        version_flag=str(raw.get("version_flag", DEFAULT_VERSION_FLAG)),
    )


def _parse_version(raw: Any, context: str) -> str:
    if isinstance(raw, bool) or isinstance(raw, float):
        raise DescriptorError(
            f"{context}: version {raw!r} must be quoted in the formula file"
        )
    if not isinstance(raw, (str, int)) or not str(raw).strip():
        raise DescriptorError(f"{context}: version is required")
    return re.sub(r"^v", "", str(raw).strip())


def parse_descriptor(entry: Dict[str, Any], header: Dict[str, Any]) -> Descriptor:
    """Build one Descriptor from a ``versions`` entry and the formula header"""
    name = header["name"]
    if not isinstance(entry, dict):
        raise DescriptorError(f"{name}: each version entry must be a mapping")

    version = _parse_version(entry.get("version"), name)
    context = f"{name}@{version}"

    url = entry.get("url")
    if not isinstance(url, str) or not url:
        raise DescriptorError(f"{context}: url is required")
    scheme = urlparse(url).scheme
    if scheme not in SUPPORTED_SCHEMES:
        raise DescriptorError(f"{context}: unsupported URL scheme '{scheme}' in {url}")

    if "sha256" not in entry:
        raise DescriptorError(f"{context}: sha256 is required")
    digest = normalize_digest(entry["sha256"])

    try:
        strategy = AcquisitionStrategy(entry.get("strategy"))
    except ValueError:
        choices = ", ".join(s.value for s in AcquisitionStrategy)
        raise DescriptorError(
            f"{context}: strategy must be one of {choices}, got {entry.get('strategy')!r}"
        )

    bin_name = entry.get("bin", header.get("bin"))
    if bin_name is not None and not _valid_binary_name(bin_name):
        raise DescriptorError(f"{context}: invalid bin name {bin_name!r}")

    build_system = entry.get("build_system")
    artifact = entry.get("artifact")
    build_requires = entry.get("build_requires", []) or []
    if isinstance(build_requires, str):
        build_requires = [build_requires]

    if strategy is AcquisitionStrategy.BUILD_FROM_SOURCE:
        if build_system not in BUILD_COMMANDS:
            raise DescriptorError(
                f"{context}: build_system must be one of "
                f"{', '.join(BUILD_COMMANDS)}, got {build_system!r}"
            )
        if not isinstance(artifact, str) or not artifact:
            raise DescriptorError(f"{context}: artifact path is required for source builds")
        if os.path.isabs(artifact) or ".." in artifact.split("/"):
            raise DescriptorError(
                f"{context}: artifact must be relative to the source tree, got {artifact}"
            )

    return Descriptor(
        name=name,
        version=version,
        source_url=url,
        digest=digest,
        strategy=strategy,
        test=_parse_test(entry.get("test"), context),
        bin=bin_name,
        build_system=build_system,
        artifact=artifact,
        build_requires=tuple(str(r) for r in build_requires),
        install_steps=_parse_install_steps(entry.get("install"), context),
        desc=header.get("desc", "") or "",
        homepage=header.get("homepage", "") or "",
    )


def parse_formula(data: Any, path: str = "<memory>") -> Formula:
    """Validate a parsed formula document and build its descriptors"""
    if not isinstance(data, dict):
        raise DescriptorError(f"{path}: formula must be a YAML mapping")

    name = data.get("name")
    if not isinstance(name, str) or not name:
        raise DescriptorError(f"{path}: formula name is required")
    if not _valid_binary_name(name):
        raise DescriptorError(f"{path}: invalid formula name {name!r}")

    entries = data.get("versions")
    if not isinstance(entries, list) or not entries:
        raise DescriptorError(f"{name}: at least one version is required")

    descriptors = [parse_descriptor(entry, data) for entry in entries]

    # Versions must be unique and strictly increasing in file order
    for previous, current in zip(descriptors, descriptors[1:]):
        if version_key(current.version) <= version_key(previous.version):
            raise DescriptorError(
                f"{name}: versions must increase monotonically "
                f"({current.version} listed after {previous.version})"
            )

    return Formula(
        name=name,
        path=path,
        descriptors=tuple(descriptors),
        desc=data.get("desc", "") or "",
        homepage=data.get("homepage", "") or "",
    )


def load_formula(path: str) -> Formula:
    """Load a formula from a YAML file"""
    try:
        with open(path, "r") as file:
            data = yaml.safe_load(file)
    except FileNotFoundError:
        raise FileNotFoundError(f"Formula file not found at: {path}")
    except yaml.YAMLError as e:
        raise DescriptorError(f"Error parsing YAML in {path}: {e}")

    return parse_formula(data, path)
