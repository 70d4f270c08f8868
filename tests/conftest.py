"""Shared test fixtures for formula-cli."""

import hashlib
import io
import os
import tarfile
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest
import requests
from requests.structures import CaseInsensitiveDict
import yaml

from formulacli.core.descriptor import Descriptor, parse_formula
from formulacli.utils import cache, history

# Answers -v, then prints the last stdin line containing the -s argument
GOOD_TOOL = b"""#!/bin/sh
if [ "$1" = "-v" ]; then
  echo "hs 1.0.1"
  exit 0
fi
grep -- "$2" | tail -n 1
"""

# Same contract but drops the trailing newline
NO_NEWLINE_TOOL = b"""#!/bin/sh
if [ "$1" = "-v" ]; then
  echo "hs 1.0.1"
  exit 0
fi
printf 'cc'
"""

BUILD_OK = b"""mkdir -p out
cp hs.in out/hs
"""

BUILD_FAIL = b"""echo "error: linker failed" >&2
exit 1
"""


def sha256(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def make_tarball(path: Path, files: Dict[str, bytes], top: str = "tool-1.0") -> Path:
    with tarfile.open(path, "w:gz") as tar:
        for name, data in files.items():
            info = tarfile.TarInfo(f"{top}/{name}" if top else name)
            info.size = len(data)
            info.mode = 0o755
            tar.addfile(info, io.BytesIO(data))
    return path


class FakeResponse:
    """Minimal stand-in for a streamed requests.Response"""

    def __init__(self, body: bytes, status: int = 200, headers: Optional[Dict[str, str]] = None):
        self.body = body
        self.status_code = status
        if headers is None:
            headers = {"Content-Length": str(len(body))}
        self.headers = CaseInsensitiveDict(headers)

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Client Error")

    def iter_content(self, chunk_size: int = 1):
        for i in range(0, len(self.body), chunk_size):
            yield self.body[i:i + chunk_size]

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


@pytest.fixture(autouse=True)
def isolated_state(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep history and cache writes inside the test's temp directory."""
    history_dir = tmp_path / "state" / "history"
    monkeypatch.setattr(history, "HISTORY_DIR", str(history_dir))
    monkeypatch.setattr(history, "HISTORY_FILE", str(history_dir / "history.json"))
    monkeypatch.setattr(cache, "CACHE_DIR", str(tmp_path / "state" / "cache"))


@pytest.fixture
def install_dir(tmp_path: Path) -> Path:
    return tmp_path / "bin"


@pytest.fixture
def scratch_root(tmp_path: Path) -> Path:
    path = tmp_path / "scratch"
    path.mkdir()
    return path


@pytest.fixture
def prebuilt_tool(tmp_path: Path) -> Path:
    """A prebuilt 'binary' published as a local file."""
    path = tmp_path / "release" / "hs-1.1.0-linux"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(GOOD_TOOL)
    return path


@pytest.fixture
def source_tarball(tmp_path: Path) -> Path:
    """A source archive whose build.sh produces out/hs."""
    path = tmp_path / "release" / "v1.0.1.tar.gz"
    path.parent.mkdir(parents=True, exist_ok=True)
    return make_tarball(path, {"build.sh": BUILD_OK, "hs.in": GOOD_TOOL})


@pytest.fixture
def failing_tarball(tmp_path: Path) -> Path:
    path = tmp_path / "release" / "broken.tar.gz"
    path.parent.mkdir(parents=True, exist_ok=True)
    return make_tarball(path, {"build.sh": BUILD_FAIL, "hs.in": GOOD_TOOL})


def version_entry(
    artifact_path: Path,
    version: str = "1.1.0",
    strategy: str = "prebuilt_binary",
    digest: Optional[str] = None,
    **extra: Any,
) -> Dict[str, Any]:
    entry = {
        "version": version,
        "url": artifact_path.as_uri(),
        "sha256": digest or sha256(artifact_path.read_bytes()),
        "strategy": strategy,
        "install": [{"rename": "hs"}, {"chmod": "0755"}],
        "test": {
            "version_flag": "-v",
            "args": ["-s", "c", "-f"],
            "input": "aa\nbb\ncc\n",
            "expected": "cc\n",
        },
    }
    if strategy == "build_from_source":
        entry.update({"build_system": "shell", "artifact": "out/hs"})
    entry.update(extra)
    return entry


def formula_document(entries: List[Dict[str, Any]], name: str = "heatseeker") -> Dict[str, Any]:
    return {
        "name": name,
        "desc": "A fuzzy finder",
        "homepage": "https://example.invalid/heatseeker",
        "bin": "hs",
        "versions": entries,
    }


@pytest.fixture
def make_descriptor() -> Callable[..., Descriptor]:
    """Build a single descriptor for a local artifact."""

    def _make(artifact_path: Path, **kwargs: Any) -> Descriptor:
        return parse_formula(formula_document([version_entry(artifact_path, **kwargs)])).latest()

    return _make


@pytest.fixture
def write_formula(tmp_path: Path) -> Callable[..., Path]:
    """Write a formula document to a YAML file and return its path."""

    def _write(entries: List[Dict[str, Any]], name: str = "heatseeker", directory: Optional[Path] = None) -> Path:
        directory = directory or tmp_path / "formulas"
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / f"{name}.yaml"
        path.write_text(yaml.safe_dump(formula_document(entries, name)))
        return path

    return _write


@pytest.fixture
def config_file(tmp_path: Path, install_dir: Path, scratch_root: Path) -> Path:
    """A configuration file pointing every directory into the temp dir."""
    path = tmp_path / "formula-cli.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "options": {
                    "install_dir": str(install_dir),
                    "formula_dir": str(tmp_path / "formulas"),
                    "scratch_dir": str(scratch_root),
                    "fetch_timeout": 30,
                    "build_timeout": 60,
                    "test_timeout": 10,
                    "cache_enabled": False,
                }
            }
        )
    )
    return path


def read_mode(path: Path) -> int:
    return os.stat(path).st_mode & 0o777
