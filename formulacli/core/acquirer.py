#!/usr/bin/env python3

"""
Acquisition strategies.

Both strategies turn a verified download into exactly one executable file at
``<workdir>/artifact/<binary name>``. Callers pick one with ``acquirer_for``
and never branch on which strategy produced the artifact.
"""

import os
import shutil
import stat
import subprocess
import tarfile
import zipfile
from abc import ABC, abstractmethod
from typing import List, Optional

from colorama import Fore, Style

from .descriptor import BUILD_COMMANDS, AcquisitionStrategy, Descriptor
from .errors import BuildError


def _text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


def _within(root: str, path: str) -> bool:
    root = os.path.realpath(root)
    target = os.path.realpath(os.path.join(root, path))
    return os.path.commonpath([root, target]) == root


def _check_tar_members(tar: tarfile.TarFile, destination: str) -> List[tarfile.TarInfo]:
    """Reject entries that would escape the work directory or are not plain files"""
    members = []
    for member in tar.getmembers():
        if member.name.startswith(("/", os.sep)) or not _within(destination, member.name):
            raise BuildError(f"Archive entry escapes the work directory: {member.name}")
        if member.issym() or member.islnk():
            link_base = os.path.dirname(member.name) if member.issym() else ""
            if os.path.isabs(member.linkname) or not _within(
                destination, os.path.join(link_base, member.linkname)
            ):
                raise BuildError(
                    f"Archive link points outside the work directory: {member.name} -> {member.linkname}"
                )
        elif not (member.isreg() or member.isdir()):
            raise BuildError(f"Archive contains a special file: {member.name}")
        members.append(member)
    return members


def _extract_zip(archive_path: str, destination: str) -> None:
    with zipfile.ZipFile(archive_path) as archive:
        for info in archive.infolist():
            if info.filename.startswith(("/", os.sep)) or not _within(destination, info.filename):
                raise BuildError(f"Archive entry escapes the work directory: {info.filename}")
        archive.extractall(destination)

        # zipfile drops permission bits; restore them from the external attributes
        for info in archive.infolist():
            mode = (info.external_attr >> 16) & 0o777
            if mode and not info.is_dir():
                os.chmod(os.path.join(destination, info.filename), mode)


def extract_archive(archive_path: str, destination: str) -> str:
    """
    Extract a source archive and return the root of the source tree.

    When the archive holds a single top-level directory, that directory is the
    source root (the same result as ``tar --strip-components=1``).
    """
    os.makedirs(destination, exist_ok=True)
    try:
        if tarfile.is_tarfile(archive_path):
            with tarfile.open(archive_path, "r:*") as tar:
                members = _check_tar_members(tar, destination)
                if hasattr(tarfile, "data_filter"):
                    tar.extractall(destination, members=members, filter="data")
                else:
                    tar.extractall(destination, members=members)
        elif zipfile.is_zipfile(archive_path):
            _extract_zip(archive_path, destination)
        else:
            raise BuildError(f"Unsupported archive format: {os.path.basename(archive_path)}")
    except (tarfile.TarError, zipfile.BadZipFile, OSError) as e:
        raise BuildError(f"Failed to extract {os.path.basename(archive_path)}: {e}")

    contents = os.listdir(destination)
    if len(contents) == 1 and os.path.isdir(os.path.join(destination, contents[0])):
        return os.path.join(destination, contents[0])
    return destination


def _place_artifact(source: str, workdir: str, descriptor: Descriptor) -> str:
    """Copy ``source`` to the single artifact path and set its permission bits"""
    artifact_dir = os.path.join(workdir, "artifact")
    os.makedirs(artifact_dir, exist_ok=True)
    artifact_path = os.path.join(artifact_dir, descriptor.binary_name)
    shutil.copyfile(source, artifact_path)
    os.chmod(artifact_path, descriptor.mode)
    return artifact_path


class Acquirer(ABC):
    """Turns a verified download into one executable artifact"""

    def __init__(self, descriptor: Descriptor):
        self.descriptor = descriptor

    @abstractmethod
    def acquire(self, source: str, workdir: str) -> str:
        """Return the path of the executable artifact built from ``source``"""


class SourceBuildAcquirer(Acquirer):
    """Extracts a source archive and runs the build system's fixed command"""

    def __init__(self, descriptor: Descriptor, timeout: Optional[float] = None):
        super().__init__(descriptor)
        self.timeout = timeout

    @property
    def command(self) -> List[str]:
        return list(BUILD_COMMANDS[self.descriptor.build_system])

    def check_toolchain(self) -> None:
        """Fail early when the toolchain or a declared build requirement is missing"""
        required = [self.command[0]] + list(self.descriptor.build_requires)
        missing = [tool for tool in dict.fromkeys(required) if shutil.which(tool) is None]
        if missing:
            raise BuildError(
                f"Build toolchain not found on PATH: {', '.join(missing)}"
            )

    def acquire(self, source: str, workdir: str) -> str:
        self.check_toolchain()

        print(f"📂 Extracting {os.path.basename(source)}...")
        source_root = extract_archive(source, os.path.join(workdir, "src"))

        command = self.command
        print(f"🔨 Building with: {' '.join(command)}")
        try:
            result = subprocess.run(
                command,
                cwd=source_root,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise BuildError(
                f"'{' '.join(command)}' did not finish within {self.timeout}s",
                _text(e.stderr) or _text(e.stdout),
            )
        except OSError as e:
            raise BuildError(f"Failed to run '{' '.join(command)}': {e}")

        if result.returncode != 0:
            raise BuildError(
                f"'{' '.join(command)}' exited with status {result.returncode}",
                result.stderr or result.stdout,
            )

        built = os.path.join(source_root, self.descriptor.artifact)
        if not os.path.isfile(built):
            raise BuildError(
                f"Build succeeded but the expected artifact {self.descriptor.artifact} is missing",
                result.stderr,
            )

        try:
            artifact = _place_artifact(built, workdir, self.descriptor)
        except OSError as e:
            raise BuildError(f"Failed to collect build artifact: {e}")

        print(f"{Fore.GREEN}✓ Built {self.descriptor.artifact}{Style.RESET_ALL}")
        return artifact


class PrebuiltBinaryAcquirer(Acquirer):
    """Uses the verified download itself as the binary"""

    def acquire(self, source: str, workdir: str) -> str:
        try:
            artifact = _place_artifact(source, workdir, self.descriptor)
        except OSError as e:
            raise BuildError(f"Failed to prepare prebuilt binary: {e}")

        if not os.stat(artifact).st_mode & stat.S_IXUSR:
            raise BuildError(f"Prebuilt binary {artifact} is not executable")
        return artifact


def acquirer_for(descriptor: Descriptor, timeout: Optional[float] = None) -> Acquirer:
    """Return the acquirer matching the descriptor's strategy"""
    if descriptor.strategy is AcquisitionStrategy.BUILD_FROM_SOURCE:
        return SourceBuildAcquirer(descriptor, timeout)
    return PrebuiltBinaryAcquirer(descriptor)
