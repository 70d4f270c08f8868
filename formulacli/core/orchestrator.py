#!/usr/bin/env python3

"""
Install-run state machine.

A run walks PENDING -> FETCHED -> VERIFIED -> ACQUIRED -> INSTALLED -> TESTED,
one state at a time. The first failing stage ends the run in FAILED, tagged
with the state it was trying to reach. Scratch files never outlive the run.
"""

import os
import shutil
import tempfile
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional
from urllib.parse import urlparse

from colorama import Fore, Style

from .acquirer import acquirer_for
from .descriptor import Descriptor
from .errors import EXIT_OK, FetchError, FormulaError
from .fetcher import fetch
from .installer import install
from .tester import TestRunner
from .verifier import verify
from ..utils.cache import cache_download


class RunState(Enum):
    PENDING = "pending"
    FETCHED = "fetched"
    VERIFIED = "verified"
    ACQUIRED = "acquired"
    INSTALLED = "installed"
    TESTED = "tested"
    FAILED = "failed"


SEQUENCE = [
    RunState.PENDING,
    RunState.FETCHED,
    RunState.VERIFIED,
    RunState.ACQUIRED,
    RunState.INSTALLED,
    RunState.TESTED,
]


@dataclass
class RunOutcome:
    """Terminal result of one run, with the states it passed through"""

    descriptor: Descriptor
    state: RunState = RunState.PENDING
    failed_stage: Optional[RunState] = None
    error: Optional[FormulaError] = None
    installed_path: Optional[str] = None
    transitions: List[RunState] = field(default_factory=lambda: [RunState.PENDING])

    @property
    def succeeded(self) -> bool:
        return self.state is RunState.TESTED

    @property
    def installed(self) -> bool:
        """True once the binary was placed, even if its checks failed"""
        return self.installed_path is not None

    @property
    def exit_code(self) -> int:
        if self.error is not None:
            return self.error.exit_code
        return EXIT_OK

    def advance(self, state: RunState) -> None:
        if self.state is RunState.FAILED or self.state is RunState.TESTED:
            raise RuntimeError(f"Run already finished in state {self.state.value}")
        expected = SEQUENCE[SEQUENCE.index(self.state) + 1]
        if state is not expected:
            raise RuntimeError(
                f"Invalid transition {self.state.value} -> {state.value} "
                f"(next state must be {expected.value})"
            )
        self.state = state
        self.transitions.append(state)

    def fail(self, stage: RunState, error: FormulaError) -> None:
        self.failed_stage = stage
        self.error = error
        self.state = RunState.FAILED
        self.transitions.append(RunState.FAILED)


class Orchestrator:
    """Runs one descriptor through every stage of an install"""

    def __init__(
        self,
        install_dir: str,
        scratch_root: Optional[str] = None,
        fetch_timeout: Optional[float] = None,
        build_timeout: Optional[float] = None,
        test_timeout: Optional[float] = None,
        cache_enabled: bool = False,
    ):
        self.install_dir = install_dir
        self.scratch_root = scratch_root or tempfile.gettempdir()
        self.fetch_timeout = fetch_timeout
        self.build_timeout = build_timeout
        self.test_timeout = test_timeout
        self.cache_enabled = cache_enabled

    def make_scratch_dir(self, descriptor: Descriptor) -> str:
        """Create a scratch directory no other run can share"""
        os.makedirs(self.scratch_root, exist_ok=True)
        run_suffix = uuid.uuid4().hex[:12]
        return tempfile.mkdtemp(
            prefix=f"{descriptor.name}-{descriptor.version}-{run_suffix}-",
            dir=self.scratch_root,
        )

    def _cache(self, descriptor: Descriptor, path: str) -> None:
        if not self.cache_enabled or urlparse(descriptor.source_url).scheme == "file":
            return
        try:
            cache_download(descriptor.source_url, path)
        except OSError as e:
            print(f"{Fore.YELLOW}⚠️ Could not cache download: {e}{Style.RESET_ALL}")

    def _cleanup(self, scratch_dir: Optional[str]) -> None:
        if not scratch_dir or not os.path.exists(scratch_dir):
            return
        try:
            shutil.rmtree(scratch_dir)
        except OSError as e:
            print(
                f"{Fore.YELLOW}⚠️ Failed to remove scratch directory {scratch_dir}: {e}{Style.RESET_ALL}"
            )

    def run(self, descriptor: Descriptor) -> RunOutcome:
        outcome = RunOutcome(descriptor)
        scratch_dir = None
        stage = RunState.FETCHED

        try:
            try:
                scratch_dir = self.make_scratch_dir(descriptor)
            except OSError as e:
                raise FetchError(f"Failed to create scratch directory: {e}")

            print(f"{Fore.BLUE}==> Fetching {descriptor.id}{Style.RESET_ALL}")
            download = fetch(
                descriptor.source_url,
                scratch_dir,
                timeout=self.fetch_timeout,
                use_cache=self.cache_enabled,
            )
            outcome.advance(RunState.FETCHED)

            stage = RunState.VERIFIED
            print(f"{Fore.BLUE}==> Verifying SHA-256{Style.RESET_ALL}")
            verify(download, descriptor.digest)
            outcome.advance(RunState.VERIFIED)
            self._cache(descriptor, download)

            stage = RunState.ACQUIRED
            print(f"{Fore.BLUE}==> Acquiring ({descriptor.strategy.value}){Style.RESET_ALL}")
            acquirer = acquirer_for(descriptor, self.build_timeout)
            artifact = acquirer.acquire(download, scratch_dir)
            outcome.advance(RunState.ACQUIRED)

            stage = RunState.INSTALLED
            print(f"{Fore.BLUE}==> Installing into {self.install_dir}{Style.RESET_ALL}")
            outcome.installed_path = install(
                artifact, self.install_dir, descriptor.binary_name, descriptor.mode
            )
            outcome.advance(RunState.INSTALLED)

            stage = RunState.TESTED
            print(f"{Fore.BLUE}==> Testing {outcome.installed_path}{Style.RESET_ALL}")
            TestRunner(descriptor.test, self.test_timeout).run(outcome.installed_path)
            outcome.advance(RunState.TESTED)
        except FormulaError as e:
            outcome.fail(stage, e)
        finally:
            self._cleanup(scratch_dir)

        return outcome
