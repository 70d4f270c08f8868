#!/usr/bin/env python3

import subprocess
from typing import List, Optional

from colorama import Fore, Style

from .descriptor import TestSpec
from .errors import VerificationError

CHECK_LIVENESS = "liveness"
CHECK_BEHAVIOR = "behavior"


def _run(check: str, command: List[str], stdin: bytes, timeout: Optional[float]):
    try:
        return subprocess.run(
            command,
            input=stdin,
            capture_output=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired:
        raise VerificationError(check, f"'{' '.join(command)}' did not finish within {timeout}s")
    except OSError as e:
        raise VerificationError(check, f"could not run '{' '.join(command)}': {e}")


class TestRunner:
    """Runs a descriptor's post-install checks against an installed binary"""

    __test__ = False

    def __init__(self, spec: TestSpec, timeout: Optional[float] = None):
        self.spec = spec
        self.timeout = timeout

    def check_liveness(self, binary: str) -> None:
        command = [binary, self.spec.version_flag]
        result = _run(CHECK_LIVENESS, command, b"", self.timeout)
        if result.returncode != 0:
            stderr = result.stderr.decode("utf-8", errors="replace").strip()
            raise VerificationError(
                CHECK_LIVENESS,
                f"'{' '.join(command)}' exited with status {result.returncode}"
                + (f" ({stderr})" if stderr else ""),
            )
        print(f"{Fore.GREEN}✓ {' '.join(command)}{Style.RESET_ALL}")

    def check_behavior(self, binary: str) -> None:
        command = [binary] + list(self.spec.args)
        result = _run(CHECK_BEHAVIOR, command, self.spec.input, self.timeout)
        if result.stdout != self.spec.expected:
            raise VerificationError(
                CHECK_BEHAVIOR,
                f"unexpected output from '{' '.join(command)}'",
                actual=result.stdout,
                expected=self.spec.expected,
            )
        print(f"{Fore.GREEN}✓ {' '.join(command)} produced {result.stdout!r}{Style.RESET_ALL}")

    def run(self, binary: str) -> None:
        """Run both checks in order; raise VerificationError on the first failure"""
        self.check_liveness(binary)
        self.check_behavior(binary)
