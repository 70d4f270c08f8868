#!/usr/bin/env python3

from typing import Optional

# Process exit codes, one per failure kind
EXIT_OK = 0
EXIT_UNEXPECTED = 1
EXIT_DESCRIPTOR = 2
EXIT_FETCH = 3
EXIT_INTEGRITY = 4
EXIT_BUILD = 5
EXIT_INSTALL = 6
EXIT_VERIFICATION = 7


class FormulaError(Exception):
    """Base class for every failure the engine reports"""

    exit_code = EXIT_UNEXPECTED


class DescriptorError(FormulaError):
    """A formula file or one of its versions is malformed"""

    exit_code = EXIT_DESCRIPTOR


class FetchError(FormulaError):
    """Network or IO failure while retrieving the source artifact"""

    exit_code = EXIT_FETCH


class IntegrityError(FormulaError):
    """The fetched bytes do not hash to the expected digest"""

    exit_code = EXIT_INTEGRITY

    def __init__(self, path: str, expected: str, actual: str):
        self.path = path
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"SHA-256 mismatch for {path}: expected {expected}, got {actual}"
        )


class BuildError(FormulaError):
    """The build toolchain failed or left no artifact behind"""

    exit_code = EXIT_BUILD

    def __init__(self, message: str, output: Optional[str] = None):
        self.output = output or ""
        if self.output.strip():
            message = f"{message}\n--- toolchain output ---\n{self.output.rstrip()}"
        super().__init__(message)


class InstallError(FormulaError):
    """The artifact could not be placed in the install directory"""

    exit_code = EXIT_INSTALL


class VerificationError(FormulaError):
    """A post-install check against the installed binary failed"""

    exit_code = EXIT_VERIFICATION

    def __init__(
        self,
        check: str,
        message: str,
        actual: Optional[bytes] = None,
        expected: Optional[bytes] = None,
    ):
        self.check = check
        self.actual = actual
        self.expected = expected
        if expected is not None:
            message = f"{message}: expected {expected!r}, got {actual!r}"
        super().__init__(f"{check} check failed: {message}")
