#!/usr/bin/env python3

"""
formula-cli - install command-line tools from declarative formula files
Features:
- Versioned YAML formulas: source builds or prebuilt binaries
- SHA-256 verification before anything is built or installed
- Atomic installation into a configurable directory
- Post-install liveness and behavioral checks
- Run history and a cache of verified downloads
"""

from .version import __version__

from .core.descriptor import AcquisitionStrategy, Descriptor, Formula, load_formula
from .core.errors import (
    FormulaError,
    DescriptorError,
    FetchError,
    IntegrityError,
    BuildError,
    InstallError,
    VerificationError,
)
from .core.orchestrator import Orchestrator, RunOutcome, RunState
from .core.manager import FormulaManager
from .cli.cli import run_cli
