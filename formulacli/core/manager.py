#!/usr/bin/env python3

import os
from datetime import datetime
from typing import Dict, List, Optional

from colorama import Fore, Style

from .descriptor import Descriptor, Formula, load_formula
from .errors import DescriptorError
from .orchestrator import Orchestrator
from ..utils.config import ConfigDict, find_config_file, load_config, save_config


class FormulaManager:
    """Core class for resolving formulas and configuring install runs"""

    def __init__(self, config_path: str):
        self.config_path = find_config_file(config_path)
        self.config = self._load_config()
        options = self.config["options"]
        self.install_dir = options["install_dir"]
        self.formula_dir = options["formula_dir"]
        self.scratch_dir = options["scratch_dir"]
        self.fetch_timeout = options["fetch_timeout"]
        self.build_timeout = options["build_timeout"]
        self.test_timeout = options["test_timeout"]
        self.cache_enabled = options["cache_enabled"]

    def _load_config(self) -> ConfigDict:
        """Load the configuration file"""
        try:
            return load_config(self.config_path)
        except ValueError as e:
            print(f"{Fore.RED}❌ {e}{Style.RESET_ALL}")
            raise

    def _save_config(self) -> None:
        """Save the configuration file"""
        try:
            save_config(self.config, self.config_path)
        except IOError as e:
            print(f"{Fore.RED}❌ {e}{Style.RESET_ALL}")
            raise

    def resolve_formula_path(self, reference: str) -> str:
        """
        Turn a formula reference into a file path. A reference is either a
        path to a YAML file or a bare name looked up in formula_dir.
        """
        if os.path.isfile(reference):
            return reference

        for candidate in (f"{reference}.yaml", f"{reference}.yml"):
            path = os.path.join(self.formula_dir, candidate)
            if os.path.isfile(path):
                return path

        raise FileNotFoundError(
            f"Formula '{reference}' not found (looked for a file and in {self.formula_dir})"
        )

    def load(self, reference: str) -> Formula:
        return load_formula(self.resolve_formula_path(reference))

    def descriptor(self, reference: str, version: Optional[str] = None) -> Descriptor:
        """Load the descriptor for one version of a formula (the newest by default)"""
        return self.load(reference).get(version)

    def available_formulas(self) -> List[str]:
        """Paths of every formula file in formula_dir"""
        if not os.path.isdir(self.formula_dir):
            return []
        return sorted(
            os.path.join(self.formula_dir, name)
            for name in os.listdir(self.formula_dir)
            if name.endswith((".yaml", ".yml"))
        )

    def orchestrator(self) -> Orchestrator:
        return Orchestrator(
            install_dir=self.install_dir,
            scratch_root=self.scratch_dir,
            fetch_timeout=self.fetch_timeout,
            build_timeout=self.build_timeout,
            test_timeout=self.test_timeout,
            cache_enabled=self.cache_enabled,
        )

    def installed(self, name: str) -> Optional[Dict[str, str]]:
        return self.config["installed"].get(name)

    def installed_path(self, descriptor: Descriptor) -> str:
        record = self.installed(descriptor.name)
        if record and record.get("path"):
            return record["path"]
        return os.path.join(self.install_dir, descriptor.binary_name)

    def record_install(self, descriptor: Descriptor, path: str) -> None:
        """Remember which version of a formula is installed and where"""
        self.config["installed"][descriptor.name] = {
            "version": descriptor.version,
            "path": path,
            "sha256": descriptor.digest,
            "date": datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
        }
        self._save_config()

    def check_options(self) -> None:
        """Reject option values the engine cannot use"""
        for key in ("fetch_timeout", "build_timeout", "test_timeout"):
            value = getattr(self, key)
            if value is not None and (
                isinstance(value, bool)
                or not isinstance(value, (int, float))
                or value <= 0
            ):
                raise DescriptorError(f"Option {key} must be a positive number, got {value!r}")
