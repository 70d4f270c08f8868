#!/usr/bin/env python3

import os
from typing import Optional

from colorama import Fore, Style

from ..utils.history import (
    add_history_entry,
    clear_history as clear_history_util,
    get_history,
    format_history_entry,
    OP_INSTALL,
    OP_TEST,
)
from .descriptor import Descriptor
from .errors import EXIT_OK, EXIT_VERIFICATION, FormulaError, VerificationError
from .manager import FormulaManager
from .orchestrator import RunOutcome
from .tester import CHECK_LIVENESS, TestRunner


def print_report(outcome: RunOutcome) -> None:
    """Print which stages a run passed and, on failure, where and why it stopped"""
    descriptor = outcome.descriptor
    path = " → ".join(state.value for state in outcome.transitions)
    print(f"\n{Fore.CYAN}{Style.BRIGHT}Run report for {descriptor.id}:{Style.RESET_ALL}")
    print(f"  States: {path}")

    if outcome.succeeded:
        print(
            f"{Fore.GREEN}✅ {descriptor.id} installed and tested at {outcome.installed_path}{Style.RESET_ALL}"
        )
        return

    error_kind = type(outcome.error).__name__
    print(
        f"{Fore.RED}❌ Failed at stage '{outcome.failed_stage.value}' with {error_kind}:{Style.RESET_ALL}"
    )
    print(f"{Fore.RED}{outcome.error}{Style.RESET_ALL}")

    if outcome.installed:
        print(
            f"{Fore.YELLOW}⚠️  {outcome.installed_path} is installed but unverified{Style.RESET_ALL}"
        )
    else:
        print(f"{Fore.YELLOW}Nothing was installed.{Style.RESET_ALL}")


def _run_details(outcome: RunOutcome) -> dict:
    details = {
        "version": outcome.descriptor.version,
        "strategy": outcome.descriptor.strategy.value,
        "state": outcome.state.value,
        "transitions": [state.value for state in outcome.transitions],
    }
    if outcome.installed_path:
        details["install_path"] = outcome.installed_path
    if outcome.error is not None:
        details["stage"] = outcome.failed_stage.value
        details["error_kind"] = type(outcome.error).__name__
        details["error"] = str(outcome.error)
    return details


def install_formula(
    manager: FormulaManager, reference: str, version: Optional[str] = None
) -> int:
    """Install one version of a formula and return the process exit code"""
    descriptor = manager.descriptor(reference, version)

    record = manager.installed(descriptor.name)
    if record and record.get("version") != descriptor.version:
        print(
            f"{Fore.YELLOW}⬆ {descriptor.name}: {record.get('version')} → {descriptor.version}{Style.RESET_ALL}"
        )

    print(f"📦 Installing {descriptor.name} version {descriptor.version}...")
    outcome = manager.orchestrator().run(descriptor)
    print_report(outcome)

    if outcome.succeeded:
        manager.record_install(descriptor, outcome.installed_path)

    add_history_entry(
        OP_INSTALL,
        descriptor.name,
        details=_run_details(outcome),
        success=outcome.succeeded,
    )
    return outcome.exit_code


def check_installed(
    manager: FormulaManager, reference: str, version: Optional[str] = None
) -> int:
    """Run the post-install checks against an already installed binary"""
    formula = manager.load(reference)
    record = manager.installed(formula.name)
    if version is None and record:
        version = record.get("version")
    descriptor: Descriptor = formula.get(version)
    binary = manager.installed_path(descriptor)

    print(f"🧪 Testing {descriptor.id} at {binary}")
    details = {"version": descriptor.version, "install_path": binary}

    try:
        if not os.path.isfile(binary):
            raise VerificationError(CHECK_LIVENESS, f"{binary} is not installed")
        TestRunner(descriptor.test, manager.test_timeout).run(binary)
    except FormulaError as e:
        print(f"{Fore.RED}❌ {e}{Style.RESET_ALL}")
        details["error"] = str(e)
        add_history_entry(OP_TEST, descriptor.name, details=details, success=False)
        return EXIT_VERIFICATION

    print(f"{Fore.GREEN}✅ {descriptor.id} passed its checks{Style.RESET_ALL}")
    add_history_entry(OP_TEST, descriptor.name, details=details, success=True)
    return EXIT_OK


def list_formulas(manager: FormulaManager) -> None:
    """List the formulas in formula_dir with their versions and installed state"""
    paths = manager.available_formulas()

    print(
        f"\n{Fore.CYAN}{Style.BRIGHT}Formulas in {manager.formula_dir}:{Style.RESET_ALL}\n"
    )

    if not paths:
        print(f"{Fore.YELLOW}No formulas found.{Style.RESET_ALL}")
        return

    for path in paths:
        try:
            formula = manager.load(path)
        except (FormulaError, FileNotFoundError) as e:
            print(f"{Fore.RED}⚠️ {os.path.basename(path)}: {e}{Style.RESET_ALL}")
            continue

        record = manager.installed(formula.name)
        latest = formula.latest().version
        if record and record.get("version") == latest:
            status = f"{Fore.GREEN}[INSTALLED]{Style.RESET_ALL}"
        elif record:
            status = f"{Fore.YELLOW}[OUTDATED]{Style.RESET_ALL}"
        else:
            status = f"{Fore.YELLOW}[NOT INSTALLED]{Style.RESET_ALL}"

        print(f"{Fore.WHITE}{Style.BRIGHT}{formula.name}{Style.RESET_ALL} {status}")
        if formula.desc:
            print(f"  {formula.desc}")
        print(f"  Latest version: {latest}")
        if record:
            print(f"  Installed version: {record.get('version')}")
            print(f"  Install path: {record.get('path')}")
        print()


def show_info(manager: FormulaManager, reference: str) -> None:
    """Show every version of one formula"""
    formula = manager.load(reference)
    record = manager.installed(formula.name) or {}

    print(f"\n{Fore.CYAN}{Style.BRIGHT}{formula.name}{Style.RESET_ALL}")
    if formula.desc:
        print(f"  {formula.desc}")
    if formula.homepage:
        print(f"  Homepage: {formula.homepage}")
    print(f"  Formula file: {formula.path}\n")

    for descriptor in reversed(formula.descriptors):
        marker = " (installed)" if record.get("version") == descriptor.version else ""
        print(f"{Fore.WHITE}{Style.BRIGHT}{descriptor.version}{Style.RESET_ALL}{marker}")
        print(f"  Strategy: {descriptor.strategy.value}")
        if descriptor.build_system:
            print(f"  Build system: {descriptor.build_system} → {descriptor.artifact}")
        print(f"  Source: {descriptor.source_url}")
        print(f"  SHA-256: {descriptor.digest}")
        print(f"  Installs as: {descriptor.binary_name} ({oct(descriptor.mode)})")
    print()


def show_history(limit: Optional[int] = None) -> None:
    """Show the run history"""
    history = get_history(limit)

    if not history:
        print(f"{Fore.YELLOW}No history entries found.{Style.RESET_ALL}")
        return

    print(f"\n{Fore.CYAN}{Style.BRIGHT}Run History:{Style.RESET_ALL}\n")

    for entry in history:
        formatted = format_history_entry(entry)

        if entry["success"]:
            print(f"{Fore.GREEN}{formatted}{Style.RESET_ALL}")
        else:
            print(f"{Fore.RED}{formatted}{Style.RESET_ALL}")

    print(f"\nTotal entries: {len(history)}")


def clear_history() -> None:
    """Clear the run history"""
    print(f"{Fore.YELLOW}About to clear all history entries.{Style.RESET_ALL}")
    response = input("Are you sure you want to continue? (y/N) ")

    if response.lower() != "y":
        print(f"{Fore.YELLOW}Operation cancelled.{Style.RESET_ALL}")
        return

    if clear_history_util():
        print(f"{Fore.GREEN}✅ History cleared successfully.{Style.RESET_ALL}")
    else:
        print(f"{Fore.RED}❌ Failed to clear history.{Style.RESET_ALL}")
