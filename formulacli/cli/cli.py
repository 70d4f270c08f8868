#!/usr/bin/env python3

import argparse
import sys
import os
from colorama import Fore, Style

from ..utils.cache import clear_cache, get_cache_info
from ..utils.config import (
    DEFAULT_CONFIG_PATH,
    ensure_user_config_dir,
    create_default_config,
)
from ..core.errors import EXIT_DESCRIPTOR, EXIT_OK, EXIT_UNEXPECTED, FormulaError
from ..core.manager import FormulaManager
from ..core.operations import (
    install_formula,
    check_installed,
    list_formulas,
    show_info,
    show_history,
    clear_history,
)
from ..version import __version__


def parse_args(argv=None):
    """Parse command-line arguments"""
    parser = argparse.ArgumentParser(
        prog="formula-cli",
        description=f"formula-cli v{__version__} - Install command-line tools from declarative formula files",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Exit codes: 0 installed and tested, 1 unexpected error, "
            "2 formula/config error, 3 fetch, 4 integrity, 5 build, "
            "6 install, 7 verification"
        ),
    )
    parser.add_argument(
        "--config",
        default=DEFAULT_CONFIG_PATH,
        help=f"Configuration file (default: {DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument(
        "--install",
        metavar="FORMULA",
        help="Fetch, verify, build or unpack, install and test a formula (path or name)",
    )
    parser.add_argument(
        "--test",
        metavar="FORMULA",
        help="Run the post-install checks of a formula against the installed binary",
    )
    parser.add_argument(
        "--formula-version",
        metavar="VERSION",
        help="Version to install or test (default: newest in the formula)",
    )
    parser.add_argument(
        "--info", metavar="FORMULA", help="Show every version of a formula"
    )
    parser.add_argument(
        "--list",
        action="store_true",
        help="List the formulas in formula_dir and their installed versions",
    )
    parser.add_argument("--install-dir", help="Override the install directory")
    parser.add_argument(
        "--scratch-dir", help="Override the root directory for per-run scratch space"
    )
    parser.add_argument(
        "--fetch-timeout", type=float, metavar="SECONDS", help="Download timeout"
    )
    parser.add_argument(
        "--build-timeout", type=float, metavar="SECONDS", help="Build toolchain timeout"
    )
    parser.add_argument(
        "--test-timeout", type=float, metavar="SECONDS", help="Timeout for each check"
    )
    parser.add_argument(
        "--clear-cache",
        action="store_true",
        help="Clear the download cache",
    )
    parser.add_argument(
        "--cache-info", "--cache-dir",
        action="store_true",
        help="Show cache information and statistics",
    )
    parser.add_argument(
        "--no-cache", action="store_true", help="Disable caching for this run"
    )
    parser.add_argument(
        "--force-cache",
        action="store_true",
        help="Force caching for this run, ignoring config setting",
    )
    parser.add_argument(
        "--version", action="store_true", help="Show the version and exit"
    )
    parser.add_argument(
        "--init",
        action="store_true",
        help="Initialize a default config file in the user's config directory",
    )
    parser.add_argument(
        "--history",
        action="store_true",
        help="Show the history of install and test runs",
    )
    parser.add_argument(
        "--history-limit",
        type=int,
        metavar="N",
        help="Limit history to N entries (used with --history)",
    )
    parser.add_argument(
        "--clear-history",
        action="store_true",
        help="Clear the run history",
    )

    return parser.parse_args(argv)


def handle_init_command():
    """Handle the --init command to create a default config file"""
    user_config_dir = ensure_user_config_dir()
    user_config_path = os.path.join(user_config_dir, DEFAULT_CONFIG_PATH)

    if os.path.isfile(user_config_path):
        print(
            f"{Fore.YELLOW}Config file already exists at {user_config_path}{Style.RESET_ALL}"
        )
        return

    try:
        create_default_config(user_config_path)
        print(
            f"{Fore.GREEN}✅ Created default config file at {user_config_path}{Style.RESET_ALL}"
        )
    except IOError as e:
        print(f"{Fore.RED}❌ Failed to create config file: {e}{Style.RESET_ALL}")
        sys.exit(EXIT_UNEXPECTED)


def handle_cache_info():
    """Handle the --cache-info command"""
    cache_info = get_cache_info()
    print(f"Cache directory: {cache_info['path']}")

    if cache_info["exists"]:
        print(f"Cache size: {cache_info['size_bytes'] / (1024*1024):.2f} MB")
        print(f"Download cache entries: {cache_info['download_entries']}")
    else:
        print("Cache directory does not exist yet")


def apply_overrides(manager: FormulaManager, args) -> None:
    """Apply command-line overrides on top of the configuration file"""
    if args.install_dir:
        manager.install_dir = os.path.abspath(os.path.expanduser(args.install_dir))
    if args.scratch_dir:
        manager.scratch_dir = os.path.abspath(os.path.expanduser(args.scratch_dir))
    if args.fetch_timeout is not None:
        manager.fetch_timeout = args.fetch_timeout
    if args.build_timeout is not None:
        manager.build_timeout = args.build_timeout
    if args.test_timeout is not None:
        manager.test_timeout = args.test_timeout

    if args.no_cache:
        manager.cache_enabled = False
        print(f"{Fore.YELLOW}ℹ️ Caching disabled for this run{Style.RESET_ALL}")
    elif args.force_cache:
        manager.cache_enabled = True
        print(f"{Fore.GREEN}ℹ️ Caching enabled for this run{Style.RESET_ALL}")

    manager.check_options()


def run_cli(argv=None):
    """Run the command-line interface"""
    args = parse_args(argv)

    # Show version and exit if requested
    if args.version:
        print(f"formula-cli v{__version__}")
        return

    # Initialize config file if requested
    if args.init:
        handle_init_command()
        return

    # Handle cache operations
    if args.clear_cache:
        if clear_cache():
            print(f"{Fore.GREEN}✅ Cache successfully cleared{Style.RESET_ALL}")
        else:
            print(
                f"{Fore.YELLOW}ℹ️ No cache directory found or failed to clear cache{Style.RESET_ALL}"
            )
        return

    if args.cache_info:
        handle_cache_info()
        return

    # History operations don't need a config
    if args.history:
        show_history(args.history_limit)
        return

    if args.clear_history:
        clear_history()
        return

    exit_code = EXIT_OK
    try:
        manager = FormulaManager(args.config)
        if os.path.isfile(manager.config_path):
            print(f"Using configuration file: {manager.config_path}")
        apply_overrides(manager, args)

        if args.list:
            list_formulas(manager)
        elif args.info:
            show_info(manager, args.info)
        elif args.install:
            exit_code = install_formula(manager, args.install, args.formula_version)
        elif args.test:
            exit_code = check_installed(manager, args.test, args.formula_version)
        else:
            print(
                f"{Fore.YELLOW}Nothing to do. Use --install FORMULA or see --help{Style.RESET_ALL}"
            )

    except FileNotFoundError as e:
        print(f"{Fore.RED}❌ {e}{Style.RESET_ALL}")
        sys.exit(EXIT_DESCRIPTOR)
    except FormulaError as e:
        print(f"{Fore.RED}❌ {e}{Style.RESET_ALL}")
        sys.exit(e.exit_code)
    except Exception as e:
        print(f"{Fore.RED}❌ Error: {e}{Style.RESET_ALL}")
        sys.exit(EXIT_UNEXPECTED)

    if exit_code != EXIT_OK:
        sys.exit(exit_code)


if __name__ == "__main__":
    run_cli()
