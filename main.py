#!/usr/bin/env python3

"""
formula-cli - install command-line tools from declarative formula files

Usage:
  formula-cli [options]

Options:
  --config FILE            Configuration file (default: formula-cli.yaml)
  --install FORMULA        Fetch, verify, acquire, install and test a formula
  --test FORMULA           Re-run the post-install checks of an installed formula
  --formula-version V      Select a version (default: newest)
  --info FORMULA           Show every version of a formula
  --list                   List formulas in formula_dir
  --history                Show the run history
  --init                   Initialize a default config file in ~/.config/formula-cli/
  --help                   Show this help message

A formula reference is a path to a YAML formula file or a bare name looked
up in the configured formula_dir.
"""

from formulacli import run_cli

if __name__ == "__main__":
    run_cli()
