#!/usr/bin/env python3

import os
import tempfile


def get_real_home() -> str:
    """Get the real user's home directory even when running with sudo"""
    if "SUDO_USER" in os.environ and os.environ.get("HOME") == "/root":
        real_user = os.environ["SUDO_USER"]
        return os.path.expanduser(f"~{real_user}")
    return os.path.expanduser("~")


def default_install_dir() -> str:
    """Per-user binary directory used when no install_dir is configured"""
    return os.path.join(get_real_home(), ".local/bin")


def default_scratch_dir() -> str:
    """Root under which each run creates its own scratch directory"""
    return tempfile.gettempdir()
