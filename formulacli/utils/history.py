#!/usr/bin/env python3

import os
import json
import time
import uuid
from datetime import datetime
from typing import Dict, List, Optional, Any, Union

from .system import get_real_home

# Define history file location
HISTORY_DIR = os.path.join(get_real_home(), ".config/formula-cli/history")
HISTORY_FILE = os.path.join(HISTORY_DIR, "history.json")

# Define operation types
OP_INSTALL = "install"
OP_TEST = "test"


def ensure_history_dir() -> None:
    """Ensure the history directory exists"""
    os.makedirs(HISTORY_DIR, exist_ok=True)


def load_history() -> List[Dict[str, Any]]:
    """Load history from the history file"""
    try:
        if os.path.exists(HISTORY_FILE):
            with open(HISTORY_FILE, "r") as f:
                return json.load(f)
        else:
            return []
    except (OSError, ValueError) as e:
        print(f"Warning: Failed to load history: {e}")
        return []


def save_history(history: List[Dict[str, Any]]) -> None:
    """Save history to the history file"""
    ensure_history_dir()

    try:
        with open(HISTORY_FILE, "w") as f:
            json.dump(history, f, indent=2)
    except OSError as e:
        print(f"Warning: Failed to save history: {e}")


def add_history_entry(
    operation: str,
    formulas: Union[str, List[str]],
    details: Optional[Dict[str, Any]] = None,
    success: bool = True,
) -> Dict[str, Any]:
    """
    Add a new entry to the history log

    Args:
        operation: The type of operation (install, test)
        formulas: The formula or list of formulas affected
        details: Version, final state, failed stage and error of the run
        success: Whether the run reached its terminal success state

    Returns:
        The created history entry
    """
    history = load_history()

    if isinstance(formulas, str):
        formulas = [formulas]

    entry = {
        "id": str(uuid.uuid4()),
        "timestamp": int(time.time()),
        "date": datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
        "operation": operation,
        "formulas": formulas,
        "success": success,
        "details": details or {},
    }

    history.append(entry)
    save_history(history)

    return entry


def get_history(limit: Optional[int] = None) -> List[Dict[str, Any]]:
    """
    Get history entries, sorted by most recent first

    Args:
        limit: Maximum number of entries to return (None for all)

    Returns:
        List of history entries
    """
    history = load_history()

    sorted_history = sorted(history, key=lambda x: x["timestamp"], reverse=True)

    if limit is not None:
        return sorted_history[:limit]
    return sorted_history


def clear_history() -> bool:
    """Clear all history entries"""
    try:
        if os.path.exists(HISTORY_FILE):
            os.remove(HISTORY_FILE)
        return True
    except OSError as e:
        print(f"Warning: Failed to clear history: {e}")
        return False


def format_history_entry(entry: Dict[str, Any]) -> str:
    """Format a history entry for display"""
    date_str = entry["date"]
    operation = entry["operation"].upper()
    formulas = ", ".join(entry["formulas"])
    details = entry.get("details", {})
    version = details.get("version", "?")

    if entry["operation"] == OP_INSTALL:
        action = f"Installed version {version}"
        if not entry["success"]:
            action = f"Install of {version} stopped at {details.get('stage', 'unknown')}"
    elif entry["operation"] == OP_TEST:
        action = f"Tested version {version}"
    else:
        action = entry["operation"]

    if not entry["success"] and details.get("error"):
        first_line = str(details["error"]).splitlines()[0]
        action = f"{action}: {first_line}"

    status = "SUCCESS" if entry["success"] else "FAILED"

    return f"{date_str} | {status} | {operation} | {formulas} | {action}"
