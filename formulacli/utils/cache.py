#!/usr/bin/env python3

import os
import hashlib
import shutil
from typing import Dict, Optional

from .system import get_real_home

# Default paths
CACHE_DIR = os.path.join(get_real_home(), ".cache/formula-cli")


def ensure_cache_dir() -> None:
    """Ensure the cache directory exists"""
    os.makedirs(os.path.join(CACHE_DIR, "downloads"), exist_ok=True)


def _cache_file(url: str) -> str:
    url_hash = hashlib.sha256(url.encode()).hexdigest()
    return os.path.join(CACHE_DIR, "downloads", url_hash)


def get_cached_download(url: str) -> Optional[str]:
    """Get a cached download if it exists"""
    cache_file = _cache_file(url)
    if os.path.isfile(cache_file):
        return cache_file
    return None


def cache_download(url: str, file_path: str) -> str:
    """Cache a downloaded file that has already passed verification"""
    ensure_cache_dir()
    cache_file = _cache_file(url)
    # Copy under a private name first so readers never see a partial entry
    partial = f"{cache_file}.{os.getpid()}.part"
    shutil.copy2(file_path, partial)
    os.replace(partial, cache_file)
    return cache_file


def clear_cache() -> bool:
    """Clear the download cache"""
    downloads_cache = os.path.join(CACHE_DIR, "downloads")
    if not os.path.exists(downloads_cache):
        return False

    try:
        for file in os.listdir(downloads_cache):
            os.remove(os.path.join(downloads_cache, file))
        return True
    except OSError:
        return False


def get_cache_info() -> Dict:
    """Get information about the cache"""
    info = {
        "exists": os.path.exists(CACHE_DIR),
        "path": CACHE_DIR,
        "size_bytes": 0,
        "download_entries": 0,
    }

    downloads_cache = os.path.join(CACHE_DIR, "downloads")
    if os.path.exists(downloads_cache):
        download_files = os.listdir(downloads_cache)
        info["download_entries"] = len(download_files)
        for file in download_files:
            info["size_bytes"] += os.path.getsize(os.path.join(downloads_cache, file))

    return info
