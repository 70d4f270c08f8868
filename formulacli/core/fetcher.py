#!/usr/bin/env python3

import os
import re
import shutil
import sys
import time
from typing import Optional
from urllib.parse import unquote, urlparse
from urllib.request import url2pathname

import requests

from .errors import FetchError
from ..utils.cache import get_cached_download

BLOCK_SIZE = 64 * 1024
PROGRESS_BAR_LENGTH = 30


def _filename_for(url: str, content_disposition: Optional[str] = None) -> str:
    """Pick a scratch file name from the response headers or the URL"""
    filename = ""
    if content_disposition:
        match = re.search(r"filename=([^;]*)", content_disposition)
        if match:
            filename = match.group(1).strip().strip("'\"")
    if not filename:
        filename = os.path.basename(unquote(urlparse(url).path))

    # Remove quotes and anything that could escape the scratch directory
    filename = os.path.basename(filename.strip().strip("'\""))
    if filename in ("", ".", ".."):
        filename = "download"
    return filename


def _copy_local(source: str, url: str, scratch_dir: str) -> str:
    destination = os.path.join(scratch_dir, _filename_for(url))
    try:
        shutil.copyfile(source, destination)
    except OSError as e:
        raise FetchError(f"Failed to read {url}: {e}")
    return destination


def _draw_progress(downloaded: int, total_size: int) -> None:
    progress = int(PROGRESS_BAR_LENGTH * downloaded / total_size)
    sys.stdout.write(
        f"\r[{'=' * progress}{' ' * (PROGRESS_BAR_LENGTH - progress)}] {downloaded}/{total_size} bytes "
    )
    sys.stdout.flush()


def _download(
    url: str, scratch_dir: str, timeout: Optional[float], show_progress: bool
) -> str:
    deadline = time.monotonic() + timeout if timeout else None
    try:
        with requests.get(url, stream=True, timeout=timeout) as response:
            response.raise_for_status()

            download_path = os.path.join(
                scratch_dir,
                _filename_for(url, response.headers.get("content-disposition")),
            )

            # A content-encoded body is decoded on the fly, so its length differs
            encoding = response.headers.get("content-encoding", "identity").lower()
            advertised = response.headers.get("content-length")
            expected_size = int(advertised) if advertised and advertised.isdigit() else None
            total_size = expected_size or 0

            downloaded = 0
            with open(download_path, "wb") as f:
                for data in response.iter_content(BLOCK_SIZE):
                    f.write(data)
                    downloaded += len(data)

                    if deadline is not None and time.monotonic() > deadline:
                        raise FetchError(
                            f"Download of {url} exceeded the {timeout}s timeout"
                        )
                    if show_progress and total_size > 0:
                        _draw_progress(min(downloaded, total_size), total_size)

            if show_progress and total_size > 0:
                print()  # Newline after progress bar
    except requests.Timeout as e:
        raise FetchError(f"Timed out fetching {url}: {e}")
    except requests.RequestException as e:
        raise FetchError(f"Failed to fetch {url}: {e}")
    except OSError as e:
        raise FetchError(f"Failed to write download of {url}: {e}")

    if encoding == "identity" and expected_size is not None and downloaded != expected_size:
        raise FetchError(
            f"Truncated transfer from {url}: received {downloaded} of {expected_size} bytes"
        )

    return download_path


def fetch(
    url: str,
    scratch_dir: str,
    timeout: Optional[float] = None,
    use_cache: bool = False,
    show_progress: bool = True,
) -> str:
    """
    Retrieve ``url`` into ``scratch_dir`` and return the path of the one file written.

    The payload is never interpreted: source archives and prebuilt executables
    are handled the same way. A cached copy, when allowed, is copied into the
    scratch directory so it still goes through verification.
    """
    if use_cache:
        cached = get_cached_download(url)
        if cached:
            print(f"📦 Using cached download for {url}")
            return _copy_local(cached, url, scratch_dir)

    parsed = urlparse(url)
    if parsed.scheme == "file":
        print(f"📂 Copying {url}")
        return _copy_local(url2pathname(parsed.path), url, scratch_dir)

    print(f"⬇️  Downloading from {url}")
    return _download(url, scratch_dir, timeout, show_progress)
