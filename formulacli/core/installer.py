#!/usr/bin/env python3

import os
import shutil
import tempfile

from colorama import Fore, Style

from .errors import InstallError


def install(artifact: str, install_dir: str, binary_name: str, mode: int = 0o755) -> str:
    """
    Atomically place ``artifact`` at ``install_dir/binary_name``.

    The bytes are written to a temporary file inside ``install_dir`` and renamed
    over the target, so a reader sees either the old binary or the complete new
    one. An existing binary is always replaced.
    """
    target = os.path.join(install_dir, binary_name)
    if os.path.isdir(target) and not os.path.islink(target):
        raise InstallError(f"Cannot install over directory {target}")

    try:
        os.makedirs(install_dir, exist_ok=True)
    except OSError as e:
        raise InstallError(f"Failed to create install directory {install_dir}: {e}")

    temp_path = None
    try:
        fd, temp_path = tempfile.mkstemp(prefix=f".{binary_name}.", suffix=".tmp", dir=install_dir)
        with os.fdopen(fd, "wb") as dst, open(artifact, "rb") as src:
            shutil.copyfileobj(src, dst)
            dst.flush()
            os.fsync(dst.fileno())
        os.chmod(temp_path, mode)
        os.replace(temp_path, target)
        temp_path = None
    except PermissionError as e:
        raise InstallError(f"Permission denied installing to {install_dir}: {e}")
    except OSError as e:
        raise InstallError(f"Failed to install {binary_name} to {install_dir}: {e}")
    finally:
        if temp_path and os.path.exists(temp_path):
            os.remove(temp_path)

    print(f"{Fore.GREEN}✓ Installed {target}{Style.RESET_ALL}")
    return target
