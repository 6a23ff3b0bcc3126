"""
Compressed archive writing for archive targets

Copyright 2025 HyperSec

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at

    http://www.apache.org/licenses/LICENSE-2.0

Unless required by applicable law or agreed to in writing, software
distributed under the License is distributed on an "AS IS" BASIS,
WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
See the License for the specific language governing permissions and
limitations under the License.
"""

import logging
import os
import tarfile
import threading
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .exceptions import ArchiveError, NoFilesToArchiveError

ARCHIVE_SUFFIX = ".tar.gz"

logger = logging.getLogger(__name__)

_timestamp_lock = threading.Lock()
_last_millis = 0


def _next_millis(now_millis: Optional[int] = None) -> int:
    global _last_millis
    with _timestamp_lock:
        millis = now_millis if now_millis is not None else time.time_ns() // 1_000_000
        if millis <= _last_millis:
            millis = _last_millis + 1
        _last_millis = millis
        return millis


def archive_timestamp(now_millis: Optional[int] = None) -> str:
    """
    UTC suffix in the form _YYYYMMDD_HHMMSS_<unix-millis>.

    Successive calls within one process never return the same value, even
    when they happen within the same millisecond.
    """
    millis = _next_millis(now_millis)
    moment = datetime.fromtimestamp(millis / 1000, tz=timezone.utc)
    return f"_{moment.strftime('%Y%m%d_%H%M%S')}_{millis}"


def archive_name(name: str, now_millis: Optional[int] = None) -> str:
    return f"{name}{archive_timestamp(now_millis)}{ARCHIVE_SUFFIX}"


def working_dir_for(archive_path: Path) -> Path:
    """Directory the repository is materialized into before packaging"""
    archive_path = Path(archive_path)
    return archive_path.with_name(archive_path.name[: -len(ARCHIVE_SUFFIX)])


def count_files(source_dir: Path) -> int:
    """Number of regular files below source_dir"""
    total = 0
    for root, _dirs, files in os.walk(source_dir):
        total += sum(1 for f in files if os.path.isfile(os.path.join(root, f)))
    return total


def write_archive(source_dir: Path, archive_path: Path, name: str) -> Path:
    """
    Package source_dir into a gzip-compressed tarball.

    Args:
        source_dir: Directory to package
        archive_path: Path of the archive to create
        name: Logical name, used as the top-level directory inside the archive

    Returns:
        Path of the written archive

    Raises:
        NoFilesToArchiveError: source_dir holds no regular files
        ArchiveError: the archive could not be written
    """
    source_dir = Path(source_dir)
    archive_path = Path(archive_path)

    if not source_dir.is_dir() or count_files(source_dir) == 0:
        raise NoFilesToArchiveError(name, str(source_dir))

    try:
        archive_path.parent.mkdir(parents=True, exist_ok=True)
        logger.info(f"[ARCHIVE] Creating archive for {name}...")
        with tarfile.open(archive_path, "w:gz") as tar:
            tar.add(source_dir, arcname=name)
    except (OSError, tarfile.TarError) as e:
        if archive_path.exists():
            archive_path.unlink()
        raise ArchiveError("archive", name, e) from e

    file_size = archive_path.stat().st_size
    logger.info(
        f"[SUCCESS] Archived {name} ({file_size / 1024 / 1024:.2f} MB) to {archive_path}"
    )
    return archive_path
