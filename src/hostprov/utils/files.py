"""Atomic file writes."""

import logging
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Union


logger = logging.getLogger(__name__)


@contextmanager
def atomic_target(path: Union[str, Path], mode: int = 0o644) -> Iterator[Path]:
    """Yield a temporary path next to `path` and move it into place on success.

    The temporary file is created with `mode` before anything is written to
    it. If the block raises, the temporary file is removed and the final
    path is left untouched.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    os.close(fd)
    tmp_path = Path(tmp_name)
    try:
        os.chmod(tmp_path, mode)
        yield tmp_path
        os.chmod(tmp_path, mode)
        os.replace(tmp_path, path)
        logger.debug(f"Wrote {path}")
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


def atomic_write(path: Union[str, Path], content: str, mode: int = 0o644) -> None:
    """Write text to `path` via a temporary file, fsync and rename."""
    with atomic_target(path, mode=mode) as tmp_path:
        with open(tmp_path, "w", encoding="utf-8") as fh:
            fh.write(content)
            fh.flush()
            os.fsync(fh.fileno())


def read_key_values(path: Union[str, Path]) -> dict:
    """Parse a `key=value` file. Missing files read as empty."""
    path = Path(path)
    if not path.exists():
        return {}

    entries = {}
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        entries[key.strip()] = value.strip()
    return entries
