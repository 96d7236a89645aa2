"""Crash-safe file replacement for the queue store and config file."""

import os
import tempfile
from pathlib import Path


def atomic_write_text(
    path: Path | str, content: str, encoding: str = "utf-8", mode: int | None = None
) -> Path:
    """Replace ``path`` with ``content`` so readers see the old or new file, never half of one.

    The data is flushed to disk in a sibling temp file, which is renamed over
    the target. Missing parent directories are created. When ``mode`` is
    given it is applied to the temp file before the rename, so the target
    never exists with looser permissions.

    Returns:
        The resolved target path.
    """
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".tmp")
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding=encoding) as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        if mode is not None:
            tmp_path.chmod(mode)
        tmp_path.replace(target)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise
    return target
