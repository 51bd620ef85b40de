"""Filesystem helpers for graph directories.

All helpers take :class:`pathlib.Path` objects. The graph lifecycle relies on
two primitives from this module: :func:`atomic_write` for small side-car
files and :func:`atomic_rename` for moving whole graph directories, which is
a single ``rename(2)`` on the same filesystem.

Examples
--------
>>> from pathlib import Path
>>> from routegraph_common.fs import atomic_write, ensure_dir
>>> base = ensure_dir(Path("/tmp/graphs"))
>>> atomic_write(base / "graph_info.yml", "import_date: 2024-01-01T00:00:00Z\\n")
"""

from __future__ import annotations

import os
import shutil
import sys
import tempfile
from pathlib import Path
from typing import Literal

from routegraph_common.logging import get_logger

__all__ = [
    "atomic_rename",
    "atomic_write",
    "ensure_dir",
    "fsync_dir",
    "read_text",
    "remove_path",
    "safe_join",
]

logger = get_logger(__name__)


def ensure_dir(path: Path, *, exist_ok: bool = True) -> Path:
    """Create directory if it does not exist, including parent directories.

    Parameters
    ----------
    path : Path
        Directory path to create.
    exist_ok : bool, optional
        If True, do not raise if the directory already exists. Defaults to True.

    Returns
    -------
    Path
        The created or existing directory path (same as input).
    """
    path.mkdir(parents=True, exist_ok=exist_ok)
    return path


def safe_join(base: Path, *parts: str | Path) -> Path:
    """Join path components below ``base``, rejecting directory traversal.

    Archive members are resolved through this helper before extraction.

    Parameters
    ----------
    base : Path
        Base directory path. Must be absolute.
    *parts : str | Path
        Relative path components.

    Returns
    -------
    Path
        Resolved absolute path inside ``base``.

    Raises
    ------
    ValueError
        If ``base`` is relative or the result escapes ``base``.

    Examples
    --------
    >>> safe_join(Path("/safe/base"), "..", "etc", "passwd")  # doctest: +SKIP
    ValueError: Path escapes base directory
    """
    if not base.is_absolute():
        msg = f"Base path must be absolute: {base}"
        raise ValueError(msg)
    resolved = (base / Path(*parts)).resolve()
    try:
        resolved.relative_to(base.resolve())
    except ValueError as exc:
        msg = f"Path escapes base directory: {resolved}"
        raise ValueError(msg) from exc
    return resolved


def read_text(path: Path, encoding: str = "utf-8") -> str:
    """Read text file contents with explicit encoding."""
    return path.read_text(encoding=encoding)


def atomic_write(
    path: Path,
    data: str | bytes,
    mode: Literal["text", "binary"] = "text",
) -> None:
    """Write data atomically using a temporary file and rename.

    The temporary file lives in the target directory so the final
    ``replace`` never crosses filesystems.

    Parameters
    ----------
    path : Path
        Final file path to write. Parent directories are created if needed.
    data : str | bytes
        Content to write. Must be str for text mode or bytes for binary mode.
    mode : Literal['text', 'binary'], optional
        Write mode. Defaults to "text".

    Raises
    ------
    ValueError
        If ``data`` does not match ``mode``.
    """
    ensure_dir(path.parent, exist_ok=True)
    tmp_path: Path | None = None
    try:
        if mode == "text":
            if not isinstance(data, str):
                msg = "text mode requires str data"
                raise ValueError(msg)
            with tempfile.NamedTemporaryFile(
                mode="w", dir=str(path.parent), delete=False, encoding="utf-8"
            ) as temp_file:
                tmp_path = Path(temp_file.name)
                temp_file.write(data)
                temp_file.flush()
                os.fsync(temp_file.fileno())
        else:
            if not isinstance(data, bytes):
                msg = "binary mode requires bytes data"
                raise ValueError(msg)
            with tempfile.NamedTemporaryFile(
                mode="wb", dir=str(path.parent), delete=False
            ) as temp_file:
                tmp_path = Path(temp_file.name)
                temp_file.write(data)
                temp_file.flush()
                os.fsync(temp_file.fileno())
        tmp_path.replace(path)
    finally:
        if tmp_path is not None and sys.exc_info()[0] is not None:
            tmp_path.unlink(missing_ok=True)


def fsync_dir(path: Path) -> None:
    """Flush directory metadata so a completed rename survives a crash.

    Silently does nothing on platforms that cannot open directories.
    """
    if sys.platform == "win32":
        return
    fd = os.open(path, os.O_RDONLY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


def atomic_rename(src: Path, dst: Path) -> Path:
    """Rename ``src`` to ``dst`` in one step and persist the parent directory.

    Parameters
    ----------
    src : Path
        Existing file or directory.
    dst : Path
        Target path on the same filesystem. Must not be an existing directory.

    Returns
    -------
    Path
        ``dst``.

    Raises
    ------
    FileExistsError
        If ``dst`` is an existing directory.
    OSError
        If the rename fails (for example across filesystems).
    """
    if dst.is_dir():
        msg = f"Rename target already exists: {dst}"
        raise FileExistsError(msg)
    src.replace(dst)
    fsync_dir(dst.parent)
    logger.debug(
        "Renamed path",
        extra={"operation": "rename", "source": str(src), "target": str(dst)},
    )
    return dst


def remove_path(path: Path) -> bool:
    """Remove a file or directory tree.

    Returns
    -------
    bool
        True if something was removed, False if ``path`` did not exist.
    """
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
        return True
    if path.exists() or path.is_symlink():
        path.unlink()
        return True
    return False
