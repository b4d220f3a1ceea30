"""
Input/Output module for the repair tool.
Модуль ввода/вывода для инструмента исправления.

This module handles:
- Directory enumeration / Обход директорий
- Whole-document reads with explicit decoding / Чтение документов целиком с явной кодировкой
- Atomic write-back (temp file + rename) / Атомарная запись (временный файл + переименование)

Decoding happens here, at the I/O boundary; the repair engine only ever sees str.
"""
from __future__ import annotations

import logging
import os
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Sequence

from .errors import InputDirectoryError, LoadError, PersistError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Document:
    """Named unit of text: path-like identifier plus full decoded content."""

    path: Path
    text: str

    @property
    def name(self) -> str:
        return self.path.name


def iter_document_paths(
    root: str | Path,
    patterns: Sequence[str] = ("*.html",),
    *,
    recursive: bool = False,
    exclude_dirs: Iterable[str] = (),
) -> List[Path]:
    """
    Return the documents under `root` matching any of `patterns`, sorted.

    Raises InputDirectoryError if `root` is missing or not a directory: without
    an input set there is nothing to process.
    """
    root_p = Path(root)
    if not root_p.exists():
        raise InputDirectoryError(f"Input directory does not exist: {root_p}", path=root_p)
    if not root_p.is_dir():
        raise InputDirectoryError(f"Input path is not a directory: {root_p}", path=root_p)

    excluded = set(exclude_dirs)
    found = set()
    for pattern in patterns:
        candidates = root_p.rglob(pattern) if recursive else root_p.glob(pattern)
        for p in candidates:
            if not p.is_file():
                continue
            # Пропускаем файлы внутри исключённых директорий (.git, node_modules, …)
            rel_dirs = p.relative_to(root_p).parts[:-1]
            if excluded.intersection(rel_dirs):
                continue
            found.add(p)
    return sorted(found)


def load_document(path: str | Path, encoding: str = "utf-8") -> Document:
    """
    Read the whole file and decode it.

    Line endings are kept as they are on disk (newline=""), so an unchanged
    round-trip writes back identical bytes.
    """
    p = Path(path)
    try:
        with p.open("r", encoding=encoding, newline="") as f:
            text = f.read()
    except UnicodeDecodeError as exc:
        raise LoadError(f"{p.name}: cannot decode as {encoding} ({exc.reason} at byte {exc.start})", path=p) from exc
    except (OSError, LookupError) as exc:
        raise LoadError(f"{p.name}: cannot read file ({exc})", path=p) from exc
    return Document(path=p, text=text)


def save_document_atomic(path: str | Path, text: str, encoding: str = "utf-8") -> None:
    """
    Overwrite `path` with `text` atomically.

    The text goes to a temporary file in the same directory, which is then
    renamed over the target. On any failure the temporary file is removed and
    the original document stays as it was.
    """
    p = Path(path)
    tmp_name = None
    try:
        with tempfile.NamedTemporaryFile(
            "w",
            encoding=encoding,
            newline="",
            dir=p.parent,
            prefix=f".{p.name}.",
            suffix=".tmp",
            delete=False,
        ) as tmp:
            tmp_name = tmp.name
            tmp.write(text)
            tmp.flush()
            os.fsync(tmp.fileno())
        if p.exists():
            shutil.copymode(p, tmp_name)
        os.replace(tmp_name, p)
    except (OSError, UnicodeEncodeError, LookupError) as exc:
        if tmp_name is not None and os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise PersistError(f"{p.name}: cannot write corrected text ({exc})", path=p) from exc
    logger.debug("Saved %s", p)
