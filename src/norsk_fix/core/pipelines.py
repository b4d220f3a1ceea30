"""
================================================================================
EN: Batch repair pipeline
RU: Конвейер пакетного исправления
================================================================================

EN: Enumerates documents in a directory, runs the repair engine on each one and
    writes back only the documents that actually changed:
        directory → documents → repair_text → corrected documents + summary
RU: Обходит документы в директории, применяет движок исправления к каждому и
    записывает обратно только изменившиеся документы.

EN: Per-document failures (LoadError / PersistError) are collected in the summary
    and never stop the batch. Only a missing input directory is fatal.
RU: Ошибки отдельных документов собираются в сводку и не останавливают обработку.
    Фатальна только недоступная входная директория.

EN: The pipeline is idempotent: a second run over the same directory writes nothing.
RU: Конвейер идемпотентен: повторный запуск ничего не записывает.
================================================================================
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from .config import RepairConfig, load_repair_config, resolve_rule_table
from .engine import RepairResult, repair_text
from .errors import LoadError, PersistError, RepairError
from .io import Document, iter_document_paths, load_document, save_document_atomic
from .rules import RuleTable, default_rule_table

logger = logging.getLogger(__name__)

Loader = Callable[[Path, str], Document]
Writer = Callable[[Path, str, str], None]


@dataclass
class FileReport:
    """Outcome for one document."""

    path: Path
    result: Optional[RepairResult] = None
    error: Optional[RepairError] = None
    written: bool = False

    @property
    def changed(self) -> bool:
        return self.error is None and self.result is not None and self.result.changed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": str(self.path),
            "replacements": self.result.total if self.result is not None else 0,
            "rules": [
                {"rule": desc, "count": count} for desc, count in (self.result.as_pairs() if self.result else [])
            ],
            "written": self.written,
            "error": str(self.error) if self.error is not None else None,
        }


@dataclass
class BatchSummary:
    """Aggregate of a batch run, in sorted document order."""

    root: Path
    reports: List[FileReport] = field(default_factory=list)
    dry_run: bool = False

    @property
    def scanned(self) -> int:
        return len(self.reports)

    @property
    def changed(self) -> List[FileReport]:
        return [r for r in self.reports if r.changed]

    @property
    def errors(self) -> List[FileReport]:
        return [r for r in self.reports if r.error is not None]

    @property
    def total_replacements(self) -> int:
        return sum(r.result.total for r in self.changed)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "root": str(self.root),
            "dry_run": self.dry_run,
            "scanned": self.scanned,
            "changed": len(self.changed),
            "total_replacements": self.total_replacements,
            "errors": len(self.errors),
            "files": [r.to_dict() for r in self.reports],
        }


# ============================================================================
# EN: In-memory variant: documents → (document, result) pairs
# RU: Вариант в памяти: документы → пары (документ, результат)
# ============================================================================
def repair_documents(
    documents: Iterable[Document],
    table: Optional[RuleTable] = None,
) -> List[Tuple[Document, RepairResult]]:
    rules = table if table is not None else default_rule_table()
    return [(doc, repair_text(doc.text, rules)) for doc in documents]


def _process_document(
    path: Path,
    *,
    rules: RuleTable,
    encoding: str,
    dry_run: bool,
    loader: Loader,
    writer: Writer,
) -> FileReport:
    try:
        doc = loader(path, encoding)
    except LoadError as exc:
        logger.warning("Skipping %s: %s", path, exc)
        return FileReport(path=path, error=exc)

    result = repair_text(doc.text, rules)
    # Нет изменений — файл не трогаем (не меняем mtime)
    if not result.changed or dry_run:
        return FileReport(path=path, result=result)

    try:
        writer(path, result.text, encoding)
    except PersistError as exc:
        logger.warning("Could not save %s: %s", path, exc)
        return FileReport(path=path, result=result, error=exc)
    return FileReport(path=path, result=result, written=True)


# ============================================================================
# EN: PIPELINE: repair every matching document in a directory
# RU: КОНВЕЙЕР: исправить все подходящие документы в директории
# ============================================================================
def repair_directory_pipeline(
    root: str | Path,
    *,
    config: Optional[RepairConfig] = None,
    config_path: Optional[str | Path] = None,
    table: Optional[RuleTable] = None,
    dry_run: bool = False,
    loader: Loader = load_document,
    writer: Writer = save_document_atomic,
) -> BatchSummary:
    """
    EN: Repair all documents under `root` and persist the changed ones.
    RU: Исправить все документы в `root` и сохранить изменённые.

    Parameters / Параметры:
    ----------------------
    root: EN: Directory to scan / RU: Директория для обхода
    config: EN: Ready configuration; if None it is loaded from `config_path`
            RU: Готовая конфигурация; если None — загружается из `config_path`
    table: EN: Rule table; if None it comes from the configuration
           RU: Таблица правил; если None — берётся из конфигурации
    dry_run: EN: Report only, write nothing / RU: Только отчёт, без записи
    loader / writer: EN: I/O collaborators (replaceable in tests)
                     RU: Функции ввода/вывода (подменяются в тестах)

    Raises / Исключения:
    -------------------
    InputDirectoryError: EN: `root` cannot be enumerated / RU: `root` недоступна
    """
    cfg = config or load_repair_config(config_path)
    rules = table if table is not None else resolve_rule_table(cfg)
    root_p = Path(root)

    paths = iter_document_paths(
        root_p,
        cfg.patterns,
        recursive=cfg.recursive,
        exclude_dirs=cfg.exclude_dirs,
    )
    logger.info("Found %d documents under %s", len(paths), root_p)

    def _run(path: Path) -> FileReport:
        return _process_document(
            path,
            rules=rules,
            encoding=cfg.encoding,
            dry_run=dry_run,
            loader=loader,
            writer=writer,
        )

    if cfg.workers > 1 and len(paths) > 1:
        # Документы независимы; map сохраняет порядок путей
        with ThreadPoolExecutor(max_workers=cfg.workers) as executor:
            reports = list(executor.map(_run, paths))
    else:
        reports = [_run(p) for p in paths]

    summary = BatchSummary(root=root_p, reports=reports, dry_run=dry_run)
    logger.info(
        "Scanned %d documents, changed %d, %d replacements, %d errors",
        summary.scanned,
        len(summary.changed),
        summary.total_replacements,
        len(summary.errors),
    )
    return summary
