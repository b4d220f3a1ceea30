"""
Error taxonomy of the repair tool.
Классы ошибок инструмента исправления.
"""
from __future__ import annotations

from pathlib import Path
from typing import Optional


class RepairError(Exception):
    """
    Structured, user-facing error.
    Структурированная ошибка для пользователя.

    Carries a short machine-readable code and a message that is safe to print
    in the CLI report without a stack trace.
    """

    code = "repair_error"

    def __init__(self, message: str, *, path: Optional[Path] = None):
        self.message = message
        self.path = path
        super().__init__(message)

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class LoadError(RepairError):
    """Document could not be read or decoded. The document is skipped."""

    code = "load_error"


class PersistError(RepairError):
    """Corrected text could not be written back. The original file is left untouched."""

    code = "persist_error"


class InputDirectoryError(RepairError):
    """Input set cannot be enumerated at all. Fatal for the batch."""

    code = "input_missing"


class RuleTableError(RepairError):
    code = "rule_table"


class ConfigError(RepairError):
    """
    Configuration file cannot be read, parsed or validated. Fatal for the batch.
    Файл конфигурации не читается или некорректен. Фатально для запуска.
    """

    code = "config"
