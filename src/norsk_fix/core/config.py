# ==============================================================================
# Configuration module for batch repair settings
# Модуль конфигурации для настроек пакетного исправления
# ==============================================================================
# This file manages settings for scanning and repairing document directories.
# It loads settings from a YAML file and allows environment variables to override them.
#
# Этот файл управляет настройками обхода и исправления директорий с документами.
# Он загружает настройки из YAML-файла и позволяет переменным окружения переопределять их.
# ==============================================================================

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import yaml
from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigError, RuleTableError
from .rules import RuleTable, default_rule_table, load_rule_table

_dotenv_path = find_dotenv(filename=".env", usecwd=True)
if _dotenv_path:
    load_dotenv(_dotenv_path, override=False)

logger = logging.getLogger(__name__)


# ==============================================================================
# Main configuration class for a repair run
# Основной класс конфигурации для запуска исправления
# ==============================================================================
class RepairConfig(BaseModel):
    """
    Configuration parameters for a batch repair run.
    Параметры конфигурации для пакетного исправления.
    """

    # Glob patterns of documents to scan (only HTML pages by default)
    # Шаблоны файлов для обхода (по умолчанию только HTML-страницы)
    patterns: List[str] = Field(default_factory=lambda: ["*.html"])

    # Descend into subdirectories
    # Обходить ли поддиректории
    recursive: bool = False

    # Directory names never entered when recursive=True
    # Имена директорий, в которые не заходим при recursive=True
    exclude_dirs: List[str] = Field(default_factory=lambda: [".git", "node_modules"])

    # Text encoding used for both reading and writing documents
    # Кодировка, используемая для чтения и записи документов
    encoding: str = "utf-8"

    # Number of worker threads; 1 = sequential
    # Количество потоков; 1 = последовательная обработка
    workers: int = 1

    # Optional YAML rule file replacing the built-in table
    # Необязательный YAML-файл с правилами вместо встроенной таблицы
    rules_path: Optional[Path] = None

    @field_validator("workers")
    @classmethod
    def _check_workers(cls, value: int) -> int:
        if value < 1:
            raise ValueError("workers must be >= 1")
        return value

    @field_validator("patterns")
    @classmethod
    def _check_patterns(cls, value: List[str]) -> List[str]:
        cleaned = [p.strip() for p in value if p and p.strip()]
        if not cleaned:
            raise ValueError("at least one file pattern is required")
        return cleaned


# ==============================================================================
# Environment variable overrides class
# Класс переопределений через переменные окружения
# ==============================================================================
class EnvRepairOverrides(BaseSettings):
    """
    Allows overriding configuration using environment variables.
    Позволяет переопределять конфигурацию через переменные окружения.

    Example: NORSKFIX_WORKERS=4, NORSKFIX_PATTERNS='["*.html", "*.md"]'
    """

    model_config = SettingsConfigDict(
        env_prefix="NORSKFIX_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    patterns: Optional[List[str]] = None
    recursive: Optional[bool] = None
    exclude_dirs: Optional[List[str]] = None
    encoding: Optional[str] = None
    workers: Optional[int] = None
    rules_path: Optional[Path] = None


# ==============================================================================
# Helper function to find the default configuration file
# Вспомогательная функция для поиска файла конфигурации по умолчанию
# ==============================================================================
def _resolve_default_config_path() -> Path:
    """
    Find configs/repair.yaml by searching upward from current file.
    Найти configs/repair.yaml, поднимаясь вверх от текущего файла.
    """
    start = Path(__file__).resolve()
    for p in [start] + list(start.parents):
        cand = p / "configs" / "repair.yaml"
        if cand.exists():
            return cand
    try:
        root = Path(__file__).resolve().parents[3]
        return root / "configs" / "repair.yaml"
    except IndexError:
        return Path("configs/repair.yaml")


DEFAULT_CONFIG_PATH = _resolve_default_config_path()


def load_repair_config(path: Optional[str | Path] = None) -> RepairConfig:
    """
    Load configuration from YAML file and apply environment variable overrides.
    Загрузить конфигурацию из YAML-файла и применить переопределения из переменных окружения.

    Priority / Приоритет (highest to lowest / от высшего к низшему):
        1. Environment variables (NORSKFIX_*) / Переменные окружения (NORSKFIX_*)
        2. YAML file settings / Настройки из YAML-файла
        3. Default values in RepairConfig / Значения по умолчанию в RepairConfig
    """
    file_path = Path(path) if path is not None else DEFAULT_CONFIG_PATH

    if not file_path.exists():
        # A missing file is not an error: defaults are enough to run
        # Отсутствие файла не ошибка: значений по умолчанию достаточно
        logger.debug("repair.yaml not found at %s, using defaults", file_path)
        data = {}
    else:
        logger.debug("repair.yaml: %s", file_path)
        try:
            with file_path.open("r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except OSError as exc:
            raise ConfigError(f"Cannot read config file {file_path}: {exc}", path=file_path) from exc
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in config file {file_path}: {exc}", path=file_path) from exc

    # Extract the 'repair' section, or use the whole dict if there is none
    # Извлекаем секцию 'repair', или используем весь словарь, если секции нет
    params = data.get("repair", data) if isinstance(data, dict) else {}
    if not isinstance(params, dict):
        raise ConfigError(f"Section 'repair' in {file_path} must be a mapping", path=file_path)

    try:
        cfg = RepairConfig(**params)
        override_dict = EnvRepairOverrides().model_dump(exclude_none=True)
        if override_dict:
            cfg = RepairConfig(**{**cfg.model_dump(), **override_dict})
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration in {file_path}: {exc}", path=file_path) from exc

    return cfg


def resolve_rule_table(cfg: RepairConfig) -> RuleTable:
    """
    External rule file if configured, otherwise the built-in table.
    Внешний файл правил, если задан, иначе встроенная таблица.
    """
    if cfg.rules_path is None:
        return default_rule_table()
    rules_path = Path(cfg.rules_path)
    if not rules_path.exists():
        raise RuleTableError(f"Rule file not found: {rules_path}", path=rules_path)
    return load_rule_table(rules_path)
