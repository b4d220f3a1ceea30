"""
================================================================================
EN: Command-line interface (typer)
RU: Интерфейс командной строки (typer)
================================================================================

EN: Exit codes: 0 = all documents processed, 1 = some documents failed,
    2 = fatal (input directory, rule table or configuration unusable).
RU: Коды выхода: 0 = всё обработано, 1 = ошибки в отдельных документах,
    2 = фатальная ошибка (директория, таблица правил или конфигурация).
================================================================================
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich import print
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from norsk_fix.core.config import DEFAULT_CONFIG_PATH, RepairConfig, load_repair_config, resolve_rule_table
from norsk_fix.core.engine import RepairResult, repair_text
from norsk_fix.core.errors import ConfigError, InputDirectoryError, RuleTableError
from norsk_fix.core.pipelines import BatchSummary, repair_directory_pipeline
from norsk_fix.core.rules import RuleCategory, RuleTable, default_rule_table, dump_rule_table, load_rule_table


app = typer.Typer(no_args_is_help=True, add_completion=False)


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging / Показывать отладочные логи"),
):
    """
    Repair lost æ, ø, å in Norwegian documents.
    Исправление потерянных æ, ø, å в норвежских документах.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(show_path=False, rich_tracebacks=False)],
        force=True,
    )


def _fail(message: str, code: int) -> None:
    typer.secho(message, fg=typer.colors.RED, err=True)
    raise typer.Exit(code=code)


def _table_from_option(rules: Optional[Path]) -> RuleTable:
    if rules is None:
        return default_rule_table()
    return load_rule_table(rules)


def _print_fired(result: RepairResult) -> None:
    for fired in result.fired:
        print(f"  {escape(fired.description)} ({fired.count}x)")


def _print_summary(summary: BatchSummary) -> None:
    print("🔧 Norwegian character repair")
    print("==================================")
    print(f"Found {summary.scanned} documents to process.\n")

    for report in summary.reports:
        name = escape(report.path.name)
        if report.error is not None:
            print(f"[red]❌ {name}[/red]: {escape(str(report.error))}")
        elif report.changed:
            verb = "replacements" if report.written else "replacements (dry run)"
            print(f"[green]✅ {name}[/green]: {report.result.total} {verb}")
            _print_fired(report.result)
            print()
        else:
            print(f"[dim]⏭️  {name}: no changes needed[/dim]")

    if summary.errors:
        table = Table(title="Errors")
        table.add_column("Document")
        table.add_column("Kind", style="red")
        table.add_column("Message")
        for report in summary.errors:
            table.add_row(escape(str(report.path)), report.error.code, escape(report.error.message))
        print(table)

    print("\n==================================")
    print(
        f"✨ Done! Documents: {summary.scanned}, changed: {len(summary.changed)}, "
        f"total replacements: {summary.total_replacements}"
    )
    if summary.dry_run:
        print("[yellow]Dry run: no files were written.[/yellow]")


@app.command("repair")
def repair_cmd(
    directory: Path = typer.Argument(..., help="Directory with documents to repair / Папка с документами"),
    config: Path = typer.Option(DEFAULT_CONFIG_PATH, "--config", help="Path to repair.yaml / Путь к YAML-конфигу"),
    pattern: Optional[List[str]] = typer.Option(None, "--pattern", "-p", help="Glob pattern, repeatable / Шаблон файлов (можно несколько)"),
    recursive: Optional[bool] = typer.Option(None, "--recursive/--no-recursive", help="Descend into subdirectories / Обходить поддиректории"),
    workers: Optional[int] = typer.Option(None, "--workers", "-w", min=1, help="Worker threads / Число потоков"),
    rules: Optional[Path] = typer.Option(None, "--rules", help="YAML rule file replacing the built-in table / YAML-файл правил вместо встроенной таблицы"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Report changes without writing / Показать изменения без записи"),
    as_json: bool = typer.Option(False, "--json", help="Print the summary as JSON / Вывести сводку в JSON"),
):
    # Broken config is fatal (exit 2), like a missing directory
    # Сломанный конфиг фатален (код 2), как и отсутствующая директория
    try:
        cfg = load_repair_config(config)
    except ConfigError as exc:
        _fail(f"Invalid configuration: {exc}", 2)

    updates = {}
    if pattern:
        updates["patterns"] = list(pattern)
    if recursive is not None:
        updates["recursive"] = recursive
    if workers is not None:
        updates["workers"] = workers
    if rules is not None:
        updates["rules_path"] = rules
    if updates:
        try:
            cfg = RepairConfig(**{**cfg.model_dump(), **updates})
        except ValueError as exc:
            _fail(f"Invalid configuration: {exc}", 2)

    try:
        table = resolve_rule_table(cfg)
        summary = repair_directory_pipeline(directory, config=cfg, table=table, dry_run=dry_run)
    except (InputDirectoryError, RuleTableError) as exc:
        _fail(str(exc), 2)

    if as_json:
        typer.echo(json.dumps(summary.to_dict(), ensure_ascii=False, indent=2))
    else:
        _print_summary(summary)

    if summary.errors:
        raise typer.Exit(code=1)


@app.command("fix-text")
def fix_text_cmd(
    text: str = typer.Argument(..., help="Text to repair / Текст для исправления"),
    rules: Optional[Path] = typer.Option(None, "--rules", help="YAML rule file / YAML-файл правил"),
):
    try:
        table = _table_from_option(rules)
    except RuleTableError as exc:
        _fail(str(exc), 2)

    result = repair_text(text, table)
    typer.echo(result.text)
    if result.changed:
        print(f"[dim]{result.total} replacements[/dim]")
        _print_fired(result)


@app.command("rules")
def rules_cmd(
    category: Optional[RuleCategory] = typer.Option(None, "--category", "-c", help="Only this category / Только эта категория"),
    rules: Optional[Path] = typer.Option(None, "--rules", help="YAML rule file / YAML-файл правил"),
):
    try:
        table = _table_from_option(rules)
    except RuleTableError as exc:
        _fail(str(exc), 2)

    selected = table.by_category(category) if category is not None else list(table)
    out = Table(title=f"Rules ({len(selected)})")
    out.add_column("#", justify="right", style="cyan")
    out.add_column("Category")
    out.add_column("Target")
    out.add_column("Replacement")
    out.add_column("Match")
    for idx, rule in enumerate(selected, start=1):
        if rule.category is RuleCategory.ASCII_WORD_FORM:
            match = "word start" if rule.stem else "whole word"
        else:
            match = "anywhere"
        out.add_row(str(idx), rule.category.value, escape(repr(rule.target)), escape(rule.replacement), match)
    print(out)


@app.command("check-rules")
def check_rules_cmd(
    rules: Optional[Path] = typer.Option(None, "--rules", help="YAML rule file / YAML-файл правил"),
):
    try:
        table = load_rule_table(rules, validate=False) if rules is not None else default_rule_table()
    except RuleTableError as exc:
        _fail(str(exc), 2)

    conflicts = table.conflicts()
    if not conflicts:
        print(f"[green]OK[/green]: {len(table)} rules, no conflicts")
        return

    out = Table(title=f"Conflicts ({len(conflicts)})")
    out.add_column("Kind", style="red")
    out.add_column("Details")
    for conflict in conflicts:
        out.add_row(conflict.kind, escape(conflict.message))
    print(out)
    raise typer.Exit(code=1)


@app.command("export-rules")
def export_rules_cmd(
    out: Path = typer.Argument(..., help="Destination YAML file / Файл для сохранения правил"),
):
    path = dump_rule_table(default_rule_table(), out)
    print(f"[green]Rules saved[/green]: {path} ({len(default_rule_table())} rules)")


def main():  # pragma: no cover
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
