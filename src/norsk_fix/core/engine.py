"""
================================================================================
EN: Repair engine
RU: Движок исправления
================================================================================

EN: A pure fold over the rule table: every rule sees the text produced by the
    previous one, and the result records how often each rule fired.
RU: Чистая свёртка по таблице правил: каждое правило получает текст после
    предыдущего, а результат хранит число срабатываний каждого правила.
================================================================================
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from .rules import ReplacementRule, RuleTable, default_rule_table

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FiredRule:
    """
    A rule that matched at least once, with its occurrence count.
    Сработавшее правило и число его срабатываний.
    """

    rule: ReplacementRule
    count: int

    @property
    def description(self) -> str:
        return self.rule.description


@dataclass
class RepairResult:
    """
    Output of a single repair pass: corrected text, total number of
    replacements and the rules that fired, in table order.
    Результат одного прохода: исправленный текст, число замен и сработавшие правила.
    """

    text: str
    total: int = 0
    fired: List[FiredRule] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return self.total > 0

    def as_pairs(self) -> List[Tuple[str, int]]:
        return [(f.description, f.count) for f in self.fired]


def repair_text(text: str, table: Optional[RuleTable] = None) -> RepairResult:
    """
    Apply every rule of `table` to `text`, in order, each rule seeing the text
    produced by the previous one.
    Применить правила таблицы к тексту по порядку.

    No-op rules are skipped. Replacements are literal. The function is pure
    and total: empty or already correct text gives zero replacements.
    """
    rules = table if table is not None else default_rule_table()

    current = text or ""
    fired: List[FiredRule] = []
    for rule in rules:
        if rule.is_noop:
            continue
        # lambda keeps the replacement literal (no \1 / \g<> expansion)
        # lambda оставляет замену буквальной (без подстановки \1 / \g<>)
        current, count = rule.pattern.subn(lambda _m, r=rule.replacement: r, current)
        if count:
            fired.append(FiredRule(rule=rule, count=count))
            logger.debug("%s (%dx)", rule.description, count)

    return RepairResult(text=current, total=sum(f.count for f in fired), fired=fired)


def is_fixed_point(text: str, table: Optional[RuleTable] = None) -> bool:
    """
    True when another repair pass would not change `text`.
    Истина, если повторный проход не изменит текст.
    """
    return repair_text(text, table).total == 0
