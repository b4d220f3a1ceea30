"""
================================================================================
EN: Rule table for repairing Norwegian text
RU: Таблица правил для исправления норвежского текста
================================================================================

EN: The table holds three kinds of corrections:
    - AsciiWordForm: a plain ASCII word that lost its diacritics ("vare" → "våre").
      Matched only as a whole word (or word start for stems) so that "mal" never
      fires inside "normal".
    - DoubleEncodedByteSequence: the character sequence that appears when UTF-8
      text is decoded as cp1252/latin-1 once more ("Ã¥" → "å"). Matched anywhere.
    - HtmlEntity: named or numeric entity standing in for a letter ("&aelig;" → "æ").
      Matched anywhere, exact case.
RU: Таблица содержит три вида исправлений: слова без диакритики (только целым
    словом или началом слова), последовательности двойного кодирования UTF-8
    и HTML-сущности (в любом месте текста).

EN: Rules are expected to be independent. No rule may match inside or across
    another rule's target, and no rule may match text that a replacement leaves
    behind, alone or together with neighbouring target fragments.
    `RuleTable.conflicts()` checks all of this so that adding a rule cannot
    silently make the result depend on rule order or break idempotency.
RU: Правила должны быть независимы: совпадения правил не пересекаются, и ни одно
    правило не срабатывает на тексте, полученном после замены.
    `RuleTable.conflicts()` проверяет это.
================================================================================
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

import yaml

from .errors import RuleTableError

logger = logging.getLogger(__name__)


class RuleCategory(str, Enum):
    ASCII_WORD_FORM = "AsciiWordForm"
    DOUBLE_ENCODED = "DoubleEncodedByteSequence"
    HTML_ENTITY = "HtmlEntity"


@dataclass(frozen=True)
class ReplacementRule:
    """
    Single correction: literal `target` → literal `replacement`.
    Одно исправление: буквальная цель → буквальная замена.

    `stem=True` anchors an AsciiWordForm rule at the word start only, so
    "losning" also repairs "losningen" and "losninger".
    """

    target: str
    replacement: str
    category: RuleCategory = RuleCategory.ASCII_WORD_FORM
    stem: bool = False
    pattern: "re.Pattern[str]" = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not self.target:
            raise RuleTableError("Rule target must not be empty.")
        category = RuleCategory(self.category)
        object.__setattr__(self, "category", category)
        object.__setattr__(self, "pattern", re.compile(_build_expression(self.target, category, self.stem)))

    @property
    def is_noop(self) -> bool:
        return self.target == self.replacement

    @property
    def description(self) -> str:
        return f'"{self.target}" → "{self.replacement}"'

    def to_dict(self) -> Dict[str, Any]:
        row: Dict[str, Any] = {
            "target": self.target,
            "replacement": self.replacement,
            "category": self.category.value,
        }
        if self.stem:
            row["stem"] = True
        return row

    @classmethod
    def from_dict(cls, row: Dict[str, Any]) -> "ReplacementRule":
        try:
            target = str(row["target"])
            replacement = str(row["replacement"])
        except (KeyError, TypeError) as exc:
            raise RuleTableError(f"Rule entry needs 'target' and 'replacement': {row!r}") from exc
        raw_category = row.get("category", RuleCategory.ASCII_WORD_FORM.value)
        try:
            category = RuleCategory(raw_category)
        except ValueError as exc:
            known = ", ".join(c.value for c in RuleCategory)
            raise RuleTableError(f"Unknown rule category {raw_category!r} (expected one of: {known})") from exc
        return cls(target=target, replacement=replacement, category=category, stem=bool(row.get("stem", False)))


# Word characters plus combining diacritics, so decomposed "ga\u030a" is one word
# Буквы плюс комбинируемые диакритические знаки: разложенное "ga\u030a" это одно слово
_WORD_CHAR = r"[\w\u0300-\u036f]"


def _build_expression(target: str, category: RuleCategory, stem: bool) -> str:
    literal = re.escape(target)
    if category is RuleCategory.ASCII_WORD_FORM:
        # \w is Unicode-aware for str patterns: "øar" is one word
        # \w учитывает Unicode для str-шаблонов: "øar" это одно слово
        start = rf"(?<!{_WORD_CHAR}){literal}"
        return start if stem else rf"{start}(?!{_WORD_CHAR})"
    return literal


@dataclass(frozen=True)
class RuleConflict:
    kind: str  # noop | overlap | not_idempotent
    rule: ReplacementRule
    other: Optional[ReplacementRule] = None

    @property
    def message(self) -> str:
        if self.kind == "noop":
            return f"{self.rule.description} replaces text with itself"
        if self.kind == "overlap":
            return f"{self.rule.description} can match inside or across the target of {self.other.description}"
        return f"{self.rule.description} can match text left by the replacement of {self.other.description}"


def _targets_overlap(rule: ReplacementRule, other: ReplacementRule) -> bool:
    """
    True when a match of `rule` and a following match of `other` can share characters
    ("ab" and "bc" both match in "abc").
    Истина, если совпадения двух правил могут перекрываться.
    """
    first, second = rule.target, other.target
    for k in range(1, min(len(first), len(second))):
        if first[-k:] != second[:k]:
            continue
        merged = first + second[k:]
        if rule.pattern.match(merged) and other.pattern.match(merged, len(first) - k):
            return True
    return False


def _replacement_contexts(rule: ReplacementRule, other: ReplacementRule) -> Iterator[str]:
    """
    Texts that `other` leaves behind when its replacement lands next to (or around)
    a fragment of `rule.target`. Only placements where `other` really fires are used.
    Тексты, которые остаются после замены `other` рядом с фрагментом цели `rule`.

    With "ab" → "a" the text "abb" becomes "ab", so "ab" is yielded.
    """
    target, source, repl = rule.target, other.target, other.replacement
    n, m = len(target), len(repl)
    for offset in range(1 - m, n):
        lo, hi = max(offset, 0), min(offset + m, n)
        if target[lo:hi] != repl[lo - offset:hi - offset]:
            continue
        before, after = target[:lo], target[hi:]
        if other.pattern.match(before + source + after, len(before)):
            yield before + repl + after


class RuleTable:
    """
    Immutable, ordered sequence of replacement rules.
    Неизменяемая упорядоченная последовательность правил замены.
    """

    def __init__(self, rules: Iterable[ReplacementRule]):
        self._rules: Tuple[ReplacementRule, ...] = tuple(rules)

    def __iter__(self) -> Iterator[ReplacementRule]:
        return iter(self._rules)

    def __len__(self) -> int:
        return len(self._rules)

    def __getitem__(self, index: int) -> ReplacementRule:
        return self._rules[index]

    def __repr__(self) -> str:
        return f"RuleTable({len(self._rules)} rules)"

    @property
    def rules(self) -> Tuple[ReplacementRule, ...]:
        return self._rules

    def by_category(self, category: RuleCategory | str) -> List[ReplacementRule]:
        cat = RuleCategory(category)
        return [r for r in self._rules if r.category is cat]

    def subset(self, *categories: RuleCategory | str) -> "RuleTable":
        wanted = {RuleCategory(c) for c in categories}
        return RuleTable(r for r in self._rules if r.category in wanted)

    def conflicts(self) -> List[RuleConflict]:
        """
        Find rules that would make the outcome order-dependent or non-idempotent.

        Найти правила, из-за которых результат зависит от порядка или не идемпотентен.

        - noop: target equals replacement (the engine skips such rules).
        - overlap: a rule's matcher finds a match inside another rule's target,
          or a match of one rule can share characters with a match of another
          (or of itself: "aa" in "aaa").
        - not_idempotent: a rule's matcher finds a match inside a replacement,
          or in a replacement joined with the target fragments around it, so a
          second pass would change the text again.
        """
        found: List[RuleConflict] = [RuleConflict("noop", r) for r in self._rules if r.is_noop]
        active = [r for r in self._rules if not r.is_noop]

        for rule in active:
            for other in active:
                inside = other is not rule and rule.pattern.search(other.target)
                if inside or _targets_overlap(rule, other):
                    found.append(RuleConflict("overlap", rule, other))
        for rule in active:
            for other in active:
                if rule.pattern.search(other.replacement) or any(
                    rule.pattern.search(text) for text in _replacement_contexts(rule, other)
                ):
                    found.append(RuleConflict("not_idempotent", rule, other))
        return found

    def validate(self) -> "RuleTable":
        """
        Raise RuleTableError on overlap/idempotency conflicts; warn about no-op rules.
        Выбросить RuleTableError при конфликтах; предупредить о пустых правилах.
        """
        problems = []
        for conflict in self.conflicts():
            if conflict.kind == "noop":
                logger.warning("Rule %s is a no-op and will never be applied", conflict.rule.description)
            else:
                problems.append(conflict.message)
        if problems:
            raise RuleTableError("Rule table has conflicting rules:\n  " + "\n  ".join(problems))
        return self


# ==============================================================================
# Built-in Norwegian rules
# Встроенные правила для норвежского языка
# ==============================================================================

# Letters whose UTF-8 bytes get re-read as single-byte text
# Буквы, чьи байты UTF-8 повторно читаются как однобайтовый текст
_MOJIBAKE_LETTERS = "æÆøØåÅéèüöä"

# (ascii form, correct form)
_HTML_ENTITY_LETTERS: Sequence[Tuple[str, str]] = (
    ("aelig", "æ"),
    ("AElig", "Æ"),
    ("oslash", "ø"),
    ("Oslash", "Ø"),
    ("aring", "å"),
    ("Aring", "Å"),
)

# (target, replacement, stem)
_WORD_FORMS: Sequence[Tuple[str, str, bool]] = (
    # å
    ("vare", "våre", False),
    ("Var", "Vår", False),
    ("var", "vår", False),
    ("ar", "år", False),
    ("Ar", "År", False),
    ("nar", "når", False),
    ("Nar", "Når", False),
    ("ga", "gå", False),
    ("Ga", "Gå", False),
    ("sta", "stå", False),
    ("Sta", "Stå", False),
    ("fa", "få", False),
    ("Fa", "Få", False),
    ("palitelig", "pålitelig", True),
    ("Palitelig", "Pålitelig", True),
    ("tilgang", "tilgång", False),
    ("bade", "både", False),
    ("Bade", "Både", False),
    ("matte", "måtte", False),
    ("Matte", "Måtte", False),
    ("mal", "mål", False),
    ("Mal", "Mål", False),
    ("mate", "måte", False),
    ("Mate", "Måte", False),
    ("kvalitetsmal", "kvalitetsmål", True),
    # ø
    ("storre", "større", False),
    ("Storre", "Større", False),
    ("sosterselskaper", "søsterselskaper", True),
    ("Sosterselskaper", "Søsterselskaper", True),
    ("hoye", "høye", False),
    ("Hoye", "Høye", False),
    ("hoy", "høy", False),
    ("Hoy", "Høy", False),
    ("nodvendig", "nødvendig", True),
    ("Nodvendig", "Nødvendig", True),
    ("fore", "føre", False),
    ("Fore", "Føre", False),
    ("forst", "først", False),
    ("Forst", "Først", False),
    ("storst", "størst", True),
    ("Storst", "Størst", True),
    ("problemlosning", "problemløsning", True),
    ("losning", "løsning", True),
    ("Losning", "Løsning", True),
    ("folg", "følg", True),
    ("Folg", "Følg", True),
    ("nokkel", "nøkkel", True),
    ("Nokkel", "Nøkkel", True),
    ("miljo", "miljø", True),
    ("Miljo", "Miljø", True),
    ("Gronn", "Grønn", True),
    ("gronn", "grønn", True),
    ("kjorer", "kjører", True),
    ("Kjorer", "Kjører", True),
    ("kjore", "kjøre", False),
    ("Kjore", "Kjøre", False),
    ("tor", "tør", False),
    ("Tor", "Tør", False),
    ("sor", "sør", False),
    ("Sor", "Sør", False),
    ("nor", "nør", False),
    ("Nor", "Nør", False),
    ("bor", "bør", False),
    ("Bor", "Bør", False),
    ("gor", "gør", False),
    ("Gor", "Gør", False),
    ("moter", "møter", False),
    ("Moter", "Møter", False),
    ("mote", "møte", False),
    ("Mote", "Møte", False),
    ("blomst", "blømst", True),
    ("kop", "køp", False),
    ("odelegge", "ødelegge", True),
    ("Odelegge", "Ødelegge", True),
    ("okonomi", "økonomi", True),
    ("Okonomi", "Økonomi", True),
    ("okning", "økning", True),
    ("Okning", "Økning", True),
    ("oke", "øke", False),
    ("Oke", "Øke", False),
    ("oker", "øker", False),
    ("Oker", "Øker", False),
    ("oyeblikkelig", "øyeblikkelig", True),
    ("Oyeblikkelig", "Øyeblikkelig", True),
    ("onsker", "ønsker", True),
    ("Onsker", "Ønsker", True),
    ("onske", "ønske", False),
    ("Onske", "Ønske", False),
    # æ
    ("vaere", "være", False),
    ("Vaere", "Være", False),
    ("naering", "næring", True),
    ("Naering", "Næring", True),
    ("naermeste", "nærmeste", True),
    ("Naermeste", "Nærmeste", True),
    ("naer", "nær", False),
    ("Naer", "Nær", False),
    ("laere", "lære", False),
    ("Laere", "Lære", False),
    ("laerer", "lærer", True),
    ("Laerer", "Lærer", True),
    ("laerling", "lærling", True),
    ("Laerling", "Lærling", True),
    ("aere", "ære", False),
    ("Aere", "Ære", False),
    ("aerlig", "ærlig", True),
    ("Aerlig", "Ærlig", True),
    # electrical / technical
    ("stromforsyning", "strømforsyning", True),
    ("Stromforsyning", "Strømforsyning", True),
    ("strom", "strøm", False),
    ("Strom", "Strøm", False),
    # places
    ("omradet", "området", True),
    ("Omradet", "Området", True),
    ("omrade", "område", False),
    ("Omrade", "Område", False),
    ("omrader", "områder", True),
    ("Omrader", "Områder", True),
    # business
    ("kjope", "kjøpe", False),
    ("Kjope", "Kjøpe", False),
    ("kjoper", "kjøper", True),
    ("Kjoper", "Kjøper", True),
    ("tjenster", "tjenester", True),
    ("forstar", "forstår", True),
    ("Forstar", "Forstår", True),
    ("oppfolging", "oppfølging", True),
    ("Oppfolging", "Oppfølging", True),
    ("sporsmal", "spørsmål", True),
    ("Sporsmal", "Spørsmål", True),
    ("soknad", "søknad", True),
    ("Soknad", "Søknad", True),
    ("sok", "søk", False),
    ("Sok", "Søk", False),
    ("soker", "søker", True),
    ("Soker", "Søker", True),
)


def _double_encoded_rules() -> List[ReplacementRule]:
    rules: List[ReplacementRule] = []
    for letter in _MOJIBAKE_LETTERS:
        raw = letter.encode("utf-8")
        # cp1252 and latin-1 only disagree for the uppercase letters (0x80-0x9F)
        variants = dict.fromkeys((raw.decode("cp1252"), raw.decode("latin-1")))
        for garbled in variants:
            rules.append(ReplacementRule(garbled, letter, RuleCategory.DOUBLE_ENCODED))
    return rules


def _html_entity_rules() -> List[ReplacementRule]:
    rules: List[ReplacementRule] = []
    for name, letter in _HTML_ENTITY_LETTERS:
        code = ord(letter)
        forms = dict.fromkeys((f"&{name};", f"&#{code};", f"&#x{code:X};", f"&#x{code:x};"))
        for entity in forms:
            rules.append(ReplacementRule(entity, letter, RuleCategory.HTML_ENTITY))
    return rules


def _word_form_rules() -> List[ReplacementRule]:
    return [ReplacementRule(t, r, RuleCategory.ASCII_WORD_FORM, stem=s) for t, r, s in _WORD_FORMS]


@lru_cache(maxsize=1)
def default_rule_table() -> RuleTable:
    """
    Built-in Norwegian table.
    Встроенная таблица для норвежского языка.

    Byte-corruption and entity rules come first so that lexical rules only
    ever see already-decoded letters.
    """
    return RuleTable(_double_encoded_rules() + _html_entity_rules() + _word_form_rules())


# ==============================================================================
# External rule files (YAML)
# Внешние файлы правил (YAML)
# ==============================================================================

def load_rule_table(path: str | Path, *, validate: bool = True) -> RuleTable:
    """
    Load a rule table from YAML.
    Загрузить таблицу правил из YAML-файла:

        rules:
          - {target: vare, replacement: våre, category: AsciiWordForm}
          - {target: "&aelig;", replacement: æ, category: HtmlEntity}
    """
    file_path = Path(path)
    try:
        with file_path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except OSError as exc:
        raise RuleTableError(f"Cannot read rule file {file_path}: {exc}", path=file_path) from exc
    except yaml.YAMLError as exc:
        raise RuleTableError(f"Invalid YAML in rule file {file_path}: {exc}", path=file_path) from exc

    rows = data.get("rules") if isinstance(data, dict) else data
    if not isinstance(rows, list):
        raise RuleTableError(f"Rule file {file_path} must contain a 'rules' list", path=file_path)

    table = RuleTable(ReplacementRule.from_dict(row) for row in rows)
    logger.debug("Loaded %d rules from %s", len(table), file_path)
    return table.validate() if validate else table


class _RuleDumper(yaml.SafeDumper):
    pass


def _represent_str(dumper: yaml.SafeDumper, value: str) -> yaml.ScalarNode:
    # C1 controls (e.g. U+0085, a YAML line break) only survive in double quotes
    quoted = any(ord(ch) < 0x20 or 0x7F <= ord(ch) < 0xA0 for ch in value)
    return dumper.represent_scalar("tag:yaml.org,2002:str", value, style='"' if quoted else None)


_RuleDumper.add_representer(str, _represent_str)


def dump_rule_table(table: RuleTable, path: str | Path) -> Path:
    out_p = Path(path)
    out_p.parent.mkdir(parents=True, exist_ok=True)
    payload = {"rules": [r.to_dict() for r in table]}
    with out_p.open("w", encoding="utf-8") as f:
        yaml.dump(payload, f, Dumper=_RuleDumper, allow_unicode=True, sort_keys=False)
    return out_p
