from __future__ import annotations

import unittest

import pytest

from norsk_fix.core.errors import RuleTableError
from norsk_fix.core.rules import (
    ReplacementRule,
    RuleCategory,
    RuleTable,
    default_rule_table,
    dump_rule_table,
    load_rule_table,
)


class DefaultTableTests(unittest.TestCase):
    def test_builtin_table_has_no_conflicts(self):
        table = default_rule_table()
        self.assertEqual(table.conflicts(), [])
        self.assertIs(table.validate(), table)

    def test_builtin_table_covers_all_categories(self):
        table = default_rule_table()
        for category in RuleCategory:
            self.assertTrue(table.by_category(category), category)

    def test_byte_and_entity_rules_come_before_word_rules(self):
        categories = [r.category for r in default_rule_table()]
        first_word = categories.index(RuleCategory.ASCII_WORD_FORM)
        self.assertNotIn(RuleCategory.DOUBLE_ENCODED, categories[first_word:])
        self.assertNotIn(RuleCategory.HTML_ENTITY, categories[first_word:])

    def test_double_encoded_targets(self):
        targets = {r.target: r.replacement for r in default_rule_table().by_category("DoubleEncodedByteSequence")}
        self.assertEqual(targets["Ã¦"], "æ")
        self.assertEqual(targets["Ã¸"], "ø")
        self.assertEqual(targets["Ã¥"], "å")
        self.assertEqual(targets["Ã˜"], "Ø")
        self.assertEqual(targets["Ã…"], "Å")
        self.assertEqual(targets["Ã†"], "Æ")
        # latin-1 reading of the same bytes
        self.assertEqual(targets["Ã\x98"], "Ø")

    def test_entity_targets(self):
        targets = {r.target: r.replacement for r in default_rule_table().by_category(RuleCategory.HTML_ENTITY)}
        self.assertEqual(targets["&aelig;"], "æ")
        self.assertEqual(targets["&Oslash;"], "Ø")
        self.assertEqual(targets["&#229;"], "å")
        self.assertEqual(targets["&#xE6;"], "æ")
        self.assertEqual(targets["&#xe6;"], "æ")

    def test_no_identity_rules_in_builtin_table(self):
        self.assertFalse(any(r.is_noop for r in default_rule_table()))


class MatcherTests(unittest.TestCase):
    def test_word_rule_only_matches_whole_words(self):
        rule = ReplacementRule("mal", "mål")
        self.assertIsNone(rule.pattern.search("normal prosess"))
        self.assertIsNone(rule.pattern.search("malen"))
        self.assertIsNotNone(rule.pattern.search("Dette er mitt mal"))
        self.assertIsNotNone(rule.pattern.search("(mal)"))

    def test_word_rule_is_case_sensitive(self):
        rule = ReplacementRule("mal", "mål")
        self.assertIsNone(rule.pattern.search("Mal"))

    def test_word_boundary_treats_norwegian_letters_as_word_characters(self):
        rule = ReplacementRule("ar", "år")
        self.assertIsNone(rule.pattern.search("øar"))

    def test_combining_marks_are_part_of_the_word(self):
        # decomposed "gå" and "øar"
        rule = ReplacementRule("ga", "gå")
        self.assertIsNone(rule.pattern.search("Jeg vil ga\u030a hjem"))
        self.assertIsNone(ReplacementRule("ar", "år").pattern.search("o\u0308ar"))
        self.assertIsNone(ReplacementRule("ar", "år", stem=True).pattern.search("o\u0308ar"))
        self.assertIsNotNone(rule.pattern.search("Jeg vil ga hjem"))

    def test_stem_rule_allows_suffix_but_not_prefix(self):
        rule = ReplacementRule("losning", "løsning", stem=True)
        self.assertIsNotNone(rule.pattern.search("losningen"))
        self.assertIsNone(rule.pattern.search("problemlosning"))

    def test_substring_rules_ignore_word_boundaries(self):
        rule = ReplacementRule("Ã¥", "å", RuleCategory.DOUBLE_ENCODED)
        self.assertIsNotNone(rule.pattern.search("vÃ¥re"))
        entity = ReplacementRule("&aelig;", "æ", "HtmlEntity")
        self.assertIs(entity.category, RuleCategory.HTML_ENTITY)
        self.assertIsNotNone(entity.pattern.search("br&aelig;nner"))
        self.assertIsNone(entity.pattern.search("br&AElig;nner"))

    def test_target_is_matched_literally(self):
        rule = ReplacementRule("a.b", "x", RuleCategory.HTML_ENTITY)
        self.assertIsNone(rule.pattern.search("axb"))

    def test_empty_target_is_rejected(self):
        with self.assertRaises(RuleTableError):
            ReplacementRule("", "x")

    def test_description(self):
        self.assertEqual(ReplacementRule("vare", "våre").description, '"vare" → "våre"')


class ConflictTests(unittest.TestCase):
    def test_noop_rule_is_reported_but_does_not_fail_validation(self):
        table = RuleTable([ReplacementRule("elektriker", "elektriker"), ReplacementRule("vare", "våre")])
        kinds = [c.kind for c in table.conflicts()]
        self.assertEqual(kinds, ["noop"])
        table.validate()

    def test_overlapping_rules_are_rejected(self):
        table = RuleTable(
            [
                ReplacementRule("losning", "løsning", stem=True),
                ReplacementRule("losninger", "løsninger"),
            ]
        )
        conflicts = table.conflicts()
        self.assertEqual([c.kind for c in conflicts], ["overlap"])
        self.assertEqual(conflicts[0].other.target, "losninger")
        with self.assertRaises(RuleTableError):
            table.validate()

    def test_rule_matching_a_replacement_is_rejected(self):
        table = RuleTable(
            [
                ReplacementRule("&aring;", "å", RuleCategory.HTML_ENTITY),
                ReplacementRule("å", "aa", RuleCategory.DOUBLE_ENCODED),
            ]
        )
        kinds = {c.kind for c in table.conflicts()}
        self.assertIn("not_idempotent", kinds)
        with self.assertRaises(RuleTableError):
            table.validate()

    def test_partially_overlapping_targets_are_rejected(self):
        table = RuleTable(
            [
                ReplacementRule("ab", "X", RuleCategory.HTML_ENTITY),
                ReplacementRule("bc", "Y", RuleCategory.HTML_ENTITY),
            ]
        )
        conflicts = table.conflicts()
        self.assertEqual([(c.kind, c.rule.target, c.other.target) for c in conflicts], [("overlap", "ab", "bc")])
        with self.assertRaises(RuleTableError):
            table.validate()

    def test_self_overlapping_target_is_rejected(self):
        table = RuleTable([ReplacementRule("aa", "b", RuleCategory.DOUBLE_ENCODED)])
        self.assertEqual([c.kind for c in table.conflicts()], ["overlap"])

    def test_replacement_completing_a_target_is_rejected(self):
        # "abb" -> "ab" -> "a": a second pass would change the text again
        table = RuleTable([ReplacementRule("ab", "a", RuleCategory.DOUBLE_ENCODED)])
        self.assertEqual([c.kind for c in table.conflicts()], ["not_idempotent"])
        with self.assertRaises(RuleTableError):
            table.validate()

    def test_replacement_next_to_word_characters_is_not_a_conflict(self):
        # "ga" only fires as a whole word, so "folga" never becomes "folgå"
        table = RuleTable([ReplacementRule("folg", "følg", stem=True), ReplacementRule("ga", "gå")])
        self.assertEqual(table.conflicts(), [])

    def test_word_rules_sharing_letters_do_not_overlap(self):
        table = RuleTable([ReplacementRule("nar", "når"), ReplacementRule("ar", "år"), ReplacementRule("ra", "rå")])
        self.assertEqual(table.conflicts(), [])

    def test_duplicate_rules_overlap(self):
        table = RuleTable([ReplacementRule("vare", "våre"), ReplacementRule("vare", "våre")])
        self.assertTrue(table.conflicts())

    def test_subset_keeps_order(self):
        table = default_rule_table().subset(RuleCategory.HTML_ENTITY)
        self.assertTrue(len(table) > 0)
        self.assertTrue(all(r.category is RuleCategory.HTML_ENTITY for r in table))
        self.assertEqual(list(table), default_rule_table().by_category(RuleCategory.HTML_ENTITY))


def test_rule_file_round_trip(tmp_path):
    out = dump_rule_table(default_rule_table(), tmp_path / "rules.yaml")
    loaded = load_rule_table(out)
    assert list(loaded) == list(default_rule_table())


def test_rule_file_with_custom_rules(tmp_path):
    path = tmp_path / "rules.yaml"
    path.write_text(
        "rules:\n"
        "  - {target: bat, replacement: båt}\n"
        "  - {target: kjop, replacement: kjøp, stem: true}\n"
        "  - {target: '&aring;', replacement: å, category: HtmlEntity}\n",
        encoding="utf-8",
    )
    table = load_rule_table(path)
    assert [r.target for r in table] == ["bat", "kjop", "&aring;"]
    assert table[1].stem is True
    assert table[2].category is RuleCategory.HTML_ENTITY


def test_rule_file_unknown_category(tmp_path):
    path = tmp_path / "rules.yaml"
    path.write_text("rules:\n  - {target: a, replacement: b, category: Spelling}\n", encoding="utf-8")
    with pytest.raises(RuleTableError, match="Unknown rule category"):
        load_rule_table(path)


def test_rule_file_missing_fields(tmp_path):
    path = tmp_path / "rules.yaml"
    path.write_text("rules:\n  - {target: a}\n", encoding="utf-8")
    with pytest.raises(RuleTableError):
        load_rule_table(path)


def test_rule_file_without_rules_list(tmp_path):
    path = tmp_path / "rules.yaml"
    path.write_text("rules: nope\n", encoding="utf-8")
    with pytest.raises(RuleTableError):
        load_rule_table(path)


def test_rule_file_with_conflicts_is_rejected(tmp_path):
    path = tmp_path / "rules.yaml"
    path.write_text(
        "rules:\n  - {target: sok, replacement: søk, stem: true}\n  - {target: soknad, replacement: søknad}\n",
        encoding="utf-8",
    )
    with pytest.raises(RuleTableError, match="conflicting"):
        load_rule_table(path)
    assert len(load_rule_table(path, validate=False)) == 2


def test_missing_rule_file(tmp_path):
    with pytest.raises(RuleTableError, match="Cannot read"):
        load_rule_table(tmp_path / "absent.yaml")
