"""Tests for the tokenizer, the rule table and the grammar resolver."""

import pytest

from ffhuman.errors import GrammarError
from ffhuman.grammar.resolver import GrammarResolver, extract_flags, get_resolver
from ffhuman.grammar.rules import RULES, GrammarRule, Literal, Slot, parse_pattern
from ffhuman.grammar.tokens import TokenKind, render_tokens, tokenize, tokenize_string


class TestTokenizer:
    """Lexical classification of argv elements."""

    def test_kinds(self):
        """Each element gets exactly one kind."""
        tokens = tokenize(["trim", "a.mp4", "from", "0:30", "--y"])
        assert [t.kind for t in tokens] == [
            TokenKind.BAREWORD, TokenKind.PATH, TokenKind.CONNECTIVE,
            TokenKind.NUMBER, TokenKind.FLAG,
        ]

    def test_clock_value(self):
        token = tokenize(["1:05:30"])[0]
        assert token.unit == "clock"
        assert token.value == 3930

    def test_number_with_unit(self):
        token = tokenize(["10mb"])[0]
        assert token.kind is TokenKind.NUMBER
        assert token.value == 10.0
        assert token.unit == "mb"

    def test_glob_is_path(self):
        assert tokenize(["*.mov"])[0].kind is TokenKind.PATH

    def test_text_with_spaces_is_quoted(self):
        assert tokenize(["Hello world"])[0].kind is TokenKind.QUOTED

    def test_flag_with_inline_value(self):
        token = tokenize(["--quality=high"])[0]
        assert token.name == "quality"
        assert token.flag_value == "high"

    def test_short_flag(self):
        token = tokenize(["-y"])[0]
        assert token.kind is TokenKind.FLAG
        assert token.name == "y"

    def test_negative_number_is_not_a_flag(self):
        assert tokenize(["-90"])[0].kind is TokenKind.NUMBER

    def test_positions(self):
        assert [t.position for t in tokenize(["a", "b", "c"])] == [0, 1, 2]

    def test_string_round_trip(self):
        tokens = tokenize_string("add-text clip.mp4 'Hello world' at top")
        assert [t.text for t in tokens] == ["add-text", "clip.mp4", "Hello world", "at", "top"]
        assert tokenize_string(render_tokens(tokens)) == tokens

    def test_unbalanced_quote(self):
        with pytest.raises(GrammarError, match="cannot split"):
            tokenize_string("add-text clip.mp4 'oops")


class TestPatterns:
    """Pattern strings compile into keyed slots and a sequence."""

    def test_keyed_and_optional(self):
        keyed, sequence = parse_pattern("{input:path} from {start} [to {end}]")
        assert sequence == (Slot("input", "path"),)
        assert keyed["from"] == Slot("start", key="from")
        assert keyed["to"].optional

    def test_optional_literal(self):
        _, sequence = parse_pattern("{input:path} {count} [times]")
        assert sequence[-1] == Literal("times", optional=True)

    def test_variadic(self):
        _, sequence = parse_pattern("{inputs+:path}")
        assert sequence[0].variadic

    def test_unbalanced_group(self):
        with pytest.raises(ValueError):
            parse_pattern("{input:path} [to {end}")

    def test_every_rule_has_a_usage(self):
        for rule in RULES:
            assert rule.usage.startswith(rule.verb)


class TestResolver:
    """Verb lookup, slot filling and flag grouping."""

    def test_compress(self):
        tree = get_resolver().resolve_argv(["compress", "talk.mp4", "to", "10mb", "--two-pass"])
        assert tree.verb == "compress"
        assert tree.get("input") == "talk.mp4"
        assert tree.get("target") == "10mb"
        assert tree.bool_flag("two-pass")

    def test_multi_word_verb(self):
        tree = get_resolver().resolve_argv(["speed", "up", "clip.mp4", "by", "2x"])
        assert tree.verb == "speed-up"
        assert tree.get("factor") == "2x"

    def test_two_word_repair_and_report_verbs(self):
        resolver = get_resolver()
        assert resolver.resolve_argv(["fix", "framerate", "a.mp4", "to", "24"]).get("fps") == "24"
        assert resolver.resolve_argv(["sync", "cameras", "a.mp4", "b.mp4"]).verb == "sync-cameras"
        assert resolver.resolve_argv(["suggest", "format", "a.mp4"]).verb == "suggest-format"
        assert resolver.resolve_argv(["export", "edl", "a.mp4"]).verb == "export-edl"

    def test_verb_without_arguments(self):
        tree = get_resolver().resolve_argv(["doctor"])
        assert tree.verb == "doctor"
        assert tree.get("input") is None
        with pytest.raises(GrammarError):
            get_resolver().resolve_argv(["doctor", "a.mp4"])

    def test_keyed_slots_any_order(self):
        tree = get_resolver().resolve_argv(["trim", "a.mp4", "to", "1:00", "from", "0:10"])
        assert tree.get("start") == "0:10"
        assert tree.get("end") == "1:00"

    def test_flag_value_never_fills_a_slot(self):
        tree = get_resolver().resolve_argv(["trim", "a.mp4", "--codec", "h264", "from", "5"])
        assert tree.get("start") == "5"
        assert tree.flag("codec") == "h264"

    def test_variadic_skips_and(self):
        tree = get_resolver().resolve_argv(["merge", "a.mp4", "and", "b.mp4", "c.mp4"])
        assert tree.get("inputs") == ["a.mp4", "b.mp4", "c.mp4"]

    def test_keyed_slot_before_variadic(self):
        tree = get_resolver().resolve_argv(["montage", "layout", "2x2", "a.mp4", "b.mp4", "c.mp4", "d.mp4"])
        assert tree.get("layout") == "2x2"
        assert len(tree.get("inputs")) == 4

    def test_rest_slot_captures_inner_command(self):
        tree = get_resolver().resolve_argv(
            ["batch", "convert", "*.mov", "to", "mp4", "when", "duration", "<", "30s"],
        )
        assert [t.text for t in tree.get("command")] == ["convert", "*.mov", "to", "mp4"]
        assert [t.text for t in tree.get("condition")] == ["duration", "<", "30s"]

    def test_optional_literal_folder(self):
        resolver = get_resolver()
        with_word = resolver.resolve_argv(["watch", "folder", "in/", "convert", "to", "mp4"])
        without = resolver.resolve_argv(["watch", "in/", "convert", "to", "mp4"])
        assert with_word.get("folder") == without.get("folder") == "in/"

    def test_second_rule_for_same_verb(self):
        tree = get_resolver().resolve_argv(["rotate", "a.mp4", "90"])
        assert tree.get("degrees") == "90"

    def test_unknown_verb_suggests(self):
        with pytest.raises(GrammarError, match="did you mean compress") as exc:
            get_resolver().resolve_argv(["compres", "a.mp4", "to", "10mb"])
        assert exc.value.position == 0
        assert exc.value.exit_code == 2

    def test_missing_keyed_slot(self):
        with pytest.raises(GrammarError, match="to <target>"):
            get_resolver().resolve_argv(["compress", "a.mp4"])

    def test_empty_command(self):
        with pytest.raises(GrammarError, match="empty command"):
            get_resolver().resolve([])

    def test_ambiguous_rules_are_reported(self):
        """Equal scores are never broken by guessing."""
        resolver = GrammarResolver(rules=[
            GrammarRule("pick", "{input:path} {first}", "x"),
            GrammarRule("pick", "{input:path} {second}", "x"),
        ], aliases={})
        with pytest.raises(GrammarError, match="ambiguous"):
            resolver.resolve_argv(["pick", "a.mp4", "b"])

    def test_verbs_listed(self):
        verbs = get_resolver().verbs
        assert "compress" in verbs
        assert verbs == sorted(verbs)


class TestExtractFlags:
    """Global flags are lifted out wherever they appear."""

    def test_lifts_named_flags(self):
        flags, rest = extract_flags(tokenize(["trim", "a.mp4", "--out", "x.mp4", "from", "10", "--dry-run"]))
        assert flags == {"out": "x.mp4", "dry-run": None}
        assert [t.text for t in rest] == ["trim", "a.mp4", "from", "10"]

    def test_leaves_other_flags(self):
        flags, rest = extract_flags(tokenize(["compress", "a.mp4", "--two-pass"]))
        assert flags == {}
        assert rest[-1].name == "two-pass"

    def test_boolean_flag_takes_no_value(self):
        flags, rest = extract_flags(tokenize(["mute", "--dry-run", "a.mp4"]))
        assert flags == {"dry-run": None}
        assert [t.text for t in rest] == ["mute", "a.mp4"]
