"""Generic grammar resolver.

Turns a token sequence into a ``ParseTree`` by interpreting the rule
table in ``rules.py``:

1. longest-match verb lookup (multi-word aliases first)
2. flag grouping: ``--name value`` / ``--name=value`` / boolean flags are
   pulled into a flag map and never fill positional slots
3. greedy left-to-right slot filling per candidate rule
4. if several rules match, the one that consumed the most keyed slots
   wins; a tie is reported, never guessed
"""

from __future__ import annotations

import difflib
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional, Sequence, Union

from ..errors import GrammarError
from .rules import (
    BOOLEAN_FLAGS,
    GLOBAL_FLAGS,
    RULES,
    VERB_ALIASES,
    GrammarRule,
    Literal,
    Slot,
    build_index,
)
from .tokens import Token, TokenKind, tokenize, tokenize_string

logger = logging.getLogger("ffhuman")


@dataclass(frozen=True)
class FlagUnit:
    """A flag token together with the token that supplied its value."""
    flag: Token
    value_token: Optional[Token] = None

    @property
    def name(self) -> str:
        return self.flag.name or ""

    @property
    def value(self) -> Optional[str]:
        if self.flag.flag_value is not None:
            return self.flag.flag_value
        if self.value_token is not None:
            return self.value_token.text
        return None

    @property
    def tokens(self) -> list[Token]:
        return [self.flag] + ([self.value_token] if self.value_token else [])


Item = Union[Token, FlagUnit]


@dataclass
class ParseTree:
    """Verb + resolved slots + flags for one invocation."""
    verb: str
    rule: GrammarRule
    slots: dict[str, Any] = field(default_factory=dict)
    flags: dict[str, Optional[str]] = field(default_factory=dict)
    tokens: tuple[Token, ...] = ()

    @property
    def family(self) -> str:
        return self.rule.family

    def get(self, role: str, default: Any = None) -> Any:
        return self.slots.get(role, default)

    def has(self, role: str) -> bool:
        return role in self.slots

    def flag(self, name: str, default: Optional[str] = None) -> Optional[str]:
        value = self.flags.get(name, default)
        return default if value is None else value

    def bool_flag(self, name: str) -> bool:
        if name not in self.flags:
            return False
        value = self.flags[name]
        if value is None:
            return True
        return value.lower() not in ("0", "false", "no", "off")

    def with_slot(self, role: str, value: Any) -> "ParseTree":
        """Copy of this tree with one slot replaced."""
        slots = dict(self.slots)
        slots[role] = value
        return ParseTree(self.verb, self.rule, slots, dict(self.flags), self.tokens)


class _NoMatch(Exception):
    def __init__(self, position: int, expected: str, token: Optional[str] = None):
        super().__init__(expected)
        self.position = position
        self.expected = expected
        self.token = token


def group_flags(tokens: Sequence[Token]) -> list[Item]:
    """Attach flag values to their flags."""
    items: list[Item] = []
    i = 0
    while i < len(tokens):
        tok = tokens[i]
        if tok.kind is not TokenKind.FLAG:
            items.append(tok)
            i += 1
            continue
        value_token = None
        if tok.flag_value is None and tok.name not in BOOLEAN_FLAGS:
            nxt = tokens[i + 1] if i + 1 < len(tokens) else None
            if nxt is not None and nxt.kind is not TokenKind.FLAG:
                value_token = nxt
                i += 1
        items.append(FlagUnit(tok, value_token))
        i += 1
    return items


def _flatten(items: Iterable[Item]) -> list[Token]:
    out: list[Token] = []
    for item in items:
        if isinstance(item, FlagUnit):
            out.extend(item.tokens)
        else:
            out.append(item)
    return out


def extract_flags(
    tokens: Sequence[Token], names: Iterable[str] = GLOBAL_FLAGS,
) -> tuple[dict[str, Optional[str]], list[Token]]:
    """Lift the named flags out of a token list, wherever they appear."""
    wanted = set(names)
    found: dict[str, Optional[str]] = {}
    kept: list[Item] = []
    for item in group_flags(tokens):
        if isinstance(item, FlagUnit) and item.name in wanted:
            found[item.name] = item.value
        else:
            kept.append(item)
    return found, _flatten(kept)


def _kind_ok(tok: Token, kind: str) -> bool:
    if kind == "rest":
        return True
    if tok.kind is TokenKind.CONNECTIVE or tok.kind is TokenKind.FLAG:
        return False
    if kind == "path":
        return tok.kind in (TokenKind.PATH, TokenKind.BAREWORD, TokenKind.QUOTED)
    return True


class GrammarResolver:
    """Interprets a rule table against token sequences."""

    def __init__(
        self,
        rules: Optional[Sequence[GrammarRule]] = None,
        aliases: Optional[dict[tuple[str, ...], str]] = None,
    ):
        self.rules = list(RULES if rules is None else rules)
        self.index = build_index(self.rules)
        self.aliases = dict(VERB_ALIASES if aliases is None else aliases)
        self._max_alias = max((len(k) for k in self.aliases), default=1)

    @property
    def verbs(self) -> list[str]:
        return sorted(self.index)

    # ------------------------------------------------------------------ #
    #   Entry points                                                     #
    # ------------------------------------------------------------------ #

    def resolve_argv(self, argv: Sequence[str]) -> ParseTree:
        return self.resolve(tokenize(argv))

    def resolve_string(self, command: str) -> ParseTree:
        return self.resolve(tokenize_string(command))

    def resolve(self, tokens: Sequence[Token]) -> ParseTree:
        """Resolve a full command (verb first)."""
        tokens = list(tokens)
        if not tokens:
            raise GrammarError("empty command", position=0, expected="a command verb")

        verb, consumed = self.lookup_verb(tokens)
        body = group_flags(tokens[consumed:])
        candidates = self.index[verb]

        matches: list[tuple[GrammarRule, dict, dict, int]] = []
        failures: list[_NoMatch] = []
        end = tokens[-1].position + 1
        for rule in candidates:
            try:
                slots, flags, score = self._match(rule, body, end)
            except _NoMatch as miss:
                failures.append(miss)
                continue
            matches.append((rule, slots, flags, score))

        if not matches:
            best = max(failures, key=lambda f: f.position)
            usage = "; ".join(r.usage for r in candidates)
            raise GrammarError(
                f"'{verb}' does not match any known form ({usage})",
                position=best.position, expected=best.expected, token=best.token,
            )

        top_score = max(m[3] for m in matches)
        top = [m for m in matches if m[3] == top_score]
        if len(top) > 1:
            usages = " | ".join(m[0].usage for m in top)
            raise GrammarError(
                f"ambiguous command: {usages}",
                position=tokens[0].position, expected="a more specific connective",
            )

        rule, slots, flags, _ = top[0]
        logger.debug("Resolved '%s' with rule '%s' -> %s %s", verb, rule.pattern, slots, flags)
        return ParseTree(verb=verb, rule=rule, slots=slots, flags=flags, tokens=tuple(tokens))

    # ------------------------------------------------------------------ #
    #   Verb lookup                                                      #
    # ------------------------------------------------------------------ #

    def lookup_verb(self, tokens: list[Token]) -> tuple[str, int]:
        first = tokens[0]
        # "--convert to mp4" inside watch/batch tails
        if first.kind is TokenKind.FLAG and first.name in self.index:
            return first.name, 1

        words = [t.lower for t in tokens[: self._max_alias]]
        for size in range(len(words), 0, -1):
            alias = self.aliases.get(tuple(words[:size]))
            if alias and alias in self.index:
                return alias, size
        if words[0] in self.index:
            return words[0], 1

        suggestions = difflib.get_close_matches(words[0], self.verbs, n=3)
        expected = "a command verb"
        if suggestions:
            expected += " (did you mean " + ", ".join(suggestions) + "?)"
        raise GrammarError(
            f"unknown command '{first.text}'", position=first.position,
            expected=expected, token=first.text,
        )

    # ------------------------------------------------------------------ #
    #   Slot filling                                                     #
    # ------------------------------------------------------------------ #

    def _match(
        self, rule: GrammarRule, items: list[Item], end: int,
    ) -> tuple[dict[str, Any], dict[str, Optional[str]], int]:
        slots: dict[str, Any] = {}
        flags: dict[str, Optional[str]] = {}
        seq = rule.sequence
        seq_idx = 0
        score = 0
        i = 0
        n = len(items)

        def open_key(item: Item) -> Optional[Slot]:
            if isinstance(item, FlagUnit) or item.kind is TokenKind.QUOTED:
                return None
            slot = rule.keyed.get(item.lower)
            if slot is None or slot.role in slots:
                return None
            return slot

        def position(idx: int) -> int:
            if idx >= n:
                return end
            item = items[idx]
            return item.flag.position if isinstance(item, FlagUnit) else item.position

        def fill(slot: Slot, idx: int) -> int:
            label = f"<{slot.role}>" + (f" after '{slot.key}'" if slot.key else "")
            if slot.kind == "rest":
                captured: list[Item] = []
                while idx < n and open_key(items[idx]) is None:
                    captured.append(items[idx])
                    idx += 1
                if not captured:
                    raise _NoMatch(position(idx), label)
                slots[slot.role] = _flatten(captured)
                return idx
            if slot.variadic:
                values: list[str] = []
                while idx < n:
                    item = items[idx]
                    if isinstance(item, FlagUnit):
                        flags[item.name] = item.value
                        idx += 1
                        continue
                    if open_key(item) is not None:
                        break
                    if item.is_connective("and") and values:
                        idx += 1
                        continue
                    if not _kind_ok(item, slot.kind):
                        break
                    values.append(item.text)
                    idx += 1
                if not values:
                    raise _NoMatch(position(idx), label)
                slots[slot.role] = values
                return idx
            if idx >= n:
                raise _NoMatch(end, label)
            item = items[idx]
            if isinstance(item, FlagUnit) or not _kind_ok(item, slot.kind):
                text = item.flag.text if isinstance(item, FlagUnit) else item.text
                raise _NoMatch(position(idx), label, text)
            slots[slot.role] = item.text
            return idx + 1

        while i < n:
            item = items[i]
            if isinstance(item, FlagUnit):
                pending = seq[seq_idx] if seq_idx < len(seq) else None
                if isinstance(pending, Slot) and pending.kind == "rest":
                    # flags inside a nested command belong to that command
                    i = fill(pending, i)
                    seq_idx += 1
                    continue
                flags[item.name] = item.value
                i += 1
                continue

            keyed = open_key(item)
            if keyed is not None:
                i = fill(keyed, i + 1)
                score += 1
                continue

            while True:
                if seq_idx >= len(seq):
                    raise _NoMatch(item.position, "end of command", item.text)
                element = seq[seq_idx]
                if isinstance(element, Literal):
                    if item.lower == element.word:
                        seq_idx += 1
                        i += 1
                        break
                    if element.optional:
                        seq_idx += 1
                        continue
                    raise _NoMatch(item.position, f"'{element.word}'", item.text)
                if not _kind_ok(item, element.kind):
                    if element.optional:
                        seq_idx += 1
                        continue
                    raise _NoMatch(item.position, f"<{element.role}>", item.text)
                i = fill(element, i)
                seq_idx += 1
                break

        for element in seq[seq_idx:]:
            if not element.optional:
                what = f"'{element.word}'" if isinstance(element, Literal) else f"<{element.role}>"
                raise _NoMatch(end, what)
        for key, slot in rule.keyed.items():
            if not slot.optional and slot.role not in slots:
                raise _NoMatch(end, f"'{key} <{slot.role}>'")
        return slots, flags, score


_default_resolver: Optional[GrammarResolver] = None


def get_resolver() -> GrammarResolver:
    """Shared resolver over the built-in rule table."""
    global _default_resolver
    if _default_resolver is None:
        _default_resolver = GrammarResolver()
    return _default_resolver
