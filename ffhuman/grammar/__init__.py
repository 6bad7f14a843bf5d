"""Command grammar: argv tokens → ParseTree via the rule table."""

from .resolver import GrammarResolver, ParseTree, extract_flags, get_resolver
from .tokens import Token, TokenKind, tokenize, tokenize_string

__all__ = [
    "GrammarResolver",
    "ParseTree",
    "extract_flags",
    "get_resolver",
    "Token",
    "TokenKind",
    "tokenize",
    "tokenize_string",
]
