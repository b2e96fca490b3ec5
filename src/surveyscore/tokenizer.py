"""
Tokenizer for answer formulas (Layer 1: Raw Text → Tokens).

Accepted alphabet:
    numbers      12   1.5   .5   5.   1e3   2.5E-2
    identifiers  [A-Za-z_][A-Za-z0-9_]*
    operators    + - * /
    punctuation  ( ) ,

A leading minus is never part of a number literal; ``-1`` is NEGATE
applied to ``1``. Whitespace is skipped.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from surveyscore.errors import LexError


class TokenType(Enum):
    NUMBER = "NUMBER"
    IDENT = "IDENT"
    PLUS = "+"
    MINUS = "-"
    STAR = "*"
    SLASH = "/"
    LPAREN = "("
    RPAREN = ")"
    COMMA = ","
    END = "END"


@dataclass(frozen=True)
class Token:
    """
    A lexical unit of a formula.

    Properties:
        type: TokenType
        text: Source text of the token ("" for END)
        position: Offset of the first character in the formula
        value: Parsed float for NUMBER tokens, otherwise None
    """

    type: TokenType
    text: str
    position: int
    value: Optional[float] = None


_TOKEN_PATTERN = re.compile(
    r"""
    (?P<ws>\s+)
    | (?P<number>(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?)
    | (?P<ident>[A-Za-z_][A-Za-z0-9_]*)
    | (?P<op>[-+*/(),])
    """,
    re.VERBOSE | re.ASCII,
)

_OPERATOR_TYPES = {
    "+": TokenType.PLUS,
    "-": TokenType.MINUS,
    "*": TokenType.STAR,
    "/": TokenType.SLASH,
    "(": TokenType.LPAREN,
    ")": TokenType.RPAREN,
    ",": TokenType.COMMA,
}


def tokenize(text: str) -> List[Token]:
    """
    Split formula text into tokens.

    Args:
        text: Raw formula, e.g. "floor(40 / n) * dist"

    Returns:
        Tokens in source order, always terminated by a single END token

    Raises:
        LexError: On the first character outside the accepted alphabet
    """
    tokens = []
    pos = 0
    length = len(text)

    while pos < length:
        match = _TOKEN_PATTERN.match(text, pos)
        if match is None:
            raise LexError(pos, text[pos])

        kind = match.lastgroup
        lexeme = match.group()
        if kind == "number":
            tokens.append(Token(TokenType.NUMBER, lexeme, pos, float(lexeme)))
        elif kind == "ident":
            tokens.append(Token(TokenType.IDENT, lexeme, pos))
        elif kind == "op":
            tokens.append(Token(_OPERATOR_TYPES[lexeme], lexeme, pos))
        pos = match.end()

    tokens.append(Token(TokenType.END, "", length))
    return tokens


__all__ = [
    "Token",
    "TokenType",
    "tokenize",
]
