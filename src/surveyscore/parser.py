"""
Formula Parser (Layer 2: Tokens → Expression AST).

Recursive descent over the token stream. Grammar, highest binding first:

    primary        := NUMBER | IDENT | IDENT "(" [args] ")" | "(" additive ")"
    unary          := "-" unary | primary
    multiplicative := unary (("*" | "/") unary)*
    additive       := multiplicative (("+" | "-") multiplicative)*

Function names are resolved against a FunctionRegistry; the parser only
checks existence and arity.

Every ``_parse_*`` method takes the current token index and nesting level
and returns ``(expression, depth, next_index)``. Two limits bound the work
done on adversarial input:
    - nesting level (parentheses, call arguments, unary chains)
    - AST depth, which also catches long left-associative chains
Both are compared against ``max_depth``. The token count is compared
against ``max_tokens`` before parsing starts.
"""

from __future__ import annotations

import logging
from typing import List, Mapping, Optional, Tuple

from surveyscore.errors import ParseError, ParseErrorKind
from surveyscore.expressions import (
    BinaryExpression,
    BinaryOperator,
    Expression,
    FunctionCall,
    NumberLiteral,
    UnaryExpression,
    UnaryOperator,
    VariableReference,
)
from surveyscore.functions import FunctionSpec, resolve_registry
from surveyscore.tokenizer import Token, TokenType, tokenize

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 64
DEFAULT_MAX_TOKENS = 4096

_ADDITIVE = {
    TokenType.PLUS: BinaryOperator.ADD,
    TokenType.MINUS: BinaryOperator.SUBTRACT,
}
_MULTIPLICATIVE = {
    TokenType.STAR: BinaryOperator.MULTIPLY,
    TokenType.SLASH: BinaryOperator.DIVIDE,
}

_Parsed = Tuple[Expression, int, int]


class FormulaParser:
    """
    Parses one token list into an Expression.

    Instances are cheap and single-use; ``parse_formula`` is the usual
    entry point.
    """

    def __init__(
        self,
        tokens: List[Token],
        registry: Optional[Mapping[str, FunctionSpec]] = None,
        max_depth: int = DEFAULT_MAX_DEPTH,
    ):
        self.tokens = tokens
        self.registry = resolve_registry(registry)
        self.max_depth = max_depth

    def parse(self) -> Expression:
        expr, _, pos = self._parse_additive(0, 0)
        token = self.tokens[pos]
        if token.type == TokenType.RPAREN:
            raise ParseError(
                ParseErrorKind.UNMATCHED_PAREN,
                f"Unmatched ')' at position {token.position}",
                token.position,
            )
        if token.type != TokenType.END:
            raise _unexpected(token)
        return expr

    def _check_level(self, level: int, token: Token) -> None:
        if level > self.max_depth:
            raise ParseError(
                ParseErrorKind.TOO_COMPLEX,
                f"Formula nesting exceeds maximum depth {self.max_depth}",
                token.position,
            )

    def _check_depth(self, depth: int, token: Token) -> int:
        if depth > self.max_depth:
            raise ParseError(
                ParseErrorKind.TOO_COMPLEX,
                f"Formula tree exceeds maximum depth {self.max_depth}",
                token.position,
            )
        return depth

    def _parse_additive(self, pos: int, level: int) -> _Parsed:
        """Parse + and - (lowest precedence)."""
        left, depth, pos = self._parse_multiplicative(pos, level)

        while self.tokens[pos].type in _ADDITIVE:
            op_token = self.tokens[pos]
            right, right_depth, pos = self._parse_multiplicative(pos + 1, level)
            depth = self._check_depth(1 + max(depth, right_depth), op_token)
            left = BinaryExpression(_ADDITIVE[op_token.type], left, right, op_token.position)

        return left, depth, pos

    def _parse_multiplicative(self, pos: int, level: int) -> _Parsed:
        """Parse * and /."""
        left, depth, pos = self._parse_unary(pos, level)

        while self.tokens[pos].type in _MULTIPLICATIVE:
            op_token = self.tokens[pos]
            right, right_depth, pos = self._parse_unary(pos + 1, level)
            depth = self._check_depth(1 + max(depth, right_depth), op_token)
            left = BinaryExpression(_MULTIPLICATIVE[op_token.type], left, right, op_token.position)

        return left, depth, pos

    def _parse_unary(self, pos: int, level: int) -> _Parsed:
        """Parse prefix negation."""
        token = self.tokens[pos]
        if token.type == TokenType.MINUS:
            self._check_level(level + 1, token)
            operand, depth, pos = self._parse_unary(pos + 1, level + 1)
            depth = self._check_depth(depth + 1, token)
            return UnaryExpression(UnaryOperator.NEGATE, operand, token.position), depth, pos

        return self._parse_primary(pos, level)

    def _parse_primary(self, pos: int, level: int) -> _Parsed:
        """Parse literal, variable, function call, or parenthesized expression."""
        token = self.tokens[pos]

        if token.type == TokenType.NUMBER:
            return NumberLiteral(token.value, token.position), 1, pos + 1

        if token.type == TokenType.LPAREN:
            self._check_level(level + 1, token)
            expr, depth, pos = self._parse_additive(pos + 1, level + 1)
            if self.tokens[pos].type != TokenType.RPAREN:
                raise _missing_close(token, self.tokens[pos])
            return expr, depth, pos + 1

        if token.type == TokenType.IDENT:
            if self.tokens[pos + 1].type == TokenType.LPAREN:
                return self._parse_call(pos, level)
            return VariableReference(token.text, token.position), 1, pos + 1

        raise _unexpected(token)

    def _parse_call(self, pos: int, level: int) -> _Parsed:
        name_token = self.tokens[pos]
        open_token = self.tokens[pos + 1]
        name = name_token.text

        spec = self.registry.get(name)
        if spec is None:
            raise ParseError(
                ParseErrorKind.UNKNOWN_FUNCTION,
                f"Unknown function {name!r} at position {name_token.position}",
                name_token.position,
                name=name,
            )

        self._check_level(level + 1, open_token)
        pos += 2
        arguments = []
        depth = 0

        # Parse comma-separated arguments
        if self.tokens[pos].type != TokenType.RPAREN:
            while True:
                arg, arg_depth, pos = self._parse_additive(pos, level + 1)
                arguments.append(arg)
                depth = max(depth, arg_depth)

                token = self.tokens[pos]
                if token.type == TokenType.COMMA:
                    pos += 1
                elif token.type == TokenType.RPAREN:
                    break
                elif token.type == TokenType.END:
                    raise _missing_close(open_token, token)
                else:
                    raise _unexpected(token)

        if len(arguments) != spec.arity:
            raise ParseError(
                ParseErrorKind.WRONG_ARITY,
                f"Function {name!r} takes {spec.arity} argument(s), got {len(arguments)}",
                name_token.position,
                name=name,
            )

        depth = self._check_depth(depth + 1, name_token)
        return FunctionCall(name, tuple(arguments), name_token.position), depth, pos + 1


def _unexpected(token: Token) -> ParseError:
    if token.type == TokenType.END:
        message = f"Unexpected end of formula at position {token.position}"
    else:
        message = f"Unexpected token {token.text!r} at position {token.position}"
    return ParseError(ParseErrorKind.UNEXPECTED_TOKEN, message, token.position)


def _missing_close(open_token: Token, found: Token) -> ParseError:
    if found.type == TokenType.END:
        return ParseError(
            ParseErrorKind.UNMATCHED_PAREN,
            f"Missing closing parenthesis for '(' at position {open_token.position}",
            open_token.position,
        )
    return _unexpected(found)


def parse_tokens(
    tokens: List[Token],
    registry: Optional[Mapping[str, FunctionSpec]] = None,
    max_depth: int = DEFAULT_MAX_DEPTH,
    max_tokens: int = DEFAULT_MAX_TOKENS,
) -> Expression:
    """
    Build an AST from an END-terminated token list.

    Raises:
        ParseError: On any syntax, registry or size violation
    """
    if len(tokens) - 1 > max_tokens:
        raise ParseError(
            ParseErrorKind.TOO_COMPLEX,
            f"Formula has {len(tokens) - 1} tokens, maximum is {max_tokens}",
            tokens[max_tokens].position,
        )
    return FormulaParser(tokens, registry, max_depth).parse()


def parse_formula(
    text: str,
    registry: Optional[Mapping[str, FunctionSpec]] = None,
    max_depth: int = DEFAULT_MAX_DEPTH,
    max_tokens: int = DEFAULT_MAX_TOKENS,
) -> Expression:
    """
    Tokenize and parse formula text.

    Args:
        text: Formula, e.g. "-1 * ceil(0.3 * x)"
        registry: Function registry (defaults to floor/ceil/round/sin)
        max_depth: Maximum nesting level and AST depth
        max_tokens: Maximum number of tokens, END excluded

    Returns:
        Expression AST

    Raises:
        LexError: If the text contains a character outside the alphabet
        ParseError: If the tokens do not form a valid formula
    """
    expr = parse_tokens(tokenize(text), registry, max_depth, max_tokens)
    logger.debug("Parsed formula %r", text)
    return expr


__all__ = [
    "DEFAULT_MAX_DEPTH",
    "DEFAULT_MAX_TOKENS",
    "FormulaParser",
    "parse_formula",
    "parse_tokens",
]
