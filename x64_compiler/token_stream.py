"""
Forward-only cursor over the lexer's tokens.

LINE markers stay in the token list so the stream can count lines for
diagnostics, but neither peek() nor next() ever returns one.
"""

from __future__ import annotations
from typing import Iterator, List

from .errors import ParseError
from .tokens import Token, TokenType


class TokenStream:
    """Token cursor with marker-skipping lookahead and a line counter."""

    def __init__(self, tokens: List[Token]):
        self.tokens = tokens
        self.index = 0
        self.line = 1

    def __len__(self) -> int:
        return sum(1 for t in self.tokens if t.type is not TokenType.LINE)

    def __iter__(self) -> Iterator[Token]:
        """Iterate the remaining non-marker tokens without consuming them."""
        for i in range(self.index, len(self.tokens)):
            tok = self.tokens[i]
            if tok.type is not TokenType.LINE:
                yield tok

    def _skip_markers(self, i: int) -> int:
        """Index of the first non-marker token at or after i."""
        while i < len(self.tokens) and self.tokens[i].type is TokenType.LINE:
            i += 1
        return i

    def peek(self, offset: int = 0) -> Token:
        """Return the offset-th upcoming token (0 = the next one)."""
        i = self._skip_markers(self.index)
        for _ in range(offset):
            i = self._skip_markers(i + 1)
        if i >= len(self.tokens):
            raise ParseError("missing token")
        return self.tokens[i]

    def has_next(self) -> bool:
        return self._skip_markers(self.index) < len(self.tokens)

    def at(self, *types: TokenType) -> bool:
        """True if the next token exists and is one of types."""
        return self.has_next() and self.peek().type in types

    def next(self) -> Token:
        """Consume and return the next token, counting skipped lines."""
        while self.index < len(self.tokens):
            tok = self.tokens[self.index]
            self.index += 1
            if tok.type is TokenType.LINE:
                self.line += 1
                continue
            return tok
        raise ParseError("missing token")

    def __repr__(self):
        return f"TokenStream({len(self.tokens)} tokens, index={self.index}, L{self.line})"
