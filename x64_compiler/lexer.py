"""
Lexer / Tokenizer for the x64 toy-language compiler.

Splits the source into grapheme clusters and scans them with a
"pending run" cursor: every separator closes the run collected so far,
which is classified as a keyword, boolean, integer, or identifier.
Separators that carry meaning (operators, brackets, ';', ',') become
tokens of their own. Newlines become LINE tokens that the TokenStream
later skips while counting lines.

A double quote switches into string mode, consuming everything up to
the next double quote verbatim.
"""

from __future__ import annotations
import logging
import re
import unicodedata
from typing import List, Optional

from .errors import LexerError
from .tokens import BOOLEANS, KEYWORDS, SEPARATOR_TOKENS, Token, TokenType
from .token_stream import TokenStream

logger = logging.getLogger(__name__)


NEWLINES = ("\n", "\r\n")
WHITESPACE = (" ", "\t", "\r")
QUOTE = '"'

INT_MIN = -(2 ** 31)
INT_MAX = 2 ** 31 - 1

_INT_RE = re.compile(r"[0-9]+")

_ZWJ = "\u200d"
_VARIATION_SELECTORS = ("\ufe00", "\ufe0f")


def is_separator(grapheme: str) -> bool:
    return (grapheme in SEPARATOR_TOKENS or grapheme in NEWLINES
            or grapheme in WHITESPACE or grapheme == QUOTE)


# ──────────────────────────────────────────────
# Grapheme clusters
# ──────────────────────────────────────────────

def _extends_cluster(ch: str, cluster: str) -> bool:
    if cluster == "\r" and ch == "\n":
        return True
    if cluster.endswith(_ZWJ):
        return True
    if ch == _ZWJ:
        return True
    if _VARIATION_SELECTORS[0] <= ch <= _VARIATION_SELECTORS[1]:
        return True
    return unicodedata.category(ch) in ("Mn", "Mc", "Me")


def split_graphemes(text: str) -> List[str]:
    """Split text into user-perceived characters.

    A cluster is a base code point followed by its combining marks,
    variation selectors and zero-width-joiner continuations. CR LF is
    kept together as a single newline.
    """
    clusters: List[str] = []
    for ch in text:
        if clusters and _extends_cluster(ch, clusters[-1]):
            clusters[-1] += ch
        else:
            clusters.append(ch)
    return clusters


# ──────────────────────────────────────────────
# Lexer
# ──────────────────────────────────────────────

class Lexer:
    """Tokenizes toy-language source into a TokenStream."""

    def __init__(self, source: str):
        self.source = source
        self.graphemes = split_graphemes(source)
        self.pos = 0
        self.line = 1
        self.tokens: List[Token] = []

    def _classify_word(self, word: str) -> Optional[Token]:
        if word in KEYWORDS:
            return Token(KEYWORDS[word], line=self.line)
        if word in BOOLEANS:
            return Token(TokenType.INT, BOOLEANS[word], self.line)
        if _INT_RE.fullmatch(word):
            value = int(word)
            if INT_MIN <= value <= INT_MAX:
                return Token(TokenType.INT, value, self.line)
        return Token(TokenType.IDENT, word, self.line)

    def _close_run(self, start: int, end: int):
        """Classify graphemes[start:end] and emit it, if non-empty."""
        if start >= end:
            return
        word = "".join(self.graphemes[start:end])
        tok = self._classify_word(word)
        if tok is None:
            raise LexerError(f"invalid token {word}", self.line)
        self.tokens.append(tok)

    def _read_string(self):
        """Consume a string literal; self.pos is on the opening quote."""
        start_line = self.line
        self.pos += 1
        chars: List[str] = []
        while self.pos < len(self.graphemes):
            g = self.graphemes[self.pos]
            if g == QUOTE:
                self.tokens.append(Token(TokenType.STRING, "".join(chars), start_line))
                # Keep the line count right for strings spanning lines
                for _ in range(sum(1 for c in chars if c in NEWLINES)):
                    self.line += 1
                    self.tokens.append(Token(TokenType.LINE, line=self.line))
                return
            chars.append(g)
            self.pos += 1
        raise LexerError('unmatched "', start_line)

    def tokenize(self) -> TokenStream:
        """Tokenize the entire source and return a TokenStream."""
        self.tokens = []
        self.pos = 0
        self.line = 1
        run_start = 0

        while self.pos < len(self.graphemes):
            g = self.graphemes[self.pos]
            if not is_separator(g):
                self.pos += 1
                continue

            self._close_run(run_start, self.pos)

            if g in NEWLINES:
                self.line += 1
                self.tokens.append(Token(TokenType.LINE, line=self.line))
            elif g == QUOTE:
                self._read_string()
            elif g in SEPARATOR_TOKENS:
                self.tokens.append(Token(SEPARATOR_TOKENS[g], line=self.line))

            self.pos += 1
            run_start = self.pos

        # End of input closes the last run
        self._close_run(run_start, self.pos)

        logger.debug("tokenized %d graphemes into %d tokens over %d lines",
                     len(self.graphemes), len(self.tokens), self.line)
        return TokenStream(self.tokens)


def tokenize(source: str) -> TokenStream:
    return Lexer(source).tokenize()
