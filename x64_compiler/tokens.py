"""
Token definitions for the x64 toy-language compiler.

Shared by the lexer, which produces tokens, and the TokenStream and
parser, which consume them. Operator precedence metadata lives here
too, since it is a property of the token rather than of the grammar.
"""

from __future__ import annotations
import enum
from dataclasses import dataclass
from typing import Dict, NamedTuple, Optional, Union


# ──────────────────────────────────────────────
# Token types
# ──────────────────────────────────────────────

class TokenType(enum.Enum):
    # Line marker (never seen by the parser)
    LINE = "LINE"

    # Literals
    INT = "INT"
    STRING = "STRING"

    # Identifier
    IDENT = "IDENT"

    # Keywords
    KW_RETURN = "return"
    KW_LET = "let"
    KW_IF = "if"
    KW_WHILE = "while"
    KW_BREAK = "break"
    KW_PRINT = "print"
    KW_READ = "read"
    KW_FN = "fn"

    # Operators
    PLUS = "+"
    MINUS = "-"
    STAR = "*"
    SLASH = "/"
    EQUALS = "="
    LT = "<"
    GT = ">"
    AMP = "&"

    # Punctuation
    LPAREN = "("
    RPAREN = ")"
    LBRACE = "{"
    RBRACE = "}"
    LBRACKET = "["
    RBRACKET = "]"
    SEMI = ";"
    COMMA = ","


class OperatorInfo(NamedTuple):
    """Precedence level and associativity of a binary operator."""
    precedence: int
    associative: bool


# '=' doubles as assignment and equality; the parser decides by position.
OPERATOR_INFO: Dict[TokenType, OperatorInfo] = {
    TokenType.LT: OperatorInfo(0, True),
    TokenType.GT: OperatorInfo(0, True),
    TokenType.EQUALS: OperatorInfo(0, True),
    TokenType.PLUS: OperatorInfo(1, True),
    TokenType.MINUS: OperatorInfo(1, False),
    TokenType.STAR: OperatorInfo(2, True),
    TokenType.SLASH: OperatorInfo(2, False),
}


# ──────────────────────────────────────────────
# Token data class
# ──────────────────────────────────────────────

@dataclass(frozen=True)
class Token:
    type: TokenType
    value: Union[str, int, None] = None
    line: int = 0

    @property
    def operator_info(self) -> Optional[OperatorInfo]:
        return OPERATOR_INFO.get(self.type)

    @property
    def text(self) -> str:
        """Source spelling of the token (strings without their quotes)."""
        if self.type in (TokenType.INT, TokenType.IDENT, TokenType.STRING):
            return str(self.value)
        if self.type is TokenType.LINE:
            return "\n"
        return self.type.value

    def __repr__(self):
        if self.value is None:
            return f"Token({self.type.name}, L{self.line})"
        return f"Token({self.type.name}, {self.value!r}, L{self.line})"


# ──────────────────────────────────────────────
# Keyword and separator tables
# ──────────────────────────────────────────────

KEYWORDS: Dict[str, TokenType] = {
    "return": TokenType.KW_RETURN,
    "let": TokenType.KW_LET,
    "if": TokenType.KW_IF,
    "while": TokenType.KW_WHILE,
    "break": TokenType.KW_BREAK,
    "print": TokenType.KW_PRINT,
    "read": TokenType.KW_READ,
    "fn": TokenType.KW_FN,
}

BOOLEANS: Dict[str, int] = {
    "true": 1,
    "false": 0,
}

SEPARATOR_TOKENS: Dict[str, TokenType] = {
    ";": TokenType.SEMI,
    "=": TokenType.EQUALS,
    "+": TokenType.PLUS,
    "-": TokenType.MINUS,
    "*": TokenType.STAR,
    "/": TokenType.SLASH,
    "<": TokenType.LT,
    ">": TokenType.GT,
    "&": TokenType.AMP,
    "(": TokenType.LPAREN,
    ")": TokenType.RPAREN,
    "{": TokenType.LBRACE,
    "}": TokenType.RBRACE,
    "[": TokenType.LBRACKET,
    "]": TokenType.RBRACKET,
    ",": TokenType.COMMA,
}
