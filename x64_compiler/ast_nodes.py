"""
AST Node definitions for the x64 toy-language compiler.

Defines the Abstract Syntax Tree produced by the parser and consumed by
the code generator. The tree has no sharing and no cycles: every child
node is owned by exactly one parent.
"""

from __future__ import annotations
import enum
from dataclasses import dataclass, field
from typing import List, Optional, Union


# ──────────────────────────────────────────────
# Base AST node
# ──────────────────────────────────────────────

@dataclass
class ASTNode:
    """Base class for all AST nodes."""
    line: int = 0


# ──────────────────────────────────────────────
# Terms (expression leaves)
# ──────────────────────────────────────────────

class ValueMode(enum.Enum):
    """How an identifier term is read."""
    VALUE = "value"             # x      load the slot
    REFERENCE = "reference"     # &x     address of the slot
    DEREFERENCE = "dereference"  # *x    load through the slot


@dataclass
class IntLiteral(ASTNode):
    """Integer constant (booleans lex to 0/1)."""
    value: int = 0

@dataclass
class StringLiteral(ASTNode):
    """String constant; evaluates to the address of its pooled copy."""
    value: str = ""

@dataclass
class Identifier(ASTNode):
    """Variable reference, optionally subscripted: name[index]."""
    name: str = ""
    index: Optional[Expression] = None
    mode: ValueMode = ValueMode.VALUE

@dataclass
class FuncCall(ASTNode):
    """Function call: name(args...)."""
    name: str = ""
    args: List[Expression] = field(default_factory=list)


Term = Union[IntLiteral, StringLiteral, Identifier, FuncCall]


# ──────────────────────────────────────────────
# Expressions
# ──────────────────────────────────────────────

@dataclass
class BinaryOp(ASTNode):
    """Binary operation: left op right."""
    op: str = ""
    left: Expression = None   # type: ignore
    right: Expression = None  # type: ignore


Expression = Union[IntLiteral, StringLiteral, Identifier, FuncCall, BinaryOp]


# ──────────────────────────────────────────────
# Statements
# ──────────────────────────────────────────────

@dataclass
class VarDecl(ASTNode):
    """let name[count] = init;  (count is 1 for scalars)"""
    name: str = ""
    init: Expression = None  # type: ignore
    count: int = 1

@dataclass
class ReturnStmt(ASTNode):
    """return expr;"""
    value: Expression = None  # type: ignore

@dataclass
class Block(ASTNode):
    """{ statements... }"""
    statements: List[Statement] = field(default_factory=list)

@dataclass
class IfStmt(ASTNode):
    """if cond { body }"""
    condition: Expression = None  # type: ignore
    body: Block = None            # type: ignore

@dataclass
class WhileStmt(ASTNode):
    """while cond { body }"""
    condition: Expression = None  # type: ignore
    body: Block = None            # type: ignore

@dataclass
class Assignment(ASTNode):
    """name[index] = value;"""
    name: str = ""
    value: Expression = None  # type: ignore
    index: Optional[Expression] = None

@dataclass
class BreakStmt(ASTNode):
    """break;"""
    pass

@dataclass
class PrintStmt(ASTNode):
    """print value, length;  (write(stdout, value, length))"""
    value: Expression = None   # type: ignore
    length: Expression = None  # type: ignore

@dataclass
class ReadStmt(ASTNode):
    """read pointer, length;  (read(stdin, pointer, length))"""
    pointer: Expression = None  # type: ignore
    length: Expression = None   # type: ignore

@dataclass
class FuncDecl(ASTNode):
    """fn name(params) { body }"""
    name: str = ""
    params: List[str] = field(default_factory=list)
    body: Block = None  # type: ignore


Statement = Union[
    VarDecl, ReturnStmt, Block, IfStmt, WhileStmt, Assignment,
    BreakStmt, PrintStmt, ReadStmt, FuncDecl,
]


# ──────────────────────────────────────────────
# Top-level: Program
# ──────────────────────────────────────────────

@dataclass
class Program(ASTNode):
    """Root node: the ordered top-level statements."""
    statements: List[Statement] = field(default_factory=list)

    @property
    def functions(self) -> List[FuncDecl]:
        return [s for s in self.statements if isinstance(s, FuncDecl)]
