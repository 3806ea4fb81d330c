"""
Recursive-descent parser for the x64 toy-language compiler.

Statements are keyword-driven: the first token of each statement picks
its production. Expressions use precedence climbing over three levels:

    0   <  >  =      (comparisons)
    1   +  -
    2   *  /

Operators flagged associative (+ * < > =) recurse with min_precedence
one above their own level, so chains of them group to the left. The
non-associative ones (- /) recurse at their own level, so a following
operator of the same level binds into the right operand:
``a - b - c`` parses as ``a - (b - c)``. That grouping is part of the
language's defined semantics.

Grammar:

    program     := statement*
    statement   := 'let' IDENT ['[' INT ']'] '=' expr ';'
                 | 'return' expr ';'
                 | '{' statement* '}'
                 | 'if' expr block
                 | 'while' expr block
                 | IDENT ['[' expr ']'] '=' expr ';'
                 | 'break' ';'
                 | 'print' expr ',' expr ';'
                 | 'read' expr ',' expr ';'
                 | 'fn' IDENT '(' [IDENT (',' IDENT)*] ')' block
    expr        := (term | '(' expr ')') (binop expr)*
    term        := INT | STRING
                 | ['&' | '*'] IDENT ['[' expr ']']
                 | IDENT '(' [expr (',' expr)*] ')'
"""

from __future__ import annotations
import logging
from typing import List

from .ast_nodes import *
from .errors import ParseError
from .token_stream import TokenStream
from .tokens import Token, TokenType

logger = logging.getLogger(__name__)


class Parser:
    """Recursive descent parser producing a Program from a TokenStream."""

    def __init__(self, tokens: TokenStream):
        self.tokens = tokens

    # ── Helpers ─────────────────────────────

    def _at(self, *types: TokenType) -> bool:
        return self.tokens.at(*types)

    def _advance(self) -> Token:
        return self.tokens.next()

    def _expect(self, ttype: TokenType, msg: str) -> Token:
        tok = self.tokens.next()
        if tok.type is not ttype:
            raise ParseError(msg, tok.line)
        return tok

    # ── Top-level parsing ─────────────────────

    def parse(self) -> Program:
        """Parse the full token stream into a Program AST."""
        prog = Program(line=1)
        while self.tokens.has_next():
            prog.statements.append(self._parse_statement())
        logger.debug("parsed %d tokens into %d top-level statements (%d functions)",
                     len(self.tokens), len(prog.statements), len(prog.functions))
        return prog

    # ── Statements ────────────────────────────

    def _parse_statement(self) -> Statement:
        """Parse a single statement, dispatching on its first token."""
        tok = self._advance()

        if tok.type is TokenType.KW_RETURN:
            value = self._parse_expr()
            self._expect(TokenType.SEMI, "expected ;")
            return ReturnStmt(value=value, line=tok.line)

        if tok.type is TokenType.KW_LET:
            return self._parse_declaration(tok)

        if tok.type is TokenType.KW_IF:
            cond = self._parse_expr()
            self._expect(TokenType.LBRACE, "expected scope")
            body = self._parse_block(tok)
            return IfStmt(condition=cond, body=body, line=tok.line)

        if tok.type is TokenType.KW_WHILE:
            cond = self._parse_expr()
            self._expect(TokenType.LBRACE, "expected scope")
            body = self._parse_block(tok)
            return WhileStmt(condition=cond, body=body, line=tok.line)

        if tok.type is TokenType.LBRACE:
            return self._parse_block(tok)

        if tok.type is TokenType.KW_BREAK:
            self._expect(TokenType.SEMI, "expected ;")
            return BreakStmt(line=tok.line)

        if tok.type is TokenType.KW_PRINT:
            value = self._parse_expr()
            self._expect(TokenType.COMMA, "expected comma")
            length = self._parse_expr()
            self._expect(TokenType.SEMI, "expected ;")
            return PrintStmt(value=value, length=length, line=tok.line)

        if tok.type is TokenType.KW_READ:
            pointer = self._parse_expr()
            self._expect(TokenType.COMMA, "expected comma")
            length = self._parse_expr()
            self._expect(TokenType.SEMI, "expected ;")
            return ReadStmt(pointer=pointer, length=length, line=tok.line)

        if tok.type is TokenType.IDENT:
            return self._parse_assignment(tok)

        if tok.type is TokenType.KW_FN:
            return self._parse_function(tok)

        raise ParseError("unexpected token", tok.line)

    def _parse_block(self, start: Token) -> Block:
        """Parse statements up to the closing '}' (the '{' is consumed)."""
        block = Block(line=start.line)
        while True:
            if not self.tokens.has_next():
                raise ParseError("unclosed scope")
            if self._at(TokenType.RBRACE):
                self._advance()
                return block
            block.statements.append(self._parse_statement())

    def _parse_declaration(self, start: Token) -> VarDecl:
        name = self._expect(TokenType.IDENT, "expected identifier").value
        count = 1

        if self._at(TokenType.LBRACKET):
            self._advance()
            size_tok = self._expect(TokenType.INT, "expected int")
            if size_tok.value <= 0:
                raise ParseError("array size cant be negative or 0", size_tok.line)
            count = size_tok.value
            self._expect(TokenType.RBRACKET, "expected ]")

        self._expect(TokenType.EQUALS, "expected equals")
        init = self._parse_expr()
        self._expect(TokenType.SEMI, "expected ;")
        return VarDecl(name=name, init=init, count=count, line=start.line)

    def _parse_assignment(self, name_tok: Token) -> Assignment:
        index = None
        if self._at(TokenType.LBRACKET):
            self._advance()
            index = self._parse_expr()
            self._expect(TokenType.RBRACKET, "expected ]")

        self._expect(TokenType.EQUALS, "expected equals")
        value = self._parse_expr()
        self._expect(TokenType.SEMI, "expected ;")
        return Assignment(name=name_tok.value, value=value, index=index,
                          line=name_tok.line)

    def _parse_function(self, start: Token) -> FuncDecl:
        """Parse function definition: fn name(params) { body }"""
        name = self._expect(TokenType.IDENT, "expected function name").value
        self._expect(TokenType.LPAREN, "expected (")

        params: List[str] = []
        while True:
            tok = self._advance()
            if tok.type is TokenType.RPAREN:
                break
            if tok.type is not TokenType.IDENT:
                raise ParseError("unexpected token in function definition", tok.line)
            params.append(tok.value)
            if self._at(TokenType.COMMA):
                self._advance()

        brace = self._expect(TokenType.LBRACE, "expected scope")
        body = self._parse_block(brace)
        return FuncDecl(name=name, params=params, body=body, line=start.line)

    # ── Expression parsing (precedence climbing) ──

    def _parse_expr(self, min_precedence: int = 0) -> Expression:
        if self._at(TokenType.LPAREN):
            self._advance()
            expr = self._parse_expr(0)
            self._expect(TokenType.RPAREN, "expected )")
        else:
            expr = self._parse_term()

        while self.tokens.has_next():
            tok = self.tokens.peek()
            info = tok.operator_info
            if info is None or info.precedence < min_precedence:
                break

            next_min = info.precedence + 1 if info.associative else info.precedence
            self._advance()
            right = self._parse_expr(next_min)
            expr = BinaryOp(op=tok.type.value, left=expr, right=right, line=tok.line)

        return expr

    def _parse_term(self) -> Expression:
        tok = self.tokens.peek()

        if tok.type is TokenType.INT:
            self._advance()
            return IntLiteral(value=tok.value, line=tok.line)

        if tok.type is TokenType.STRING:
            self._advance()
            return StringLiteral(value=tok.value, line=tok.line)

        if tok.type in (TokenType.IDENT, TokenType.AMP, TokenType.STAR):
            return self._parse_identifier()

        raise ParseError("expected expression", tok.line)

    def _parse_identifier(self) -> Expression:
        """Parse [&|*] name, then an optional call or subscript."""
        mode = ValueMode.VALUE
        if self._at(TokenType.AMP):
            self._advance()
            mode = ValueMode.REFERENCE
        elif self._at(TokenType.STAR):
            self._advance()
            mode = ValueMode.DEREFERENCE

        name_tok = self._expect(TokenType.IDENT, "expected identifier")

        if self._at(TokenType.LPAREN):
            self._advance()
            args = self._parse_arg_list()
            if mode is not ValueMode.VALUE:
                raise ParseError("cannot reference a function", name_tok.line)
            return FuncCall(name=name_tok.value, args=args, line=name_tok.line)

        index = None
        if self._at(TokenType.LBRACKET):
            self._advance()
            index = self._parse_expr()
            self._expect(TokenType.RBRACKET, "expected ]")

        return Identifier(name=name_tok.value, index=index, mode=mode,
                          line=name_tok.line)

    def _parse_arg_list(self) -> List[Expression]:
        """Parse call arguments up to and including the closing ')'."""
        args: List[Expression] = []
        while True:
            if self._at(TokenType.RPAREN):
                self._advance()
                return args
            if self._at(TokenType.COMMA):
                self._advance()
                continue
            args.append(self._parse_expr())


def parse(tokens: TokenStream) -> Program:
    return Parser(tokens).parse()
