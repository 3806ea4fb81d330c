"""
x64 Toy-Language Compiler
=========================
A small compiler for a toy imperative language (integers, strings,
stack arrays, pointers, functions, if/while, print/read) that emits
NASM assembly for Linux x86-64.

Architecture:
    ┌──────────┐    ┌──────────┐    ┌──────────┐    ┌───────────┐
    │  Source  │───>│  Lexer   │───>│  Parser  │───>│  CodeGen  │
    │  (text)  │    │ (tokens) │    │  (AST)   │    │ (asm text)│
    └──────────┘    └──────────┘    └──────────┘    └───────────┘

    - lexer.py:        grapheme scanner, separator-driven word runs
    - token_stream.py: forward cursor that hides line markers
    - parser.py:       recursive descent + precedence climbing
    - ast_nodes.py:    dataclass tree
    - context.py:      frames, scopes, labels, string pool
    - codegen.py:      tree-walk emitter, rdi/rax stack-machine convention

Assembling and linking are left to the caller, e.g.:

    nasm -f elf64 out.asm -o out.o && ld out.o -o out
"""

__version__ = "0.1.0"

from .errors import CompilationError, LexerError, ParseError, CodeGenError
from .tokens import Token, TokenType, OperatorInfo
from .lexer import Lexer, tokenize
from .token_stream import TokenStream
from .ast_nodes import *
from .parser import Parser, parse
from .context import CodeGenContext, WORD_SIZE
from .codegen import CodeGenerator


def compile_source(source: str) -> str:
    """Compile toy-language source to NASM x86-64 assembly text.

    Full pipeline: Lexer -> Parser -> AST -> CodeGenerator.

    Raises:
        CompilationError: on the first lexing, parsing or code generation
            failure. Errors raised without a line number get the token
            stream's current line.
    """
    tokens = tokenize(source)
    try:
        program = Parser(tokens).parse()
        return CodeGenerator().generate(program)
    except CompilationError as err:
        err.add_line_num(tokens.line)
        raise
