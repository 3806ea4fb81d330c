#!/usr/bin/env python3
"""
x64cc: toy-language to x86-64 NASM compiler CLI

Usage:
    python x64cc.py <input.toy> [-o output.asm] [-v | -vv] [--tokens | --ast]

Examples:
    python x64cc.py hello.toy -o hello.asm
    python x64cc.py hello.toy                # assembly to stdout
    python x64cc.py hello.toy --tokens       # dump token stream

Build and run the result with:
    nasm -f elf64 hello.asm -o hello.o && ld hello.o -o hello && ./hello
"""

import argparse
import logging
import sys
import traceback

from x64_compiler import __version__, compile_source
from x64_compiler.errors import CompilationError, LexerError, ParseError, CodeGenError
from x64_compiler.lexer import tokenize
from x64_compiler.parser import Parser

logger = logging.getLogger("x64cc")


def setup_logging(verbosity: int):
    """WARNING by default, INFO with -v, DEBUG with -vv; always to stderr."""
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
        force=True,
    )


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="x64cc",
        description="Toy-language compiler emitting NASM x86-64 assembly",
    )
    parser.add_argument("input", help="Input source file")
    parser.add_argument("-o", "--output", help="Output assembly file (default: stdout)")
    parser.add_argument("--verbose", "-v", action="count", default=0,
                        help="Increase verbosity (-v, -vv)")
    parser.add_argument("--tokens", action="store_true",
                        help="Dump token stream and exit (debug)")
    parser.add_argument("--ast", action="store_true",
                        help="Dump AST and exit (debug)")
    parser.add_argument("--version", action="version",
                        version=f"x64cc {__version__}")
    return parser


def main(argv=None) -> int:
    args = build_arg_parser().parse_args(argv)
    setup_logging(args.verbose)

    # Read input
    try:
        with open(args.input, "r", encoding="utf-8") as f:
            source = f.read()
    except FileNotFoundError:
        print(f"Error: File not found: {args.input}", file=sys.stderr)
        return 1
    except OSError as e:
        print(f"Error reading {args.input}: {e}", file=sys.stderr)
        return 1

    logger.info("Input: %s (%d chars)", args.input, len(source))

    try:
        # Token dump mode
        if args.tokens:
            for tok in tokenize(source):
                print(tok)
            return 0

        # AST dump mode
        if args.ast:
            tokens = tokenize(source)
            try:
                program = Parser(tokens).parse()
            except CompilationError as e:
                e.add_line_num(tokens.line)
                raise
            _print_ast(program)
            return 0

        result = compile_source(source)

        if args.output:
            with open(args.output, "w", encoding="utf-8") as f:
                f.write(result)
            logger.info("Output: %s", args.output)
        else:
            sys.stdout.write(result)

        logger.info("Generated %d lines of assembly", result.count("\n"))

    except LexerError as e:
        print(f"Lexer error: {e}", file=sys.stderr)
        return 1
    except ParseError as e:
        print(f"Parse error: {e}", file=sys.stderr)
        return 1
    except CodeGenError as e:
        print(f"Code generation error: {e}", file=sys.stderr)
        return 1
    except OSError as e:
        print(f"Error writing {args.output}: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        print(f"Internal compiler error: {e}", file=sys.stderr)
        if args.verbose:
            traceback.print_exc()
        return 2

    return 0


def _print_ast(node, indent=0):
    """Pretty-print an AST node tree (debug helper)."""
    prefix = "  " * indent
    if hasattr(node, '__dataclass_fields__'):
        print(f"{prefix}{type(node).__name__}:")
        for fname in node.__dataclass_fields__:
            if fname == "line":
                continue
            val = getattr(node, fname)
            if isinstance(val, list):
                print(f"{prefix}  {fname}:")
                for item in val:
                    _print_ast(item, indent + 2)
            elif hasattr(val, '__dataclass_fields__'):
                print(f"{prefix}  {fname}:")
                _print_ast(val, indent + 2)
            elif val is not None:
                print(f"{prefix}  {fname}: {val}")
    else:
        print(f"{prefix}{node}")


if __name__ == "__main__":
    sys.exit(main())
