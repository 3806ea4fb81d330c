"""
x86-64 Code Generator for the toy-language compiler.

Translates the AST into NASM assembly for Linux x86-64, linked
statically with no libc (entry point ``_start``).

Register usage convention:
  - rdi: accumulator; every expression leaves its value here
  - rax: holding register for the left operand of a binary operator
  - rsi, rdx: syscall arguments; rsi also receives discarded pops
  - rbp: frame base; every variable is addressed as [rbp -/+ offset]

Binary operators push the left value while the right side is evaluated,
so only the stack carries state across a nested expression or a call.

Function calling convention:
  - Arguments evaluated left to right, each pushed on the stack
  - Callee: push rbp / mov rbp, rsp; params read above the saved rbp
  - Return value in rdi
  - Caller pops the arguments after the call

Output layout:
  section .text
  global _start
  fn_<name>: <function bodies>
  _start:
      push rbp
      mov rbp, rsp
      <top-level statements>
      <exit(0)>
  section .data
  <pooled strings>
"""

from __future__ import annotations
import logging
from typing import List, Optional

from .ast_nodes import *
from .context import WORD_SIZE, CodeGenContext, Variable
from .errors import CodeGenError

logger = logging.getLogger(__name__)

SYS_READ = 0
SYS_WRITE = 1
SYS_EXIT = 60

STDIN = 0
STDOUT = 1

ENTRY_LABEL = "_start"

# Prefix for function labels, keeping them clear of registers and of the
# _start, LABELn and STRINGn labels
FUNCTION_LABEL_PREFIX = "fn_"

# Conditional jump taken when the comparison holds (signed)
COMPARISON_JUMPS = {
    "<": "jl",
    ">": "jg",
    "=": "je",
}


def db_operands(value: str) -> str:
    """NASM ``db`` operands for a pooled string, newline-terminated.

    Embedded newlines are split out as byte 10, since NASM double-quoted
    strings cannot span lines.
    """
    parts = value.split("\n")
    operands: List[str] = []
    for i, part in enumerate(parts):
        if part:
            operands.append(f'"{part}"')
        if i < len(parts) - 1:
            operands.append("10")
    operands.append("10")
    return ", ".join(operands)


def function_label(name: str) -> str:
    """Assembly label of a source-level function."""
    return f"{FUNCTION_LABEL_PREFIX}{name}"


class CodeGenerator:
    """Generates x86-64 assembly from a Program AST."""

    def __init__(self, ctx: Optional[CodeGenContext] = None):
        self.ctx = ctx if ctx is not None else CodeGenContext()

    # ── Main generation entry point ───────────

    def generate(self, program: Program) -> str:
        """Generate complete assembly output from a Program AST."""
        ctx = self.ctx
        ctx.push_line("section .text")
        ctx.push_line(f"global {ENTRY_LABEL}")

        # Register every function first so calls may refer forward
        for decl in program.functions:
            if not ctx.add_function_name(decl.name, len(decl.params)):
                raise CodeGenError(f"function {decl.name} already exists", decl.line)

        # First pass: function bodies
        for decl in program.functions:
            self._gen_function(decl)

        # Second pass: entry point and top-level statements
        ctx.emit_label(ENTRY_LABEL)
        ctx.emit("push rbp")
        ctx.emit("mov rbp, rsp")
        for stmt in program.statements:
            if not isinstance(stmt, FuncDecl):
                self._gen_statement(stmt)

        # Falling off the end exits cleanly
        ctx.emit("mov rdi, 0")
        ctx.emit(f"mov rax, {SYS_EXIT}")
        ctx.emit("syscall")

        self._gen_string_data()
        return ctx.output

    def _gen_string_data(self):
        ctx = self.ctx
        ctx.push_line("section .data")
        for s in ctx.strings:
            ctx.emit_label(s.label)
            ctx.emit(f"db {db_operands(s.value)}")

    # ── Function generation ───────────────────

    def _gen_function(self, decl: FuncDecl):
        ctx = self.ctx
        logger.debug("lowering function %s(%s)", decl.name, ", ".join(decl.params))

        if len(set(decl.params)) != len(decl.params):
            dup = next(p for p in decl.params if decl.params.count(p) > 1)
            raise CodeGenError(f"Variable {dup} already exists", decl.line)

        ctx.add_stack_pointer(decl.name)
        ctx.emit_label(function_label(decl.name))
        ctx.emit("push rbp")
        ctx.emit("mov rbp, rsp")

        # Parameters: arg i of n sits at rbp + 8*(n - i + 1)
        ctx.push_scope()
        argc = len(decl.params)
        for i, name in enumerate(decl.params):
            ctx.add_offset_var(name, -(argc - i + 1) * WORD_SIZE)

        self._gen_block(decl.body)
        ctx.pop_scope()

        # Implicit "return 0" when the body falls off its end
        ctx.emit("mov rdi, 0")
        ctx.emit("pop rbp")
        ctx.emit("ret")
        ctx.pop_stack_pointer()

    # ── Statement generation ──────────────────

    def _gen_statement(self, stmt: Statement):
        if isinstance(stmt, VarDecl):
            self._gen_var_decl(stmt)
        elif isinstance(stmt, ReturnStmt):
            self._gen_return(stmt)
        elif isinstance(stmt, Block):
            self._gen_block(stmt)
        elif isinstance(stmt, IfStmt):
            self._gen_if(stmt)
        elif isinstance(stmt, WhileStmt):
            self._gen_while(stmt)
        elif isinstance(stmt, Assignment):
            self._gen_assignment(stmt)
        elif isinstance(stmt, BreakStmt):
            self._gen_break(stmt)
        elif isinstance(stmt, PrintStmt):
            self._gen_syscall_io(stmt.value, stmt.length, SYS_WRITE, STDOUT)
        elif isinstance(stmt, ReadStmt):
            self._gen_syscall_io(stmt.pointer, stmt.length, SYS_READ, STDIN)
        elif isinstance(stmt, FuncDecl):
            raise CodeGenError("functions can only be defined at top level", stmt.line)
        else:
            raise CodeGenError(f"unhandled statement type {type(stmt).__name__}", stmt.line)

    def _gen_block(self, block: Block):
        self.ctx.push_scope()
        for stmt in block.statements:
            self._gen_statement(stmt)
        self.ctx.pop_scope()

    def _gen_var_decl(self, decl: VarDecl):
        """Push count copies of the initializer, then bind the lowest slot."""
        ctx = self.ctx
        self._gen_expr(decl.init)
        for _ in range(decl.count):
            ctx.push_on_stack("rdi")
        if ctx.add_var(decl.name) is None:
            raise CodeGenError(f"Variable {decl.name} already exists", decl.line)

    def _gen_return(self, stmt: ReturnStmt):
        ctx = self.ctx
        self._gen_expr(stmt.value)
        if ctx.in_function:
            ctx.clear_current_stack()
            ctx.emit("pop rbp")
            ctx.emit("ret")
        else:
            ctx.emit(f"mov rax, {SYS_EXIT}")
            ctx.emit("syscall")

    def _gen_if(self, stmt: IfStmt):
        ctx = self.ctx
        end_label = ctx.new_label()
        self._gen_expr(stmt.condition)
        ctx.emit("cmp rdi, 0")
        ctx.emit(f"je {end_label}")
        self._gen_block(stmt.body)
        ctx.emit_label(end_label)

    def _gen_while(self, stmt: WhileStmt):
        ctx = self.ctx
        top_label = ctx.new_label()
        end_label = ctx.new_label()

        ctx.add_loop_exit_label(end_label)
        ctx.emit_label(top_label)
        self._gen_expr(stmt.condition)
        ctx.emit("cmp rdi, 0")
        ctx.emit(f"je {end_label}")
        self._gen_block(stmt.body)
        ctx.emit(f"jmp {top_label}")
        ctx.emit_label(end_label)
        ctx.pop_loop_exit_label()

    def _gen_break(self, stmt: BreakStmt):
        ctx = self.ctx
        loop = ctx.current_loop_exit()
        if loop is None:
            raise CodeGenError("break without loop", stmt.line)
        # Drop whatever the enclosing blocks pushed since the loop began
        ctx.unwind_to(loop.stack_size)
        ctx.emit(f"jmp {ctx.current_loop_exit_label()}")

    def _gen_assignment(self, stmt: Assignment):
        ctx = self.ctx
        var = ctx.get_var(stmt.name)
        if var is None:
            raise CodeGenError(f"Variable {stmt.name} doesnt exist", stmt.line)

        if stmt.index is not None:
            self._gen_expr(stmt.index)
            ctx.push_on_stack("rdi")
            self._gen_expr(stmt.value)
            ctx.pop_from_stack("rax")
            ctx.emit(f"mov [{self._slot(var, indexed=True)}], rdi")
        else:
            self._gen_expr(stmt.value)
            ctx.emit(f"mov [{self._slot(var)}], rdi")

    def _gen_syscall_io(self, pointer: Expression, length: Expression,
                        syscall: int, fd: int):
        """write/read(fd, pointer, length)."""
        ctx = self.ctx
        self._gen_expr(pointer)
        ctx.push_on_stack("rdi")
        self._gen_expr(length)
        ctx.emit("mov rdx, rdi")
        ctx.pop_from_stack("rsi")
        ctx.emit(f"mov rax, {syscall}")
        ctx.emit(f"mov rdi, {fd}")
        ctx.emit("syscall")

    # ── Expression generation ─────────────────

    @staticmethod
    def _slot(var: Variable, indexed: bool = False) -> str:
        """Effective address of a variable's slot; rax holds the index if indexed.

        Locals have positive offsets and sit below rbp, parameters have
        negative offsets and sit above it; elements always step upward.
        """
        sign = "+" if var.is_param else "-"
        addr = f"rbp {sign} {abs(var.offset)}"
        if indexed:
            addr += f" + rax * {WORD_SIZE}"
        return addr

    def _gen_expr(self, expr: Expression):
        """Evaluate expr into rdi."""
        if isinstance(expr, IntLiteral):
            self.ctx.emit(f"mov rdi, {expr.value}")
        elif isinstance(expr, StringLiteral):
            label = self.ctx.add_string(expr.value)
            self.ctx.emit(f"mov rdi, {label}")
        elif isinstance(expr, Identifier):
            self._gen_identifier(expr)
        elif isinstance(expr, FuncCall):
            self._gen_call(expr)
        elif isinstance(expr, BinaryOp):
            self._gen_binary_op(expr)
        else:
            raise CodeGenError(f"unhandled expression type {type(expr).__name__}", expr.line)

    def _gen_identifier(self, ident: Identifier):
        ctx = self.ctx
        var = ctx.get_var(ident.name)
        if var is None:
            raise CodeGenError(f"Undeclared variable {ident.name}", ident.line)

        indexed = ident.index is not None
        if indexed:
            self._gen_expr(ident.index)
            ctx.emit("mov rax, rdi")
        slot = self._slot(var, indexed)

        if ident.mode is ValueMode.REFERENCE:
            ctx.emit(f"lea rdi, [{slot}]")
        elif ident.mode is ValueMode.DEREFERENCE:
            ctx.emit(f"mov rdi, [{slot}]")
            ctx.emit("mov rdi, [rdi]")
        else:
            ctx.emit(f"mov rdi, [{slot}]")

    def _gen_call(self, call: FuncCall):
        ctx = self.ctx
        if not ctx.function_exists(call.name):
            raise CodeGenError(f"undefined function {call.name}", call.line)
        arity = ctx.function_arity(call.name)
        if arity is not None and arity != len(call.args):
            raise CodeGenError(
                f"function {call.name} expects {arity} arguments, got {len(call.args)}",
                call.line)

        for arg in call.args:
            self._gen_expr(arg)
            ctx.push_on_stack("rdi")
        ctx.emit(f"call {function_label(call.name)}")
        for _ in call.args:
            ctx.pop_from_stack("rsi")

    def _gen_binary_op(self, op: BinaryOp):
        ctx = self.ctx
        self._gen_expr(op.left)
        ctx.push_on_stack("rdi")
        self._gen_expr(op.right)
        ctx.pop_from_stack("rax")
        # rax = left, rdi = right

        if op.op == "+":
            ctx.emit("add rax, rdi")
            ctx.emit("mov rdi, rax")
        elif op.op == "-":
            ctx.emit("sub rax, rdi")
            ctx.emit("mov rdi, rax")
        elif op.op == "*":
            ctx.emit("imul rax, rdi")
            ctx.emit("mov rdi, rax")
        elif op.op == "/":
            ctx.emit("cqo")
            ctx.emit("idiv rdi")
            ctx.emit("mov rdi, rax")
        elif op.op in COMPARISON_JUMPS:
            self._gen_comparison(COMPARISON_JUMPS[op.op])
        else:
            raise CodeGenError(f"invalid binary operator {op.op}", op.line)

    def _gen_comparison(self, jump: str):
        """Materialize (rax <op> rdi) as 0/1 in rdi."""
        ctx = self.ctx
        true_label = ctx.new_label()
        false_label = ctx.new_label()
        end_label = ctx.new_label()
        ctx.emit("cmp rax, rdi")
        ctx.emit(f"{jump} {true_label}")
        ctx.emit_label(false_label)
        ctx.emit("mov rdi, 0")
        ctx.emit(f"jmp {end_label}")
        ctx.emit_label(true_label)
        ctx.emit("mov rdi, 1")
        ctx.emit_label(end_label)
