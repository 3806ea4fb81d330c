"""
Code generation context: output buffer, labels, string pool, and the
per-function frame bookkeeping used to place variables on the stack.

Frame model
-----------
One StackFrame exists for the top level (created with the context) and
one more is pushed while each function body is lowered, so only the top
of ``frames`` is ever active. A frame tracks:

  - stack_size: bytes pushed since ``mov rbp, rsp`` (multiple of WORD_SIZE)
  - scopes:     append-only list of Scope records linked by parent index
  - loop_exits: innermost loop on top, for ``break``

A variable's offset is the frame's stack size right after its slots are
pushed, so its slot lives at ``[rbp - offset]``. Parameters sit above
the saved rbp and return address and get negative offsets.

    higher addresses
    ┌──────────────┐
    │ arg 0        │  rbp + 8*(n+1)   offset -8*(n+1)
    │ ...          │
    │ arg n-1      │  rbp + 16        offset -16
    │ return addr  │  rbp + 8
    │ saved rbp    │  rbp
    │ local a      │  rbp - 8         offset 8
    │ local b      │  rbp - 16        offset 16
    └──────────────┘
    lower addresses (rsp)
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .errors import CodeGenError

logger = logging.getLogger(__name__)

WORD_SIZE = 8


# ──────────────────────────────────────────────
# Frame records
# ──────────────────────────────────────────────

@dataclass(frozen=True)
class Variable:
    """A resolved binding; the slot is at rbp - offset."""
    offset: int

    @property
    def is_param(self) -> bool:
        return self.offset < 0


@dataclass
class Scope:
    variables: Dict[str, Variable] = field(default_factory=dict)
    parent: Optional[int] = None        # None: frame root
    stack_size_at_creation: int = 0


@dataclass(frozen=True)
class LoopExit:
    label: str
    stack_size: int     # frame stack size when the loop was entered


@dataclass
class StackFrame:
    name: str
    stack_size: int = 0
    scopes: List[Scope] = field(default_factory=list)
    current_scope: Optional[int] = None
    loop_exits: List[LoopExit] = field(default_factory=list)


@dataclass(frozen=True)
class GlobalString:
    label: str
    value: str


# ──────────────────────────────────────────────
# Context
# ──────────────────────────────────────────────

class CodeGenContext:
    """All mutable state of one compilation. Not reusable across compilations."""

    TOP_LEVEL = "<top>"

    def __init__(self):
        self.lines: List[str] = []
        self.label_counter = 0
        self.string_counter = 0
        self.strings: List[GlobalString] = []
        self.frames: List[StackFrame] = []
        self.function_names: Dict[str, Optional[int]] = {}

        self.add_stack_pointer(self.TOP_LEVEL)
        self.push_scope()

    # ── Output helpers ────────────────────────

    def push_line(self, line: str):
        self.lines.append(line)

    def emit(self, instruction: str):
        """Emit an indented instruction."""
        self.lines.append(f"    {instruction}")

    def emit_label(self, label: str):
        self.lines.append(f"{label}:")

    @property
    def output(self) -> str:
        return "\n".join(self.lines) + "\n"

    # ── Frames ────────────────────────────────

    @property
    def frame(self) -> StackFrame:
        if not self.frames:
            raise CodeGenError("no active stack frame")
        return self.frames[-1]

    @property
    def depth(self) -> int:
        return len(self.frames)

    @property
    def in_function(self) -> bool:
        return self.depth > 1

    def add_stack_pointer(self, name: str):
        self.frames.append(StackFrame(name=name))
        logger.debug("entered frame %s", name)

    def pop_stack_pointer(self):
        frame = self.frames.pop()
        logger.debug("left frame %s", frame.name)

    # ── Stack accounting ──────────────────────

    def push_on_stack(self, register: str):
        self.emit(f"push {register}")
        self.frame.stack_size += WORD_SIZE

    def pop_from_stack(self, register: str):
        self.emit(f"pop {register}")
        self.frame.stack_size -= WORD_SIZE

    def clear_current_stack(self):
        """Emit pops for every word in the frame, ahead of a return.

        The tracked size is left alone: a return inside a branch does not
        end the frame for the code that follows the branch.
        """
        for _ in range(self.frame.stack_size // WORD_SIZE):
            self.emit("pop rsi")

    def unwind_to(self, stack_size: int):
        """Drop words pushed above stack_size without touching the tracked size."""
        extra = self.frame.stack_size - stack_size
        if extra > 0:
            self.emit(f"add rsp, {extra}")

    # ── Scopes and variables ──────────────────

    def push_scope(self):
        frame = self.frame
        frame.scopes.append(Scope(parent=frame.current_scope,
                                  stack_size_at_creation=frame.stack_size))
        frame.current_scope = len(frame.scopes) - 1

    def pop_scope(self):
        """Close the current scope, popping every word pushed inside it."""
        frame = self.frame
        if frame.current_scope is None:
            raise CodeGenError("no scope to pop")
        scope = frame.scopes[frame.current_scope]
        while frame.stack_size > scope.stack_size_at_creation:
            self.pop_from_stack("rsi")
        scope.variables.clear()
        frame.current_scope = scope.parent

    def get_var(self, name: str) -> Optional[Variable]:
        frame = self.frame
        index = frame.current_scope
        while index is not None:
            scope = frame.scopes[index]
            if name in scope.variables:
                return scope.variables[name]
            index = scope.parent
        return None

    def add_var(self, name: str) -> Optional[int]:
        """Bind name at the current stack size; None if the scope already has it."""
        frame = self.frame
        if frame.current_scope is None:
            return None
        scope = frame.scopes[frame.current_scope]
        if name in scope.variables:
            return None
        scope.variables[name] = Variable(frame.stack_size)
        logger.debug("added var %s at offset %d in %s", name, frame.stack_size, frame.name)
        return frame.stack_size

    def add_offset_var(self, name: str, offset: int):
        frame = self.frame
        if frame.current_scope is None:
            raise CodeGenError(f"no scope for parameter {name}")
        frame.scopes[frame.current_scope].variables[name] = Variable(offset)

    # ── Loops ─────────────────────────────────

    def add_loop_exit_label(self, label: str):
        self.frame.loop_exits.append(LoopExit(label, self.frame.stack_size))

    def pop_loop_exit_label(self):
        self.frame.loop_exits.pop()

    def current_loop_exit(self) -> Optional[LoopExit]:
        exits = self.frame.loop_exits
        return exits[-1] if exits else None

    def current_loop_exit_label(self) -> Optional[str]:
        loop = self.current_loop_exit()
        return loop.label if loop else None

    # ── Labels and strings ────────────────────

    def new_label(self) -> str:
        self.label_counter += 1
        return f"LABEL{self.label_counter}"

    def add_string(self, value: str) -> str:
        self.string_counter += 1
        label = f"STRING{self.string_counter}"
        self.strings.append(GlobalString(label, value))
        logger.debug("pooled string %s (%d chars)", label, len(value))
        return label

    # ── Functions ─────────────────────────────

    def add_function_name(self, name: str, arity: Optional[int] = None) -> bool:
        """Register a function; False if the name is already declared."""
        if name in self.function_names:
            return False
        self.function_names[name] = arity
        return True

    def function_exists(self, name: str) -> bool:
        return name in self.function_names

    def function_arity(self, name: str) -> Optional[int]:
        return self.function_names.get(name)
