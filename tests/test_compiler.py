"""
Test suite for the x64 toy-language compiler.

Tests cover:
  - Output layout (text section, entry point, exit, data section)
  - Variable slots, arrays, references and dereferences
  - Arithmetic and comparison lowering
  - Control flow (if, while, break)
  - Functions: two-pass registration, parameters, returns, arity
  - print/read syscalls and the string pool
  - Compilation errors and their line numbers
"""

import pytest

from x64_compiler import compile_source
from x64_compiler.codegen import db_operands
from x64_compiler.errors import CodeGenError, CompilationError, LexerError, ParseError


def _compile(code: str) -> str:
    """Compile toy source and return assembly text."""
    return compile_source(code)


def _lines(asm: str) -> list:
    """Return stripped instruction lines (no labels, sections or data)."""
    result = []
    for line in asm.split("\n"):
        s = line.strip()
        if not s or s.endswith(":") or s.startswith(("section", "global", "db ")):
            continue
        result.append(s)
    return result


def _body(asm: str, label: str) -> list:
    """Stripped lines from label: up to the next function label or section."""
    lines = asm.split("\n")
    start = lines.index(f"{label}:") + 1
    body = []
    for line in lines[start:]:
        if line.startswith("section") or (line.endswith(":") and not line.startswith("LABEL")):
            break
        body.append(line.strip())
    return body


def _error(code: str, exc_type=CompilationError) -> CompilationError:
    with pytest.raises(exc_type) as exc:
        _compile(code)
    return exc.value


EXIT_0 = ["mov rdi, 0", "mov rax, 60", "syscall"]


# ─── Layout ───────────────────────────────

class TestLayout:
    def test_empty_program(self):
        asm = _compile("")
        assert asm == (
            "section .text\n"
            "global _start\n"
            "_start:\n"
            "    push rbp\n"
            "    mov rbp, rsp\n"
            "    mov rdi, 0\n"
            "    mov rax, 60\n"
            "    syscall\n"
            "section .data\n"
        )

    def test_functions_before_entry(self):
        asm = _compile("return f(); fn f() { return 1; }")
        lines = asm.split("\n")
        assert lines.index("fn_f:") < lines.index("_start:")

    def test_top_level_statements_skip_functions(self):
        asm = _compile("let a = 1; fn f() { return 2; } let b = 3;")
        body = _body(asm, "_start")
        assert "mov rdi, 2" not in body
        assert body.index("mov rdi, 1") < body.index("mov rdi, 3")

    def test_implicit_exit_is_last(self):
        assert _lines(_compile("let a = 1;"))[-3:] == EXIT_0


# ─── Variables ────────────────────────────

class TestVariables:
    def test_declaration_and_arithmetic(self):
        asm = _compile("let x = 5; let y = x + 3; return y;")
        assert _body(asm, "_start") == [
            "push rbp",
            "mov rbp, rsp",
            "mov rdi, 5",
            "push rdi",
            "mov rdi, [rbp - 8]",
            "push rdi",
            "mov rdi, 3",
            "pop rax",
            "add rax, rdi",
            "mov rdi, rax",
            "push rdi",
            "mov rdi, [rbp - 16]",
            "mov rax, 60",
            "syscall",
        ] + EXIT_0

    def test_assignment(self):
        lines = _lines(_compile("let x = 1; x = 7;"))
        assert lines[4:6] == ["mov rdi, 7", "mov [rbp - 8], rdi"]

    def test_array_slots(self):
        lines = _lines(_compile("let a = 0; let arr[3] = 0; arr[1] = 9; return arr[1];"))
        assert lines.count("push rdi") >= 4
        assert "mov [rbp - 32 + rax * 8], rdi" in lines
        assert "mov rdi, [rbp - 32 + rax * 8]" in lines

    def test_indexed_assignment_order(self):
        lines = _lines(_compile("let arr[2] = 0; arr[1] = 5;"))
        assert lines[5:] == [
            "mov rdi, 1",
            "push rdi",
            "mov rdi, 5",
            "pop rax",
            "mov [rbp - 16 + rax * 8], rdi",
        ] + EXIT_0

    def test_reference_uses_lea(self):
        assert "lea rdi, [rbp - 8]" in _lines(_compile("let x = 1; let p = &x;"))

    def test_dereference_loads_twice(self):
        lines = _lines(_compile("let x = 1; let p = &x; return *p;"))
        i = lines.index("mov rdi, [rbp - 16]")
        assert lines[i + 1] == "mov rdi, [rdi]"

    def test_shadowed_scope_unwinds(self):
        lines = _lines(_compile("let x = 1; { let x = 2; } return x;"))
        assert lines[:6] == [
            "push rbp", "mov rbp, rsp",
            "mov rdi, 1", "push rdi",
            "mov rdi, 2", "push rdi",
        ]
        assert lines[6] == "pop rsi"
        assert lines[7] == "mov rdi, [rbp - 8]"

    def test_boolean_literals(self):
        lines = _lines(_compile("let t = true; let f = false;"))
        assert "mov rdi, 1" in lines
        assert "mov rdi, 0" in lines


# ─── Operators ────────────────────────────

class TestOperators:
    def test_subtract(self):
        assert "sub rax, rdi" in _lines(_compile("return 5 - 2;"))

    def test_multiply(self):
        assert "imul rax, rdi" in _lines(_compile("return 5 * 2;"))

    def test_divide_signed(self):
        lines = _lines(_compile("return 9 / 2;"))
        i = lines.index("cqo")
        assert lines[i + 1:i + 3] == ["idiv rdi", "mov rdi, rax"]

    def test_minus_chain_evaluates_right_first(self):
        # 10 - (3 - 2): inner subtraction is emitted before the outer one
        lines = _lines(_compile("return 10 - 3 - 2;"))
        assert lines[2:13] == [
            "mov rdi, 10", "push rdi",
            "mov rdi, 3", "push rdi",
            "mov rdi, 2",
            "pop rax", "sub rax, rdi", "mov rdi, rax",
            "pop rax", "sub rax, rdi", "mov rdi, rax",
        ]

    @pytest.mark.parametrize("op,jump", [("<", "jl"), (">", "jg"), ("=", "je")])
    def test_comparison_labels(self, op, jump):
        asm = _compile(f"return 1 {op} 2;")
        body = _body(asm, "_start")
        i = body.index("cmp rax, rdi")
        assert body[i + 1:i + 10] == [
            f"{jump} LABEL1",
            "LABEL2:",
            "mov rdi, 0",
            "jmp LABEL3",
            "LABEL1:",
            "mov rdi, 1",
            "LABEL3:",
            "mov rax, 60",
            "syscall",
        ]


# ─── Control flow ─────────────────────────

class TestControlFlow:
    def test_if(self):
        body = _body(_compile("if 1 { let a = 2; }"), "_start")
        assert body[2:9] == [
            "mov rdi, 1",
            "cmp rdi, 0",
            "je LABEL1",
            "mov rdi, 2",
            "push rdi",
            "pop rsi",
            "LABEL1:",
        ]

    def test_while(self):
        body = _body(_compile("let i = 3; while i > 0 { i = i - 1; }"), "_start")
        top = body.index("LABEL1:")
        assert "je LABEL2" in body[top:]
        assert body.index("jmp LABEL1") < body.index("LABEL2:")

    def test_break_unwinds_loop_locals(self):
        src = "let i = 0; while 1 { let j = 1; if i = 5 { break; } i = i + 1; }"
        lines = _lines(_compile(src))
        i = lines.index("add rsp, 8")
        assert lines[i + 1] == "jmp LABEL2"

    def test_break_without_locals(self):
        lines = _lines(_compile("while 1 { break; }"))
        assert "add rsp" not in " ".join(lines)
        assert "jmp LABEL2" in lines

    def test_nested_loops_break_inner(self):
        src = "while 1 { while 1 { break; } break; }"
        lines = _lines(_compile(src))
        jumps = [l for l in lines if l.startswith("jmp")]
        assert jumps == ["jmp LABEL4", "jmp LABEL3", "jmp LABEL2", "jmp LABEL1"]

    def test_top_level_return_exits(self):
        lines = _lines(_compile("return 42;"))
        assert lines[2:5] == ["mov rdi, 42", "mov rax, 60", "syscall"]


# ─── Functions ────────────────────────────

class TestFunctions:
    def test_parameters_and_call(self):
        asm = _compile("fn add(a, b) { return a + b; } return add(2, 3);")
        assert _body(asm, "fn_add") == [
            "push rbp",
            "mov rbp, rsp",
            "mov rdi, [rbp + 24]",
            "push rdi",
            "mov rdi, [rbp + 16]",
            "pop rax",
            "add rax, rdi",
            "mov rdi, rax",
            "pop rbp",
            "ret",
            "mov rdi, 0",
            "pop rbp",
            "ret",
        ]
        start = _body(asm, "_start")
        assert start[2:10] == [
            "mov rdi, 2", "push rdi",
            "mov rdi, 3", "push rdi",
            "call fn_add",
            "pop rsi", "pop rsi",
            "mov rax, 60",
        ]

    def test_return_clears_locals(self):
        body = _body(_compile("fn f() { let a = 1; let b = 2; return a; }"), "fn_f")
        i = body.index("mov rdi, [rbp - 8]")
        assert body[i + 1:i + 5] == ["pop rsi", "pop rsi", "pop rbp", "ret"]

    def test_forward_call(self):
        asm = _compile("fn a() { return b(); } fn b() { return 1; }")
        assert "call fn_b" in _body(asm, "fn_a")

    def test_mutual_recursion(self):
        src = (
            "fn even(n) { if n = 0 { return 1; } return odd(n - 1); }\n"
            "fn odd(n) { if n = 0 { return 0; } return even(n - 1); }\n"
            "return even(10);"
        )
        asm = _compile(src)
        assert "call fn_odd" in _body(asm, "fn_even")
        assert "call fn_even" in _body(asm, "fn_odd")

    def test_globals_invisible_in_function(self):
        err = _error("let g = 1; fn f() { return g; }", CodeGenError)
        assert err.message == "Undeclared variable g"

    def test_array_param_indexing_steps_up(self):
        asm = _compile("fn f(p) { return p[1]; } return f(1);")
        assert "mov rdi, [rbp + 16 + rax * 8]" in _body(asm, "fn_f")

    def test_array_local_in_function(self):
        asm = _compile("fn f() { let arr[2] = 0; arr[1] = 3; return arr[1]; }")
        assert "mov [rbp - 16 + rax * 8], rdi" in _body(asm, "fn_f")

    @pytest.mark.parametrize("name", ["_start", "LABEL1", "STRING1", "rdi", "rax"])
    def test_function_labels_do_not_clash(self, name):
        asm = _compile(f"fn {name}() {{ return 3; }} if 1 {{ return {name}(); }} return 4;")
        labels = [l for l in asm.split("\n") if l.endswith(":")]
        assert len(labels) == len(set(labels))
        assert f"fn_{name}:" in labels
        assert f"call fn_{name}" in _lines(asm)
        assert f"call {name}" not in _lines(asm)


# ─── print / read / strings ───────────────

class TestSyscalls:
    def test_print_string(self):
        asm = _compile('print "hi", 3;')
        assert _body(asm, "_start")[2:11] == [
            "mov rdi, STRING1",
            "push rdi",
            "mov rdi, 3",
            "mov rdx, rdi",
            "pop rsi",
            "mov rax, 1",
            "mov rdi, 1",
            "syscall",
            "mov rdi, 0",
        ]
        assert asm.endswith('section .data\nSTRING1:\n    db "hi", 10\n')

    def test_read_uses_stdin(self):
        lines = _lines(_compile("let buf[4] = 0; read &buf, 4;"))
        i = lines.index("mov rax, 0")
        assert lines[i + 1] == "mov rdi, 0"
        assert lines[i - 1] == "pop rsi"

    def test_string_pool_order(self):
        asm = _compile('print "a", 2; print "b", 2;')
        data = asm.split("section .data\n")[1]
        assert data == 'STRING1:\n    db "a", 10\nSTRING2:\n    db "b", 10\n'

    def test_string_in_function_pooled(self):
        asm = _compile('fn f() { print "x", 2; return 0; } return f();')
        assert "STRING1:" in asm

    def test_db_operands(self):
        assert db_operands("hi") == '"hi", 10'
        assert db_operands("") == "10"
        assert db_operands("a\nb") == '"a", 10, "b", 10'
        assert db_operands("a\n") == '"a", 10, 10'


# ─── Errors ───────────────────────────────

class TestErrors:
    def test_undeclared_variable(self):
        err = _error("return x;", CodeGenError)
        assert err.message == "Undeclared variable x"
        assert err.line == 1

    def test_assign_undeclared(self):
        err = _error("let a = 1;\ny = 2;", CodeGenError)
        assert err.message == "Variable y doesnt exist"
        assert err.line == 2

    def test_redeclare(self):
        err = _error("let x = 1; let x = 2;", CodeGenError)
        assert err.message == "Variable x already exists"

    def test_duplicate_param(self):
        err = _error("fn f(a, a) { return a; }", CodeGenError)
        assert err.message == "Variable a already exists"

    def test_duplicate_function(self):
        err = _error("fn f() { return 1; }\nfn f() { return 2; }", CodeGenError)
        assert err.message == "function f already exists"
        assert err.line == 2

    def test_undefined_function(self):
        assert _error("return g();", CodeGenError).message == "undefined function g"

    def test_arity_mismatch(self):
        err = _error("fn f(a) { return a; } return f(1, 2);", CodeGenError)
        assert err.message == "function f expects 1 arguments, got 2"

    def test_break_outside_loop(self):
        assert _error("break;", CodeGenError).message == "break without loop"

    def test_break_does_not_cross_function(self):
        err = _error("while 1 { } fn f() { break; }", CodeGenError)
        assert err.message == "break without loop"

    def test_nested_function(self):
        err = _error("fn f() { fn g() { return 1; } return 0; }", CodeGenError)
        assert err.message == "functions can only be defined at top level"

    def test_function_inside_block(self):
        err = _error("{ fn g() { return 1; } }", CodeGenError)
        assert err.message == "functions can only be defined at top level"

    def test_unclosed_scope_gets_stream_line(self):
        err = _error("if 1 {\n let x = 1;\n", ParseError)
        assert err.message == "unclosed scope"
        assert err.line == 2
        assert str(err) == "Compilation Error: unclosed scope on line 2"

    def test_lexer_error_propagates(self):
        err = _error('print "oops, 3;', LexerError)
        assert str(err) == 'Compilation Error: unmatched " on line 1'

    def test_error_str_without_line(self):
        assert str(CompilationError("boom")) == "Compilation Error: boom"

    def test_add_line_num_keeps_site_line(self):
        err = CompilationError("boom", 3)
        err.add_line_num(9)
        assert err.line == 3
        assert CompilationError("boom").add_line_num(9).line == 9
