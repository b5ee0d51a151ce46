"""End-to-end tests: compile and run complete programs."""

import pytest

from secd import (
    SECD, SECDRuntimeError, SECDBufferingOutputWatcher, SECDInteger, SECDASTInteger, SECDASTList, SECDASTSymbol
)


class TestBasicPrograms:
    """Test literals and primitives through the full pipeline."""

    @pytest.mark.parametrize("program,expected", [
        (42, "42"),
        (-3, "-3"),
        ("nil", "nil"),
        ("true", "true"),
        ("false", "false"),
        ([], "nil"),
        (["+", 1, 2], "3"),
        (["-", 1, 2], "-1"),
        (["-", ["+", 10, 5], 3], "12"),
        (["car", ["cons", 1, 2]], "1"),
        (["cdr", ["cons", 1, 2]], "2"),
        (["cons", 1, 2], "(1 . 2)"),
        (["cons", 1, ["cons", 2, ["cons", 3, "nil"]]], "(1 2 3)"),
        (["cons", ["cons", 1, 2], "nil"], "((1 . 2))"),
        (["cons", "true", "false"], "(true . false)"),
    ])
    def test_primitives(self, secd, helpers, program, expected):
        """Test literals, arithmetic and pairs."""
        helpers.assert_evaluates_to(secd, program, expected)

    @pytest.mark.parametrize("program,expected", [
        (["eq", 1, 1], "true"),
        (["eq", 1, 2], "false"),
        (["eq", "nil", []], "true"),
        (["eq", "true", "true"], "true"),
        (["eq", "true", "false"], "false"),
        (["eq", 0, "false"], "false"),
        (["eq", 0, "nil"], "false"),
        (["eq", ["cons", 1, ["cons", 2, "nil"]], ["cons", 1, ["cons", 2, "nil"]]], "true"),
        (["eq", ["cons", 1, ["cons", 2, "nil"]], ["cons", 1, ["cons", 3, "nil"]]], "false"),
        (["eq", ["cons", 1, 2], ["cons", 1, "nil"]], "false"),
    ])
    def test_equality(self, secd, helpers, program, expected):
        """Test structural equality."""
        helpers.assert_evaluates_to(secd, program, expected)

    def test_evaluate_returns_value(self, secd, helpers):
        assert secd.evaluate(helpers.ast(["+", 1, 2])) == SECDInteger(3)

    def test_compile_then_run(self, secd, helpers):
        code = secd.compile(helpers.ast(["-", 9, 4]))
        assert secd.run(code) == SECDInteger(5)
        assert secd.run(code) == SECDInteger(5)


class TestFunctions:
    """Test lambda, application and scoping."""

    @pytest.mark.parametrize("program,expected", [
        (["lambda", ["x", "y"], "x"], "<closure (x y)>"),
        (["lambda", "x", "x"], "<closure (x)>"),
        (["lambda", [], 1], "<closure ()>"),
        ([["lambda", ["x"], ["+", "x", 1]], 41], "42"),
        ([["lambda", ["a", "b"], ["-", "a", "b"]], 10, 3], "7"),
        ([["lambda", [], 5]], "5"),
    ])
    def test_lambda_application(self, secd, helpers, program, expected):
        """Test closures and direct application."""
        helpers.assert_evaluates_to(secd, program, expected)

    def test_shadowing(self, secd, helpers):
        helpers.assert_evaluates_to(secd, ["let", "x", 1, ["let", "x", 2, "x"]], "2")

    def test_closure_captures_definition_environment(self, secd, helpers):
        """Rebinding a name after a closure is created does not affect the closure."""
        program = ["let", "x", 1, ["let", "f", ["lambda", [], "x"], ["let", "x", 2, ["f"]]]]
        helpers.assert_evaluates_to(secd, program, "1")

    def test_currying(self, secd, helpers):
        program = ["let", "add", ["lambda", ["a"], ["lambda", ["b"], ["+", "a", "b"]]], [["add", 3], 4]]
        helpers.assert_evaluates_to(secd, program, "7")

    def test_parameter_shadows_outer_binding(self, secd, helpers):
        program = ["let", "x", 100, [["lambda", ["x"], ["+", "x", 1]], 1]]
        helpers.assert_evaluates_to(secd, program, "2")

    def test_let_inside_body_does_not_leak_to_caller(self, secd, helpers):
        """Bindings made by a callee's let vanish when it returns."""
        program = [
            "let", "x", 1,
            ["let", "f", ["lambda", [], ["let", "x", 50, "x"]],
             ["+", ["f"], "x"]]
        ]
        helpers.assert_evaluates_to(secd, program, "51")

    def test_higher_order(self, secd, helpers):
        program = [
            "let", "twice", ["lambda", ["f", "x"], ["f", ["f", "x"]]],
            ["twice", ["lambda", ["n"], ["+", "n", 10]], 1]
        ]
        helpers.assert_evaluates_to(secd, program, "21")

    def test_let_in_branch_persists_after_join(self, secd, helpers):
        """A binding made inside an if branch is still visible after the branch."""
        helpers.assert_evaluates_to(secd, ["let", "z", ["if", "true", ["let", "y", 5, "y"], 0], "y"], "5")

    def test_closure_equality_is_identity(self, secd, helpers):
        helpers.assert_evaluates_to(secd, ["let", "f", ["lambda", ["x"], "x"], ["eq", "f", "f"]], "true")
        helpers.assert_evaluates_to(secd, ["eq", ["lambda", ["x"], "x"], ["lambda", ["x"], "x"]], "false")


class TestRecursion:
    """Test letrec and recursive application."""

    def test_factorial(self, secd, helpers, factorial_program):
        helpers.assert_evaluates_to(secd, factorial_program, "120")

    def test_sum(self, secd, helpers):
        program = [
            "letrec", "sum", ["lambda", ["n"], ["if", ["eq", "n", 0], 0, ["+", "n", ["sum", ["-", "n", 1]]]]],
            ["sum", 100]
        ]
        helpers.assert_evaluates_to(secd, program, "5050")

    def test_deep_recursion(self, secd, helpers):
        """Recursion depth is bounded by the dump, not the host call stack."""
        program = [
            "letrec", "sum", ["lambda", ["n"], ["if", ["eq", "n", 0], 0, ["+", "n", ["sum", ["-", "n", 1]]]]],
            ["sum", 10000]
        ]
        helpers.assert_evaluates_to(secd, program, "50005000")

    def test_build_list(self, secd, helpers):
        program = [
            "letrec", "range",
            ["lambda", ["n"], ["if", ["eq", "n", 0], "nil", ["cons", "n", ["range", ["-", "n", 1]]]]],
            ["range", 3]
        ]
        helpers.assert_evaluates_to(secd, program, "(3 2 1)")

    def test_list_length(self, secd, helpers):
        program = [
            "letrec", "length",
            ["lambda", ["xs"], ["if", ["eq", "xs", "nil"], 0, ["+", 1, ["length", ["cdr", "xs"]]]]],
            ["length", ["cons", 1, ["cons", 2, ["cons", 3, ["cons", 4, "nil"]]]]]
        ]
        helpers.assert_evaluates_to(secd, program, "4")

    def test_recursive_call_sees_caller_bindings(self, secd, helpers):
        """A letrec-bound function applied with RAP can see the caller's bindings."""
        program = ["letrec", "g", ["lambda", [], "y"], ["let", "y", 7, ["g"]]]
        helpers.assert_evaluates_to(secd, program, "7")

    def test_plain_call_does_not_see_caller_bindings(self, secd, helpers):
        """The same function bound with let is applied with AP and cannot."""
        program = ["let", "g", ["lambda", [], "y"], ["let", "y", 7, ["g"]]]
        with pytest.raises(SECDRuntimeError, match="Unbound identifier: 'y'"):
            secd.evaluate(helpers.ast(program))

    def test_caller_environment_restored_after_recursive_call(self, secd, helpers):
        """Parameters bound by a recursive call do not survive its return."""
        program = [
            "let", "n", 1000,
            ["letrec", "dec", ["lambda", ["n"], ["-", "n", 1]],
             ["+", ["dec", 5], "n"]]
        ]
        helpers.assert_evaluates_to(secd, program, "1004")

    def test_result_nested_through_car(self, secd, helpers):
        """A deeply car-nested result is formatted without exhausting the host stack."""
        program = [
            "letrec", "nest",
            ["lambda", ["n"], ["if", ["eq", "n", 0], "nil", ["cons", ["nest", ["-", "n", 1]], "nil"]]],
            ["nest", 2000]
        ]
        helpers.assert_evaluates_to(secd, program, "(" * 2000 + "nil" + ")" * 2000)


class TestOutput:
    """Test puts."""

    def test_puts_returns_its_value(self, secd, helpers, capsys):
        helpers.assert_evaluates_to(secd, ["+", ["puts", 5], 1], "6")
        assert capsys.readouterr().out == "5\n"

    def test_puts_to_watcher(self, helpers):
        watcher = SECDBufferingOutputWatcher()
        secd = SECD(output_watcher=watcher)
        program = ["let", "x", ["puts", ["cons", 1, 2]], ["puts", ["cons", "x", "nil"]]]
        helpers.assert_evaluates_to(secd, program, "((1 . 2))")
        assert watcher.get_output() == ["(1 . 2)", "((1 . 2))"]

    def test_puts_in_recursion_order(self, helpers):
        watcher = SECDBufferingOutputWatcher()
        secd = SECD(output_watcher=watcher)
        program = [
            "letrec", "count",
            ["lambda", ["n"], ["if", ["eq", "n", 0], "nil", ["cons", ["puts", "n"], ["count", ["-", "n", 1]]]]],
            ["count", 3]
        ]
        helpers.assert_evaluates_to(secd, program, "(3 2 1)")
        assert watcher.get_output() == ["3", "2", "1"]

    def test_puts_closure(self, helpers):
        watcher = SECDBufferingOutputWatcher()
        SECD(output_watcher=watcher).evaluate(helpers.ast(["puts", ["lambda", ["a"], "a"]]))
        assert watcher.get_output() == ["<closure (a)>"]

    def test_puts_deeply_nested_value(self, helpers):
        watcher = SECDBufferingOutputWatcher()
        program = [
            "letrec", "nest",
            ["lambda", ["n"], ["if", ["eq", "n", 0], "nil", ["cons", ["nest", ["-", "n", 1]], "nil"]]],
            ["car", ["puts", ["nest", 2000]]]
        ]
        result = SECD(output_watcher=watcher).evaluate_and_format(helpers.ast(program))
        assert result == "(" * 1999 + "nil" + ")" * 1999
        assert watcher.get_output() == ["(" * 2000 + "nil" + ")" * 2000]


class TestRuntimeErrors:
    """Test errors raised while running compiled programs."""

    def test_non_boolean_condition(self, secd, helpers):
        with pytest.raises(SECDRuntimeError, match="If condition must be boolean") as exc_info:
            secd.evaluate(helpers.ast(["if", 1, 2, 3]))

        assert (exc_info.value.line, exc_info.value.column) == (1, 1)

    def test_nil_is_not_false(self, secd, helpers):
        with pytest.raises(SECDRuntimeError, match="If condition must be boolean"):
            secd.evaluate(helpers.ast(["if", "nil", 2, 3]))

    def test_unbound_identifier_suggests_close_names(self, secd, helpers):
        with pytest.raises(SECDRuntimeError) as exc_info:
            secd.evaluate(helpers.ast(["let", "counter", 1, "countr"]))

        assert "Unbound identifier: 'countr'" in str(exc_info.value)
        assert "Did you mean: counter?" in str(exc_info.value)

    def test_apply_non_closure(self, secd, helpers):
        with pytest.raises(SECDRuntimeError, match="Cannot apply non-closure value"):
            secd.evaluate(helpers.ast(["let", "x", 1, ["x"]]))

    def test_wrong_argument_count(self, secd, helpers):
        with pytest.raises(SECDRuntimeError, match="Closure expects 1 argument, got 2"):
            secd.evaluate(helpers.ast([["lambda", ["x"], "x"], 1, 2]))

    def test_car_of_nil(self, secd, helpers):
        with pytest.raises(SECDRuntimeError, match="CAR requires a cons cell"):
            secd.evaluate(helpers.ast(["car", "nil"]))

    def test_add_non_integer(self, secd, helpers):
        with pytest.raises(SECDRuntimeError, match="ADD requires integer operands"):
            secd.evaluate(helpers.ast(["+", 1, "true"]))

    def test_overflow(self, secd, helpers):
        with pytest.raises(SECDRuntimeError, match="Integer overflow"):
            secd.evaluate(helpers.ast(["+", 2147483647, 1]))

    def test_step_limit_stops_infinite_recursion(self, helpers):
        secd = SECD(max_steps=1000)
        program = ["letrec", "loop", ["lambda", ["n"], ["loop", "n"]], ["loop", 0]]
        with pytest.raises(SECDRuntimeError, match="Step limit exceeded: 1000"):
            secd.evaluate(helpers.ast(program))

    def test_error_in_callee_reports_callee_position(self, secd):
        body = SECDASTList(
            (SECDASTSymbol("car", line=2, column=4), SECDASTSymbol("x", line=2, column=8)),
            line=2,
            column=3
        )
        function = SECDASTList(
            (SECDASTSymbol("lambda", line=1, column=3), SECDASTSymbol("x", line=1, column=10), body),
            line=1,
            column=2
        )
        program = SECDASTList((function, SECDASTInteger(5, line=3, column=1)), line=1, column=1)
        with pytest.raises(SECDRuntimeError) as exc_info:
            secd.evaluate(program)

        assert (exc_info.value.line, exc_info.value.column) == (2, 3)
