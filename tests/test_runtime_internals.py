from __future__ import annotations

import collections
import unittest

import quill_lang
from quill_lang.evaluator import describe_syntax_error
from quill_lang.exceptions import CastError
from quill_lang.grammar import get_parser


class RuntimeInternalsTests(unittest.TestCase):
    def _run_program(
        self, source: str, scope: quill_lang.ScopeManager | None = None
    ) -> tuple[object, str]:
        io_handler = quill_lang.BufferIO()
        interp = quill_lang.QuillInterpreter(scope=scope, io_handler=io_handler)
        result = interp.run(get_parser().parse(source))
        return result, io_handler.getvalue()

    def test_scope_manager_get_set_declare(self) -> None:
        s = quill_lang.ScopeManager()
        s.set("g", 1)
        self.assertEqual(s.get("g"), 1)
        s.push_frame({"x": "local"})
        s.declare("g", 2)
        self.assertEqual(s.get("g"), 2)
        s.pop_frame()
        self.assertEqual(s.get("g"), 1)
        with self.assertRaises(quill_lang.MissingPropertyError):
            s.get("missing")

    def test_scope_manager_set_updates_existing_global_from_frame(self) -> None:
        s = quill_lang.ScopeManager({"x": 1})
        s.push_frame({})
        s.set("x", 2)
        s.set("y", 3)
        s.pop_frame()
        self.assertEqual(s.get("x"), 2)
        self.assertFalse(s.has_variable("y"))
        with self.assertRaises(quill_lang.QuillError):
            s.remove("y")

    def test_arithmetic_and_precedence(self) -> None:
        self.assertEqual(self._run_program("2 + 3 * 4")[0], 14)
        self.assertEqual(self._run_program("10 - 4 - 3")[0], 3)
        self.assertEqual(self._run_program("(2 + 3) * 4")[0], 20)
        self.assertEqual(self._run_program("7 % 4")[0], 3)
        self.assertEqual(self._run_program("1.5 * 2")[0], 3.0)

    def test_string_and_list_addition(self) -> None:
        self.assertEqual(self._run_program("'n=' + 1")[0], "n=1")
        self.assertEqual(self._run_program("[1] + 2")[0], [1, 2])
        self.assertEqual(self._run_program("'a' + null")[0], "anull")

    def test_logic_ternary_and_elvis(self) -> None:
        self.assertEqual(self._run_program("1 < 2 && 2 < 3 ? 'yes' : 'no'")[0], "yes")
        self.assertEqual(self._run_program("null ?: 'fallback'")[0], "fallback")
        self.assertIs(self._run_program("!(1 == 1) || false")[0], False)
        self.assertIs(self._run_program("2 in [1, 2]")[0], True)

    def test_safe_navigation(self) -> None:
        self.assertIsNone(self._run_program("n = null; n?.upper()")[0])
        self.assertIsNone(self._run_program("n = null; n?.size")[0])
        with self.assertRaises(quill_lang.NullReferenceError):
            self._run_program("n = null; n.upper()")

    def test_maps_and_indexing(self) -> None:
        result, _ = self._run_program("m = [a: 1, 'b c': 2, 3: 4]; m['b c'] + m[3] + m.a")
        self.assertEqual(result, 7)
        self.assertIsNone(self._run_program("[:]['missing']")[0])
        self.assertEqual(self._run_program("xs = [1, 2]; xs[0] = 5; xs")[0], [5, 2])

    def test_property_assignment_on_map_and_object(self) -> None:
        scope = quill_lang.ScopeManager({"ns": collections.namedtuple("P", "x")(1)})
        self.assertEqual(self._run_program("m = [:]; m.k = 1; m", scope)[0], {"k": 1})
        with self.assertRaises(quill_lang.MissingPropertyError):
            self._run_program("ns.x = 2", scope)

    def test_closures_capture_it_and_params(self) -> None:
        self.assertEqual(self._run_program("f = { it * 2 }; f(3)")[0], 6)
        self.assertEqual(self._run_program("g = { a, b -> a - b }; g.call(5, 2)")[0], 3)
        with self.assertRaises(quill_lang.MissingMethodError):
            self._run_program("g = { a, b -> a }; g(1)")

    def test_method_call_with_trailing_closure(self) -> None:
        result, _ = self._run_program("def apply(x, f) { f(x) }\napply(3) { it * 10 }")
        self.assertEqual(result, 30)

    def test_return_and_continue(self) -> None:
        source = "\n".join(
            [
                "def firstEven(xs) {",
                "    for (x in xs) {",
                "        if (x % 2 == 1) { continue }",
                "        return x",
                "    }",
                "    return null",
                "}",
                "firstEven([1, 3, 4, 6])",
            ]
        )
        self.assertEqual(self._run_program(source)[0], 4)
        with self.assertRaises(quill_lang.QuillError):
            self._run_program("break")

    def test_if_else_chain(self) -> None:
        source = "x = 5\nif (x > 10) { 'big' } else if (x > 3) { 'mid' } else { 'small' }"
        self.assertEqual(self._run_program(source)[0], "mid")

    def test_println_formats_values(self) -> None:
        _, out = self._run_program("println(null, true, [1, 'a'], [k: false])")
        self.assertEqual(out, "null true [1, a] [k:false]\n")

    def test_format_value(self) -> None:
        self.assertEqual(quill_lang.format_value({}), "[:]")
        self.assertEqual(quill_lang.format_value((1, None)), "[1, null]")
        self.assertEqual(quill_lang.format_value(2.5), "2.5")

    def test_pattern_operators(self) -> None:
        self.assertIs(self._run_program("'abc' ==~ 'a.c'")[0], True)
        self.assertTrue(self._run_program("'xabcx' =~ 'b'")[0])
        self.assertEqual(self._run_program("(~'a+').pattern")[0], "a+")

    def test_instanceof(self) -> None:
        self.assertIs(self._run_program("[1] instanceof list")[0], True)
        with self.assertRaises(quill_lang.QuillError):
            self._run_program("1 instanceof 2")

    def test_declared_types(self) -> None:
        self.assertEqual(self._run_program("double d = 1; d")[0], 1)
        with self.assertRaises(CastError):
            self._run_program("String s = 1")
        with self.assertRaises(quill_lang.ClassResolutionError):
            self._run_program("NoSuchType t = 1")

    def test_module_and_class_lookup(self) -> None:
        self.assertEqual(self._run_program("math.floor(2.7)")[0], 2)
        self.assertIs(self._run_program("OrderedDict")[0], collections.OrderedDict)
        self.assertIs(self._run_program("[].class")[0], list)
        self.assertIs(self._run_program("dict.class")[0], dict)

    def test_typed_catch_skips_other_errors(self) -> None:
        source = "\n".join(
            [
                "try {",
                "    try { [][1] } catch (KeyError e) { 'inner' }",
                "} catch (IndexError e) {",
                "    'outer'",
                "}",
            ]
        )
        self.assertEqual(self._run_program(source)[0], "outer")

    def test_comments_and_blank_lines(self) -> None:
        self.assertEqual(self._run_program("// lead\n\nx = 1 // trailing\n\nx + 1\n")[0], 2)

    def test_newlines_inside_brackets_are_ignored(self) -> None:
        self.assertEqual(self._run_program("max(\n  1,\n  2\n)")[0], 2)
        self.assertEqual(self._run_program("[\n1,\n2]")[0], [1, 2])


class EvaluatorTests(unittest.TestCase):
    def test_outcomes(self) -> None:
        evaluator = quill_lang.QuillEvaluator()
        scope = quill_lang.ScopeManager()
        self.assertEqual(evaluator.execute("1 + 1", scope), quill_lang.Ok(2))
        failure = evaluator.execute("1 +* 2", scope)
        self.assertIsInstance(failure, quill_lang.CompileFailure)
        runtime = evaluator.execute("1 / 0", scope)
        self.assertIsInstance(runtime, quill_lang.RuntimeFailure)
        self.assertIsInstance(runtime.error, ZeroDivisionError)

    def test_startup_failed_message(self) -> None:
        evaluator = quill_lang.QuillEvaluator()
        failure = evaluator.execute("x = 1\ny = 2 +* 3", quill_lang.ScopeManager())
        message = str(failure.error)
        lines = message.split("\n")
        self.assertEqual(lines[0], "startup failed:")
        self.assertRegex(lines[1], r"^Script\d+\.quill: 2: .* @ line 2, column 8\.$")
        self.assertEqual(lines[2], "   y = 2 +* 3")
        self.assertEqual(lines[3], "          ^")
        self.assertTrue(message.endswith("\n1 error\n"))
        self.assertEqual(len(failure.error.errors), 1)

    def test_script_names_are_unique(self) -> None:
        evaluator = quill_lang.QuillEvaluator()
        scope = quill_lang.ScopeManager()
        first = str(evaluator.execute("(", scope).error).split("\n")[1]
        second = str(evaluator.execute("(", scope).error).split("\n")[1]
        self.assertNotEqual(first.split(":")[0], second.split(":")[0])

    def test_end_of_input_position(self) -> None:
        from lark.exceptions import UnexpectedInput

        source = "foo(1,"
        try:
            get_parser().parse(source)
        except UnexpectedInput as e:
            info = describe_syntax_error(source, e)
        self.assertEqual((info.line, info.column), (1, 7))
        self.assertEqual(info.message, "Unexpected end of input")


if __name__ == "__main__":
    unittest.main(verbosity=2)
