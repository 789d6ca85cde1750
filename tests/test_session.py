import unittest

import quill_lang
from quill_lang.models import OPTIONS_VARIABLE
from quill_lang.session import import_source


class ScriptEngineTests(unittest.TestCase):
    def setUp(self) -> None:
        self.io = quill_lang.BufferIO()
        self.engine = quill_lang.ScriptEngine(io_handler=self.io)

    def test_execute_returns_last_value_and_keeps_bindings(self) -> None:
        self.assertEqual(self.engine.execute("x = 2; x * 21"), 42)
        self.assertEqual(self.engine.get("x"), 2)
        self.assertTrue(self.engine.has_variable("x"))

    def test_println_goes_to_the_session_io(self) -> None:
        self.engine.execute("println('hello')")
        self.engine.execute("print('a'); print('b')")
        self.assertEqual(self.io.getvalue(), "hello\nab")

    def test_imports_are_recorded_and_listed(self) -> None:
        self.assertEqual(self.engine.execute("import"), [])
        self.engine.execute("import string.*")
        self.engine.execute("import json.JSONDecoder")
        self.assertEqual(self.engine.execute("import"), ["string.*", "json.JSONDecoder"])
        self.assertEqual(
            self.engine.import_source(), "import string.*\nimport json.JSONDecoder\n"
        )
        self.assertEqual(type(self.engine.execute("new Template('x')")).__name__, "Template")

    def test_failed_import_is_not_recorded(self) -> None:
        with self.assertRaises(quill_lang.ClassResolutionError):
            self.engine.execute("import no_such_pkg.Thing")
        self.assertEqual(self.engine.execute("import"), [])

    def test_method_definitions_are_recorded(self) -> None:
        self.engine.execute("def twice(n) { n * 2 }")
        self.assertEqual(self.engine.execute("twice(4)"), 8)
        self.assertEqual(self.engine.execute("def"), {"twice": "def twice(n) { n * 2 }"})
        self.assertEqual(self.engine.execute("def twice"), "def twice(n) { n * 2 }")
        self.assertIsNone(self.engine.execute("def missing"))

    def test_failures_propagate(self) -> None:
        with self.assertRaises(quill_lang.CompilationFailedError):
            self.engine.execute("1 +")
        with self.assertRaises(quill_lang.MissingPropertyError):
            self.engine.execute("undefinedThing")

    def test_call_invokes_closures(self) -> None:
        closure = self.engine.execute("{ a, b -> a + b }")
        self.assertEqual(self.engine.call(closure, 2, 3), 5)
        with self.assertRaises(quill_lang.QuillError):
            self.engine.call(5)

    def test_find_by_wildcard_and_regex(self) -> None:
        self.engine.put("alpha", 1)
        self.engine.put("alps", 2)
        self.engine.put("beta", 3)
        self.assertEqual(self.engine.find("al*"), {"alpha": 1, "alps": 2})
        self.assertEqual(self.engine.find("b.+"), {"beta": 3})
        self.assertEqual(len(self.engine.find()), 3)

    def test_delete_variables_methods_and_imports(self) -> None:
        self.engine.execute("def twice(n) { n * 2 }")
        self.engine.execute("import string.Template")
        self.engine.put("v", 1)
        self.engine.delete("v", "twice", "string.Template", None)
        self.assertFalse(self.engine.has_variable("v"))
        self.assertFalse(self.engine.has_variable("twice"))
        self.assertEqual(self.engine.execute("def"), {})
        self.assertEqual(self.engine.execute("import"), [])
        self.assertIsNone(self.engine.catalog.resolve("Template"))

    def test_wildcard_delete_spares_system_variables(self) -> None:
        self.engine.put("_", 1)
        self.engine.put(OPTIONS_VARIABLE, {})
        self.engine.put("temp", 2)
        self.engine.put("total", 3)
        self.engine.delete("*")
        self.assertEqual(sorted(self.engine.find()), ["QUILL_OPTIONS", "_"])

    def test_options_follow_the_options_variable(self) -> None:
        self.assertFalse(self.engine.options().restricted_completion)
        self.engine.put(OPTIONS_VARIABLE, {"restrictedCompletion": True, "canonicalNames": 1})
        options = self.engine.options()
        self.assertTrue(options.restricted_completion)
        self.assertTrue(options.canonical_names)
        self.assertTrue(self.engine.context().options.restricted_completion)

    def test_malformed_colors_fall_back(self) -> None:
        self.engine.put(OPTIONS_VARIABLE, {"colors": "not a spec"})
        self.assertEqual(self.engine.options().colors, "ti=1;34:me=31")

    def test_context_is_a_snapshot_of_imports_and_methods(self) -> None:
        self.engine.execute("import string.*")
        context = self.engine.context()
        self.engine.execute("import json.*")
        self.assertEqual(list(context.imports), ["string.*"])
        self.assertIs(context.scope, self.engine.scope)

    def test_import_source_helper(self) -> None:
        self.assertEqual(import_source({}), "")
        self.assertEqual(import_source({"a.*": "import a.*"}), "import a.*\n")


if __name__ == "__main__":
    unittest.main(verbosity=2)
