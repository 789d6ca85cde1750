import unittest

from quill_lang.exceptions import CastError

from tests.script_runner import _execute_fixture


class ScriptTests(unittest.TestCase):
    def test_loops(self) -> None:
        r = _execute_fixture("loops.quill")
        self.assertIsNone(r.error)
        self.assertEqual(r.stdout, "6\na=1\nb=2\n3\n")

    def test_methods_and_closures(self) -> None:
        r = _execute_fixture("closures.quill")
        self.assertIsNone(r.error)
        self.assertEqual(r.stdout, "12\n16\n2\n")

    def test_string_interpolation(self) -> None:
        r = _execute_fixture("strings.quill")
        self.assertIsNone(r.error)
        self.assertEqual(r.stdout, "hello Quill\nsum 3\nraw $name\nQUILL!\n")

    def test_try_catch_finally(self) -> None:
        r = _execute_fixture("errors.quill")
        self.assertIsNone(r.error)
        self.assertEqual(r.stdout, "caught\ndone\n")

    def test_script_arguments(self) -> None:
        r = _execute_fixture("args.quill", args=["alpha", "beta"])
        self.assertIsNone(r.error)
        self.assertEqual(r.stdout, "count 2\nalpha\n")
        self.assertEqual(r.engine.get("_args"), ["alpha", "beta"])

    def test_wildcard_import_in_script(self) -> None:
        r = _execute_fixture("imports.quill")
        self.assertIsNone(r.error)
        self.assertEqual(r.stdout, "hi there\n")

    def test_declared_type_is_enforced(self) -> None:
        r = _execute_fixture("declared_types.quill")
        self.assertIsInstance(r.error, CastError)
        self.assertIn("to class 'int'", str(r.error))

    def test_script_bindings_stay_in_session(self) -> None:
        r = _execute_fixture("closures.quill")
        self.assertEqual(r.engine.get("total"), 12)
        self.assertTrue(r.engine.has_variable("twice"))

    def test_missing_fixture(self) -> None:
        with self.assertRaises(FileNotFoundError):
            _execute_fixture("no_such_script.quill")


if __name__ == "__main__":
    unittest.main(verbosity=2)
