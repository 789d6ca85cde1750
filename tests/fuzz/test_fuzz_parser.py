import unittest
import pytest

import quill_lang

hypothesis = pytest.importorskip("hypothesis")
strategies = hypothesis.strategies


class FuzzTests(unittest.TestCase):
    @hypothesis.settings(deadline=None)
    @hypothesis.given(strategies.text(max_size=40))
    def test_fuzz_evaluator_never_raises(self, trash_text: str) -> None:
        evaluator = quill_lang.QuillEvaluator()
        outcome = evaluator.execute(trash_text, quill_lang.ScopeManager(), quill_lang.NullIO())
        self.assertIsInstance(
            outcome, (quill_lang.Ok, quill_lang.CompileFailure, quill_lang.RuntimeFailure)
        )

    @hypothesis.settings(deadline=None, max_examples=50)
    @hypothesis.given(strategies.text(alphabet="abc.( )[]{}=,;'\"new", max_size=30))
    def test_fuzz_completion_never_raises(self, buffer: str) -> None:
        engine = quill_lang.ScriptEngine(io_handler=quill_lang.BufferIO())
        engine.put("abc", "text")
        candidates = engine.get_completions(buffer)
        self.assertIsInstance(candidates, list)
        for candidate in candidates:
            self.assertLessEqual(candidate.start, candidate.end)

    @hypothesis.settings(deadline=None, max_examples=50)
    @hypothesis.given(strategies.text(alphabet="ab1+*( ),\n", max_size=30))
    def test_fuzz_diagnostic_offsets_stay_in_buffer(self, head: str) -> None:
        engine = quill_lang.ScriptEngine(io_handler=quill_lang.BufferIO())
        diagnostic = engine.get_diagnostic(head)
        self.assertLessEqual(diagnostic.error_index, len(head))


if __name__ == "__main__":
    unittest.main(verbosity=2)
