"""Tests for the where/formula expression evaluator."""

from datetime import date

import pytest

from obsidian_tools.errors import ExpressionError
from obsidian_tools.expressions import compile_expression, evaluate, matches


def _matches(text, **scope):
    return matches(compile_expression(text), scope)


class TestComparisons:
    def test_default_task_filter(self):
        expr = 'status != "done" && status != "cancelled"'
        assert _matches(expr, status="open")
        assert not _matches(expr, status="done")
        assert not _matches(expr, status="cancelled")

    def test_missing_field_not_equal(self):
        assert _matches('status != "done"')

    def test_ordering_with_missing_field_is_false(self):
        assert not _matches("priority < 3")
        assert not _matches("priority >= 3")

    def test_ordering_across_types_is_false(self):
        assert not _matches("priority < 3", priority="high")

    def test_numbers(self):
        assert _matches("priority <= 2", priority=1)
        assert not _matches("priority > 2", priority=1)

    def test_chained(self):
        assert _matches("1 <= priority <= 3", priority=2)

    def test_iso_strings_order(self):
        assert _matches('due_date < "2026-02-01"', due_date="2026-01-15")


class TestOperators:
    def test_or(self):
        assert _matches('status == "open" || priority == 1', status="done", priority=1)

    def test_not(self):
        assert _matches("!isDraft")
        assert not _matches("!isDraft", isDraft=True)

    def test_python_words(self):
        assert _matches('status == "open" and not archived', status="open", archived=False)

    def test_literals(self):
        assert _matches("done == true", done=True)
        assert _matches("due == null")

    def test_string_literals_untouched(self):
        assert _matches('title == "a && b || !c"', title="a && b || !c")

    def test_arithmetic(self):
        assert evaluate(compile_expression("priority * 2"), {"priority": 3}) == 6
        assert evaluate(compile_expression("priority + 1"), {}) is None


class TestMethodsAndFunctions:
    def test_contains_list(self):
        assert _matches('tags.contains("urgent")', tags=["urgent", "work"])
        assert not _matches('tags.contains("urgent")', tags=["work"])

    def test_contains_missing(self):
        assert not _matches('tags.contains("urgent")')

    def test_in_operator(self):
        assert _matches('"urgent" in tags', tags=["urgent"])
        assert _matches('"urgent" not in tags', tags=[])

    def test_string_methods(self):
        assert _matches('title.startsWith("Fix")', title="Fix login")
        assert _matches('file.name.endsWith(".md")', file={"name": "a.md"})

    def test_is_empty_and_length(self):
        assert _matches("tags.isEmpty()", tags=[])
        assert _matches("tags.length() == 2", tags=["a", "b"])

    def test_nested_field(self):
        assert _matches('file.folder == "projects"', file={"folder": "projects"})
        assert not _matches('file.folder == "projects"')

    def test_types_list(self):
        assert _matches('types.contains("actionable")', types=["task", "actionable"])

    def test_today(self):
        assert evaluate(compile_expression("today()"), {}) == date.today().isoformat()
        assert _matches("due_date < today()", due_date="2000-01-01")

    def test_now_is_iso(self):
        assert evaluate(compile_expression("now()"), {}).endswith("Z")


class TestErrors:
    def test_syntax_error(self):
        with pytest.raises(ExpressionError, match="Invalid expression"):
            compile_expression("status ==")

    def test_unknown_function(self):
        with pytest.raises(ExpressionError, match="Unknown function"):
            evaluate(compile_expression('__import__("os")'), {})

    def test_unknown_method(self):
        with pytest.raises(ExpressionError, match="Unknown method"):
            evaluate(compile_expression("title.upper()"), {"title": "x"})

    def test_unsupported_syntax(self):
        with pytest.raises(ExpressionError, match="Unsupported"):
            evaluate(compile_expression("[x for x in tags]"), {"tags": []})

    def test_attribute_on_non_mapping_is_none(self):
        assert evaluate(compile_expression("title.__class__"), {"title": "x"}) is None
