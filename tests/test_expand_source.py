import ast
import textwrap

import pytest

from flow_control.core.compile.compile_source import compile_source
from flow_control.core.errors import ExpansionError, ShapeMismatchError, SourceLoadError
from flow_control.core.expand.config import implicit_config
from flow_control.core.expand.expand_module import expand_module, expand_source, resolve_macro_names


def _src(text: str) -> str:
    return textwrap.dedent(text).strip("\n") + "\n"


def test_break_if_expands_to_if_break():
    result = expand_source(
        _src(
            """
            from flow_control import break_if
            for n in xs:
                break_if(n == 3)
            """
        )
    )
    assert result.source == "\n".join(
        [
            "from flow_control import break_if",
            "for n in xs:",
            "    if n == 3:",
            "        break",
        ]
    )
    assert [(r.macro, r.shape, r.line) for r in result.records] == [("break_if", "(predicate)", 3)]


def test_expansion_is_deterministic():
    text = _src(
        """
        from flow_control import break_if, continue_if, label
        label(outer)
        for a in xs:
            for b in ys:
                continue_if(b > a, outer)
                break_if(b == 0)
        """
    )
    first = expand_source(text)
    second = expand_source(text)
    assert first.source == second.source
    assert first.records == second.records


def test_predicate_appears_once_and_verbatim():
    result = expand_source(
        _src(
            """
            from flow_control import return_if
            def f(n):
                return_if(n == 3, n * 2)
                return 0
            """
        )
    )
    assert result.source.count("n == 3") == 1
    assert "if n == 3:" in result.source
    assert "return n * 2" in result.source


def test_constant_predicate_is_not_simplified():
    result = expand_source("from flow_control import break_if\nwhile True:\n    break_if(1 + 1 == 2)\n")
    assert "if 1 + 1 == 2:" in result.source


@pytest.mark.parametrize(
    "with_comma,without_comma",
    [
        ("break_if(n == 3,)", "break_if(n == 3)"),
        ("break_if(n == 3, outer,)", "break_if(n == 3, outer)"),
        ("continue_if(n,)", "continue_if(n)"),
    ],
)
def test_trailing_comma_is_ignored(with_comma, without_comma):
    template = "from flow_control import *\nlabel(outer)\nfor n in xs:\n    {call}\n"
    a = expand_source(template.format(call=with_comma))
    b = expand_source(template.format(call=without_comma))
    assert a.source == b.source
    assert a.records == b.records


def test_return_if_trailing_comma():
    a = expand_source("from flow_control import return_if\ndef f(x):\n    return_if(x, 1,)\n")
    b = expand_source("from flow_control import return_if\ndef f(x):\n    return_if(x, 1)\n")
    assert a.source == b.source


def test_aliases_and_module_imports_are_resolved():
    tree = ast.parse(
        _src(
            """
            import flow_control as fc
            from flow_control import break_if as bi, return_if
            from somewhere_else import continue_if
            """
        )
    )
    names = resolve_macro_names(tree)
    assert names["bi"] == "break_if"
    assert names["return_if"] == "return_if"
    assert names["fc.continue_if"] == "continue_if"
    assert names["fc.label"] == "label"
    assert "continue_if" not in names
    assert "break_if" not in names


def test_unimported_names_are_left_alone():
    text = _src(
        """
        def break_if(x):
            return x

        for n in xs:
            break_if(n)
        """
    )
    result = expand_source(text)
    assert result.records == []
    assert "break_if(n)" in result.source


def test_implicit_names_need_no_import():
    result = expand_source("for n in xs:\n    break_if(n)\n", config=implicit_config())
    assert "if n:\n        break" in result.source


def test_nested_functions_and_classes_are_expanded():
    result = expand_source(
        _src(
            """
            from flow_control import return_if
            class A:
                def m(self, x):
                    def inner(y):
                        return_if(y)
                        return 1
                    return_if(x, inner(x))
            """
        )
    )
    assert len(result.records) == 2
    assert "return_if(" not in result.source


def test_macro_inside_expression_is_reported():
    tree = ast.parse("from flow_control import break_if\nx = break_if(True)\n")
    result, errors = expand_module(tree, file="m.py")
    assert result is None
    assert [e.code for e in errors] == ["E_INVOCATION_POSITION"]
    assert isinstance(errors[0], ExpansionError)
    assert errors[0].line == 2


def test_all_shape_errors_are_collected_in_order():
    tree = ast.parse(
        _src(
            """
            from flow_control import break_if, return_if
            def f(xs):
                for x in xs:
                    break_if()
                return_if(1, 2, 3)
            """
        )
    )
    result, errors = expand_module(tree, file="m.py")
    assert result is None
    assert [(e.code, e.line) for e in errors] == [("E_SHAPE_MISMATCH", 4), ("E_SHAPE_MISMATCH", 5)]
    assert all(isinstance(e, ShapeMismatchError) for e in errors)
    assert str(errors[0]).startswith("m.py:4:8: E_SHAPE_MISMATCH:")


def test_expand_source_raises_first_error():
    with pytest.raises(ShapeMismatchError):
        expand_source("from flow_control import continue_if\nfor x in y:\n    continue_if()\n")


def test_input_tree_is_not_modified():
    tree = ast.parse("from flow_control import break_if\nfor x in y:\n    break_if(x)\n")
    before = ast.dump(tree)
    expand_module(tree)
    assert ast.dump(tree) == before


def test_syntax_error_is_source_load_error():
    with pytest.raises(SourceLoadError) as exc:
        expand_source("for x in :\n", file="bad.py")
    assert exc.value.code == "E_SYNTAX"
    assert exc.value.file == "bad.py"


def test_function_level_import_does_not_leak_into_other_functions():
    text = _src(
        """
        def first(xs):
            from flow_control import break_if
            for x in xs:
                break_if(x > 2)
            return x

        def break_if(x):
            return x

        def user():
            break_if(5)
            return "ok"
        """
    )
    result = expand_source(text)
    assert [(r.macro, r.line) for r in result.records] == [("break_if", 4)]
    assert "    break_if(5)" in result.source

    ns: dict = {}
    exec(compile_source(text, "scoped.py"), ns)
    assert ns["user"]() == "ok"
    assert ns["first"]([1, 2, 3, 4]) == 3


def test_module_level_names_ignore_nested_imports():
    tree = ast.parse("def f():\n    from flow_control import break_if\n")
    assert resolve_macro_names(tree) == {}


@pytest.mark.parametrize(
    "body",
    [
        "def f(xs, break_if):\n    for x in xs:\n        break_if(x)\n",
        "def f(xs):\n    break_if = print\n    for x in xs:\n        break_if(x)\n",
        "def f(xs):\n    def break_if(x):\n        return x\n    for x in xs:\n        break_if(x)\n",
        "def f(xs):\n    from other import break_if\n    for x in xs:\n        break_if(x)\n",
    ],
)
def test_local_rebinding_hides_imported_macro(body):
    result = expand_source("from flow_control import break_if\n" + body)
    assert result.records == []
    assert "        break_if(x)" in result.source


def test_rebinding_is_local_to_its_scope():
    text = _src(
        """
        from flow_control import break_if
        def f(break_if):
            return break_if
        def g(xs):
            for x in xs:
                break_if(x)
        """
    )
    result = expand_source(text)
    assert [(r.macro, r.line) for r in result.records] == [("break_if", 6)]


def test_class_body_import_is_not_visible_in_methods():
    text = _src(
        """
        class A:
            from flow_control import return_if
            def m(self, x):
                return_if(x)
                return 1
        """
    )
    result = expand_source(text)
    assert result.records == []
    assert "return_if(x)" in result.source


def test_module_alias_rebinding_hides_attribute_spellings():
    text = _src(
        """
        import flow_control as fc
        def f(xs, fc):
            for x in xs:
                fc.break_if(x)
        """
    )
    assert expand_source(text).records == []
