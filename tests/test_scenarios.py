import textwrap

from flow_control.core.compile.compile_source import compile_source


def _run(text: str) -> dict:
    code = compile_source(textwrap.dedent(text), "<scenario>")
    ns: dict = {}
    exec(code, ns)
    return ns


def test_break_if_exits_inner_loop_only():
    ns = _run(
        """
        from flow_control import break_if
        v = []
        for outer_n in range(1, 3):
            for inner_n in range(1, 5):
                break_if(inner_n == 3)
                v.append((outer_n, inner_n))
        """
    )
    assert ns["v"] == [(1, 1), (1, 2), (2, 1), (2, 2)]


def test_break_if_with_label_exits_outer_loop():
    ns = _run(
        """
        from flow_control import break_if, label
        v = []
        label(outer)
        for outer_n in range(1, 3):
            for inner_n in range(1, 5):
                break_if(inner_n == 3, outer)
                v.append((outer_n, inner_n))
        """
    )
    assert ns["v"] == [(1, 1), (1, 2)]


def test_continue_if_skips_iteration():
    ns = _run(
        """
        from flow_control import continue_if
        v = []
        for outer_n in range(1, 3):
            for inner_n in range(1, 5):
                continue_if(inner_n == 3)
                v.append((outer_n, inner_n))
        """
    )
    assert ns["v"] == [(1, 1), (1, 2), (1, 4), (2, 1), (2, 2), (2, 4)]


def test_continue_if_with_label_continues_outer_loop():
    ns = _run(
        """
        from flow_control import continue_if, label
        v = []
        label(outer)
        for outer_n in range(1, 3):
            for inner_n in range(1, 5):
                continue_if(inner_n == 3, outer)
                v.append((outer_n, inner_n))
        """
    )
    assert ns["v"] == [(1, 1), (1, 2), (2, 1), (2, 2)]


def test_return_if_without_value():
    ns = _run(
        """
        from flow_control import return_if
        v = []
        def collect():
            for n in range(1, 10):
                return_if(n == 5)
                v.append(n)
        result = collect()
        """
    )
    assert ns["v"] == [1, 2, 3, 4]
    assert ns["result"] is None


def test_return_if_with_value():
    ns = _run(
        """
        from flow_control import return_if
        def get_value():
            for n in range(1, 10):
                return_if(n == 5, "early return")
            return "return after loop"
        """
    )
    assert ns["get_value"]() == "early return"


def test_predicate_is_evaluated_once_per_pass():
    ns = _run(
        """
        from flow_control import break_if
        calls = []
        def check(n):
            calls.append(n)
            return n == 2
        for n in range(5):
            break_if(check(n))
        """
    )
    assert ns["calls"] == [0, 1, 2]


def test_return_if_value_is_not_evaluated_when_false():
    ns = _run(
        """
        from flow_control import return_if
        calls = []
        def side(x):
            calls.append(x)
            return x
        def f(flag):
            return_if(flag, side("taken"))
            return "fallthrough"
        a = f(False)
        b = f(True)
        """
    )
    assert ns["a"] == "fallthrough"
    assert ns["b"] == "taken"
    assert ns["calls"] == ["taken"]
