from flow_control.core.errors import SourceLoadError
from flow_control.core.io.load_source import load_source, write_source


def test_load_py_success():
    text = load_source("examples/nested_break.py")
    assert "break_if(inner_n == 3)" in text


def test_load_missing_file():
    try:
        load_source("examples/does-not-exist.py")
        assert False, "expected SourceLoadError"
    except SourceLoadError as e:
        assert e.code == "E_FILE_NOT_FOUND"


def test_load_unsupported_format(tmp_path):
    p = tmp_path / "code.txt"
    p.write_text("x = 1", encoding="utf-8")
    try:
        load_source(str(p))
        assert False, "expected SourceLoadError"
    except SourceLoadError as e:
        assert e.code == "E_UNSUPPORTED_FORMAT"


def test_write_source_creates_parent_and_newline(tmp_path):
    out = tmp_path / "nested" / "out.py"
    write_source(str(out), "x = 1")
    assert out.read_text(encoding="utf-8") == "x = 1\n"
