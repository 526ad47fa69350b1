import collections
import io

from shiftreduce.__main__ import main

from grammars import MATH_GRAMMAR


def _run(capsys, *args):
    code = main(["shiftreduce", str(MATH_GRAMMAR), *args])
    out, err = capsys.readouterr()
    return code, out, err


def test_parse(capsys):
    code, out, err = _run(capsys, "1", "+", "2")
    assert code == 0
    assert err == ""
    assert out.splitlines()[0] == "expr_binary"
    assert "number\t1" in out
    assert "number\t2" in out


def test_parse_stdin(capsys, monkeypatch):
    monkeypatch.setattr("sys.stdin", io.StringIO("x * 3\n"))
    code, out, _ = _run(capsys)
    assert code == 0
    assert "var\tx" in out


def test_lex(capsys):
    code, out, _ = _run(capsys, "--lex", "1+22")
    assert code == 0
    assert out.splitlines() == [
        "NUMBER\t'1'\t1:1",
        "OP_6\t'+'\t1:2",
        "NUMBER\t'22'\t1:3",
    ]


def test_table(capsys):
    code, out, _ = _run(capsys, "--table")
    assert code == 0
    header = out.splitlines()[0].split()
    assert "$END" in header
    assert "NUMBER" in header
    assert "expr" in header


def test_positions(capsys):
    code, out, _ = _run(capsys, "--propagate-positions", "1+2")
    assert code == 0
    assert out.splitlines()[0] == "expr_binary [0, 3)"
    assert "  OP_4:'+' [1, 2)" in out.splitlines()


def test_text_and_options_in_any_order(capsys):
    TC = collections.namedtuple("TC", ["args", "first_line"])
    cases = [
        TC(["--lex", "1", "+2"], "NUMBER\t'1'\t1:1"),
        TC(["1", "--lex", "+2"], "NUMBER\t'1'\t1:1"),
        TC(["1+2", "--propagate-positions"], "expr_binary [0, 3)"),
        TC(["1", "--start", "start", "+", "2"], "expr_binary"),
    ]
    for case in cases:
        code, out, err = _run(capsys, *case.args)
        assert code == 0, (case, err)
        assert out.splitlines()[0] == case.first_line, case


def test_syntax_error(capsys):
    code, out, err = _run(capsys, "1+")
    assert code == 1
    assert out == ""
    assert "Unexpected end-of-input" in err
    assert "1+\n" in err


def test_unknown_start(capsys):
    code, _, err = _run(capsys, "--start", "expr", "1")
    assert code == 1
    assert "Unknown start rule" in err


def test_missing_grammar(capsys, tmp_path):
    code = main(["shiftreduce", str(tmp_path / "nope.json"), "1"])
    _, err = capsys.readouterr()
    assert code == 1
    assert "nope.json" in err
