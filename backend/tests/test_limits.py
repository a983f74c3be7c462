"""Tests for interpreter runtime limits (time, steps, loops, output caps)."""

from backend.nanlang.interpreter import Interpreter


def test_no_limits_by_default():
    it = Interpreter()
    assert it.max_steps is None and it.max_loop is None
    res = it.run('set n = 0\nloop i:20000 (\n  add n 1\n)\nprint n')
    assert res['output'] == '20000\n'
    assert res['errors'] == []


def test_step_limit():
    it = Interpreter()
    it.max_steps = 5
    code = "\n".join(["print 1"] * 20)
    res = it.run(code)
    assert res["errors"][-1]["code"] == "STEP_LIMIT"
    assert res["output"].count("1") == 5
    assert "Step limit exceeded" in res["warnings"]


def test_loop_cap():
    it = Interpreter()
    it.max_loop = 3
    res = it.run("loop i:10 (\n    print i\n)")
    assert res["output"] == "0\n1\n2\n"
    assert "Loop count limited to 3" in res["warnings"]


def test_output_limit():
    it = Interpreter()
    it.max_output_chars = 10
    code = "\n".join(['print "abcdefghij"'] * 5)
    res = it.run(code)
    assert res["errors"] and res["errors"][-1]["code"] == "OUTPUT_LIMIT"
    assert res["output"] == "abcdefghij\n"


def test_time_limit():
    res = Interpreter().run("loop i:100000000 (\n  set x = i\n)", settings={"max_time_s": 0.05})
    assert res["errors"][-1]["code"] == "TIMEOUT"


def test_settings_override_per_run():
    it = Interpreter()
    res = it.run("loop i:10 (\n  print i\n)", settings={"max_loop": 2})
    assert res["output"] == "0\n1\n"
    assert it.max_loop == 2
