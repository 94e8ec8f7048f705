import pytest
from depwire.UTILS.string_interpolation import EnvironmentInterpolator


def interpolate(template, **context):
    return EnvironmentInterpolator.interpolate(template, context)


def test_braced_and_bare():
    assert interpolate("${A}-$B", A="1", B="2") == "1-2"


def test_defaults():
    assert interpolate("${A:-x}") == "x"
    assert interpolate("${A:-x}", A="") == "x"
    assert interpolate("${A-x}", A="") == ""
    assert interpolate("${A-x}") == "x"


def test_alternatives():
    assert interpolate("${A:+on}", A="1") == "on"
    assert interpolate("${A:+on}", A="") == ""
    assert interpolate("${A+on}", A="") == "on"


def test_required():
    with pytest.raises(KeyError):
        interpolate("${A:?missing A}", A="")
    with pytest.raises(KeyError):
        interpolate("${A?missing A}")
    assert interpolate("${A?missing A}", A="") == ""


def test_escape():
    assert interpolate("$$A costs $$5", A="1") == "$A costs $5"


def test_missing_names_are_reported():
    missing = []
    result = EnvironmentInterpolator.interpolate("x${A}y$B", {}, missing)
    assert result == "xy"
    assert missing == ["A", "B"]
