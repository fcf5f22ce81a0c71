import pytest

from osu_mapping_helper import utils


@pytest.mark.parametrize(("value", "expected"), [
    ("2", 2),
    (" 2ms ", 2),
    ("0.002s", 2),
    ("1/4", 0.25),
    ("1/2s", 500),
])
def test_parse_ms(value, expected):
    assert utils.parse_ms(value) == pytest.approx(expected)

@pytest.mark.parametrize("value", ["", "ms", "-1", "fast", "1/0"])
def test_parse_ms_invalid(value):
    with pytest.raises(ValueError):
        utils.parse_ms(value)

def test_pretty_time():
    assert utils.pretty_time(2.8) == "0:02.800"
    assert utils.pretty_time(81.5) == "1:21.500"
    assert utils.pretty_time(-0.25) == "-0:00.250"

def test_pretty_list():
    assert utils.pretty_list([]) == ""
    assert utils.pretty_list(["a"]) == "a"
    assert utils.pretty_list(["a", "b", "c"]) == "a, b and c"
