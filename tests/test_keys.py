import pytest

from arcadescan.probe.keys import first_alternative, movement_key


@pytest.mark.parametrize("raw, expected", [
    ("Left/Right", "ArrowLeft"),
    ("Right / Left", "ArrowRight"),
    ("Arrow Left | Arrow Right", "ArrowLeft"),
    ("ArrowUp", "ArrowUp"),
    ("Arrow keys", "ArrowRight"),
    ("A/D", "a"),
    ("W or S", "w"),
    ("d, a", "d"),
    ("WASD", "d"),
    ("Space", "Space"),
    ("spacebar", "Space"),
    ("  up  ", "ArrowUp"),
    ("Left Arrow", "ArrowLeft"),
    ("Right Arrow / Left Arrow", "ArrowRight"),
    ("Up Arrow or Down Arrow", "ArrowUp"),
    ("down arrow key", "ArrowDown"),
    ("Space bar", "Space"),
    ("SPACE  BAR", "Space"),
])
def test_movement_key(raw, expected):
    assert movement_key(raw) == expected


@pytest.mark.parametrize("raw", [None, "", "Mouse drag", "Tilt device", "/Left", "Enter"])
def test_underivable_inputs(raw):
    assert movement_key(raw) is None


def test_first_alternative_stops_at_any_separator():
    assert first_alternative("Left or Right | A/D") == "Left"
    assert first_alternative("Arrow Keys, WASD") == "Arrow Keys"
