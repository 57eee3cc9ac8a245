import pytest

from compensi.adapters.parsers import parse_importo


@pytest.mark.parametrize(
    "txt,expected",
    [
        ("€ 1.234,56", 1234.56),
        ("12,50", 12.5),
        ("1,234.56", 1234.56),
        ("10.5", 10.5),
        ("15 €", 15.0),
        ("1.234.567", 1234567.0),
        (42, 42.0),
        (3.5, 3.5),
        ("abc", None),
        ("", None),
        (None, None),
        (True, None),
        (float("nan"), None),
    ],
)
def test_parse_importo(txt, expected):
    val = parse_importo(txt)
    assert (val == pytest.approx(expected)) if expected is not None else val is None
