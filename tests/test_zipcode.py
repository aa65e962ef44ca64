import pytest

from talentgeo.zipcode import normalize_zip


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("44289", "44289"),
        ("44289-1234", "44289"),
        ("442891234", "44289"),
        (" 10001 ", "10001"),
        ("2108", "02108"),
        ("2108-1234", "02108"),
        (501, "00501"),
        ("00000", "00000"),
    ],
)
def test_normalize_zip(raw, expected) -> None:
    assert normalize_zip(raw) == expected


@pytest.mark.parametrize("raw", [None, "", "12", "ab", "1-2345"])
def test_normalize_zip_rejects_short_input(raw) -> None:
    assert normalize_zip(raw) is None
