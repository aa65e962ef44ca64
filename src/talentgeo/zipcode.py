from __future__ import annotations

import re

_NON_DIGIT = re.compile(r"\D")

MIN_DIGITS = 3


def normalize_zip(raw: str | int | None) -> str | None:
    """Reduce ``raw`` to a 5-digit zip, or ``None`` if it cannot be one.

    ZIP+4 and other long inputs keep their first five digits. Three or four
    digit values are spreadsheet zips that lost their leading zeros and are
    left-padded back.
    """
    if raw is None:
        return None
    text = str(raw).strip()
    # "2108-1234" is ZIP+4 with a dropped leading zero, pad the head only.
    head = text.split("-", 1)[0]
    digits = _NON_DIGIT.sub("", head)
    if len(digits) < MIN_DIGITS:
        return None
    return digits[:5].zfill(5)


def zip_prefix(zip_code: str) -> int:
    return int(zip_code[:3])
