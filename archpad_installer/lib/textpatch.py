"""Line-oriented ``KEY=value`` patching for shell-style config files.

This is a best-effort text patch, not a parser: lines are matched by a
``^KEY=`` pattern and anything that does not match is left untouched.
"""

from __future__ import annotations

import re
from typing import Mapping


def _pattern(key: str, *, uncomment: bool) -> re.Pattern[str]:
    prefix = "#?" if uncomment else ""
    return re.compile(rf"^{prefix}{re.escape(key)}=.*$", re.MULTILINE)


def has_setting(text: str, key: str, value: str) -> bool:
    return re.search(rf"^{re.escape(key)}={re.escape(value)}$", text, re.MULTILINE) is not None


def upsert_setting(text: str, key: str, value: str, *, uncomment: bool = False) -> str:
    """Set KEY=value on every matching line, or append it when none matches.

    With uncomment=True a commented ``#KEY=`` line counts as a match and is
    activated.
    """

    line = f"{key}={value}"
    pat = _pattern(key, uncomment=uncomment)
    if pat.search(text):
        return pat.sub(lambda _m: line, text)
    if text and not text.endswith("\n"):
        text += "\n"
    return text + line + "\n"


def upsert_settings(text: str, settings: Mapping[str, str], *, uncomment: frozenset[str] = frozenset()) -> str:
    for key, value in settings.items():
        text = upsert_setting(text, key, value, uncomment=key in uncomment)
    return text
