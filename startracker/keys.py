"""Stable catalog keys derived from free-text labels."""

from typing import Callable, Container, Union

from sqlalchemy import func, select
from sqlalchemy.orm import Session

PLACEHOLDER_KEY = "custom"


def make_key(label: str) -> str:
    """
    Turn a label into a machine key.

    ASCII letters and digits are kept, spaces become underscores and
    everything else is dropped. Labels with nothing left (e.g. non-Latin
    scripts) get the placeholder key.
    """
    chars = []
    for ch in label:
        if ch.isascii() and ch.isalnum():
            chars.append(ch)
        elif ch == " ":
            chars.append("_")
    return "".join(chars) or PLACEHOLDER_KEY


def uniquify(base_key: str, existing: Union[Container[str], Callable[[str], bool]]) -> str:
    """Return base_key, or base_key_2, base_key_3, ... whichever is free first."""
    taken = existing if callable(existing) else existing.__contains__
    key = base_key
    suffix = 2
    while taken(key):
        key = f"{base_key}_{suffix}"
        suffix += 1
    return key


def unique_key(session: Session, column, label: str) -> str:
    """Derive a key from ``label`` that is free within ``column``'s table."""

    def taken(key: str) -> bool:
        return session.scalar(select(func.count()).where(column == key)) > 0

    return uniquify(make_key(label), taken)
