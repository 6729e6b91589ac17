from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import date, datetime
from functools import lru_cache
from pathlib import Path

QUOTES_FILE = Path(__file__).resolve().parent / "content" / "quotes.json"


@dataclass(frozen=True)
class Quote:
    text: str
    author: str | None = None


def _load_json(path: Path, fallback):
    if not path.exists():
        return fallback
    return json.loads(path.read_text(encoding="utf-8-sig"))


@lru_cache(maxsize=1)
def load_quotes() -> tuple[Quote, ...]:
    entries = _load_json(QUOTES_FILE, [])
    quotes = tuple(Quote(text=e["text"], author=e.get("author")) for e in entries if e.get("text"))
    if not quotes:
        raise RuntimeError(f"No quotes found in {QUOTES_FILE}")
    return quotes


def date_key(day: date | datetime | None = None) -> str:
    """Local calendar date as YYYY-MM-DD."""
    if day is None:
        day = datetime.now().astimezone()
    if isinstance(day, datetime):
        if day.tzinfo is not None:
            day = day.astimezone()
        day = day.date()
    return day.strftime("%Y-%m-%d")


def string_hash(value: str) -> int:
    """Polynomial hash, multiplier 31, wrapped to a signed 32-bit int at every step."""
    h = 0
    for ch in value:
        h = (h * 31 + ord(ch)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return h


def quote_index(day: date | datetime | None, count: int) -> int:
    return abs(string_hash(date_key(day))) % count


def quote_of_day(day: date | datetime | None = None, quotes: tuple[Quote, ...] | None = None) -> Quote:
    quotes = quotes or load_quotes()
    return quotes[quote_index(day, len(quotes))]
