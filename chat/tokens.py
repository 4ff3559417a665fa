# chat/tokens.py
"""Rough token estimation for mixed Korean / Latin text."""

HANGUL_FIRST = 0xAC00
HANGUL_LAST = 0xD7AF

# weights in tenths of a token per character (2.5 and 1.2)
HANGUL_WEIGHT_X10 = 25
OTHER_WEIGHT_X10 = 12


def _is_hangul(ch: str) -> bool:
    return HANGUL_FIRST <= ord(ch) <= HANGUL_LAST


def _weight_x10(text) -> int:
    if not text:
        return 0
    hangul = sum(1 for ch in text if _is_hangul(ch))
    other = len(text) - hangul
    return hangul * HANGUL_WEIGHT_X10 + other * OTHER_WEIGHT_X10


def weigh(text) -> float:
    """Weighted character count before rounding down to whole tokens."""
    return _weight_x10(text) / 10


def estimate(text) -> int:
    """Approximate token count of ``text``; ``None`` and "" cost nothing."""
    return _weight_x10(text) // 10
