"""Movement-key derivation from free-text control descriptions.

Manifest control inputs are written for humans ("Arrow Keys / WASD",
"Left/Right", "A or D"). We only need one representative key to press, so we
take the first alternative and map it to a Playwright key name. Anything we
cannot map returns None, which the probe treats as "cannot confirm".
"""

from __future__ import annotations

import re

ARROWS = {
    "LEFT": "ArrowLeft",
    "RIGHT": "ArrowRight",
    "UP": "ArrowUp",
    "DOWN": "ArrowDown",
}

GROUPS = {
    "WASD": "d",
    "ZQSD": "d",
}

_ALTERNATIVES = re.compile(r"\||\bor\b|/|,", re.IGNORECASE)


def first_alternative(raw: str) -> str:
    return _ALTERNATIVES.split(raw, maxsplit=1)[0].strip()


def normalize_key(token: str) -> str | None:
    token = re.sub(r"\s+", " ", token).strip()
    if not token:
        return None
    upper = token.upper()

    if "ARROW" in upper:
        # "Left Arrow", "Arrow Left", "ArrowLeft"
        for direction, key in ARROWS.items():
            if direction in upper:
                return key
        # "Arrow keys", "Arrows": the whole cluster, press right
        return ARROWS["RIGHT"]

    if upper in GROUPS:
        return GROUPS[upper]
    if upper in ARROWS:
        return ARROWS[upper]
    if re.fullmatch(r"[A-Z]", upper):
        return upper.lower()
    if upper.replace(" ", "") in ("SPACE", "SPACEBAR"):
        return "Space"
    return None


def movement_key(raw_input: str | None) -> str | None:
    """Map the first alternative of a movement description to a key, or None."""
    if not raw_input:
        return None
    return normalize_key(first_alternative(raw_input))
