"""Street name validation and path splitting."""

from __future__ import annotations

import re

from routemap.common.constants import DEFAULT_PATH_DELIMITER

INTERNAL_ID_PATTERN = re.compile(r"^Street_\d+$")
NUMERIC_ID_PATTERN = re.compile(r"^\d{5,}$")
MIN_NAME_LENGTH = 2
MAX_NAME_LENGTH = 100


def is_valid_street_name(name: str | None) -> bool:
    if not name:
        return False
    if INTERNAL_ID_PATTERN.match(name) or NUMERIC_ID_PATTERN.match(name):
        return False
    return MIN_NAME_LENGTH <= len(name) <= MAX_NAME_LENGTH


def split_path(path: str | None, delimiter: str = DEFAULT_PATH_DELIMITER) -> list[str]:
    if not path:
        return []
    parts = (part.strip() for part in path.split(delimiter))
    return [part for part in parts if is_valid_street_name(part)]
