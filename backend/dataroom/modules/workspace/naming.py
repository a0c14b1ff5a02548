"""
Name normalization and collision avoidance for folders and files.

Rules:
1. Names are compared case-insensitively ("Budget" collides with "budget")
2. A colliding name gets " (n)" with the smallest free positive n, counted
   from its base: "Budget (1)" becomes "Budget (2)"
3. File suffixes go before the extension: "Report (1).pdf"
4. Distinct parents keep independent name sets; callers pass the right one
"""

import re
from typing import Set, Tuple

DEFAULT_FILE_EXTENSION = ".pdf"
UNTITLED_FILE_BASE = "Untitled"

_COUNTER_SUFFIX = re.compile(r" \((\d+)\)$")


def normalize_name(value: str) -> str:
    """Trim and collapse internal whitespace."""
    if not value:
        return ""
    return re.sub(r"\s+", " ", value.strip())


def split_file_name(name: str) -> Tuple[str, str]:
    """Split a file name into (base, extension).

    The extension keeps its leading dot. A dot at position 0 does not start an
    extension, so ".pdf" splits to (".pdf", "").
    """
    last_dot = name.rfind(".")
    if last_dot <= 0:
        return name, ""
    return name[:last_dot], name[last_dot:]


def has_extension(name: str, extension: str = DEFAULT_FILE_EXTENSION) -> bool:
    return name.lower().endswith(extension.lower())


def ensure_extension(name: str, extension: str = DEFAULT_FILE_EXTENSION) -> str:
    """Force-append the required extension when it is missing."""
    if has_extension(name, extension):
        return name
    return f"{name}{extension}"


def strip_counter(base: str) -> str:
    """Drop a trailing " (n)" so "Budget (1)" counts up from "Budget"."""
    stripped = _COUNTER_SUFFIX.sub("", base)
    return stripped or base


def unique_folder_name(candidate: str, used: Set[str]) -> str:
    """Return candidate, or its base + " (n)" for the smallest free n.

    ``used`` holds lowercase names.
    """
    if candidate.lower() not in used:
        return candidate
    base = strip_counter(candidate)
    counter = 1
    while f"{base} ({counter})".lower() in used:
        counter += 1
    return f"{base} ({counter})"


def unique_file_name(
    candidate: str,
    used: Set[str],
    default_extension: str = DEFAULT_FILE_EXTENSION,
) -> str:
    """Return a collision-free file name that always carries an extension."""
    normalized = normalize_name(candidate) or f"{UNTITLED_FILE_BASE}{default_extension}"
    base, extension = split_file_name(normalized)
    extension = extension or default_extension

    name = f"{base}{extension}"
    if name.lower() not in used:
        return name
    base = strip_counter(base)
    counter = 1
    while f"{base} ({counter}){extension}".lower() in used:
        counter += 1
    return f"{base} ({counter}){extension}"
