"""Identifier casing, tokenization and file-name pattern helpers."""

import re
from typing import List, Optional

# Casing styles in precedence order; a name is assigned the first style it matches.
# ALL_CAPS needs two characters so a lone capital stays PascalCase
CASING_STYLES = [
    ("ALL_CAPS", re.compile(r"^(?=[A-Z0-9_]{2,}$)[A-Z][A-Z0-9]*(_[A-Z0-9]+)*$")),
    ("PascalCase", re.compile(r"^[A-Z][a-z0-9]*([A-Z][a-z0-9]*)*$")),
    ("camelCase", re.compile(r"^[a-z][a-z0-9]*([A-Z][a-z0-9]*)*$")),
    ("snake_case", re.compile(r"^[a-z][a-z0-9]*(_[a-z0-9]+)*$")),
    ("kebab_case", re.compile(r"^[a-z][a-z0-9]*(-[a-z0-9]+)*$")),
]

# Well-known role suffixes for file names
FILE_ROLE_SUFFIXES = [
    "Controller",
    "Service",
    "Component",
    "Provider",
    "Factory",
    "Helper",
    "Util",
    "Model",
    "View",
]

_CAMEL_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])")


def classify_casing(name: str) -> Optional[str]:
    """Return the casing style of an identifier, or None if it matches none."""
    for style, pattern in CASING_STYLES:
        if pattern.match(name):
            return style
    return None


def split_identifier(identifier: str) -> List[str]:
    """Split an identifier into lowercase words by its casing convention.

    Args:
        identifier: Identifier such as ``fetchUserName`` or ``user_name``

    Returns:
        Lowercase word fragments, in order
    """
    if re.match(r"^[a-zA-Z][a-zA-Z0-9]*$", identifier) and re.search(r"[A-Z]", identifier):
        return _CAMEL_BOUNDARY.sub(r"\1 \2", identifier).lower().split()
    if "_" in identifier:
        return [part for part in identifier.lower().split("_") if part]
    if "-" in identifier:
        return [part for part in identifier.lower().split("-") if part]
    return [identifier.lower()]


def extract_name_pattern(basename: str) -> str:
    """Derive the naming pattern of a file basename (extension removed).

    Role-bearing shapes (tests, role suffixes, hooks) take precedence over
    plain casing so that ``UserController`` and ``OrderController`` share
    ``*Controller`` rather than just ``PascalCase``.
    """
    if ".test" in basename or ".spec" in basename or basename.startswith("test"):
        return "test"

    for suffix in FILE_ROLE_SUFFIXES:
        if basename.endswith(suffix) and basename != suffix:
            return f"*{suffix}"

    if basename.startswith("use") and len(basename) > 3 and basename[3].isupper():
        return "useHook"

    if re.match(r"^[A-Z][a-zA-Z0-9]*$", basename):
        return "PascalCase"
    if re.match(r"^[a-z][a-zA-Z0-9]*$", basename):
        return "camelCase"
    if re.match(r"^[a-z][-a-z0-9]*$", basename):
        return "kebab-case"
    if re.match(r"^[a-z][_a-z0-9]*$", basename):
        return "snake_case"

    return "*"


def extend_suffix_to_word(names: List[str], suffix: str) -> str:
    """Grow a suffix leftwards to the enclosing identifier word.

    The suffix is extended only while every name agrees on the extra
    characters, and stops after an uppercase letter or before ``_``/``-``.
    """
    extended = suffix
    while True:
        if not names or any(len(name) <= len(extended) for name in names):
            return extended
        candidates = {name[-len(extended) - 1] for name in names}
        if len(candidates) != 1:
            return extended
        char = candidates.pop()
        if char in "_-":
            return extended
        if extended[0].isupper():
            return extended
        extended = char + extended
        if char.isupper():
            return extended


def extend_prefix_to_word(names: List[str], prefix: str) -> str:
    """Grow a prefix rightwards to the end of the leading identifier word."""
    extended = prefix
    while True:
        if not names or any(len(name) <= len(extended) for name in names):
            return extended
        candidates = {name[len(extended)] for name in names}
        if len(candidates) != 1:
            return extended
        char = candidates.pop()
        if char in "_-" or char.isupper():
            return extended
        extended = extended + char


def name_pattern_regex(pattern: str) -> str:
    """Regex matching identifiers that follow a file-name pattern."""
    if pattern.startswith("*"):
        return rf"\b[A-Za-z0-9_]+{re.escape(pattern[1:])}\b"
    shapes = {
        "test": r"\.(?:test|spec)\b|\btest\w*",
        "useHook": r"\buse[A-Z]\w*\b",
        "PascalCase": r"\b[A-Z][a-zA-Z0-9]*\b",
        "camelCase": r"\b[a-z][a-zA-Z0-9]*\b",
        "kebab-case": r"\b[a-z][a-z0-9]*(?:-[a-z0-9]+)+\b",
        "snake_case": r"\b[a-z][a-z0-9]*(?:_[a-z0-9]+)+\b",
    }
    return shapes.get(pattern, re.escape(pattern))
