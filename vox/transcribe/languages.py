"""
vox.transcribe.languages - Candidate language selection and normalization.

Locale identifiers are written ``en-US`` internally; POSIX spellings such
as ``en_US.UTF-8`` are accepted everywhere.
"""

from __future__ import annotations

import os
from collections.abc import Iterable, Mapping

DEFAULT_FALLBACK_LOCALE = "en-US"
SYSTEM_LANGUAGE_LIMIT = 3
LOCALE_ENV_VARS = ("LANGUAGE", "LC_ALL", "LC_MESSAGES", "LANG")


def canonical_locale(code: str) -> str:
    """``en_us.UTF-8`` -> ``en-US``; ``EN`` -> ``en``."""
    code = code.strip().split(".")[0].split("@")[0].replace("_", "-")
    if not code:
        return ""
    parts = code.split("-")
    head = parts[0].lower()
    tail = [p.upper() if len(p) == 2 else p for p in parts[1:]]
    return "-".join([head, *tail])


def language_code(locale: str) -> str:
    """Primary language subtag: ``en-US`` -> ``en``."""
    return canonical_locale(locale).split("-")[0]


def system_languages(
    environ: Mapping[str, str] | None = None,
    limit: int = SYSTEM_LANGUAGE_LIMIT,
) -> list[str]:
    """Preferred languages of the environment, most preferred first."""
    environ = os.environ if environ is None else environ
    found: list[str] = []
    for var in LOCALE_ENV_VARS:
        value = environ.get(var, "")
        for entry in value.split(":"):
            locale = canonical_locale(entry)
            if locale and locale not in ("c", "posix") and locale not in found:
                found.append(locale)
    return found[:limit]


def candidate_languages(
    user_language: str | None = None,
    system: Iterable[str] | None = None,
    fallback: str = DEFAULT_FALLBACK_LOCALE,
) -> list[str]:
    """Ordered, deduplicated candidates: user choice, system defaults, fallback.

    Args:
        user_language: Explicit language from the user, if any
        system: System languages; read from the environment when None
        fallback: Locale tried last

    Returns:
        Locales in first-seen order, never empty
    """
    system = system_languages() if system is None else system
    candidates: list[str] = []
    for code in [user_language, *system, fallback]:
        if not code:
            continue
        locale = canonical_locale(code)
        if locale and locale not in candidates:
            candidates.append(locale)
    return candidates


def normalize_locale(code: str, supported: Iterable[str]) -> str | None:
    """Map a requested locale onto one the engine supports.

    Tries an exact match, then a case-insensitive match, then the
    language prefix (``en-GB`` -> ``en``). Returns None when the language
    is not supported at all; it is never replaced by a different language.
    """
    supported = list(supported)
    if code in supported:
        return code

    wanted = canonical_locale(code).lower()
    by_lower = {canonical_locale(s).lower(): s for s in supported}
    if wanted in by_lower:
        return by_lower[wanted]

    prefix = wanted.split("-")[0]
    if prefix in by_lower:
        return by_lower[prefix]
    for key, original in by_lower.items():
        if key.split("-")[0] == prefix:
            return original
    return None
