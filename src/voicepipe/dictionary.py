# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
User dictionary: word and phrase substitutions applied to transcripts.

Rules live in ~/.voicepipe/dictionary.toml as [[rule]] tables:

    [[rule]]
    pattern = "teh"
    replacement = "the"
    scope = "word"            # "word" or "substring"
    case_sensitive = false
    when = []                 # apply only if the text mentions one of these

For lists of misheard spellings, an [[entry]] table expands into one word
rule per alias:

    [[entry]]
    canonical = "TypeScript"
    aliases = ["Type Script", "TS language"]

Rules run in file order, one left-to-right pass each. A later rule sees the
output of earlier ones.
"""

import re
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

from .errors import DictionaryLoadError
from .utils import log

SCOPE_WORD = "word"
SCOPE_SUBSTRING = "substring"
SCOPES = (SCOPE_WORD, SCOPE_SUBSTRING)

# Rules listed in post-processing prompts
HINT_MAX_LINES = 40

SAMPLE_DICTIONARY = """# voicepipe dictionary
# Substitutions applied to every transcript, top to bottom.
#
# [[rule]]
# pattern = "teh"
# replacement = "the"
# scope = "word"            # "word" (whole words only) or "substring"
# case_sensitive = false
#
# [[rule]]
# pattern = "rustlang"
# replacement = "Rust"
# when = ["cargo", "crate", "compile"]   # only when the text mentions one of these
#
# [[entry]]
# canonical = "TypeScript"
# aliases = ["Type Script", "TS language"]
"""


@dataclass(frozen=True)
class DictionaryRule:
    pattern: str
    replacement: str
    scope: str = SCOPE_WORD
    case_sensitive: bool = False
    when: Tuple[str, ...] = field(default_factory=tuple)

    def compile(self) -> "re.Pattern[str]":
        body = re.escape(self.pattern)
        if self.scope == SCOPE_WORD:
            body = rf"(?<!\w){body}(?!\w)"
        flags = 0 if self.case_sensitive else re.IGNORECASE
        return re.compile(body, flags)

    def applies_to(self, text: str) -> bool:
        if not self.when:
            return True
        lowered = text.lower()
        return any(term and term.lower() in lowered for term in self.when)


def apply_rules(text: str, rules: List[DictionaryRule]) -> str:
    """Apply every applicable rule to text, in order.

    `when` guards are checked against the incoming text, not the text as
    earlier rules left it.
    """
    original = text
    for rule in rules:
        if not text:
            break
        if not rule.applies_to(original):
            continue
        replacement = rule.replacement
        text = rule.compile().sub(lambda _m: replacement, text)
    return text


def _require_str(table: dict, key: str, index: int, kind: str, allow_empty: bool = False) -> str:
    value = table.get(key)
    if not isinstance(value, str) or (not allow_empty and not value):
        raise DictionaryLoadError(f"{kind} #{index}: '{key}' must be a non-empty string")
    return value


def _terms(table: dict, key: str, index: int, kind: str) -> Tuple[str, ...]:
    value = table.get(key, [])
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise DictionaryLoadError(f"{kind} #{index}: '{key}' must be a list of strings")
    return tuple(v for v in value if v)


def parse_rules(data: dict) -> List[DictionaryRule]:
    """Validate parsed TOML and build the rule list.

    Raises DictionaryLoadError on the first malformed rule.
    """
    rules: List[DictionaryRule] = []

    raw_rules = data.get("rule", [])
    if not isinstance(raw_rules, list):
        raise DictionaryLoadError("'rule' must be an array of tables ([[rule]])")
    for i, table in enumerate(raw_rules, start=1):
        if not isinstance(table, dict):
            raise DictionaryLoadError(f"rule #{i}: expected a table")
        pattern = _require_str(table, "pattern", i, "rule")
        replacement = _require_str(table, "replacement", i, "rule", allow_empty=True)
        scope = table.get("scope", SCOPE_WORD)
        if scope not in SCOPES:
            raise DictionaryLoadError(f"rule #{i}: scope must be one of {', '.join(SCOPES)}")
        case_sensitive = table.get("case_sensitive", False)
        if not isinstance(case_sensitive, bool):
            raise DictionaryLoadError(f"rule #{i}: case_sensitive must be true or false")
        rules.append(DictionaryRule(
            pattern=pattern,
            replacement=replacement,
            scope=scope,
            case_sensitive=case_sensitive,
            when=_terms(table, "when", i, "rule"),
        ))

    raw_entries = data.get("entry", [])
    if not isinstance(raw_entries, list):
        raise DictionaryLoadError("'entry' must be an array of tables ([[entry]])")
    for i, table in enumerate(raw_entries, start=1):
        if not isinstance(table, dict):
            raise DictionaryLoadError(f"entry #{i}: expected a table")
        canonical = _require_str(table, "canonical", i, "entry")
        aliases = _terms(table, "aliases", i, "entry")
        include = _terms(table, "include", i, "entry")
        for alias in aliases:
            rules.append(DictionaryRule(alias, canonical, SCOPE_WORD, False, include))

    return rules


def load_dictionary(path: Path) -> Tuple[List[DictionaryRule], Optional[str]]:
    """
    Load rules from a dictionary file.

    Creates a commented sample when the file is missing. A malformed file
    yields an empty rule set plus a warning describing the problem.

    Returns:
        Tuple of (rules, warning). warning is None when the file loaded cleanly.
    """
    path = Path(path).expanduser()
    if not path.exists():
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(SAMPLE_DICTIONARY, encoding="utf-8")
        except OSError as e:
            log(f"Could not create dictionary file: {e}", "WARN")
            return [], None

    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
        rules = parse_rules(data)
    except (OSError, tomllib.TOMLDecodeError, DictionaryLoadError) as e:
        warning = f"Dictionary not loaded: {e}"
    else:
        return rules, None

    log(warning, "WARN")
    return [], warning


def dictionary_hint(rules: List[DictionaryRule]) -> str:
    """Render rules as a prompt block for post-processing ("" when empty)."""
    if not rules:
        return ""

    # Group patterns by replacement, keeping first-seen order
    grouped: dict = {}
    for rule in rules:
        grouped.setdefault(rule.replacement, []).append(rule.pattern)

    lines = ["User dictionary replacements:"]
    for replacement, patterns in list(grouped.items())[:HINT_MAX_LINES]:
        lines.append(f"- {replacement}: {', '.join(patterns)}")
    return "\n".join(lines)
