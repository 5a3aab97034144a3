"""Verification of staged candidates.

A candidate is only eligible for commit when it:

* is non-empty,
* targets a path inside its kind's output root and outside the mockup root,
* carries the generated-file marker (code files),
* is well-formed for its language (JSON parses; TS/JS/CSS brackets balance),
* does not contain the literal value of the API base URL override.
"""

from __future__ import annotations

import json
import os
from pathlib import Path

from src.config import Config
from src.emitter.models import CandidateFile
from src.errors import StagingError

GENERATED_MARKER = "@generated by mocksync"

CODE_SUFFIXES = {".ts", ".tsx", ".js", ".jsx", ".css", ".scss"}
_SLASH_COMMENTS = {".ts", ".tsx", ".js", ".jsx", ".scss"}
_PAIRS = {")": "(", "]": "[", "}": "{"}


def verify_candidate(config: Config, candidate: CandidateFile) -> None:
    """Raise :class:`StagingError` when *candidate* must not be committed."""
    key = candidate.key

    def fail(message: str) -> StagingError:
        return StagingError(f"{candidate.path}: {message}", slug=key, paths=[candidate.path])

    if not candidate.content.strip():
        raise fail("candidate is empty")

    target = _absolute(config.project_root / candidate.path)
    root = _absolute(config.output_root(candidate.kind.value))
    if target != root and root not in target.parents:
        raise fail(f"target escapes the {candidate.kind.value} output root")
    mockups = _absolute(config.mockup_path)
    if target == mockups or mockups in target.parents:
        raise fail("target lies inside the mockup root")

    suffix = Path(candidate.path).suffix.lower()
    if suffix in CODE_SUFFIXES and GENERATED_MARKER not in candidate.content:
        raise fail("generated-file marker missing")

    if suffix == ".json":
        try:
            json.loads(candidate.content)
        except json.JSONDecodeError as exc:
            raise fail(f"invalid JSON ({exc.msg} at line {exc.lineno})") from exc
    elif suffix in CODE_SUFFIXES:
        problem = check_brackets(candidate.content, slash_comments=suffix in _SLASH_COMMENTS)
        if problem:
            raise fail(problem)

    secret = config.api.override_value()
    if secret and secret in candidate.content:
        raise fail(f"contains the value of ${config.api.override_env}")


def check_brackets(source: str, *, slash_comments: bool = True) -> str | None:
    """Return a description of the first bracket imbalance, or ``None``.

    String literals (``'``, ``"`` and template literals) and comments are
    skipped.  ``//`` line comments only count when *slash_comments* is set.
    """
    stack: list[tuple[str, int]] = []
    i = 0
    line = 1
    length = len(source)
    while i < length:
        ch = source[i]
        if ch == "\n":
            line += 1
        elif ch in "'\"`":
            end = _skip_string(source, i)
            if end < 0:
                return f"unterminated string starting on line {line}"
            line += source.count("\n", i, end)
            i = end
        elif source.startswith("/*", i):
            end = source.find("*/", i + 2)
            if end < 0:
                return f"unterminated comment starting on line {line}"
            line += source.count("\n", i, end)
            i = end + 1
        elif slash_comments and source.startswith("//", i):
            end = source.find("\n", i)
            i = (end if end >= 0 else length) - 1
        elif ch in "([{":
            stack.append((ch, line))
        elif ch in _PAIRS:
            if not stack or stack[-1][0] != _PAIRS[ch]:
                return f"unbalanced '{ch}' on line {line}"
            stack.pop()
        i += 1
    if stack:
        opener, opened = stack[-1]
        return f"unclosed '{opener}' from line {opened}"
    return None


def _skip_string(source: str, start: int) -> int:
    """Index of the closing quote of the literal opening at *start*, or -1."""
    quote = source[start]
    i = start + 1
    while i < len(source):
        ch = source[i]
        if ch == "\\":
            i += 2
            continue
        if ch == quote:
            return i
        if ch == "\n" and quote != "`":
            return -1
        i += 1
    return -1


def _absolute(path: Path) -> Path:
    return Path(os.path.normpath(os.path.abspath(path)))
