"""Unit tests for candidate verification (src.executor.verify)."""

from __future__ import annotations

import pytest

from src.config import Config
from src.emitter.models import CandidateFile
from src.errors import StagingError
from src.executor.verify import GENERATED_MARKER, check_brackets, verify_candidate
from src.inventory.models import ArtifactKind

pytestmark = pytest.mark.unit

HEADER = f"// {GENERATED_MARKER}\n"


def _candidate(path: str, content: str, kind: ArtifactKind = ArtifactKind.PAGE) -> CandidateFile:
    return CandidateFile(key="cart", kind=kind, path=path, content=content)


class TestCheckBrackets:

    def test_balanced(self):
        assert check_brackets("function f(a) { return [a, {b: 1}]; }") is None

    def test_unclosed(self):
        assert check_brackets("function f() {\n  return (1;\n}") == "unbalanced '}' on line 3"

    def test_unclosed_at_end(self):
        assert check_brackets("const a = [1, 2") == "unclosed '[' from line 1"

    def test_brackets_in_strings_ignored(self):
        assert check_brackets('const s = "{(["; const t = \'}\';') is None

    def test_template_literal_spans_lines(self):
        assert check_brackets("const s = `a\n}\n`;") is None

    def test_unterminated_string(self):
        assert check_brackets('const s = "abc\n";').startswith("unterminated string")

    def test_comments_ignored(self):
        assert check_brackets("/* { */ const a = 1; // (\n") is None

    def test_slash_comments_optional(self):
        assert check_brackets("a { } // {", slash_comments=False) == "unclosed '{' from line 1"

    def test_escaped_quote(self):
        assert check_brackets('const s = "a\\"{";') is None


class TestVerifyCandidate:

    def test_valid_candidate(self, config: Config):
        verify_candidate(config, _candidate("src/pages/CartPage.tsx", HEADER + "export const a = {};\n"))

    def test_empty(self, config: Config):
        with pytest.raises(StagingError, match="empty"):
            verify_candidate(config, _candidate("src/pages/CartPage.tsx", "  \n"))

    def test_outside_kind_root(self, config: Config):
        with pytest.raises(StagingError, match="escapes the page output root"):
            verify_candidate(config, _candidate("src/components/X.tsx", HEADER))

    def test_path_traversal(self, config: Config):
        with pytest.raises(StagingError, match="escapes"):
            verify_candidate(config, _candidate("src/pages/../../design/mockups/x.tsx", HEADER))

    def test_missing_marker(self, config: Config):
        with pytest.raises(StagingError, match="marker"):
            verify_candidate(config, _candidate("src/pages/CartPage.tsx", "export {};\n"))

    def test_unbalanced(self, config: Config):
        with pytest.raises(StagingError, match="unclosed"):
            verify_candidate(config, _candidate("src/pages/CartPage.tsx", HEADER + "export function f() {\n"))

    def test_invalid_json(self, config: Config):
        with pytest.raises(StagingError, match="invalid JSON"):
            verify_candidate(config, _candidate("src/pages/data.json", "{nope"))

    def test_valid_json_needs_no_marker(self, config: Config):
        verify_candidate(config, _candidate("src/pages/data.json", '{"a": 1}'))

    def test_secret_override_rejected(self, config: Config, monkeypatch):
        monkeypatch.setenv("MOCKSYNC_API_BASE_URL", "https://internal.example")
        content = HEADER + 'const BASE = "https://internal.example";\n'
        with pytest.raises(StagingError, match="MOCKSYNC_API_BASE_URL") as exc_info:
            verify_candidate(config, _candidate("src/pages/CartPage.tsx", content))
        assert exc_info.value.slug == "cart"
        assert exc_info.value.paths == ("src/pages/CartPage.tsx",)
