"""
Unit tests for pattern-based compression.
"""

import pytest

from prompt_cost_guard.core.compression import CompressionEngine, CompressionRule


class TestCompressionEngine:
    """Test rule application and result reporting."""

    def setup_method(self):
        self.engine = CompressionEngine()

    def test_verbose_request_removed(self):
        result = self.engine.compress("Please kindly help me to write a function")

        assert result.text == "write a function"
        assert result.improved
        assert "verbose_requests" in result.rules_applied

    def test_redundant_phrase_replaced(self):
        result = self.engine.compress("Refactor the module in order to simplify testing.")
        assert result.text == "Refactor the module to simplify testing."

    def test_filler_and_conjunction(self):
        result = self.engine.compress("Basically summarize the report and moreover list the risks.")
        assert result.text == "summarize the report and also list the risks."

    def test_lead_in_removed(self):
        result = self.engine.compress("It is important to note that the API is rate limited.")
        assert result.text == "the API is rate limited."

    def test_please_note_lead_in_removed(self):
        result = self.engine.compress("Please note that the API is slow.")
        assert result.text == "the API is slow."

    def test_whitespace_and_punctuation_cleanup(self):
        result = self.engine.compress("Summarize   this text  .")
        assert result.text == "Summarize this text."

    def test_no_improvement_reported(self):
        result = self.engine.compress("Summarize this text.")

        assert result.text == "Summarize this text."
        assert not result.improved
        assert result.reason == "No compression improvements found"
        assert result.rules_applied == ()

    def test_reason_reports_savings(self):
        result = self.engine.compress("Please kindly help me to write a function")
        assert result.reason.startswith("Compression reduced length by ")
        assert result.reason.endswith("using 1 rules")

    @pytest.mark.parametrize("text", [
        "Could you please write a detailed implementation of the parser?",
        "It is important to note that, furthermore, the cache is shared.",
        "in order to",
        "x",
        "",
    ])
    def test_never_lengthens_and_converges(self, text):
        once = self.engine.compress(text).text
        twice = self.engine.compress(once).text

        assert len(once) <= len(text)
        assert len(twice) <= len(once)

    def test_custom_rules(self):
        engine = CompressionEngine([CompressionRule.compile("intensifiers", r"\bvery\s+")])
        result = engine.compress("a very big dog")

        assert result.text == "a big dog"
        assert result.rules_applied == ("intensifiers",)
