"""Tests for the structured (JSON) model client."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from checkai.errors import ParseError, UpstreamUnavailable
from checkai.llm.structured_client import (
    CORRECTION_NOTE,
    StructuredModelClient,
    build_attempt_messages,
    parse_json_object,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_message(text: str, input_tokens: int = 1000, output_tokens: int = 100) -> SimpleNamespace:
    return SimpleNamespace(
        content=[SimpleNamespace(type="text", text=text)],
        usage=SimpleNamespace(input_tokens=input_tokens, output_tokens=output_tokens),
    )


def _make_client(*replies: str) -> tuple[StructuredModelClient, MagicMock]:
    anthropic_client = MagicMock()
    anthropic_client.messages.create.side_effect = [_make_message(r) for r in replies]
    return StructuredModelClient(client=anthropic_client), anthropic_client


MESSAGES = [
    {"role": "system", "content": "Extract claims."},
    {"role": "user", "content": "Some document."},
]


# ---------------------------------------------------------------------------
# Tests: Message building
# ---------------------------------------------------------------------------


class TestBuildAttemptMessages:

    def test_no_corrections_copies_messages(self):
        result = build_attempt_messages(MESSAGES)
        assert result == MESSAGES
        assert result is not MESSAGES

    def test_correction_inserted_after_first_message(self):
        result = build_attempt_messages(MESSAGES, [CORRECTION_NOTE])
        assert [m["role"] for m in result] == ["system", "system", "user"]
        assert result[1]["content"] == CORRECTION_NOTE

    def test_repeated_correction_inserted_once(self):
        result = build_attempt_messages(MESSAGES, [CORRECTION_NOTE, CORRECTION_NOTE, CORRECTION_NOTE])
        assert sum(1 for m in result if m["content"] == CORRECTION_NOTE) == 1
        assert len(result) == 3

    def test_original_messages_not_mutated(self):
        original = [dict(m) for m in MESSAGES]
        build_attempt_messages(MESSAGES, [CORRECTION_NOTE])
        assert MESSAGES == original


# ---------------------------------------------------------------------------
# Tests: JSON parsing
# ---------------------------------------------------------------------------


class TestParseJsonObject:

    def test_strict_json(self):
        assert parse_json_object('{"a": 1}') == {"a": 1}

    def test_code_fence(self):
        assert parse_json_object('```json\n{"a": 1}\n```') == {"a": 1}

    def test_surrounding_prose(self):
        assert parse_json_object('Here you go: {"a": {"b": 2}} Thanks!') == {"a": {"b": 2}}

    def test_trailing_commas(self):
        assert parse_json_object('{"a": [1, 2,], "b": 3,}') == {"a": [1, 2], "b": 3}

    def test_control_characters(self):
        assert parse_json_object('noise {"a": "x\x01y"}') == {"a": "xy"}

    @pytest.mark.parametrize("text", ["", "   ", "no json here", "[1, 2]", "{broken: }"])
    def test_unrecoverable_raises(self, text):
        with pytest.raises(ParseError):
            parse_json_object(text)


# ---------------------------------------------------------------------------
# Tests: request_json
# ---------------------------------------------------------------------------


class TestRequestJson:

    def test_unconfigured_returns_fallback(self):
        client = StructuredModelClient(api_key=None)
        fallback = {"claims": []}
        assert client.configured is False
        assert client.request_json(MESSAGES, fallback) is fallback

    def test_valid_reply_returned(self):
        client, raw = _make_client('{"label": "SUPPORTED"}')
        assert client.request_json(MESSAGES, None) == {"label": "SUPPORTED"}
        kwargs = raw.messages.create.call_args.kwargs
        assert kwargs["system"] == "Extract claims."
        assert kwargs["messages"] == [{"role": "user", "content": "Some document."}]

    def test_retry_after_parse_failure_adds_reminder(self):
        client, raw = _make_client("not json", '{"ok": true}')
        assert client.request_json(MESSAGES, None, max_retries=1) == {"ok": True}
        first, second = raw.messages.create.call_args_list
        assert CORRECTION_NOTE not in first.kwargs["system"]
        assert second.kwargs["system"].count(CORRECTION_NOTE) == 1

    def test_reminder_not_accumulated_across_retries(self):
        client, raw = _make_client("bad", "worse", "still bad")
        assert client.request_json(MESSAGES, "fallback", max_retries=2) == "fallback"
        assert raw.messages.create.call_count == 3
        last = raw.messages.create.call_args_list[-1]
        assert last.kwargs["system"].count(CORRECTION_NOTE) == 1

    def test_attempts_bounded(self):
        client, raw = _make_client(*["bad"] * 10)
        client.request_json(MESSAGES, {}, max_retries=3)
        assert raw.messages.create.call_count == 4

    def test_shape_check_failure_counts_as_parse_failure(self):
        def validate(reply):
            if "label" not in reply:
                raise ValueError("label missing")
            return reply

        client, raw = _make_client('{"other": 1}', '{"label": "REFUTED"}')
        assert client.request_json(MESSAGES, None, validate=validate) == {"label": "REFUTED"}
        assert CORRECTION_NOTE in raw.messages.create.call_args_list[1].kwargs["system"]

    def test_upstream_failure_returns_fallback_without_reminder(self):
        client = StructuredModelClient(client=MagicMock())
        with patch.object(client, "complete", side_effect=UpstreamUnavailable("down")) as complete:
            assert client.request_json(MESSAGES, "fb", max_retries=1) == "fb"
        assert complete.call_count == 2
        second_payload = complete.call_args_list[1].args[0]
        assert all(m["content"] != CORRECTION_NOTE for m in second_payload)

    def test_unexpected_error_never_raises(self):
        anthropic_client = MagicMock()
        anthropic_client.messages.create.side_effect = RuntimeError("boom")
        client = StructuredModelClient(client=anthropic_client)
        assert client.request_json(MESSAGES, {"x": 1}, max_retries=0) == {"x": 1}


class TestUsageTracking:

    def test_cost_accumulates(self):
        client, _ = _make_client('{"a": 1}', '{"b": 2}')
        client.request_json(MESSAGES, None)
        client.request_json(MESSAGES, None)
        # (1000 * 3 + 100 * 15) / 1e6 per call
        assert client.total_cost_usd == pytest.approx(2 * 0.0045)
        assert client.calls == 2

    def test_close_closes_underlying_client(self):
        anthropic_client = MagicMock()
        StructuredModelClient(client=anthropic_client).close()
        anthropic_client.close.assert_called_once()

    def test_keyed_client_rebuilt_after_close(self):
        first, second = MagicMock(), MagicMock()
        first.messages.create.return_value = _make_message('{"a": 1}')
        second.messages.create.return_value = _make_message('{"b": 2}')
        with patch("checkai.llm.structured_client.anthropic.Anthropic", side_effect=[first, second]) as factory:
            client = StructuredModelClient(api_key="sk-test")
            assert client.configured is True
            assert client.request_json(MESSAGES, None) == {"a": 1}
            client.close()
            first.close.assert_called_once()
            assert client.configured is True
            assert client.request_json(MESSAGES, None) == {"b": 2}
        assert factory.call_count == 2
