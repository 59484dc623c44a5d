"""Structured (JSON) request protocol for the language-model backend.

Every model call site in the core (claim extraction, query expansion,
entailment estimation, verdict generation) goes through
StructuredModelClient.request_json, which:

1. Sends the role-tagged messages to the backend.
2. Parses the reply as a JSON object, salvaging near-JSON replies.
3. On a parse failure, retries with a corrective system message inserted
   right after the first message.
4. Returns the caller's fallback when the backend is unconfigured or all
   attempts are exhausted. It never raises.
"""

from __future__ import annotations

import json
import logging
import re
import threading
from typing import Any, Callable, Optional, Sequence

import anthropic

from checkai.config import MODEL_TIMEOUT
from checkai.errors import ParseError, UpstreamUnavailable

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 1
MAX_TOKENS = 2048

CORRECTION_NOTE = (
    "Your previous reply was not valid JSON. Reply with ONLY a single JSON "
    "object, use null for any missing field, and add an \"uncertain_reason\" "
    "field if you are unsure."
)

# Sonnet pricing per million tokens
_INPUT_COST_PER_M = 3.0
_OUTPUT_COST_PER_M = 15.0

_TRAILING_COMMA = re.compile(r",\s*([}\]])")
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]")

Message = dict[str, str]


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------


def build_attempt_messages(
    messages: Sequence[Message],
    corrections: Sequence[str] = (),
) -> list[Message]:
    """Build the payload for one attempt.

    Each distinct correction note becomes one system message placed right
    after the first message. Repeating a note does not repeat the message.

    Args:
        messages: The caller's original messages; never mutated.
        corrections: Notes accumulated from earlier failed attempts.

    Returns:
        A new message list.
    """
    notes: list[str] = []
    for note in corrections:
        if note not in notes:
            notes.append(note)
    reminders = [{"role": "system", "content": note} for note in notes]
    original = [dict(m) for m in messages]
    if not original:
        return reminders
    return [original[0], *reminders, *original[1:]]


def _strip_code_fence(text: str) -> str:
    stripped = text.strip()
    if stripped.startswith("```"):
        stripped = stripped.split("```")[1]
        if stripped.startswith("json"):
            stripped = stripped[4:]
    return stripped.strip()


def parse_json_object(text: str) -> dict[str, Any]:
    """Parse a model reply as a JSON object.

    Strict decoding is tried first. If that fails, the outermost {...}
    substring is taken, trailing commas before closing brackets and raw
    control characters are removed, and strict decoding is tried once more.

    Raises:
        ParseError: if no JSON object can be recovered.
    """
    if not isinstance(text, str) or not text.strip():
        raise ParseError("empty reply")

    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        parsed = None
    if isinstance(parsed, dict):
        return parsed

    candidate = _strip_code_fence(text)
    start = candidate.find("{")
    end = candidate.rfind("}")
    if start == -1 or end <= start:
        raise ParseError("no JSON object found in reply")

    candidate = candidate[start:end + 1]
    candidate = _TRAILING_COMMA.sub(r"\1", candidate)
    candidate = _CONTROL_CHARS.sub("", candidate)
    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError as e:
        raise ParseError(f"unparseable reply: {e}") from e
    if not isinstance(parsed, dict):
        raise ParseError("reply is not a JSON object")
    return parsed


def _split_system(messages: Sequence[Message]) -> tuple[str, list[Message]]:
    """Separate system messages (Anthropic takes them as one parameter)."""
    system_parts = [m["content"] for m in messages if m.get("role") == "system"]
    chat = [
        {"role": m["role"], "content": m["content"]}
        for m in messages
        if m.get("role") in ("user", "assistant")
    ]
    if not chat:
        chat = [{"role": "user", "content": "Respond with the JSON object now."}]
    return "\n\n".join(system_parts), chat


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class StructuredModelClient:
    """Requests JSON-shaped replies from a Claude model.

    Args:
        api_key: Anthropic API key. Without one (and without an injected
            client) the backend counts as unconfigured.
        model: Default model identifier.
        client: Pre-built client exposing ``messages.create``; used by tests.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "claude-sonnet-4-20250514",
        client: Any = None,
        max_tokens: int = MAX_TOKENS,
    ):
        self.model = model
        self.max_tokens = max_tokens
        self._api_key = api_key
        self._client = client
        self._owns_client = client is None
        self._lock = threading.Lock()
        self.total_cost_usd = 0.0
        self.calls = 0

    @property
    def configured(self) -> bool:
        return self._client is not None or (self._owns_client and bool(self._api_key))

    def _get_client(self) -> Any:
        with self._lock:
            if self._client is None and self._owns_client and self._api_key:
                self._client = anthropic.Anthropic(api_key=self._api_key, timeout=MODEL_TIMEOUT)
            return self._client

    def close(self) -> None:
        """Close the underlying HTTP client, aborting in-flight calls.

        A client built from an API key is rebuilt on the next call.
        """
        with self._lock:
            client = self._client
            if self._owns_client:
                self._client = None
        close = getattr(client, "close", None)
        if callable(close):
            close()

    def _record_usage(self, message: Any) -> None:
        usage = getattr(message, "usage", None)
        input_tokens = getattr(usage, "input_tokens", 0) or 0
        output_tokens = getattr(usage, "output_tokens", 0) or 0
        if not isinstance(input_tokens, (int, float)) or not isinstance(output_tokens, (int, float)):
            return
        cost = (input_tokens * _INPUT_COST_PER_M + output_tokens * _OUTPUT_COST_PER_M) / 1_000_000
        with self._lock:
            self.total_cost_usd += cost

    def complete(self, messages: Sequence[Message], model: Optional[str] = None) -> str:
        """Send one request and return the reply text.

        Raises:
            UpstreamUnavailable: if the backend is unconfigured or the call fails.
        """
        if not self.configured:
            raise UpstreamUnavailable("model backend not configured")

        system, chat = _split_system(messages)
        kwargs: dict[str, Any] = {
            "model": model or self.model,
            "max_tokens": self.max_tokens,
            "messages": chat,
        }
        if system:
            kwargs["system"] = system

        with self._lock:
            self.calls += 1
        try:
            message = self._get_client().messages.create(**kwargs)
        except anthropic.APIError as e:
            raise UpstreamUnavailable(f"model call failed: {e}") from e

        self._record_usage(message)
        parts = [
            getattr(block, "text", "")
            for block in getattr(message, "content", []) or []
            if getattr(block, "type", "text") == "text"
        ]
        return "".join(parts)

    def request_json(
        self,
        messages: Sequence[Message],
        fallback: Any,
        model: Optional[str] = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        validate: Optional[Callable[[dict[str, Any]], Any]] = None,
    ) -> Any:
        """Obtain a JSON object from the model, or the fallback.

        Args:
            messages: Ordered role-tagged messages; the first is
                conventionally the system instruction.
            fallback: Returned unchanged when the backend is unconfigured or
                every attempt fails.
            model: Model identifier; defaults to the client's model.
            max_retries: Extra attempts after the first one.
            validate: Optional shape check. It receives the parsed object
                and returns the value to hand back; raising ValueError,
                TypeError or KeyError counts as a parse failure.

        Returns:
            The parsed (and validated) reply, or ``fallback``.
        """
        if not self.configured:
            logger.debug("Model backend not configured, using fallback")
            return fallback

        corrections: list[str] = []
        attempts = max(0, max_retries) + 1

        for attempt in range(1, attempts + 1):
            payload = build_attempt_messages(messages, corrections)
            try:
                text = self.complete(payload, model=model)
                parsed = parse_json_object(text)
                if validate is not None:
                    try:
                        return validate(parsed)
                    except (ValueError, TypeError, KeyError) as e:
                        raise ParseError(f"reply does not match expected shape: {e}") from e
                return parsed
            except ParseError as e:
                logger.warning(
                    "Model reply unparseable (attempt %d/%d): %s", attempt, attempts, e
                )
                if attempt < attempts:
                    corrections.append(CORRECTION_NOTE)
            except UpstreamUnavailable as e:
                logger.warning(
                    "Model call failed (attempt %d/%d): %s", attempt, attempts, e
                )
            except Exception as e:
                logger.error(
                    "Unexpected model client error (attempt %d/%d): %s", attempt, attempts, e
                )

        logger.warning("Model attempts exhausted, using fallback")
        return fallback
