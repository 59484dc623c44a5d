"""Tests for URL reachability probing."""

from __future__ import annotations

from unittest.mock import MagicMock

import requests

from checkai.retrieval.reachability import ReachabilityProber


def _make_response(ok: bool) -> MagicMock:
    resp = MagicMock()
    resp.status_code = 200 if ok else 404
    return resp


def _make_prober(*outcomes) -> tuple[ReachabilityProber, MagicMock]:
    """Prober over a session whose request() yields the given outcomes in order."""
    session = MagicMock()
    session.request.side_effect = [
        o if isinstance(o, Exception) else _make_response(o) for o in outcomes
    ]
    return ReachabilityProber(session, timeout=2.5, cache={}), session


class TestReachabilityProber:

    def test_head_success(self):
        prober, session = _make_prober(True)
        assert prober.is_reachable("https://example.com/a") is True
        method, url = session.request.call_args.args
        assert method == "HEAD"
        assert url == "https://example.com/a"
        assert session.request.call_args.kwargs["timeout"] == 2.5

    def test_get_after_head_failure(self):
        prober, session = _make_prober(False, True)
        assert prober.is_reachable("https://example.com/b") is True
        methods = [c.args[0] for c in session.request.call_args_list]
        assert methods == ["HEAD", "GET"]

    def test_get_after_head_exception(self):
        prober, _ = _make_prober(requests.ConnectionError("refused"), True)
        assert prober.is_reachable("https://example.com/c") is True

    def test_both_probes_fail(self):
        prober, session = _make_prober(requests.Timeout("slow"), False)
        assert prober.is_reachable("https://example.com/d") is False
        assert session.request.call_count == 2

    def test_result_cached_per_url(self):
        prober, session = _make_prober(False, False)
        assert prober.is_reachable("https://example.com/e") is False
        assert prober.is_reachable("https://example.com/e") is False
        assert session.request.call_count == 2

    def test_cache_shared_between_probers(self):
        cache: dict[str, bool] = {}
        first = ReachabilityProber(MagicMock(), cache=cache)
        first.session.request.return_value = _make_response(True)
        first.is_reachable("https://example.com/f")

        second_session = MagicMock()
        second = ReachabilityProber(second_session, cache=cache)
        assert second.is_reachable("https://example.com/f") is True
        second_session.request.assert_not_called()
