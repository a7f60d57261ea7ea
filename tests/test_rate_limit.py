import dataclasses
import time
import unittest
from types import SimpleNamespace
from unittest.mock import patch

import support  # noqa: F401
from fastapi import HTTPException

from prepkit.core import rate_limit
from prepkit.core.config import settings
from prepkit.core.rate_limit import (
    LLM_RATE_LIMITED_MESSAGE,
    LLMRateLimitExceeded,
    clear_llm_rate_limit_events,
    client_key,
    enforce_llm_rate_limit,
    purge_llm_rate_limit_events,
    record_llm_request,
)


def _request(path="/v1/preparations", forwarded_for=None, host="203.0.113.9"):
    headers = {"x-forwarded-for": forwarded_for} if forwarded_for else {}
    return SimpleNamespace(headers=headers, client=SimpleNamespace(host=host), url=SimpleNamespace(path=path))


class LLMRateLimitTests(unittest.TestCase):
    def setUp(self):
        clear_llm_rate_limit_events()

    def test_sliding_window_limit(self):
        for _ in range(3):
            record_llm_request("client-a", "preparations", limit=3)
        with self.assertRaises(LLMRateLimitExceeded):
            record_llm_request("client-a", "preparations", limit=3)

        # other clients and routes have their own windows
        record_llm_request("client-b", "preparations", limit=3)
        record_llm_request("client-a", "resumes", limit=3)

    def test_client_key(self):
        self.assertEqual(client_key(_request(forwarded_for="198.51.100.1, 10.0.0.1")), "198.51.100.1")
        self.assertEqual(client_key(_request()), "203.0.113.9")
        self.assertEqual(client_key(_request(host=None)), "unknown")
        self.assertEqual(client_key(_request(), user_id=7), "user:7")

    def test_purge_drops_only_expired_events(self):
        record_llm_request("client-a", "preparations", limit=5)
        self.assertEqual(purge_llm_rate_limit_events(window_seconds=60), 0)
        with patch.object(rate_limit.time, "time", return_value=time.time() + 120):
            self.assertEqual(purge_llm_rate_limit_events(window_seconds=60), 1)

    def test_disabled_limit_is_a_no_op(self):
        disabled = dataclasses.replace(settings, rate_limit_enabled=False, llm_rate_limit_per_minute=0)
        with patch.object(rate_limit, "settings", disabled):
            enforce_llm_rate_limit(_request())

    def test_enabled_limit_raises_429_per_user(self):
        enabled = dataclasses.replace(settings, rate_limit_enabled=True, llm_rate_limit_per_minute=1)
        with patch.object(rate_limit, "settings", enabled):
            enforce_llm_rate_limit(_request(), route_key="analyze_match", user_id=1)
            # same address, different account
            enforce_llm_rate_limit(_request(), route_key="analyze_match", user_id=2)
            with self.assertRaises(HTTPException) as ctx:
                enforce_llm_rate_limit(_request(), route_key="analyze_match", user_id=1)
        self.assertEqual(ctx.exception.status_code, 429)
        self.assertEqual(ctx.exception.detail, LLM_RATE_LIMITED_MESSAGE)


if __name__ == "__main__":
    unittest.main()
