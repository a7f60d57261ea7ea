import unittest

from fastapi.testclient import TestClient
from support import fresh_database

from prepkit.core.lifespan import run_housekeeping
from prepkit.core.rate_limit import clear_llm_rate_limit_events, record_llm_request
from prepkit.main import app


class LifespanTests(unittest.TestCase):
    def setUp(self):
        fresh_database()
        clear_llm_rate_limit_events()

    def test_app_starts_and_stops(self):
        with TestClient(app) as client:
            response = client.get("/v1/health")
        self.assertEqual(response.status_code, 200)

    def test_housekeeping_reports_each_store(self):
        record_llm_request("client-a", "preparations", limit=5)
        deleted = run_housekeeping()
        self.assertEqual(set(deleted), {"ai_analysis_runs", "llm_rate_limit_events"})
        self.assertEqual(deleted["llm_rate_limit_events"], 0)


if __name__ == "__main__":
    unittest.main()
