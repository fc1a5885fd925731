import asyncio
import json
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from fastapi import HTTPException

from triage.backend import data_reader, server
from triage.backend.item_store import ItemStore
from triage.backend.queue_engine import ProcessingScheduler


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now


RECORDS = [
    {"id": "n1", "sender": "dean@clientco", "subject": "Support needed for login issue",
     "receivedAt": "2025-08-20T14:58:00", "priority": "normal", "sentiment": "neutral",
     "status": "pending", "category": "Login Support"},
    {"id": "u2", "sender": "bob@customer.com", "subject": "Immediate support needed for billing error",
     "receivedAt": "2025-08-20T04:58:00", "priority": "urgent", "sentiment": "negative",
     "status": "pending", "category": "Billing"},
    {"id": "u1", "sender": "alice@example.com", "subject": "Urgent request system access blocked",
     "receivedAt": "2025-08-19T00:58:00", "priority": "urgent", "sentiment": "negative",
     "status": "processing", "category": "Account Access"},
    {"id": "r1", "sender": "alice@example.com", "subject": "Help required with account verification",
     "receivedAt": "2025-08-18T08:58:00", "priority": "urgent", "sentiment": "negative",
     "status": "resolved", "category": "Account Verification"},
]


class ServerEndpointTests(unittest.TestCase):
    def setUp(self):
        data_reader.clear_cache()
        self.addCleanup(data_reader.clear_cache)
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.tmp = Path(tmp.name)

        emails_path = self.tmp / "emails.json"
        emails_path.write_text(json.dumps(RECORDS), encoding="utf-8")
        self.store = ItemStore(emails_path)
        self.clock = FakeClock()
        self.engine = ProcessingScheduler(self.store.queue_items, clock=self.clock)

        patchers = [
            patch.object(server, "_store", self.store),
            patch.object(server, "_engine", self.engine),
            patch.object(server.config, "SETTINGS_OVERRIDES_JSON", self.tmp / "settings_overrides.json"),
        ]
        for p in patchers:
            p.start()
            self.addCleanup(p.stop)

    def _run(self, coro):
        return asyncio.run(coro)

    # ── Queue ──

    def test_queue_columns_are_in_processing_order(self):
        payload = self._run(server.queue_state())
        self.assertEqual(payload["state"], "idle")
        self.assertEqual(payload["ordered_ids"], ["u1", "u2", "n1"])
        self.assertEqual([r["id"] for r in payload["urgent"]], ["u1", "u2"])
        self.assertEqual([r["id"] for r in payload["normal"]], ["n1"])
        self.assertEqual([r["position"] for r in payload["urgent"] + payload["normal"]], [1, 2, 3])
        self.assertEqual(payload["urgent_count"], 2)
        self.assertEqual(payload["normal_count"], 1)
        self.assertEqual(payload["urgent"][0]["received_display"], "19 Aug 00:58")

    def test_queue_flow_through_commands(self):
        payload = self._run(server.queue_start())
        self.assertTrue(payload["running"])

        self.clock.now = 4.0
        payload = self._run(server.queue_state())
        self.assertEqual(payload["in_flight"], "u1")
        self.assertEqual(payload["in_flight_count"], 1)
        self.assertEqual(payload["urgent"][0]["status"], "processing")

        self.clock.now = 5.0
        payload = self._run(server.queue_pause())
        self.assertEqual(payload["state"], "paused")
        self.assertFalse(payload["running"])

        self.clock.now = 7.0
        payload = self._run(server.queue_state())
        self.assertEqual(payload["completed"], ["u1"])
        self.assertEqual(payload["progress"], 33.3)
        self.assertIsNone(payload["urgent"][0]["position"])
        self.assertEqual(payload["urgent"][1]["position"], 1)

        payload = self._run(server.queue_toggle())
        self.assertEqual(payload["state"], "running")

        payload = self._run(server.queue_reset())
        self.assertEqual(payload["state"], "running")
        self.assertEqual(payload["completed"], [])
        self.assertEqual(payload["progress"], 0.0)

    def test_resume_and_toggle_from_idle(self):
        payload = self._run(server.queue_resume())
        self.assertEqual(payload["state"], "running")
        payload = self._run(server.queue_toggle())
        self.assertEqual(payload["state"], "paused")

    def test_get_engine_builds_from_store_once(self):
        with patch.object(server, "_engine", None):
            engine = server.get_engine()
            self.assertEqual(engine.ordered_ids, ("u1", "u2", "n1"))
            self.assertIs(server.get_engine(), engine)

    # ── Dashboard / detail ──

    def test_dashboard_filters(self):
        payload = self._run(server.dashboard_endpoint(search="alice", priority="urgent", sentiment="negative"))
        self.assertEqual([e["id"] for e in payload["emails"]], ["u1", "r1"])
        self.assertEqual(payload["summary"]["total"], 4)
        self.assertEqual(payload["summary"]["resolved"], 1)
        self.assertNotIn("warning", payload)

    def test_dashboard_rejects_bad_filter(self):
        with self.assertRaises(HTTPException) as ctx:
            self._run(server.dashboard_endpoint(priority="high"))
        self.assertEqual(ctx.exception.status_code, 400)

    def test_email_detail_includes_queue_status(self):
        payload = self._run(server.email_detail("u2"))
        self.assertEqual(payload["subject"], "Immediate support needed for billing error")
        self.assertEqual(payload["queue"], {"status": "waiting", "position": 2})

        resolved = self._run(server.email_detail("r1"))
        self.assertIsNone(resolved["queue"])

    def test_email_detail_unknown_id(self):
        with self.assertRaises(HTTPException) as ctx:
            self._run(server.email_detail("nope"))
        self.assertEqual(ctx.exception.status_code, 404)

    # ── Settings ──

    def test_settings_roundtrip_reconfigures_engine(self):
        payload = self._run(server.post_setting(server.SettingUpdate(key="cadence_seconds", value=1.5)))
        self.assertEqual(payload["settings"]["cadence_seconds"], 1.5)
        self.assertEqual(self.engine.cadence_seconds, 1.5)

        current = self._run(server.get_settings())
        self.assertEqual(current["cadence_seconds"], 1.5)

    def test_settings_rejects_unknown_key_and_bad_value(self):
        with self.assertRaises(HTTPException) as ctx:
            self._run(server.post_setting(server.SettingUpdate(key="api_key", value="x")))
        self.assertEqual(ctx.exception.status_code, 400)

        with self.assertRaises(HTTPException) as ctx:
            self._run(server.post_setting(server.SettingUpdate(key="batch_size", value=-3)))
        self.assertEqual(ctx.exception.status_code, 400)

    # ── Analytics / health ──

    def test_analytics_payload(self):
        missing = self.tmp / "missing.json"
        with patch.object(server.config, "ANALYTICS_JSON", missing):
            payload = self._run(server.analytics_endpoint())
        self.assertEqual(payload["volume"]["total_emails"], 341)
        self.assertEqual(payload["sentiment"][0], {"name": "negative", "count": 3, "percent": 75.0})
        self.assertEqual(payload["categories"], payload["live"]["categories"])
        self.assertIn("warning", payload)

    def test_analytics_warns_when_volume_csv_missing(self):
        missing = self.tmp / "no_volume.csv"
        with patch.object(server.config, "EMAIL_VOLUME_CSV", missing):
            with self.assertLogs("triage.backend.server", level="WARNING"):
                payload = self._run(server.analytics_endpoint())
        self.assertEqual(payload["volume"]["total_emails"], 0)
        self.assertIn("missing", payload["warning"])
        self.assertNotIn(";", payload["warning"])

    def test_health(self):
        payload = self._run(server.health())
        self.assertEqual(payload["status"], "ok")
        self.assertEqual(payload["queue_state"], "idle")
        self.assertIn("emails_json", payload)


if __name__ == "__main__":
    unittest.main()
