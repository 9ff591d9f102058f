import json
import tempfile
import unittest
from pathlib import Path

from policygate.core.config import build_policy_config
from policygate.core.errors import MalformedURL, PolicyDenied
from policygate.core.guard import PolicyGuard
from policygate.core.policy_store import PolicyStore
from policygate.core.runtime_context import RuntimeContext
from policygate.trace.replay import Replay

RAW = {
    "images": {"remote_patterns": [{"protocol": "https", "hostname": "images.pexels.com", "pathname": "/photos/**"}]},
    "server_actions": {"allowed_origins": ["*.csb.app"], "body_size_limit": 2_000_000},
}


class TestPolicyGuard(unittest.TestCase):
    def setUp(self) -> None:
        self._td = tempfile.TemporaryDirectory()
        self.trace_path = Path(self._td.name) / "trace.jsonl"
        self.store = PolicyStore(build_policy_config(RAW))
        self.guard = PolicyGuard(self.store, RuntimeContext(run_id="run_test_guard", trace_path=self.trace_path))

    def tearDown(self) -> None:
        self._td.cleanup()

    def _events(self):
        return [json.loads(l) for l in self.trace_path.read_text(encoding="utf-8").splitlines() if l.strip()]

    def test_image_decision_is_traced(self) -> None:
        d = self.guard.check_image("https://images.pexels.com/photos/123/cat.jpg")
        self.assertTrue(d.admitted)

        events = self._events()
        self.assertEqual(len(events), 1)
        e = events[0]
        self.assertEqual(e["event_type"], "policy_decision")
        self.assertEqual(e["run_id"], "run_test_guard")
        self.assertEqual(e["subject"], "image")
        self.assertEqual(e["policy"]["decision"], "admit")
        self.assertEqual(e["policy"]["reason_codes"], [])
        self.assertTrue(e["ts"].endswith("Z"))

    def test_action_rejection_is_traced_and_denied(self) -> None:
        d = self.guard.check_action("evil.com", 3_000_000)
        self.assertFalse(d.admitted)
        with self.assertRaises(PolicyDenied) as cm:
            self.guard.require_admit(d)
        self.assertEqual(cm.exception.code, "policy.denied")
        self.assertEqual(cm.exception.data, {"reasons": ["action.body_too_large", "action.origin_not_allowed"]})

        event_types = [e["event_type"] for e in self._events()]
        self.assertEqual(event_types, ["policy_decision", "request_denied"])
        decision_event = self._events()[0]
        self.assertEqual(decision_event["subject"], "action")
        self.assertEqual(decision_event["data"]["max_body_bytes"], 2_000_000)

    def test_require_admit_passes_admitted_decision(self) -> None:
        d = self.guard.check_action("https://foo.csb.app", 1_500_000)
        self.assertIs(self.guard.require_admit(d), d)

    def test_malformed_url_is_traced_and_propagates(self) -> None:
        with self.assertRaises(MalformedURL):
            self.guard.check_image("not a url")
        events = self._events()
        self.assertEqual(events[0]["event_type"], "error")
        self.assertEqual(events[0]["data"]["code"], "image.malformed_url")

    def test_guard_reads_replaced_config(self) -> None:
        self.assertFalse(self.guard.check_action("app.example.com", 1).admitted)
        self.store.replace(build_policy_config({"server_actions": {"allowed_origins": ["app.example.com"]}}))
        self.assertTrue(self.guard.check_action("app.example.com", 1).admitted)
        self.assertEqual(len(Replay(self.trace_path).decisions()), 2)

    def test_tracing_is_optional(self) -> None:
        guard = PolicyGuard(self.store, RuntimeContext(run_id="run_no_trace"))
        self.assertTrue(guard.check_image("https://images.pexels.com/photos/1.jpg").admitted)
        self.assertFalse(self.trace_path.exists())


if __name__ == "__main__":
    unittest.main()
