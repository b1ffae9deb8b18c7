import os
import unittest
from unittest import mock

import httpx

from payrecon.analytics import sink
from payrecon.analytics.util import safe_http_post
from payrecon.config.flags import flag
from payrecon.config.settings import Settings, validate_settings


class TestOpsSink(unittest.TestCase):
    def test_emit_without_flag_only_logs(self):
        with mock.patch.dict(os.environ, {"FEATURE_OPS_SINK": "0"}), \
                mock.patch.object(sink, "safe_http_post") as post:
            sink.emit("webhook_persist_failed", {"merchant_order_id": "ORD-1"})
        post.assert_not_called()

    def test_emit_forwards_when_enabled(self):
        with mock.patch.dict(os.environ, {"FEATURE_OPS_SINK": "true"}), \
                mock.patch.object(sink, "safe_http_post") as post:
            sink.emit("webhook_persist_failed", {"merchant_order_id": "ORD-1"})
        post.assert_called_once()
        record = post.call_args[0][1]
        self.assertEqual(record["event_type"], "webhook_persist_failed")
        self.assertEqual(record["payload"], {"merchant_order_id": "ORD-1"})

    def test_safe_http_post_never_raises(self):
        def refuse(request):
            raise httpx.ConnectError("down", request=request)

        real_client = httpx.Client
        with mock.patch("payrecon.analytics.util.httpx.Client",
                        side_effect=lambda **kw: real_client(transport=httpx.MockTransport(refuse), **kw)):
            safe_http_post("https://ops.test/ingest", {"event_type": "x"})
        safe_http_post(None, {"event_type": "x"})


class TestConfig(unittest.TestCase):
    def test_flag(self):
        with mock.patch.dict(os.environ, {"SOME_FLAG": "Yes"}):
            self.assertTrue(flag("SOME_FLAG"))
        with mock.patch.dict(os.environ, {"SOME_FLAG": "off"}):
            self.assertFalse(flag("SOME_FLAG", default=True))
        os.environ.pop("UNSET_FLAG", None)
        self.assertTrue(flag("UNSET_FLAG", default=True))

    def test_settings_helpers(self):
        s = Settings(GATEWAY_PROVIDER=" PhonePe ", ALLOWED_ORIGINS="https://a.test, https://b.test,")
        self.assertEqual(s.GATEWAY_PROVIDER, "phonepe")
        self.assertEqual(s.allowed_origins, ["https://a.test", "https://b.test"])

    def test_validate_settings(self):
        validate_settings(Settings(GATEWAY_PROVIDER="cashfree", CASHFREE_APP_ID="a", CASHFREE_SECRET_KEY="b"))
        with self.assertRaises(ValueError):
            validate_settings(Settings(GATEWAY_PROVIDER="cashfree", CASHFREE_APP_ID=None, CASHFREE_SECRET_KEY=None))
        with self.assertRaises(ValueError):
            validate_settings(Settings(
                GATEWAY_PROVIDER="cashfree",
                CASHFREE_APP_ID="a",
                CASHFREE_SECRET_KEY="b",
                ENVIRONMENT="production",
                DATABASE_URL="sqlite:///./prod.db",
            ))


if __name__ == "__main__":
    unittest.main()
