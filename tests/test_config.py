import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

import fakes  # noqa: F401

from utils.config import Settings


class SettingsTestCase(unittest.TestCase):
    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.base = Path(self.temp_dir.name)

    def tearDown(self):
        self.temp_dir.cleanup()

    def test_defaults(self):
        with mock.patch.dict(os.environ, {}, clear=True):
            settings = Settings.load(self.base)

        self.assertEqual(settings.api_base_url, "http://localhost:5000/api")
        self.assertEqual(settings.socket_url, "http://localhost:5000")
        self.assertEqual(settings.data_dir, self.base.resolve() / "data")
        self.assertEqual(settings.db_path, self.base.resolve() / "data" / "shopper.sqlite")
        self.assertIsNone(settings.log_file)
        self.assertTrue(settings.enable_socket_notifications)
        self.assertFalse(settings.enable_google_oauth)
        self.assertFalse(hasattr(settings, "enable_stripe_payments"))
        self.assertEqual(settings.retry_attempts, 3)
        self.assertEqual(settings.default_delivery_fee, 30.0)

    def test_environment_overrides(self):
        env = {
            "SHOPPER_API_URL": "https://shop.example/api/",
            "SHOPPER_ENABLE_SOCKET_NOTIFICATIONS": "off",
            "SHOPPER_DEFAULT_DELIVERY_FEE": "45",
            "SHOPPER_RETRY_ATTEMPTS": "5",
            "SHOPPER_LOG_FILE": str(self.base / "logs" / "app.log"),
        }
        with mock.patch.dict(os.environ, env, clear=True):
            settings = Settings.load(self.base)

        self.assertEqual(settings.api_base_url, "https://shop.example/api")
        self.assertFalse(settings.enable_socket_notifications)
        self.assertEqual(settings.default_delivery_fee, 45.0)
        self.assertEqual(settings.retry_attempts, 5)

        settings.ensure_dirs()
        self.assertTrue((self.base / "logs").is_dir())
        self.assertTrue(settings.data_dir.is_dir())

    def test_bad_numbers_are_rejected(self):
        with mock.patch.dict(os.environ, {"SHOPPER_TAX_PERCENTAGE": "five"}, clear=True):
            with self.assertRaises(ValueError):
                Settings.load(self.base)
        with mock.patch.dict(os.environ, {"SHOPPER_RETRY_ATTEMPTS": "0"}, clear=True):
            with self.assertRaises(ValueError):
                Settings.load(self.base)


if __name__ == "__main__":
    unittest.main()
