import tempfile
import unittest
from pathlib import Path

from booking_engine import BookingSettings, InvalidArgumentError, load_settings


class TestLoadSettings(unittest.TestCase):
    def test_defaults_without_file_or_env(self) -> None:
        settings = load_settings(environ={})

        self.assertEqual(settings, BookingSettings())
        self.assertEqual(settings.default_capacity, 5)
        self.assertIsNone(settings.admin_secret)

    def test_env_overrides_file(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            config_path = Path(temp_dir) / "booking.yaml"
            config_path.write_text(
                "data_dir: /srv/booking\nadmin_secret: from-file\ndefault_capacity: 8\n",
                encoding="utf-8",
            )

            settings = load_settings(
                environ={
                    "BOOKING_CONFIG": str(config_path),
                    "BOOKING_DEFAULT_CAPACITY": "12",
                }
            )

            self.assertEqual(settings.data_dir, "/srv/booking")
            self.assertEqual(settings.admin_secret, "from-file")
            self.assertEqual(settings.default_capacity, 12)

    def test_blank_admin_secret_disables_admin_registration(self) -> None:
        settings = load_settings(environ={"BOOKING_ADMIN_SECRET": "   "})
        self.assertIsNone(settings.admin_secret)

    def test_invalid_values_are_rejected(self) -> None:
        with self.assertRaises(InvalidArgumentError):
            load_settings(environ={"BOOKING_DEFAULT_CAPACITY": "many"})
        with self.assertRaises(InvalidArgumentError):
            load_settings(environ={"BOOKING_DEFAULT_CAPACITY": "0"})
        with self.assertRaises(InvalidArgumentError):
            load_settings(environ={"BOOKING_DEFAULT_PAGE_SIZE": "500"})

    def test_missing_or_malformed_config_file(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            with self.assertRaises(InvalidArgumentError):
                load_settings(Path(temp_dir) / "missing.yaml", environ={})

            not_mapping = Path(temp_dir) / "list.yaml"
            not_mapping.write_text("- a\n- b\n", encoding="utf-8")
            with self.assertRaises(InvalidArgumentError):
                load_settings(not_mapping, environ={})


if __name__ == "__main__":
    unittest.main()
