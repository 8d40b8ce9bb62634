import tempfile
import unittest
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from unittest.mock import patch

from booking_engine import BookingStatus, BookingStorageError, BookingYamlRepository, OwnerKind, UserRole


class TestBookingYamlRepository(unittest.TestCase):
    def test_ids_increment_per_file(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            repo = BookingYamlRepository(Path(temp_dir) / "data")
            now = datetime(2026, 2, 24, 9, 0)
            first = repo.add_owner(OwnerKind.RESOURCE, "Room A", now)
            second = repo.add_owner(OwnerKind.COURSE, "Yoga", now)
            interval = repo.add_interval(first.owner_id, datetime(2026, 2, 25, 10, 0), datetime(2026, 2, 25, 11, 0), 5, now)

            self.assertEqual(first.owner_id, 1)
            self.assertEqual(second.owner_id, 2)
            self.assertEqual(interval.interval_id, 1)
            self.assertEqual([owner.name for owner in repo.find_owners(OwnerKind.COURSE)], ["Yoga"])

    def test_interval_round_trips_through_yaml(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            data_dir = Path(temp_dir) / "data"
            now = datetime(2026, 2, 24, 9, 0)
            created = BookingYamlRepository(data_dir).add_interval(
                1, datetime(2026, 2, 25, 10, 0), datetime(2026, 2, 25, 11, 0), 3, now
            )

            reloaded = BookingYamlRepository(data_dir).find_interval_by_id(created.interval_id)

            self.assertEqual(reloaded, created)
            contents = (data_dir / "intervals.yaml").read_text(encoding="utf-8")
            self.assertIn("2026-02-25T10:00", contents)

    def test_find_overlapping_uses_half_open_ranges(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            repo = BookingYamlRepository(Path(temp_dir) / "data")
            now = datetime(2026, 2, 24, 9, 0)
            repo.add_interval(1, datetime(2026, 2, 25, 10, 0), datetime(2026, 2, 25, 11, 0), 5, now)
            repo.add_interval(1, datetime(2026, 2, 25, 12, 0), datetime(2026, 2, 25, 13, 0), 5, now)
            repo.add_interval(2, datetime(2026, 2, 25, 10, 0), datetime(2026, 2, 25, 11, 0), 5, now)

            overlapping = repo.find_overlapping(1, datetime(2026, 2, 25, 10, 30), datetime(2026, 2, 25, 12, 0))
            adjacent = repo.find_overlapping(1, datetime(2026, 2, 25, 11, 0), datetime(2026, 2, 25, 12, 0))

            self.assertEqual([interval.interval_id for interval in overlapping], [1])
            self.assertEqual(adjacent, [])

    def test_active_counts_ignore_cancelled_bookings(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            repo = BookingYamlRepository(Path(temp_dir) / "data")
            now = datetime(2026, 2, 24, 9, 0)
            repo.add_booking(1, 1, BookingStatus.PENDING, now)
            repo.add_booking(2, 1, BookingStatus.CANCELLED, now)
            repo.add_booking(3, 2, BookingStatus.CONFIRMED, now)

            self.assertEqual(repo.count_active_by_interval(1), 1)
            self.assertEqual(repo.count_active_by_intervals([1, 2, 3]), {1: 1, 2: 1})
            self.assertEqual(repo.count_active_by_interval(1, statuses=[BookingStatus.CANCELLED]), 1)

    def test_delete_bookings_for_interval(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            repo = BookingYamlRepository(Path(temp_dir) / "data")
            now = datetime(2026, 2, 24, 9, 0)
            repo.add_booking(1, 1, BookingStatus.PENDING, now)
            repo.add_booking(2, 1, BookingStatus.CANCELLED, now)
            kept = repo.add_booking(3, 2, BookingStatus.PENDING, now)

            removed = repo.delete_bookings_for_interval(1)

            self.assertEqual(removed, 2)
            self.assertEqual(repo.find_bookings(), [kept])

    def test_failed_interval_write_restores_its_bookings(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            repo = BookingYamlRepository(Path(temp_dir) / "data")
            now = datetime(2026, 2, 24, 9, 0)
            interval = repo.add_interval(1, datetime(2026, 2, 25, 10, 0), datetime(2026, 2, 25, 11, 0), 5, now)
            booking = repo.add_booking(1, interval.interval_id, BookingStatus.CANCELLED, now)

            with patch.object(repo, "delete_interval", side_effect=BookingStorageError("disk full")):
                with self.assertRaises(BookingStorageError):
                    repo.delete_interval_with_bookings(interval.interval_id)

            self.assertEqual(repo.find_bookings(), [booking])
            self.assertTrue(repo.interval_exists(interval.interval_id))

            self.assertEqual(repo.delete_interval_with_bookings(interval.interval_id), 1)
            self.assertEqual(repo.find_bookings(), [])
            self.assertFalse(repo.interval_exists(interval.interval_id))

    def test_save_booking_replaces_existing_row(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            repo = BookingYamlRepository(Path(temp_dir) / "data")
            now = datetime(2026, 2, 24, 9, 0)
            booking = repo.add_booking(1, 1, BookingStatus.PENDING, now)

            repo.save_booking(replace(booking, status=BookingStatus.CONFIRMED))

            self.assertEqual(len(repo.find_bookings()), 1)
            self.assertEqual(repo.find_booking_by_id(booking.booking_id).status, BookingStatus.CONFIRMED)

    def test_user_lookup_by_email_and_token(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            repo = BookingYamlRepository(Path(temp_dir) / "data")
            user = repo.add_user("ann@example.com", "Ann", UserRole.USER, "token-1", datetime(2026, 2, 24, 9, 0))

            self.assertEqual(repo.find_user_by_email("ANN@example.com"), user)
            self.assertEqual(repo.find_user_by_token("token-1"), user)
            self.assertIsNone(repo.find_user_by_token("token-2"))
            self.assertIsNone(repo.find_user_by_token("token-1 "))
            self.assertIsNone(repo.find_user_by_token("t\u00f6ken-1"))

    def test_log_event_appends_entries(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            data_dir = Path(temp_dir) / "data"
            repo = BookingYamlRepository(data_dir)
            repo.log_event("BOOKING_CREATED", {"booking_id": 1}, datetime(2026, 2, 24, 9, 0))
            repo.log_event("BOOKING_CANCELLED", {"booking_id": 1}, datetime(2026, 2, 24, 9, 5))

            events = repo.get_events()

            self.assertEqual([event["event_type"] for event in events], ["BOOKING_CREATED", "BOOKING_CANCELLED"])
            self.assertEqual(events[0]["event_time"], "2026-02-24T09:00:00")
            self.assertIn("BOOKING_CANCELLED", (data_dir / "booking_events.yaml").read_text(encoding="utf-8"))

    def test_corrupted_yaml_is_recovered(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            data_dir = Path(temp_dir) / "data"
            repo = BookingYamlRepository(data_dir)
            bookings_path = data_dir / "bookings.yaml"
            bookings_path.write_text("this: [is: invalid", encoding="utf-8")

            bookings = repo.find_bookings()

            self.assertEqual(bookings, [])
            self.assertIn("[]", bookings_path.read_text(encoding="utf-8"))
            self.assertEqual(len(list(data_dir.glob("bookings.corrupt.*.yaml"))), 1)
            self.assertIn("YAML_RECOVERED", [event["event_type"] for event in repo.get_events()])

    def test_non_mapping_rows_are_skipped(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            data_dir = Path(temp_dir) / "data"
            repo = BookingYamlRepository(data_dir)
            (data_dir / "owners.yaml").write_text(
                "- just a string\n"
                "- owner_id: 4\n"
                "  kind: RESOURCE\n"
                "  name: Room D\n"
                "  created_at: '2026-02-24T09:00:00'\n"
                "  updated_at: '2026-02-24T09:00:00'\n",
                encoding="utf-8",
            )

            owners = repo.find_owners()

            self.assertEqual([owner.owner_id for owner in owners], [4])
            self.assertIn("YAML_ROW_SKIPPED", [event["event_type"] for event in repo.get_events()])


if __name__ == "__main__":
    unittest.main()
