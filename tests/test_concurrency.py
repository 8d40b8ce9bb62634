import tempfile
import threading
import unittest
from datetime import datetime, timedelta
from pathlib import Path
from unittest.mock import patch

from booking_engine import (
    BookingError,
    BookingSettings,
    CapacityExceededError,
    ConflictError,
    OwnerKind,
    build_services,
)


class TestConcurrentWriters(unittest.TestCase):
    def setUp(self) -> None:
        temp_dir = tempfile.TemporaryDirectory()
        self.addCleanup(temp_dir.cleanup)
        self.now = datetime(2026, 2, 24, 9, 0)
        self.services = build_services(
            BookingSettings(data_dir=str(Path(temp_dir.name) / "data")),
            now_provider=lambda: self.now,
        )
        self.room = self.services.scheduling.create_owner(OwnerKind.RESOURCE, "Room A")

    def _run_together(self, jobs: list) -> tuple[list, list[BookingError]]:
        barrier = threading.Barrier(len(jobs))
        results: list = []
        errors: list[BookingError] = []
        collect = threading.Lock()

        def worker(job) -> None:
            barrier.wait()
            try:
                value = job()
            except BookingError as error:
                with collect:
                    errors.append(error)
            else:
                with collect:
                    results.append(value)

        threads = [threading.Thread(target=worker, args=(job,)) for job in jobs]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)
        return results, errors

    def test_only_one_of_many_overlapping_intervals_is_created(self) -> None:
        start = self.now + timedelta(days=1)
        jobs = [
            (lambda offset=offset: self.services.scheduling.create_interval(
                self.room.owner_id,
                start + timedelta(minutes=offset),
                start + timedelta(minutes=offset + 60),
            ))
            for offset in range(0, 40, 5)
        ]

        results, errors = self._run_together(jobs)

        self.assertEqual(len(results), 1)
        self.assertEqual(len(errors), len(jobs) - 1)
        self.assertTrue(all(isinstance(error, ConflictError) for error in errors))
        self.assertEqual(len(self.services.store.find_intervals(self.room.owner_id)), 1)

    def test_capacity_is_never_exceeded(self) -> None:
        interval = self.services.scheduling.create_interval(
            self.room.owner_id,
            self.now + timedelta(hours=1),
            self.now + timedelta(hours=2),
            capacity=3,
        )
        actors = [self.services.users.register(f"user{index}@example.com").to_actor() for index in range(10)]
        jobs = [
            (lambda actor=actor: self.services.reservations.create(interval.interval_id, actor))
            for actor in actors
        ]

        results, errors = self._run_together(jobs)

        self.assertEqual(len(results), 3)
        self.assertEqual(len(errors), 7)
        self.assertTrue(all(isinstance(error, CapacityExceededError) for error in errors))
        self.assertEqual(self.services.scheduling.get_interval(interval.interval_id).active_count, 3)

    def test_user_cannot_be_deleted_while_a_booking_for_them_is_created(self) -> None:
        interval = self.services.scheduling.create_interval(
            self.room.owner_id,
            self.now + timedelta(hours=1),
            self.now + timedelta(hours=2),
        )
        user = self.services.users.register("ann@example.com")
        store = self.services.store
        check_user = store.user_exists
        delete_errors: list[BookingError] = []
        deleters: list[threading.Thread] = []

        def delete_user() -> None:
            try:
                self.services.users.delete(user.user_id)
            except BookingError as error:
                delete_errors.append(error)

        def user_exists_then_delete(user_id: int) -> bool:
            exists = check_user(user_id)
            deleter = threading.Thread(target=delete_user)
            deleters.append(deleter)
            deleter.start()
            deleter.join(timeout=0.2)
            return exists

        with patch.object(store, "user_exists", side_effect=user_exists_then_delete):
            booking = self.services.reservations.create(interval.interval_id, user.to_actor())
        for deleter in deleters:
            deleter.join(timeout=30)

        self.assertTrue(store.user_exists(booking.user_id))
        self.assertEqual(len(delete_errors), 1)
        self.assertIsInstance(delete_errors[0], ConflictError)


if __name__ == "__main__":
    unittest.main()
