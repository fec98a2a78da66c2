from datetime import timedelta
from unittest import mock

from django.contrib.auth.models import User
from django.db import DatabaseError
from django.test import TestCase, override_settings

from canteen.exceptions import (
    BookingAlreadyConfirmed,
    BookingClosed,
    BookingNotFound,
    InvalidAmount,
    NothingToAllocate,
    PersistenceFailure,
    SoldOut,
    UserLimitReached,
)
from canteen.models import ActivityLog, Booking, Notification, Profile, TokenSettings
from canteen.services import allocator


def make_user(email, name=""):
    user = User.objects.create_user(username=email, email=email, password="pw-for-tests-123")
    Profile.objects.create(user=user, name=name)
    return user


class AllocatorTestCase(TestCase):

    def setUp(self):
        self.today = allocator.today()
        self.alice = make_user("alice@college.edu", "Alice")
        self.bob = make_user("bob@college.edu", "Bob")
        self.carol = make_user("carol@college.edu", "Carol")

    def open_pool(self, total):
        return TokenSettings.objects.create(is_active=True, total_tokens=total)

    def numbers(self, bookings=None):
        if bookings is None:
            bookings = Booking.objects.filter(booking_date=self.today)
        return sorted(b.token_number for b in bookings)


class BookTokensTests(AllocatorTestCase):

    def test_first_booking_gets_token_one(self):
        self.open_pool(10)
        bookings = allocator.book_tokens(self.alice, 1)
        self.assertEqual(self.numbers(bookings), [1])
        self.assertEqual(bookings[0].user_name, "Alice")
        self.assertEqual(bookings[0].booking_date, self.today)
        self.assertFalse(bookings[0].is_confirmed)

    def test_multiple_tokens_are_consecutive_across_users(self):
        self.open_pool(10)
        allocator.book_tokens(self.alice, 2)
        allocator.book_tokens(self.bob, 3)
        bookings = allocator.book_tokens(self.carol, 1)
        self.assertEqual(self.numbers(bookings), [6])
        self.assertEqual(self.numbers(), [1, 2, 3, 4, 5, 6])

    def test_closed_when_no_settings(self):
        with self.assertRaises(BookingClosed):
            allocator.book_tokens(self.alice, 1)

    def test_closed_regardless_of_remaining_pool(self):
        TokenSettings.objects.create(is_active=False, total_tokens=50)
        with self.assertRaises(BookingClosed):
            allocator.book_tokens(self.alice, 1)
        self.assertFalse(Booking.objects.exists())

    def test_sold_out(self):
        self.open_pool(2)
        allocator.book_tokens(self.alice, 2)
        with self.assertRaises(SoldOut):
            allocator.book_tokens(self.bob, 1)

    def test_user_limit(self):
        self.open_pool(10)
        allocator.book_tokens(self.alice, 3)
        with self.assertRaises(UserLimitReached):
            allocator.book_tokens(self.alice, 1)

    def test_partial_allocation_capped_by_user_limit(self):
        self.open_pool(10)
        allocator.book_tokens(self.alice, 2)
        bookings = allocator.book_tokens(self.alice, 3)
        self.assertEqual(len(bookings), 1)
        self.assertEqual(Booking.objects.filter(user=self.alice).count(), 3)

    def test_partial_allocation_capped_by_pool(self):
        self.open_pool(2)
        bookings = allocator.book_tokens(self.alice, 3)
        self.assertEqual(self.numbers(bookings), [1, 2])

    def test_zero_quantity_allocates_nothing(self):
        self.open_pool(10)
        with self.assertRaises(NothingToAllocate):
            allocator.book_tokens(self.alice, 0)

    @override_settings(CANTEEN_MAX_TOKENS_PER_USER=1)
    def test_cap_is_configurable(self):
        self.open_pool(10)
        self.assertEqual(len(allocator.book_tokens(self.alice, 3)), 1)
        with self.assertRaises(UserLimitReached):
            allocator.book_tokens(self.alice, 1)

    def test_dates_are_numbered_independently(self):
        self.open_pool(10)
        yesterday = self.today - timedelta(days=1)
        Booking.objects.create(user=self.bob, user_name="Bob", token_number=1, booking_date=yesterday)
        Booking.objects.create(user=self.bob, user_name="Bob", token_number=2, booking_date=yesterday)
        bookings = allocator.book_tokens(self.alice, 1)
        self.assertEqual(self.numbers(bookings), [1])
        self.assertEqual(allocator.get_pool_status().booked, 1)

    def test_user_name_falls_back_to_email(self):
        self.open_pool(10)
        dave = User.objects.create_user(username="dave", email="dave@college.edu", password="pw-for-tests-123")
        bookings = allocator.book_tokens(dave, 1)
        self.assertEqual(bookings[0].user_name, "dave@college.edu")

    def test_booking_is_logged(self):
        self.open_pool(10)
        allocator.book_tokens(self.alice, 2)
        log = ActivityLog.objects.get(action="token_booked")
        self.assertEqual(log.user, self.alice)
        self.assertIn("#1, #2", log.message)

    def test_storage_error_is_persistence_failure_and_rolls_back(self):
        self.open_pool(10)
        with mock.patch.object(Booking.objects, "create", side_effect=DatabaseError("disk full")):
            with self.assertRaises(PersistenceFailure):
                allocator.book_tokens(self.alice, 2)
        self.assertFalse(Booking.objects.exists())
        self.assertFalse(ActivityLog.objects.exists())


class CancellationTests(AllocatorTestCase):

    def test_cancel_frees_pool_without_reusing_number(self):
        self.open_pool(5)
        allocator.book_tokens(self.alice, 3)
        allocator.book_tokens(self.bob, 2)
        with self.assertRaises(SoldOut):
            allocator.book_tokens(self.carol, 1)

        third = Booking.objects.get(booking_date=self.today, token_number=3)
        self.assertEqual(allocator.cancel_booking(self.alice, third.id), 3)
        self.assertEqual(allocator.get_pool_status().tokens_left, 1)

        bookings = allocator.book_tokens(self.carol, 1)
        self.assertEqual(self.numbers(bookings), [6])
        self.assertEqual(self.numbers(), [1, 2, 4, 5, 6])
        with self.assertRaises(SoldOut):
            allocator.book_tokens(self.carol, 1)

    def test_cannot_cancel_someone_elses_booking(self):
        self.open_pool(5)
        booking = allocator.book_tokens(self.alice, 1)[0]
        with self.assertRaises(BookingNotFound):
            allocator.cancel_booking(self.bob, booking.id)
        self.assertTrue(Booking.objects.filter(id=booking.id).exists())

    def test_cannot_cancel_confirmed_booking(self):
        self.open_pool(5)
        booking = allocator.book_tokens(self.alice, 1)[0]
        allocator.confirm_booking(booking.id)
        with self.assertRaises(BookingAlreadyConfirmed):
            allocator.cancel_booking(self.alice, booking.id)


class PoolStatusTests(AllocatorTestCase):

    def test_no_settings(self):
        status = allocator.get_pool_status()
        self.assertFalse(status.is_active)
        self.assertEqual(status.total_tokens, 0)
        self.assertEqual(status.tokens_left, 0)

    def test_tokens_left_is_derived(self):
        self.open_pool(10)
        allocator.book_tokens(self.alice, 3)
        status = allocator.get_pool_status()
        self.assertEqual((status.total_tokens, status.booked, status.tokens_left), (10, 3, 7))

    def test_tokens_left_never_negative(self):
        self.open_pool(5)
        allocator.book_tokens(self.alice, 3)
        TokenSettings.objects.create(is_active=True, total_tokens=1)
        status = allocator.get_pool_status()
        self.assertEqual(status.booked, 3)
        self.assertEqual(status.tokens_left, 0)

    def test_latest_settings_row_is_authoritative(self):
        TokenSettings.objects.create(is_active=True, total_tokens=10)
        latest = TokenSettings.objects.create(is_active=False, total_tokens=20)
        current = allocator.get_authoritative_settings()
        self.assertEqual(current.id, latest.id)
        self.assertFalse(current.is_active)

    def test_as_dict(self):
        self.open_pool(4)
        data = allocator.get_pool_status().as_dict()
        self.assertEqual(data["booking_date"], self.today.isoformat())
        self.assertEqual(data["tokens_left"], 4)
        self.assertTrue(data["is_active"])


class AdminOperationTests(AllocatorTestCase):

    def test_reset_clears_today_and_creates_new_pool(self):
        old = self.open_pool(5)
        allocator.book_tokens(self.alice, 2)
        yesterday = self.today - timedelta(days=1)
        Booking.objects.create(user=self.bob, user_name="Bob", token_number=1, booking_date=yesterday)

        snapshot = allocator.reset_pool(40, actor=self.carol)

        self.assertNotEqual(snapshot.id, old.id)
        self.assertTrue(snapshot.is_active)
        self.assertEqual(snapshot.total_tokens, 40)
        self.assertFalse(Booking.objects.filter(booking_date=self.today).exists())
        self.assertTrue(Booking.objects.filter(booking_date=yesterday).exists())
        self.assertEqual(allocator.get_pool_status().tokens_left, 40)
        self.assertEqual(self.numbers(allocator.book_tokens(self.alice, 1)), [1])

    def test_reset_rejects_non_positive(self):
        for amount in (0, -3, "abc", None):
            with self.assertRaises(InvalidAmount):
                allocator.reset_pool(amount)

    def test_add_tokens_keeps_bookings(self):
        self.open_pool(5)
        allocator.book_tokens(self.alice, 3)
        before = allocator.get_pool_status()

        snapshot = allocator.add_tokens(4)

        after = allocator.get_pool_status()
        self.assertEqual(snapshot.total_tokens, 9)
        self.assertEqual(after.booked, before.booked)
        self.assertEqual(after.tokens_left, before.tokens_left + 4)
        self.assertEqual(TokenSettings.objects.count(), 1)

    def test_add_tokens_without_pool(self):
        with self.assertRaises(BookingClosed):
            allocator.add_tokens(5)

    def test_add_tokens_rejects_non_positive(self):
        self.open_pool(5)
        with self.assertRaises(InvalidAmount):
            allocator.add_tokens(0)

    def test_toggle_in_place(self):
        row = self.open_pool(5)
        snapshot = allocator.set_booking_active(False)
        self.assertEqual(snapshot.id, row.id)
        self.assertFalse(snapshot.is_active)
        with self.assertRaises(BookingClosed):
            allocator.book_tokens(self.alice, 1)
        allocator.set_booking_active(True)
        self.assertEqual(len(allocator.book_tokens(self.alice, 1)), 1)

    def test_booking_follows_row_inserted_by_reset_while_waiting(self):
        stale = self.open_pool(1)
        stale.is_active = False
        stale.save()
        fresh = TokenSettings.objects.create(is_active=True, total_tokens=5)

        # lock returns the row it waited on, then the re-read sees the new one
        with mock.patch.object(allocator, "_authoritative", side_effect=[stale, fresh, fresh, fresh]):
            bookings = allocator.book_tokens(self.alice, 2)

        self.assertEqual(self.numbers(bookings), [1, 2])

    def test_add_tokens_lands_on_current_row_after_reset(self):
        stale = self.open_pool(5)
        fresh = TokenSettings.objects.create(is_active=True, total_tokens=10)

        with mock.patch.object(allocator, "_authoritative", side_effect=[stale, fresh, fresh, fresh]):
            snapshot = allocator.add_tokens(3)

        self.assertEqual(snapshot.id, fresh.id)
        stale.refresh_from_db()
        fresh.refresh_from_db()
        self.assertEqual(stale.total_tokens, 5)
        self.assertEqual(fresh.total_tokens, 13)

    def test_toggle_without_pool_creates_empty_row(self):
        snapshot = allocator.set_booking_active(True)
        self.assertTrue(snapshot.is_active)
        self.assertEqual(snapshot.total_tokens, 0)
        with self.assertRaises(SoldOut):
            allocator.book_tokens(self.alice, 1)

    def test_confirm_all_for_user(self):
        self.open_pool(10)
        allocator.book_tokens(self.alice, 2)
        allocator.book_tokens(self.bob, 1)

        self.assertEqual(allocator.confirm_bookings(self.alice.id), 2)
        self.assertEqual(allocator.confirm_bookings(self.alice.id), 0)

        self.assertTrue(all(b.is_confirmed for b in Booking.objects.filter(user=self.alice)))
        self.assertFalse(Booking.objects.get(user=self.bob).is_confirmed)
        note = Notification.objects.get(user=self.alice)
        self.assertEqual(note.notification_type, "booking_confirmed")
        self.assertIn("#1, #2", note.message)

    def test_confirm_has_no_effect_on_allocation(self):
        self.open_pool(3)
        allocator.book_tokens(self.alice, 2)
        allocator.confirm_bookings(self.alice.id)
        self.assertEqual(allocator.get_pool_status().tokens_left, 1)

    def test_confirm_unknown_booking(self):
        with self.assertRaises(BookingNotFound):
            allocator.confirm_booking(9999)

    def test_group_bookings_by_user(self):
        self.open_pool(10)
        allocator.book_tokens(self.bob, 1)
        allocator.book_tokens(self.alice, 2)
        allocator.book_tokens(self.bob, 1)
        allocator.confirm_bookings(self.alice.id)

        groups = allocator.group_bookings_by_user(allocator.bookings_for_date())

        self.assertEqual([g["user_name"] for g in groups], ["Bob", "Alice"])
        self.assertEqual([b.token_number for b in groups[0]["bookings"]], [1, 4])
        self.assertFalse(groups[0]["all_confirmed"])
        self.assertTrue(groups[1]["all_confirmed"])
