import uuid
from datetime import date
from decimal import Decimal
from unittest import mock

from django.test import TestCase, override_settings

from front_desk import lifecycle
from front_desk.exceptions import (
    ConflictError,
    InvalidStateTransition,
    NotFound,
    StorageUnavailable,
    ValidationError,
)
from front_desk.models import Booking, Guest, Room
from front_desk.storage import BookingStore

from .factories import JUNE_10, JUNE_12, JUNE_13, JUNE_15, JUNE_18, make_booking, make_guest, make_room


class BookingCreationTestCase(TestCase):

    def setUp(self):
        self.room = make_room(rate="150.00")
        self.guest = make_guest()

    def test_non_overlapping_bookings_both_succeed(self):
        first = lifecycle.create_booking(self.room.pk, self.guest.pk, JUNE_10, JUNE_13)
        second = lifecycle.create_booking(self.room.pk, self.guest.pk, date(2024, 6, 20), date(2024, 6, 22))
        self.assertNotEqual(first.pk, second.pk)
        self.assertEqual(Booking.objects.filter(room=self.room).count(), 2)

    def test_overlapping_booking_is_rejected(self):
        lifecycle.create_booking(self.room.pk, self.guest.pk, JUNE_10, JUNE_15)

        with self.assertRaises(ConflictError):
            lifecycle.create_booking(self.room.pk, self.guest.pk, JUNE_12, JUNE_18)
        self.assertEqual(Booking.objects.filter(room=self.room).count(), 1)

    @override_settings(FRONT_DESK={"SERVER_SIDE_CALCULATIONS": True})
    def test_overlapping_booking_is_rejected_with_database_checks(self):
        lifecycle.create_booking(self.room.pk, self.guest.pk, JUNE_10, JUNE_15)

        with self.assertRaises(ConflictError):
            lifecycle.create_booking(self.room.pk, self.guest.pk, JUNE_12, JUNE_18)
        self.assertEqual(Booking.objects.filter(room=self.room).count(), 1)

    def test_back_to_back_bookings_are_allowed(self):
        lifecycle.create_booking(self.room.pk, self.guest.pk, JUNE_10, JUNE_15)
        booking = lifecycle.create_booking(self.room.pk, self.guest.pk, JUNE_15, JUNE_18)
        self.assertEqual(booking.check_in, JUNE_15)

    def test_new_booking_is_priced_and_pending(self):
        booking = lifecycle.create_booking(self.room.pk, self.guest.pk, JUNE_10, JUNE_13)
        self.assertEqual(booking.total_amount, Decimal("450.00"))
        self.assertEqual(booking.status, Booking.Status.PENDING)
        self.assertEqual(booking.payment_status, Booking.PaymentStatus.UNPAID)

    def test_booking_can_start_confirmed(self):
        booking = lifecycle.create_booking(
            self.room.pk, self.guest.pk, JUNE_10, JUNE_13, status=Booking.Status.CONFIRMED
        )
        self.assertEqual(booking.status, Booking.Status.CONFIRMED)

    def test_invalid_input_is_rejected_before_storage(self):
        with mock.patch.object(BookingStore, 'lock_room') as lock_room:
            with self.assertRaises(ValidationError):
                lifecycle.create_booking(self.room.pk, self.guest.pk, JUNE_10, JUNE_10)
            with self.assertRaises(ValidationError):
                lifecycle.create_booking(
                    self.room.pk, self.guest.pk, JUNE_10, JUNE_13, status=Booking.Status.CHECKED_IN
                )
            with self.assertRaises(ValidationError):
                lifecycle.create_booking(
                    self.room.pk, self.guest.pk, JUNE_10, JUNE_13,
                    payment_status=Booking.PaymentStatus.REFUNDED,
                )
        lock_room.assert_not_called()

    def test_unknown_room_or_guest(self):
        with self.assertRaises(NotFound):
            lifecycle.create_booking(9999, self.guest.pk, JUNE_10, JUNE_13)
        with self.assertRaises(NotFound):
            lifecycle.create_booking(self.room.pk, 9999, JUNE_10, JUNE_13)

    def test_repeated_client_token_returns_same_booking(self):
        token = uuid.uuid4()
        first = lifecycle.create_booking(self.room.pk, self.guest.pk, JUNE_10, JUNE_13, client_token=token)
        second = lifecycle.create_booking(self.room.pk, self.guest.pk, JUNE_10, JUNE_13, client_token=token)
        self.assertEqual(first.pk, second.pk)
        self.assertEqual(Booking.objects.count(), 1)

    def test_client_token_reused_for_another_stay(self):
        token = uuid.uuid4()
        first = lifecycle.create_booking(self.room.pk, self.guest.pk, JUNE_10, JUNE_13, client_token=token)
        other_room = make_room()
        for room_id, check_in, check_out in ((self.room.pk, JUNE_10, JUNE_15),
                                             (self.room.pk, JUNE_12, JUNE_13),
                                             (other_room.pk, JUNE_10, JUNE_13)):
            with self.subTest(room_id=room_id, check_in=check_in, check_out=check_out):
                with self.assertRaises(ValidationError) as ctx:
                    lifecycle.create_booking(room_id, self.guest.pk, check_in, check_out, client_token=token)
                self.assertEqual(ctx.exception.details['booking_id'], first.pk)
        self.assertEqual(Booking.objects.count(), 1)

    def test_overlap_detected_after_insert_rolls_back(self):
        """A conflicting booking that slipped past the availability check is reported"""
        existing = make_booking(self.room, self.guest, JUNE_10, JUNE_15, status=Booking.Status.CONFIRMED)

        with mock.patch('front_desk.lifecycle.check_availability', return_value=True):
            with self.assertRaises(ConflictError) as ctx:
                lifecycle.create_booking(self.room.pk, self.guest.pk, JUNE_12, JUNE_18)

        self.assertEqual(ctx.exception.details['conflicting_booking_ids'], [existing.pk])
        self.assertEqual(Booking.objects.count(), 1)

    def test_storage_failure_is_retryable_and_inserts_nothing(self):
        with mock.patch.object(BookingStore, 'query_bookings', side_effect=StorageUnavailable()):
            with self.assertRaises(StorageUnavailable):
                lifecycle.create_booking(self.room.pk, self.guest.pk, JUNE_10, JUNE_13)
        self.assertEqual(Booking.objects.count(), 0)

    def test_guest_becomes_reserved(self):
        lifecycle.create_booking(self.room.pk, self.guest.pk, JUNE_10, JUNE_13)
        self.guest.refresh_from_db()
        self.assertEqual(self.guest.stay_status, Guest.StayStatus.RESERVED)


class BookingTransitionTestCase(TestCase):

    def setUp(self):
        self.room = make_room()
        self.guest = make_guest()
        self.booking = lifecycle.create_booking(self.room.pk, self.guest.pk, JUNE_10, JUNE_15)

    def test_full_stay(self):
        booking = lifecycle.confirm_booking(self.booking.pk)
        self.assertEqual(booking.status, Booking.Status.CONFIRMED)

        booking = lifecycle.check_in(self.booking.pk)
        self.assertEqual(booking.status, Booking.Status.CHECKED_IN)
        self.room.refresh_from_db()
        self.guest.refresh_from_db()
        self.assertEqual(self.room.status, Room.Status.OCCUPIED)
        self.assertEqual(self.guest.stay_status, Guest.StayStatus.STAYING)

        booking = lifecycle.check_out(self.booking.pk)
        self.assertEqual(booking.status, Booking.Status.CHECKED_OUT)
        self.room.refresh_from_db()
        self.guest.refresh_from_db()
        self.assertEqual(self.room.status, Room.Status.CLEANING)
        self.assertEqual(self.guest.stay_status, Guest.StayStatus.NO_STAY)

    def test_unpaid_guest_can_check_out(self):
        lifecycle.confirm_booking(self.booking.pk)
        lifecycle.check_in(self.booking.pk)
        booking = lifecycle.check_out(self.booking.pk)
        self.assertEqual(booking.payment_status, Booking.PaymentStatus.UNPAID)

    def test_pending_booking_must_be_confirmed_before_check_in(self):
        with self.assertRaises(InvalidStateTransition):
            lifecycle.check_in(self.booking.pk)
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, Booking.Status.PENDING)

    def test_cancelling_pending_booking_frees_its_dates(self):
        booking = lifecycle.cancel_booking(self.booking.pk)
        self.assertEqual(booking.status, Booking.Status.CANCELLED)

        other = make_guest(email="other@example.com")
        replacement = lifecycle.create_booking(self.room.pk, other.pk, JUNE_12, JUNE_13)
        self.assertEqual(replacement.status, Booking.Status.PENDING)

    def test_checked_in_booking_can_be_cancelled(self):
        lifecycle.confirm_booking(self.booking.pk)
        lifecycle.check_in(self.booking.pk)
        booking = lifecycle.cancel_booking(self.booking.pk)
        self.assertEqual(booking.status, Booking.Status.CANCELLED)

    def test_checked_out_booking_cannot_be_cancelled(self):
        lifecycle.confirm_booking(self.booking.pk)
        lifecycle.check_in(self.booking.pk)
        lifecycle.check_out(self.booking.pk)

        with self.assertRaises(InvalidStateTransition):
            lifecycle.cancel_booking(self.booking.pk)
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, Booking.Status.CHECKED_OUT)

    def test_cancelled_booking_cannot_check_in(self):
        lifecycle.cancel_booking(self.booking.pk)
        for transition in (lifecycle.confirm_booking, lifecycle.check_in, lifecycle.check_out):
            with self.subTest(transition=transition.__name__):
                with self.assertRaises(InvalidStateTransition):
                    transition(self.booking.pk)

    def test_transitions_leave_payment_status_alone(self):
        Booking.objects.filter(pk=self.booking.pk).update(payment_status=Booking.PaymentStatus.PAID)
        booking = lifecycle.cancel_booking(self.booking.pk)
        self.assertEqual(booking.payment_status, Booking.PaymentStatus.PAID)

    def test_unknown_booking(self):
        with self.assertRaises(NotFound):
            lifecycle.confirm_booking(9999)


class BookingUpdateTestCase(TestCase):

    def setUp(self):
        self.room1 = make_room(rate="100.00")
        self.room2 = make_room(rate="150.00")
        self.guest = make_guest()
        self.booking = lifecycle.create_booking(self.room1.pk, self.guest.pk, JUNE_10, JUNE_12)

    def test_room_change_reprices(self):
        booking = lifecycle.update_booking(self.booking.pk, room_id=self.room2.pk)
        self.assertEqual(booking.room_id, self.room2.pk)
        self.assertEqual(booking.total_amount, Decimal("300.00"))

    def test_extending_over_own_dates_is_allowed(self):
        booking = lifecycle.update_booking(self.booking.pk, check_out=JUNE_15)
        self.assertEqual(booking.check_out, JUNE_15)
        self.assertEqual(booking.total_amount, Decimal("500.00"))

    def test_date_change_into_conflict_is_rejected(self):
        other = make_guest(email="conflict@example.com")
        make_booking(self.room1, other, JUNE_13, JUNE_18, status=Booking.Status.CONFIRMED)

        with self.assertRaises(ConflictError):
            lifecycle.update_booking(self.booking.pk, check_in=JUNE_12, check_out=JUNE_15)
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.check_out, JUNE_12)

    def test_staff_can_override_total(self):
        booking = lifecycle.update_booking(self.booking.pk, total_amount="180.00", payment_method="Cash")
        self.assertEqual(booking.total_amount, Decimal("180.00"))
        self.assertEqual(booking.payment_method, "Cash")

    def test_explicit_total_wins_over_repricing(self):
        booking = lifecycle.update_booking(self.booking.pk, check_out=JUNE_15, total_amount="250.00")
        self.assertEqual(booking.total_amount, Decimal("250.00"))

    def test_negative_total_is_rejected(self):
        with self.assertRaises(ValidationError):
            lifecycle.update_booking(self.booking.pk, total_amount="-1")

    def test_terminal_booking_cannot_be_edited(self):
        lifecycle.cancel_booking(self.booking.pk)
        with self.assertRaises(InvalidStateTransition):
            lifecycle.update_booking(self.booking.pk, check_out=JUNE_15)
