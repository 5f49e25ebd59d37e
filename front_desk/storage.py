"""
Storage collaborator for the front desk engine.

All reads and writes the engine performs go through ``BookingStore``. The
store relies on the database to serialize read-then-write sequences: callers
open ``store.atomic()`` and lock the rows they are about to change with the
``lock_*`` methods (``SELECT ... FOR UPDATE`` where the backend supports it).

Database errors never leave this module raw: integrity violations become
``ConflictError`` and any other ``DatabaseError`` becomes ``StorageUnavailable``.
"""

import functools
import logging
from decimal import Decimal

from django.conf import settings
from django.db import DatabaseError, IntegrityError, transaction
from django.db.models import DecimalField, ExpressionWrapper, F, Value
from django.utils import timezone

from .exceptions import ConflictError, NotFound, StorageUnavailable
from .models import Booking, Guest, Payment, Room

logger = logging.getLogger(__name__)

ENGINE_DEFAULTS = {
    # Compute availability and totals in the database instead of in Python.
    "SERVER_SIDE_CALCULATIONS": False,
}


def engine_setting(name):
    return getattr(settings, "FRONT_DESK", {}).get(name, ENGINE_DEFAULTS[name])


def _translate_errors(method):
    @functools.wraps(method)
    def wrapper(*args, **kwargs):
        try:
            return method(*args, **kwargs)
        except IntegrityError as exc:
            raise ConflictError(f"Integrity violation in {method.__name__}: {exc}") from exc
        except DatabaseError as exc:
            logger.error("Storage call %s failed: %s", method.__name__, exc)
            raise StorageUnavailable(f"Storage call {method.__name__} failed") from exc

    return wrapper


def _get_or_not_found(queryset, pk, label):
    try:
        return queryset.get(pk=pk)
    except queryset.model.DoesNotExist:
        raise NotFound(f"{label} {pk} not found")


class BookingStore:
    """ORM-backed implementation of the storage collaborator."""

    def atomic(self):
        return transaction.atomic()

    # Rooms and guests

    @_translate_errors
    def get_room(self, room_id):
        return _get_or_not_found(Room.objects.all(), room_id, "Room")

    @_translate_errors
    def lock_room(self, room_id):
        return _get_or_not_found(Room.objects.select_for_update(), room_id, "Room")

    @_translate_errors
    def set_room_status(self, room_id, status):
        if not Room.objects.filter(pk=room_id).update(status=status, updated_at=timezone.now()):
            raise NotFound(f"Room {room_id} not found")
        return Room.objects.get(pk=room_id)

    @_translate_errors
    def get_guest(self, guest_id):
        return _get_or_not_found(Guest.objects.all(), guest_id, "Guest")

    @_translate_errors
    def set_guest_stay_status(self, guest_id, stay_status):
        Guest.objects.filter(pk=guest_id).update(stay_status=stay_status)

    @_translate_errors
    def guest_booking_statuses(self, guest_id):
        return set(Booking.objects.filter(guest_id=guest_id).values_list("status", flat=True))

    # Bookings

    @_translate_errors
    def get_booking(self, booking_id):
        return _get_or_not_found(Booking.objects.select_related("room", "guest"), booking_id, "Booking")

    @_translate_errors
    def lock_booking(self, booking_id):
        return _get_or_not_found(Booking.objects.select_for_update(), booking_id, "Booking")

    @_translate_errors
    def find_booking_by_token(self, client_token):
        return Booking.objects.filter(client_token=client_token).first()

    @_translate_errors
    def query_bookings(self, room_id, status_in, exclude_booking_id=None):
        qs = Booking.objects.filter(room_id=room_id, status__in=list(status_in))
        if exclude_booking_id is not None:
            qs = qs.exclude(pk=exclude_booking_id)
        return list(qs)

    @_translate_errors
    def insert_booking(self, **fields):
        return Booking.objects.create(**fields)

    @_translate_errors
    def update_booking_status(self, booking_id, status):
        return self._update_booking(booking_id, status=status)

    @_translate_errors
    def update_booking_payment_status(self, booking_id, payment_status):
        return self._update_booking(booking_id, payment_status=payment_status)

    @_translate_errors
    def update_booking_fields(self, booking_id, **fields):
        return self._update_booking(booking_id, **fields)

    def _update_booking(self, booking_id, **fields):
        if not Booking.objects.filter(pk=booking_id).update(updated_at=timezone.now(), **fields):
            raise NotFound(f"Booking {booking_id} not found")
        return Booking.objects.select_related("room", "guest").get(pk=booking_id)

    # Payment transactions

    @_translate_errors
    def lock_payment(self, payment_id):
        return _get_or_not_found(Payment.objects.select_for_update(), payment_id, "Payment")

    @_translate_errors
    def lock_booking_payments(self, booking_id, status_in):
        return list(
            Payment.objects.select_for_update()
            .filter(booking_id=booking_id, status__in=list(status_in))
            .order_by("-created_at", "-pk")
        )

    @_translate_errors
    def insert_payment_transaction(self, **fields):
        return Payment.objects.create(**fields)

    @_translate_errors
    def update_payment_transaction_status(self, payment_id, status):
        if not Payment.objects.filter(pk=payment_id).update(status=status, updated_at=timezone.now()):
            raise NotFound(f"Payment {payment_id} not found")
        return Payment.objects.get(pk=payment_id)

    # Server-side procedures

    @_translate_errors
    def check_room_availability(self, room_id, check_in, check_out, status_in, exclude_booking_id=None):
        overlapping = Booking.objects.filter(
            room_id=room_id,
            status__in=list(status_in),
            check_in__lt=check_out,
            check_out__gt=check_in,
        )
        if exclude_booking_id is not None:
            overlapping = overlapping.exclude(pk=exclude_booking_id)
        return not overlapping.exists()

    @_translate_errors
    def calculate_booking_total(self, room_id, check_in, check_out):
        nights = (check_out - check_in).days
        totals = Room.objects.filter(pk=room_id).annotate(
            stay_total=ExpressionWrapper(
                F("rate") * Value(nights),
                output_field=DecimalField(max_digits=12, decimal_places=2),
            )
        ).values_list("stay_total", flat=True)
        for total in totals:
            return Decimal(str(total))
        raise NotFound(f"Room {room_id} not found")
