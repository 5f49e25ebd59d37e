"""
Room availability.

Stays are half-open day ranges: the check-in day is occupied, the check-out
day is free for the next arrival. Only bookings in BLOCKING_STATUSES occupy a
range; cancelled and checked-out bookings never block.
"""

import logging

from django.db.models import Exists, OuterRef

from .exceptions import StorageUnavailable
from .models import Booking, Room
from .storage import BookingStore, engine_setting

logger = logging.getLogger(__name__)

BLOCKING_STATUSES = frozenset({
    Booking.Status.PENDING,
    Booking.Status.CONFIRMED,
    Booking.Status.CHECKED_IN,
})


def ranges_overlap(start_a, end_a, start_b, end_b):
    return start_a < end_b and start_b < end_a


def check_availability(room_id, check_in, check_out, exclude_booking_id=None, store=None):
    """
    Like ``is_available`` but lets ``StorageUnavailable`` propagate.

    Used by operations that must report a retryable failure instead of a
    plain "unavailable".
    """
    store = store or BookingStore()
    if engine_setting("SERVER_SIDE_CALCULATIONS"):
        return store.check_room_availability(
            room_id, check_in, check_out, BLOCKING_STATUSES, exclude_booking_id=exclude_booking_id
        )
    bookings = store.query_bookings(room_id, BLOCKING_STATUSES, exclude_booking_id=exclude_booking_id)
    return not any(
        ranges_overlap(b.check_in, b.check_out, check_in, check_out)
        for b in bookings
    )


def is_available(room_id, check_in, check_out, exclude_booking_id=None, store=None):
    """True when no blocking booking of the room overlaps [check_in, check_out)."""
    try:
        return check_availability(room_id, check_in, check_out, exclude_booking_id, store)
    except StorageUnavailable:
        logger.warning(
            "Could not read bookings for room %s; reporting %s..%s as unavailable",
            room_id, check_in, check_out,
        )
        return False


def overlapping_bookings(booking, store=None):
    """Other blocking bookings of the same room that overlap ``booking``."""
    store = store or BookingStore()
    return [
        other
        for other in store.query_bookings(booking.room_id, BLOCKING_STATUSES, exclude_booking_id=booking.pk)
        if ranges_overlap(other.check_in, other.check_out, booking.check_in, booking.check_out)
    ]


def available_rooms_qs(check_in, check_out, max_rate=None):
    overlap = Exists(
        Booking.objects.filter(
            room=OuterRef('pk'),
            status__in=list(BLOCKING_STATUSES),
            check_in__lt=check_out,
            check_out__gt=check_in,
        )
    )
    qs = Room.objects.annotate(has_overlap=overlap).filter(has_overlap=False)
    if max_rate is not None:
        qs = qs.filter(rate__lte=max_rate)
    return qs
