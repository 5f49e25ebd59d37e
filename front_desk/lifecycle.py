"""
Booking lifecycle.

Booking status moves Pending -> Confirmed -> CheckedIn -> CheckedOut, or to
Cancelled from any state before CheckedOut. CheckedOut and Cancelled are
terminal. Payment status lives on the same record but is only changed by
``reconciliation``; nothing here reads or writes it after creation.
"""

import logging

from .availability import BLOCKING_STATUSES, check_availability, overlapping_bookings
from .exceptions import ConflictError, InvalidStateTransition, ValidationError
from .models import Booking, Guest, Room
from .pricing import quote_total, to_amount, validate_stay
from .registry import set_occupancy
from .storage import BookingStore

logger = logging.getLogger(__name__)

Status = Booking.Status

BOOKING_TRANSITIONS = {
    Status.PENDING: {Status.CONFIRMED, Status.CANCELLED},
    Status.CONFIRMED: {Status.CHECKED_IN, Status.CANCELLED},
    Status.CHECKED_IN: {Status.CHECKED_OUT, Status.CANCELLED},
    Status.CHECKED_OUT: set(),
    Status.CANCELLED: set(),
}

TERMINAL_STATUSES = frozenset(s for s, targets in BOOKING_TRANSITIONS.items() if not targets)

# A booking is created either awaiting confirmation or already confirmed.
INITIAL_STATUSES = frozenset({Status.PENDING, Status.CONFIRMED})

# Refunded only ever results from a refund.
INITIAL_PAYMENT_STATUSES = frozenset(Booking.PaymentStatus.values) - {Booking.PaymentStatus.REFUNDED}

# Room status a transition leaves behind.
ROOM_STATUS_AFTER = {
    Status.CHECKED_IN: Room.Status.OCCUPIED,
    Status.CHECKED_OUT: Room.Status.CLEANING,
}


def assert_booking_transition(current, target):
    if target not in BOOKING_TRANSITIONS.get(current, set()):
        raise InvalidStateTransition(
            f"Invalid booking transition: {current} -> {target}",
            current=current, target=target,
        )


def sync_guest_status(guest_id, store=None):
    """Derive a guest's stay status from their bookings and store it."""
    store = store or BookingStore()
    statuses = store.guest_booking_statuses(guest_id)
    if Status.CHECKED_IN in statuses:
        stay_status = Guest.StayStatus.STAYING
    elif statuses & {Status.PENDING, Status.CONFIRMED}:
        stay_status = Guest.StayStatus.RESERVED
    else:
        stay_status = Guest.StayStatus.NO_STAY
    store.set_guest_stay_status(guest_id, stay_status)
    return stay_status


def _reject_posthoc_overlap(booking, store):
    clashes = overlapping_bookings(booking, store=store)
    if clashes:
        clash_ids = sorted(b.pk for b in clashes)
        logger.error(
            "Booking %s on room %s overlaps bookings %s after write; rolling back",
            booking.pk, booking.room_id, clash_ids,
        )
        raise ConflictError(
            "Room is not available for the selected dates",
            room_id=booking.room_id, conflicting_booking_ids=clash_ids,
        )


def create_booking(room_id, guest_id, check_in, check_out, *, status=Status.PENDING,
                   payment_status=Booking.PaymentStatus.UNPAID, payment_method="",
                   client_token=None, store=None):
    """
    Reserve ``room_id`` for ``guest_id`` over [check_in, check_out).

    The availability check, insert and overlap re-check run in one database
    transaction with the room row locked. A repeated ``client_token`` returns
    the booking created by the first call.
    """
    validate_stay(check_in, check_out)
    if status not in INITIAL_STATUSES:
        raise ValidationError(f"A booking cannot be created as {status}")
    if payment_status not in INITIAL_PAYMENT_STATUSES:
        raise ValidationError(f"A booking cannot be created with payment status {payment_status}")

    store = store or BookingStore()
    if client_token is not None:
        existing = store.find_booking_by_token(client_token)
        if existing is not None:
            same_stay = (str(existing.room_id), existing.check_in, existing.check_out) == (
                str(room_id), check_in, check_out)
            if not same_stay:
                raise ValidationError(
                    "client_token was already used for a different stay",
                    booking_id=existing.pk,
                )
            return existing

    with store.atomic():
        room = store.lock_room(room_id)
        guest = store.get_guest(guest_id)
        if not check_availability(room.pk, check_in, check_out, store=store):
            raise ConflictError(room_id=room.pk, check_in=check_in, check_out=check_out)

        booking = store.insert_booking(
            room=room,
            guest=guest,
            check_in=check_in,
            check_out=check_out,
            status=status,
            payment_status=payment_status,
            payment_method=payment_method,
            total_amount=quote_total(room, check_in, check_out, store=store),
            client_token=client_token,
        )
        _reject_posthoc_overlap(booking, store)
        sync_guest_status(guest.pk, store)

    logger.info("Booking %s created for room %s, %s..%s", booking.pk, room.number, check_in, check_out)
    return booking


def _transition(booking_id, target, store=None):
    store = store or BookingStore()
    with store.atomic():
        booking = store.lock_booking(booking_id)
        assert_booking_transition(booking.status, target)
        booking = store.update_booking_status(booking.pk, target)
        if target in ROOM_STATUS_AFTER:
            set_occupancy(booking.room_id, ROOM_STATUS_AFTER[target], store=store)
        sync_guest_status(booking.guest_id, store)
    logger.info("Booking %s is now %s", booking.pk, target)
    return booking


def confirm_booking(booking_id, store=None):
    return _transition(booking_id, Status.CONFIRMED, store)


def check_in(booking_id, store=None):
    return _transition(booking_id, Status.CHECKED_IN, store)


def check_out(booking_id, store=None):
    # Payment status is not consulted here.
    return _transition(booking_id, Status.CHECKED_OUT, store)


def cancel_booking(booking_id, store=None):
    return _transition(booking_id, Status.CANCELLED, store)


def update_booking(booking_id, *, room_id=None, check_in=None, check_out=None,
                   total_amount=None, payment_method=None, store=None):
    """
    Edit a booking in place.

    Moving the stay to another room or other dates re-checks availability
    (ignoring this booking) and re-prices it, unless ``total_amount`` is
    given explicitly. Terminal bookings cannot be edited.
    """
    if check_in is not None and check_out is not None:
        validate_stay(check_in, check_out)
    if total_amount is not None:
        total_amount = to_amount(total_amount)
        if total_amount < 0:
            raise ValidationError("total_amount cannot be negative")

    store = store or BookingStore()
    with store.atomic():
        booking = store.lock_booking(booking_id)
        if booking.status in TERMINAL_STATUSES:
            raise InvalidStateTransition(f"Booking {booking.pk} is {booking.status} and cannot be edited")

        new_room_id = room_id if room_id is not None else booking.room_id
        new_check_in = check_in or booking.check_in
        new_check_out = check_out or booking.check_out
        validate_stay(new_check_in, new_check_out)

        fields = {}
        stay_changed = (new_room_id, new_check_in, new_check_out) != (
            booking.room_id, booking.check_in, booking.check_out
        )
        if stay_changed:
            room = store.lock_room(new_room_id)
            if not check_availability(room.pk, new_check_in, new_check_out,
                                      exclude_booking_id=booking.pk, store=store):
                raise ConflictError(room_id=room.pk, check_in=new_check_in, check_out=new_check_out)
            fields.update(
                room=room,
                check_in=new_check_in,
                check_out=new_check_out,
                total_amount=quote_total(room, new_check_in, new_check_out, store=store),
            )
        if total_amount is not None:
            fields["total_amount"] = total_amount
        if payment_method is not None:
            fields["payment_method"] = payment_method
        if not fields:
            return booking

        booking = store.update_booking_fields(booking.pk, **fields)
        if stay_changed and booking.status in BLOCKING_STATUSES:
            _reject_posthoc_overlap(booking, store)

    logger.info("Booking %s updated: %s", booking.pk, ", ".join(sorted(fields)))
    return booking
