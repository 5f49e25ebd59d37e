"""
Payment reconciliation.

Each staff action (approve, reject, refund) changes a payment transaction's
status and the linked booking's payment status together, inside one database
transaction. If either half fails, neither is kept.

An action targets either a payment transaction (``payment_id``) or a booking
(``booking_id``). Acting on a booking also moves those of its transactions that
are in the action's source state, so the two never disagree.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import NamedTuple, Optional

from .exceptions import InvalidStateTransition, StorageUnavailable, ValidationError
from .lifecycle import assert_booking_transition
from .models import Booking, Payment
from .pricing import to_amount
from .storage import BookingStore

logger = logging.getLogger(__name__)

PaymentStatus = Booking.PaymentStatus

PAYMENT_TRANSITIONS = {
    Payment.Status.PROCESSING: {Payment.Status.APPROVED, Payment.Status.REJECTED},
    Payment.Status.APPROVED: {Payment.Status.REFUNDED},
    Payment.Status.REJECTED: set(),
    Payment.Status.REFUNDED: set(),
}

OUTSTANDING_PAYMENT_STATUSES = frozenset({PaymentStatus.UNPAID, PaymentStatus.PARTIAL, PaymentStatus.DEPOSIT})


class Action(NamedTuple):
    name: str
    payment_status: str
    booking_payment_status: str
    # Booking payment statuses accepted when acting on a booking alone.
    booking_sources: frozenset


APPROVE = Action("approve", Payment.Status.APPROVED, PaymentStatus.PAID, OUTSTANDING_PAYMENT_STATUSES)
REJECT = Action("reject", Payment.Status.REJECTED, PaymentStatus.UNPAID, OUTSTANDING_PAYMENT_STATUSES)
REFUND = Action("refund", Payment.Status.REFUNDED, PaymentStatus.REFUNDED, frozenset({PaymentStatus.PAID}))

# Booking payment status that must accompany the latest transaction of a booking.
EXPECTED_BOOKING_PAYMENT_STATUS = {
    Payment.Status.APPROVED: PaymentStatus.PAID,
    Payment.Status.REFUNDED: PaymentStatus.REFUNDED,
}


@dataclass
class Reconciliation:
    payment: Optional[Payment]
    booking: Optional[Booking]


def payment_sources(target):
    """Transaction statuses from which ``target`` can be reached."""
    return frozenset(s for s, targets in PAYMENT_TRANSITIONS.items() if target in targets)


def assert_payment_transition(current, target):
    if target not in PAYMENT_TRANSITIONS.get(current, set()):
        raise InvalidStateTransition(
            f"Invalid payment transition: {current} -> {target}",
            current=current, target=target,
        )


def record_payment(amount, method, *, booking_id=None, payment_date=None, notes="", store=None):
    """Record a payment or invoice. It starts out Processing."""
    amount = to_amount(amount)
    if amount <= 0:
        raise ValidationError("Payment amount must be positive")
    if not method:
        raise ValidationError("Payment method is required")

    store = store or BookingStore()
    booking = store.get_booking(booking_id) if booking_id is not None else None
    payment = store.insert_payment_transaction(
        booking=booking,
        amount=amount,
        method=method,
        status=Payment.Status.PROCESSING,
        payment_date=payment_date or date.today(),
        notes=notes,
    )
    logger.info("Payment %s of %s recorded for booking %s", payment.pk, amount, booking_id)
    return payment


def _reconcile(action, payment_id, booking_id, method, store):
    if (payment_id is None) == (booking_id is None):
        raise ValidationError("Pass exactly one of payment_id or booking_id")

    store = store or BookingStore()
    try:
        with store.atomic():
            payment = None
            if payment_id is not None:
                payment = store.lock_payment(payment_id)
                assert_payment_transition(payment.status, action.payment_status)
                booking = store.lock_booking(payment.booking_id) if payment.booking_id else None
            else:
                booking = store.lock_booking(booking_id)
                if booking.payment_status not in action.booking_sources:
                    raise InvalidStateTransition(
                        f"Cannot {action.name} a booking whose payment status is {booking.payment_status}",
                        current=booking.payment_status, target=action.booking_payment_status,
                    )
                # The booking's own transactions follow it.
                for linked in store.lock_booking_payments(booking.pk, payment_sources(action.payment_status)):
                    updated = store.update_payment_transaction_status(linked.pk, action.payment_status)
                    payment = payment or updated

            if payment_id is not None:
                payment = store.update_payment_transaction_status(payment.pk, action.payment_status)
            if booking is not None:
                if method:
                    store.update_booking_fields(booking.pk, payment_method=method)
                booking = store.update_booking_payment_status(booking.pk, action.booking_payment_status)
                if action is APPROVE and booking.status == Booking.Status.PENDING:
                    assert_booking_transition(booking.status, Booking.Status.CONFIRMED)
                    booking = store.update_booking_status(booking.pk, Booking.Status.CONFIRMED)
    except StorageUnavailable:
        logger.error(
            "%s of payment %s / booking %s rolled back after a storage failure",
            action.name, payment_id, booking_id,
        )
        raise

    logger.info(
        "%s: payment %s -> %s, booking %s -> %s",
        action.name,
        payment.pk if payment else None, payment.status if payment else None,
        booking.pk if booking else None, booking.payment_status if booking else None,
    )
    return Reconciliation(payment=payment, booking=booking)


def approve(*, payment_id=None, booking_id=None, method=None, store=None):
    return _reconcile(APPROVE, payment_id, booking_id, method, store)


def reject(*, payment_id=None, booking_id=None, store=None):
    return _reconcile(REJECT, payment_id, booking_id, None, store)


def refund(*, payment_id=None, booking_id=None, store=None):
    """Refund an approved payment. Anything else raises InvalidStateTransition."""
    return _reconcile(REFUND, payment_id, booking_id, None, store)


def outstanding_bookings():
    """Live bookings still waiting for payment, with no transaction required."""
    return (
        Booking.objects.filter(payment_status__in=list(OUTSTANDING_PAYMENT_STATUSES))
        .exclude(status=Booking.Status.CANCELLED)
        .select_related("room", "guest")
        .order_by("-created_at")
    )


def find_inconsistencies():
    """
    Bookings whose payment status disagrees with their latest transaction.

    Each entry is a dict naming the booking, the transaction and both
    statuses, for manual reconciliation.
    """
    latest = {}
    payments = (
        Payment.objects.filter(booking__isnull=False)
        .select_related("booking")
        .order_by("updated_at", "pk")
    )
    for payment in payments:
        latest[payment.booking_id] = payment

    issues = []
    for booking_id, payment in sorted(latest.items()):
        expected = EXPECTED_BOOKING_PAYMENT_STATUS.get(payment.status)
        if expected is not None and payment.booking.payment_status != expected:
            issues.append({
                "booking_id": booking_id,
                "payment_id": payment.pk,
                "payment_status": payment.status,
                "booking_payment_status": payment.booking.payment_status,
                "expected_booking_payment_status": expected,
            })
    if issues:
        logger.warning("%d booking(s) out of step with their payments", len(issues))
    return issues
