from datetime import date
from decimal import Decimal

from django.db.models import Count, Exists, OuterRef, Sum

from .models import Booking, Guest, Payment, Room
from .pricing import CENT
from .reconciliation import OUTSTANDING_PAYMENT_STATUSES

ZERO = Decimal("0.00")


def _sum(qs, field):
    return (qs.aggregate(total=Sum(field))["total"] or ZERO).quantize(CENT)


def _revenue(payments, bookings):
    """
    Approved transactions plus bookings marked Paid without one.

    A booking settled through an approved transaction is counted once.
    """
    approved = payments.filter(status=Payment.Status.APPROVED)
    settled_by_payment = Exists(approved.filter(booking=OuterRef("pk")))
    paid_bookings = bookings.filter(payment_status=Booking.PaymentStatus.PAID).exclude(settled_by_payment)
    return _sum(approved, "amount") + _sum(paid_bookings, "total_amount")


def dashboard_metrics(today=None):
    today = today or date.today()
    rooms = Room.objects.all()
    total_rooms = rooms.count()
    occupied = rooms.filter(status=Room.Status.OCCUPIED).count()
    available = rooms.filter(status=Room.Status.AVAILABLE).count()

    payments = Payment.objects.all()
    bookings = Booking.objects.all()
    month_payments = payments.filter(created_at__year=today.year, created_at__month=today.month)
    month_bookings = bookings.filter(created_at__year=today.year, created_at__month=today.month)

    return {
        "total_rooms": total_rooms,
        "occupied_rooms": occupied,
        "available_rooms": available,
        "occupancy_rate": round(occupied * 100 / total_rooms, 2) if total_rooms else 0,
        "total_revenue": _revenue(payments, bookings),
        "monthly_revenue": _revenue(month_payments, month_bookings),
        "pending_bookings": bookings.filter(
            status__in=[Booking.Status.PENDING, Booking.Status.CONFIRMED]
        ).count(),
        "today_check_ins": bookings.filter(
            check_in=today, status__in=[Booking.Status.PENDING, Booking.Status.CONFIRMED]
        ).count(),
        "today_check_outs": bookings.filter(check_out=today, status=Booking.Status.CHECKED_IN).count(),
        "staying_guests": Guest.objects.filter(stay_status=Guest.StayStatus.STAYING).count(),
    }


def payment_summary():
    by_status = {
        status: {"count": 0, "amount": ZERO}
        for status in Payment.Status.values
    }
    rows = Payment.objects.values("status").annotate(count=Count("pk"), amount=Sum("amount"))
    for row in rows:
        by_status[row["status"]] = {
            "count": row["count"],
            "amount": (row["amount"] or ZERO).quantize(CENT),
        }

    outstanding = Booking.objects.filter(
        payment_status__in=list(OUTSTANDING_PAYMENT_STATUSES)
    ).exclude(status=Booking.Status.CANCELLED)
    return {
        "by_status": by_status,
        "outstanding_bookings": outstanding.count(),
        "outstanding_amount": _sum(outstanding, "total_amount"),
    }
