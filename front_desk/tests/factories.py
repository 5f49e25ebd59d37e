from datetime import date
from decimal import Decimal
from itertools import count

from front_desk.models import Booking, Guest, Room

_numbers = count(100)

JUNE_10 = date(2024, 6, 10)
JUNE_12 = date(2024, 6, 12)
JUNE_13 = date(2024, 6, 13)
JUNE_15 = date(2024, 6, 15)
JUNE_18 = date(2024, 6, 18)


def make_room(rate="150.00", **fields):
    fields.setdefault("number", str(next(_numbers)))
    return Room.objects.create(rate=Decimal(rate), **fields)


def make_guest(email="guest@example.com", **fields):
    fields.setdefault("full_name", "Test Guest")
    return Guest.objects.create(email=email, **fields)


def make_booking(room, guest, check_in=JUNE_10, check_out=JUNE_15, **fields):
    fields.setdefault("total_amount", room.rate * (check_out - check_in).days)
    return Booking.objects.create(room=room, guest=guest, check_in=check_in, check_out=check_out, **fields)
