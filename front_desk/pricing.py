from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from .exceptions import ValidationError
from .storage import BookingStore, engine_setting

CENT = Decimal("0.01")


def validate_stay(check_in, check_out):
    if not isinstance(check_in, date) or not isinstance(check_out, date):
        raise ValidationError("check_in and check_out must be dates")
    if check_out <= check_in:
        raise ValidationError("check_out must be after check_in")


def nights_between(check_in, check_out):
    nights = (check_out - check_in).days
    if nights <= 0:
        raise ValidationError("A stay must last at least one night")
    return nights


def to_amount(value):
    """Coerce to a two-place Decimal, rounding half up."""
    try:
        return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f"Invalid amount: {value!r}")


def compute_total(nightly_rate, check_in, check_out):
    """Total charge for a stay: nightly rate times whole nights."""
    try:
        rate = Decimal(str(nightly_rate))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f"Invalid nightly rate: {nightly_rate!r}")
    if rate <= 0:
        raise ValidationError("Nightly rate must be positive")
    nights = nights_between(check_in, check_out)
    return (rate * nights).quantize(CENT, rounding=ROUND_HALF_UP)


def quote_total(room, check_in, check_out, store=None):
    """
    Seed a booking total for ``room``.

    Uses the database-side calculation when SERVER_SIDE_CALCULATIONS is on,
    otherwise ``compute_total``. Both give the same amount.
    """
    validate_stay(check_in, check_out)
    if engine_setting("SERVER_SIDE_CALCULATIONS"):
        store = store or BookingStore()
        return to_amount(store.calculate_booking_total(room.pk, check_in, check_out))
    return compute_total(room.rate, check_in, check_out)
