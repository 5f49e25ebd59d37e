import logging

from .availability import available_rooms_qs
from .exceptions import ValidationError
from .models import Room
from .pricing import validate_stay
from .storage import BookingStore

logger = logging.getLogger(__name__)


def list_rooms(room_type=None, status=None, number=None, max_rate=None):
    qs = Room.objects.all()
    if room_type:
        qs = qs.filter(room_type=room_type)
    if status:
        qs = qs.filter(status=status)
    if number:
        qs = qs.filter(number__startswith=number)
    if max_rate is not None:
        qs = qs.filter(rate__lte=max_rate)
    return qs.order_by("number")


def get_room(room_id, store=None):
    store = store or BookingStore()
    return store.get_room(room_id)


def set_occupancy(room_id, status, store=None):
    """Set a room's occupancy status. Setting the current status again is a no-op."""
    if status not in Room.Status.values:
        raise ValidationError(f"Unknown room status: {status!r}")
    store = store or BookingStore()
    room = store.get_room(room_id)
    if room.status == status:
        return room
    room = store.set_room_status(room_id, status)
    logger.info("Room %s is now %s", room.number, status)
    return room


def available_rooms(check_in, check_out, max_rate=None, room_type=None):
    """Rooms with no blocking booking over [check_in, check_out)."""
    validate_stay(check_in, check_out)
    qs = available_rooms_qs(check_in, check_out, max_rate)
    if room_type:
        qs = qs.filter(room_type=room_type)
    return qs.order_by("number")
