from django.contrib import admin

from .models import Booking, Guest, Payment, Room


@admin.register(Room)
class RoomAdmin(admin.ModelAdmin):
    list_display = ("number", "room_type", "rate", "status")
    list_filter = ("room_type", "status")


@admin.register(Guest)
class GuestAdmin(admin.ModelAdmin):
    list_display = ("full_name", "email", "stay_status")
    search_fields = ("full_name", "email")


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = ("id", "room", "guest", "check_in", "check_out", "status", "payment_status")
    list_filter = ("status", "payment_status")
    # Statuses move only through the lifecycle and reconciliation actions
    readonly_fields = ("status", "payment_status", "room", "guest")


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ("id", "booking", "amount", "method", "status", "payment_date")
    list_filter = ("status", "method")
    readonly_fields = ("status",)

    def has_delete_permission(self, request, obj=None):
        return False
