from django.urls import path
from rest_framework.routers import DefaultRouter
from front_desk.views import (
    BookingViewSet,
    GuestViewSet,
    PaymentViewSet,
    RoomViewSet,
    dashboard_report,
    payment_report,
)

router = DefaultRouter()
router.register(r'rooms', RoomViewSet)
router.register(r'guests', GuestViewSet)
router.register(r'bookings', BookingViewSet)
router.register(r'payments', PaymentViewSet)

urlpatterns = router.urls + [
    path('reports/dashboard/', dashboard_report, name='dashboard-report'),
    path('reports/payments/', payment_report, name='payment-report'),
]
