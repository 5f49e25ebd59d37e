from datetime import datetime
from decimal import Decimal, InvalidOperation

from django.db.models import ProtectedError
from django.http import JsonResponse
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action, api_view
from rest_framework.response import Response
from rest_framework.views import exception_handler

from . import exceptions, lifecycle, metrics, reconciliation, registry
from .availability import is_available
from .models import Booking, Guest, Payment, Room
from .pricing import quote_total
from .serializers import (
    BookingSerializer,
    GuestSerializer,
    OccupancyInput,
    OutstandingBookingSerializer,
    PaymentSerializer,
    ReconcileInput,
    RoomSerializer,
    StayQuery,
)

ERROR_STATUS = {
    exceptions.ValidationError: status.HTTP_400_BAD_REQUEST,
    exceptions.NotFound: status.HTTP_404_NOT_FOUND,
    exceptions.ConflictError: status.HTTP_409_CONFLICT,
    exceptions.InvalidStateTransition: status.HTTP_409_CONFLICT,
    exceptions.StorageUnavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def front_desk_exception_handler(exc, context):
    """Render engine errors as ``{"error", "code", "details"}`` responses."""
    if isinstance(exc, exceptions.FrontDeskError):
        http_status = next(
            (code for cls, code in ERROR_STATUS.items() if isinstance(exc, cls)),
            status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
        return Response({'error': exc.message, 'code': exc.code, 'details': exc.details},
                        status=http_status)
    if isinstance(exc, ProtectedError):
        # Rooms and guests with bookings are kept
        blocking = sorted(obj.pk for obj in exc.protected_objects)
        return Response({'error': 'Still referenced by bookings', 'code': exceptions.ConflictError.code,
                         'details': {'booking_ids': blocking}},
                        status=status.HTTP_409_CONFLICT)
    return exception_handler(exc, context)


def welcome(request):
    return JsonResponse({"message": "Welcome to the Hotel Front Desk"})


def health_check(request):
    return JsonResponse({"status": "ok"})


class RoomViewSet(viewsets.ModelViewSet):
    queryset = Room.objects.all()
    lookup_value_regex = r'\d+'
    serializer_class = RoomSerializer

    def list(self, request):
        """List rooms, optionally only those free for a date range"""
        params = request.query_params
        check_in_str = params.get('check_in')
        check_out_str = params.get('check_out')

        try:
            max_rate = Decimal(params['max_rate']) if params.get('max_rate') else None
        except InvalidOperation:
            return Response({'error': 'Invalid max_rate'}, status=status.HTTP_400_BAD_REQUEST)

        if check_in_str and check_out_str:
            try:
                check_in = datetime.strptime(check_in_str, '%Y-%m-%d').date()
                check_out = datetime.strptime(check_out_str, '%Y-%m-%d').date()
            except ValueError:
                return Response({'error': 'Invalid date format. Use YYYY-MM-DD'},
                                status=status.HTTP_400_BAD_REQUEST)
            if check_out <= check_in:
                return Response({'error': 'check_out must be after check_in'},
                                status=status.HTTP_400_BAD_REQUEST)
            rooms = registry.available_rooms(check_in, check_out, max_rate, params.get('room_type'))
        else:
            rooms = registry.list_rooms(
                room_type=params.get('room_type'),
                status=params.get('status'),
                number=params.get('number'),
                max_rate=max_rate,
            )

        serializer = self.get_serializer(rooms, many=True)
        return Response(serializer.data)

    @action(detail=True, methods=['post'])
    def occupancy(self, request, pk=None):
        """Set the room's occupancy status (Available, Occupied, Cleaning)"""
        data = OccupancyInput(data=request.data)
        data.is_valid(raise_exception=True)
        room = registry.set_occupancy(pk, data.validated_data['status'])
        return Response(self.get_serializer(room).data)

    @action(detail=True, methods=['get'])
    def availability(self, request, pk=None):
        """Whether the room is free for check_in..check_out, with a price quote"""
        query = StayQuery(data=request.query_params)
        query.is_valid(raise_exception=True)
        stay = query.validated_data
        room = registry.get_room(pk)
        return Response({
            'room_id': room.pk,
            'check_in': stay['check_in'],
            'check_out': stay['check_out'],
            'available': is_available(room.pk, stay['check_in'], stay['check_out'],
                                      stay.get('exclude_booking_id')),
            'nights': stay['nights'],
            'total_amount': quote_total(room, stay['check_in'], stay['check_out']),
        })


class GuestViewSet(viewsets.ModelViewSet):
    queryset = Guest.objects.all()
    serializer_class = GuestSerializer


class BookingViewSet(viewsets.ModelViewSet):
    queryset = Booking.objects.select_related('room', 'guest')
    lookup_value_regex = r'\d+'
    serializer_class = BookingSerializer
    # Bookings are cancelled, never deleted
    http_method_names = ['get', 'post', 'patch', 'head', 'options']

    @action(detail=False, methods=['get'])
    def by_email(self, request):
        """Get bookings by guest email"""
        email = request.query_params.get('email')
        if not email:
            return Response({'error': 'Email parameter is required'},
                            status=status.HTTP_400_BAD_REQUEST)

        bookings = self.get_queryset().filter(guest__email=email).order_by('-created_at')
        serializer = self.get_serializer(bookings, many=True)
        return Response(serializer.data)

    @action(detail=False, methods=['get'])
    def quote(self, request):
        """Price a prospective stay without creating anything"""
        query = StayQuery(data=request.query_params)
        query.is_valid(raise_exception=True)
        stay = query.validated_data
        if 'room_id' not in stay:
            return Response({'error': 'room_id parameter is required'},
                            status=status.HTTP_400_BAD_REQUEST)
        room = registry.get_room(stay['room_id'])
        return Response({
            'room_id': room.pk,
            'nights': stay['nights'],
            'total_amount': quote_total(room, stay['check_in'], stay['check_out']),
        })

    def _respond(self, booking):
        return Response(self.get_serializer(booking).data)

    @action(detail=True, methods=['post'])
    def confirm(self, request, pk=None):
        return self._respond(lifecycle.confirm_booking(pk))

    @action(detail=True, methods=['post'])
    def check_in(self, request, pk=None):
        return self._respond(lifecycle.check_in(pk))

    @action(detail=True, methods=['post'])
    def check_out(self, request, pk=None):
        return self._respond(lifecycle.check_out(pk))

    @action(detail=True, methods=['post'])
    def cancel(self, request, pk=None):
        return self._respond(lifecycle.cancel_booking(pk))

    @action(detail=True, methods=['post'])
    def approve_payment(self, request, pk=None):
        """Mark the booking paid without a separate payment transaction"""
        data = ReconcileInput(data=request.data)
        data.is_valid(raise_exception=True)
        result = reconciliation.approve(booking_id=pk, method=data.validated_data.get('method'))
        return self._respond(result.booking)

    @action(detail=True, methods=['post'])
    def reject_payment(self, request, pk=None):
        return self._respond(reconciliation.reject(booking_id=pk).booking)

    @action(detail=True, methods=['post'])
    def refund_payment(self, request, pk=None):
        return self._respond(reconciliation.refund(booking_id=pk).booking)


class PaymentViewSet(mixins.CreateModelMixin,
                     mixins.ListModelMixin,
                     mixins.RetrieveModelMixin,
                     viewsets.GenericViewSet):
    """Payment transactions are only ever transitioned, never edited or deleted."""

    queryset = Payment.objects.all()
    lookup_value_regex = r'\d+'
    serializer_class = PaymentSerializer

    def get_queryset(self):
        qs = super().get_queryset()
        if self.request.query_params.get('booking_id'):
            qs = qs.filter(booking_id=self.request.query_params['booking_id'])
        if self.request.query_params.get('status'):
            qs = qs.filter(status=self.request.query_params['status'])
        return qs

    def _respond(self, result):
        return Response({
            'payment': self.get_serializer(result.payment).data,
            'booking': BookingSerializer(result.booking).data if result.booking else None,
        })

    @action(detail=True, methods=['post'])
    def approve(self, request, pk=None):
        return self._respond(reconciliation.approve(payment_id=pk))

    @action(detail=True, methods=['post'])
    def reject(self, request, pk=None):
        return self._respond(reconciliation.reject(payment_id=pk))

    @action(detail=True, methods=['post'])
    def refund(self, request, pk=None):
        return self._respond(reconciliation.refund(payment_id=pk))

    @action(detail=False, methods=['get'])
    def outstanding(self, request):
        """Bookings still awaiting payment, listed alongside transactions"""
        bookings = reconciliation.outstanding_bookings()
        return Response(OutstandingBookingSerializer(bookings, many=True).data)

    @action(detail=False, methods=['get'])
    def inconsistencies(self, request):
        return Response(reconciliation.find_inconsistencies())


@api_view(['GET'])
def dashboard_report(request):
    return Response(metrics.dashboard_metrics())


@api_view(['GET'])
def payment_report(request):
    return Response(metrics.payment_summary())
