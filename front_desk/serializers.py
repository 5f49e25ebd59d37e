from decimal import Decimal

from django.db import transaction
from rest_framework import serializers

from . import lifecycle, reconciliation
from .models import Booking, Guest, Payment, Room
from .pricing import nights_between


class RoomSerializer(serializers.ModelSerializer):

    class Meta:
        model = Room
        fields = '__all__'
        # Occupancy changes go through the occupancy action.
        read_only_fields = ['status', 'created_at', 'updated_at']


class GuestSerializer(serializers.ModelSerializer):

    class Meta:
        model = Guest
        fields = '__all__'
        read_only_fields = ['stay_status', 'created_at']


class GuestInput(serializers.Serializer):
    full_name = serializers.CharField()
    email = serializers.EmailField()
    phone = serializers.CharField(allow_blank=True, required=False)
    document_number = serializers.CharField(allow_blank=True, required=False)


class BookingSerializer(serializers.ModelSerializer):
    room_id = serializers.IntegerField()
    room = RoomSerializer(read_only=True)
    guest_id = serializers.IntegerField(required=False)
    guest = GuestSerializer(read_only=True)
    new_guest = GuestInput(write_only=True, required=False)  # <-- Registers the guest on the fly
    check_in = serializers.DateField()
    check_out = serializers.DateField()
    status = serializers.ChoiceField(choices=Booking.Status.choices, required=False)
    payment_status = serializers.ChoiceField(choices=Booking.PaymentStatus.choices, required=False)
    total_amount = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0, required=False)
    client_token = serializers.UUIDField(write_only=True, required=False)

    class Meta:
        model = Booking
        fields = [
            'id', 'room_id', 'room', 'guest_id', 'guest', 'new_guest', 'check_in', 'check_out',
            'status', 'payment_status', 'payment_method', 'total_amount', 'client_token',
            'created_at', 'updated_at',
        ]
        read_only_fields = ['created_at', 'updated_at']

    def to_representation(self, instance):
        data = super().to_representation(instance)
        data['nights'] = (instance.check_out - instance.check_in).days
        return data

    def validate(self, data):
        # For updates, fall back to the stored dates when only one is provided
        check_in = data.get('check_in')
        check_out = data.get('check_out')
        if self.instance:
            check_in = check_in or self.instance.check_in
            check_out = check_out or self.instance.check_out

        if check_in and check_out and check_out <= check_in:
            raise serializers.ValidationError("check_out must be after check_in")

        if self.instance is None:
            if 'guest_id' not in data and 'new_guest' not in data:
                raise serializers.ValidationError("Either guest_id or new_guest is required")
            if 'total_amount' in data:
                raise serializers.ValidationError("total_amount is computed when the booking is created")
        else:
            # Statuses change only through the lifecycle and payment actions
            for field in ('status', 'payment_status', 'client_token', 'new_guest'):
                if field in data:
                    raise serializers.ValidationError(f"{field} cannot be changed here")
            if 'guest_id' in data and data['guest_id'] != self.instance.guest_id:
                raise serializers.ValidationError("The guest of a booking cannot be changed")

        return data

    def create(self, validated):
        # A guest registered for a booking that is then refused is not kept
        with transaction.atomic():
            if 'new_guest' in validated:
                guest_data = validated['new_guest']
                guest, _ = Guest.objects.get_or_create(
                    email=guest_data['email'],
                    defaults=dict(
                        full_name=guest_data['full_name'],
                        phone=guest_data.get('phone', ''),
                        document_number=guest_data.get('document_number', ''),
                    )
                )
                guest_id = guest.pk
            else:
                guest_id = validated['guest_id']

            return lifecycle.create_booking(
                validated['room_id'],
                guest_id,
                validated['check_in'],
                validated['check_out'],
                status=validated.get('status', Booking.Status.PENDING),
                payment_status=validated.get('payment_status', Booking.PaymentStatus.UNPAID),
                payment_method=validated.get('payment_method', ''),
                client_token=validated.get('client_token'),
            )

    def update(self, instance, validated_data):
        return lifecycle.update_booking(
            instance.pk,
            room_id=validated_data.get('room_id'),
            check_in=validated_data.get('check_in'),
            check_out=validated_data.get('check_out'),
            total_amount=validated_data.get('total_amount'),
            payment_method=validated_data.get('payment_method'),
        )


class PaymentSerializer(serializers.ModelSerializer):
    booking_id = serializers.IntegerField(required=False, allow_null=True)
    amount = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal("0.01"))

    class Meta:
        model = Payment
        fields = ['id', 'booking_id', 'amount', 'method', 'status', 'payment_date', 'notes',
                  'created_at', 'updated_at']
        read_only_fields = ['status', 'created_at', 'updated_at']

    def create(self, validated):
        return reconciliation.record_payment(
            validated['amount'],
            validated['method'],
            booking_id=validated.get('booking_id'),
            payment_date=validated.get('payment_date'),
            notes=validated.get('notes', ''),
        )


class OutstandingBookingSerializer(serializers.ModelSerializer):
    """A booking awaiting payment, shaped like a payment transaction."""

    booking_id = serializers.IntegerField(source='pk')
    amount = serializers.DecimalField(source='total_amount', max_digits=10, decimal_places=2)
    method = serializers.CharField(source='payment_method')
    guest_name = serializers.CharField(source='guest.full_name')
    room_number = serializers.CharField(source='room.number')

    class Meta:
        model = Booking
        fields = ['booking_id', 'amount', 'method', 'payment_status', 'guest_name', 'room_number',
                  'created_at']


class StayQuery(serializers.Serializer):
    check_in = serializers.DateField()
    check_out = serializers.DateField()
    room_id = serializers.IntegerField(required=False)
    exclude_booking_id = serializers.IntegerField(required=False)

    def validate(self, data):
        if data['check_out'] <= data['check_in']:
            raise serializers.ValidationError("check_out must be after check_in")
        data['nights'] = nights_between(data['check_in'], data['check_out'])
        return data


class OccupancyInput(serializers.Serializer):
    status = serializers.ChoiceField(choices=Room.Status.choices)


class ReconcileInput(serializers.Serializer):
    method = serializers.CharField(required=False, allow_blank=True)
