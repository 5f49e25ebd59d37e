from decimal import Decimal

from django.core.management.base import BaseCommand
from front_desk.models import Guest, Room


class Command(BaseCommand):
    help = 'Populate database with sample rooms and guests'

    def handle(self, *args, **options):
        rooms_data = [
            {'number': '101', 'room_type': Room.RoomType.SINGLE, 'rate': Decimal('120.00'),
             'description': 'Single room with city view'},
            {'number': '102', 'room_type': Room.RoomType.SINGLE, 'rate': Decimal('125.00'),
             'description': 'Single room with balcony'},
            {'number': '201', 'room_type': Room.RoomType.DOUBLE, 'rate': Decimal('180.00'),
             'description': 'Double room with garden view'},
            {'number': '202', 'room_type': Room.RoomType.DOUBLE, 'rate': Decimal('195.50'),
             'description': 'Double room with ocean view and mini bar'},
            {'number': '301', 'room_type': Room.RoomType.DOUBLE, 'rate': Decimal('240.00'),
             'description': 'Large double room with kitchenette'},
        ]

        for room_data in rooms_data:
            room, created = Room.objects.get_or_create(
                number=room_data['number'],
                defaults=room_data
            )

            if created:
                self.stdout.write(f'Created room: {room.number} - {room.get_room_type_display()}')
            else:
                self.stdout.write(f'Room {room.number} already exists')

        guests_data = [
            {'full_name': 'Ana Souza', 'email': 'ana.souza@example.com', 'phone': '+55 11 91234-5678'},
            {'full_name': 'Bruno Lima', 'email': 'bruno.lima@example.com', 'phone': '+55 21 99876-5432'},
        ]

        for guest_data in guests_data:
            guest, created = Guest.objects.get_or_create(
                email=guest_data['email'],
                defaults=guest_data
            )
            if created:
                self.stdout.write(f'Created guest: {guest.full_name}')

        self.stdout.write(
            self.style.SUCCESS('Successfully populated database with sample data')
        )
