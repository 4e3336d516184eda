from django.test import TestCase
from django.contrib.auth import get_user_model
from django.utils import timezone
from datetime import timedelta

from .models import Itinerary
from feedback.stores import DjangoTripDirectory


class ItineraryModelTest(TestCase):
    """Test cases for Itinerary model"""

    def setUp(self):
        """Set up test data"""
        User = get_user_model()
        self.user = User.objects.create_user(username='testuser', password='testpass')
        self.start_date = timezone.now()
        self.end_date = self.start_date + timedelta(days=7)

    def test_itinerary_creation(self):
        """Test creating an itinerary"""
        itinerary = Itinerary.objects.create(
            user=self.user,
            title='Paris Trip',
            destination='Paris',
            start_date=self.start_date,
            end_date=self.end_date,
        )
        self.assertEqual(itinerary.title, 'Paris Trip')
        self.assertEqual(itinerary.status, Itinerary.Status.DRAFT)
        self.assertEqual(str(itinerary), 'Paris Trip -> Paris (Draft)')

    def test_itineraries_ordered_newest_first(self):
        """Test default ordering"""
        older = Itinerary.objects.create(user=self.user, title='Old', destination='Rome')
        newer = Itinerary.objects.create(user=self.user, title='New', destination='Rome')
        Itinerary.objects.filter(pk=older.pk).update(created_at=self.start_date - timedelta(days=1))

        self.assertEqual(list(Itinerary.objects.all()), [newer, older])


class TripDirectoryTest(TestCase):
    """Test cases for resolving trips to destinations"""

    def setUp(self):
        """Set up test data"""
        User = get_user_model()
        self.user = User.objects.create_user(username='testuser', password='testpass')
        self.directory = DjangoTripDirectory()

    def test_entity_ids_for_destination(self):
        """Test listing trip ids of one destination"""
        kandy = Itinerary.objects.create(user=self.user, title='Temples', destination='Kandy')
        Itinerary.objects.create(user=self.user, title='Fort', destination='Galle')

        self.assertEqual(self.directory.entity_ids_for_destination('Kandy'), [str(kandy.id)])
        self.assertEqual(self.directory.entity_ids_for_destination('Nowhere'), [])

    def test_destination_for_entity(self):
        """Test looking up the destination of a trip id"""
        trip = Itinerary.objects.create(user=self.user, title='Temples', destination='Kandy')

        self.assertEqual(self.directory.destination_for_entity(str(trip.id)), 'Kandy')
        self.assertIsNone(self.directory.destination_for_entity('not-a-trip'))
