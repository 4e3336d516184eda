import uuid

from django.db import models
from django.conf import settings


class Itinerary(models.Model):
    """
    Database entity representing a planned trip. Feedback rows reference an
    itinerary by its id; destination aggregations resolve through this table.
    """

    class Status(models.TextChoices):
        """Enum for trip status"""
        DRAFT = 'DRAFT', 'Draft'
        ACTIVE = 'ACTIVE', 'Active'
        COMPLETED = 'COMPLETED', 'Completed'
        ARCHIVED = 'ARCHIVED', 'Archived'

    # Primary Key
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # Foreign Keys
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='itineraries',
        help_text="Reference to the owner of the itinerary"
    )

    # Basic Information
    title = models.CharField(
        max_length=255,
        help_text="User defined name for the trip"
    )
    destination = models.CharField(
        max_length=255,
        db_index=True,
        help_text="Destination the trip is planned for (e.g. 'Kandy')"
    )

    # Date & Time
    start_date = models.DateTimeField(
        null=True,
        blank=True,
        help_text="The scheduled beginning of the trip"
    )
    end_date = models.DateTimeField(
        null=True,
        blank=True,
        help_text="The scheduled end of the trip"
    )

    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.DRAFT,
        help_text="DRAFT, ACTIVE, COMPLETED, ARCHIVED"
    )

    # Timestamp
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['user', '-created_at'], name='trips_itine_user_id_5b2c7e_idx'),
            models.Index(fields=['status'], name='trips_itine_status_9d4a1f_idx'),
        ]

    def __str__(self):
        return f"{self.title} -> {self.destination} ({self.get_status_display()})"
