# Generated migration for initial trips app setup

from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion
import uuid


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Itinerary',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('title', models.CharField(help_text='User defined name for the trip', max_length=255)),
                ('destination', models.CharField(db_index=True, help_text="Destination the trip is planned for (e.g. 'Kandy')", max_length=255)),
                ('start_date', models.DateTimeField(blank=True, help_text='The scheduled beginning of the trip', null=True)),
                ('end_date', models.DateTimeField(blank=True, help_text='The scheduled end of the trip', null=True)),
                ('status', models.CharField(choices=[('DRAFT', 'Draft'), ('ACTIVE', 'Active'), ('COMPLETED', 'Completed'), ('ARCHIVED', 'Archived')], default='DRAFT', help_text='DRAFT, ACTIVE, COMPLETED, ARCHIVED', max_length=20)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('user', models.ForeignKey(help_text='Reference to the owner of the itinerary', on_delete=django.db.models.deletion.CASCADE, related_name='itineraries', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['-created_at'],
            },
        ),
        migrations.AddIndex(
            model_name='itinerary',
            index=models.Index(fields=['user', '-created_at'], name='trips_itine_user_id_5b2c7e_idx'),
        ),
        migrations.AddIndex(
            model_name='itinerary',
            index=models.Index(fields=['status'], name='trips_itine_status_9d4a1f_idx'),
        ),
    ]
