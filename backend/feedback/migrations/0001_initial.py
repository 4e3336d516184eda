# Generated migration for initial feedback app setup

from django.db import migrations, models
import django.utils.timezone
import uuid


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='PlannerFeedback',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('user_id', models.CharField(db_index=True, max_length=64)),
                ('entity_id', models.CharField(db_index=True, help_text='Trip, destination or category key the rating refers to', max_length=64)),
                ('feedback_value', models.JSONField(default=dict, help_text="Either a bare rating or {'rating': int, 'categories': {name: sub_rating}}")),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'feedback_planner_feedback',
            },
        ),
        migrations.CreateModel(
            name='UserFeedbackSignal',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('user_id', models.CharField(max_length=64, unique=True)),
                ('trust_score', models.FloatField(default=0.5, help_text='Bayesian-smoothed trust in [0, 1]')),
                ('positive_count', models.IntegerField(default=0)),
                ('negative_count', models.IntegerField(default=0)),
                ('neutral_count', models.IntegerField(default=0)),
                ('version', models.PositiveIntegerField(default=0)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'feedback_user_signal',
            },
        ),
        migrations.CreateModel(
            name='UserCategoryWeight',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('user_id', models.CharField(max_length=64)),
                ('category', models.CharField(max_length=100)),
                ('weight', models.FloatField(default=1.0)),
                ('feedback_count', models.PositiveIntegerField(default=0)),
                ('version', models.PositiveIntegerField(default=0)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'feedback_user_category_weight',
            },
        ),
        migrations.AddConstraint(
            model_name='plannerfeedback',
            constraint=models.UniqueConstraint(fields=('user_id', 'entity_id'), name='unique_user_entity_feedback'),
        ),
        migrations.AddIndex(
            model_name='plannerfeedback',
            index=models.Index(fields=['user_id', 'created_at'], name='feedback_pl_user_id_7c1f0a_idx'),
        ),
        migrations.AddConstraint(
            model_name='usercategoryweight',
            constraint=models.UniqueConstraint(fields=('user_id', 'category'), name='unique_user_category_weight'),
        ),
        migrations.AddIndex(
            model_name='usercategoryweight',
            index=models.Index(fields=['weight'], name='feedback_us_weight_3e9b2d_idx'),
        ),
    ]
