import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models

import model_utils.fields


def _timestamp_fields():
    return [
        (
            "id",
            models.BigAutoField(
                auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
            ),
        ),
        (
            "created",
            model_utils.fields.AutoCreatedField(
                db_index=True,
                default=django.utils.timezone.now,
                editable=False,
                verbose_name="created",
            ),
        ),
        (
            "modified",
            model_utils.fields.AutoLastModifiedField(
                db_index=True,
                default=django.utils.timezone.now,
                editable=False,
                verbose_name="modified",
            ),
        ),
    ]


def _household_field():
    return (
        "household",
        models.ForeignKey(
            help_text="The household this row belongs to.",
            on_delete=django.db.models.deletion.CASCADE,
            related_name="+",
            to="households.household",
        ),
    )


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("households", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="CalendarEvent",
            fields=[
                *_timestamp_fields(),
                _household_field(),
                ("title", models.CharField(max_length=255)),
                ("description", models.TextField(blank=True)),
                ("location", models.CharField(blank=True, max_length=500)),
                ("start_time", models.DateTimeField(db_index=True)),
                ("end_time", models.DateTimeField()),
                ("is_all_day", models.BooleanField(default=False)),
                (
                    "recurrence_rule",
                    models.CharField(
                        blank=True,
                        help_text="RRULE text (FREQ, INTERVAL, BYDAY, BYMONTHDAY, COUNT, UNTIL). Empty for single events.",
                        max_length=500,
                        null=True,
                    ),
                ),
                (
                    "recurrence_end_date",
                    models.DateTimeField(
                        blank=True,
                        db_index=True,
                        help_text="Occurrences starting after this instant are not generated. Set when the series is split.",
                        null=True,
                    ),
                ),
                ("reminder_minutes_before", models.PositiveIntegerField(blank=True, null=True)),
                ("color", models.CharField(blank=True, max_length=50)),
                (
                    "created_by",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="created_calendar_events",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "parent_event",
                    models.ForeignKey(
                        blank=True,
                        help_text="If this is a continuation of a split series",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="continuations",
                        to="household_calendar.calendarevent",
                    ),
                ),
            ],
            options={
                "ordering": ("start_time", "id"),
            },
        ),
        migrations.CreateModel(
            name="CalendarEventMember",
            fields=[
                *_timestamp_fields(),
                (
                    "participation_type",
                    models.CharField(
                        choices=[("involved", "Involved"), ("aware", "Aware")],
                        default="involved",
                        max_length=20,
                    ),
                ),
                (
                    "event",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="members",
                        to="household_calendar.calendarevent",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="calendar_event_memberships",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "constraints": [
                    models.UniqueConstraint(
                        fields=("event", "user"), name="unique_calendar_event_member"
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="CalendarEventException",
            fields=[
                *_timestamp_fields(),
                (
                    "original_start",
                    models.DateTimeField(
                        help_text="Start of the occurrence as generated by the recurrence rule"
                    ),
                ),
                ("is_deleted", models.BooleanField(default=False)),
                ("title", models.CharField(blank=True, max_length=255, null=True)),
                ("description", models.TextField(blank=True, null=True)),
                ("location", models.CharField(blank=True, max_length=500, null=True)),
                ("start_time", models.DateTimeField(blank=True, null=True)),
                ("end_time", models.DateTimeField(blank=True, null=True)),
                ("is_all_day", models.BooleanField(blank=True, null=True)),
                (
                    "event",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="exceptions",
                        to="household_calendar.calendarevent",
                    ),
                ),
            ],
            options={
                "ordering": ("original_start",),
                "constraints": [
                    models.UniqueConstraint(
                        fields=("event", "original_start"),
                        name="unique_calendar_event_exception",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="ExternalCalendarSubscription",
            fields=[
                *_timestamp_fields(),
                _household_field(),
                ("name", models.CharField(max_length=255)),
                ("ics_url", models.URLField(max_length=2000)),
                ("color", models.CharField(blank=True, max_length=50)),
                ("sync_interval_minutes", models.PositiveIntegerField(default=60)),
                ("last_synced_at", models.DateTimeField(blank=True, null=True)),
                ("last_sync_status", models.CharField(blank=True, max_length=500)),
                ("is_active", models.BooleanField(default=True)),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="external_calendar_subscriptions",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ("name", "id"),
            },
        ),
        migrations.CreateModel(
            name="ExternalCalendarEvent",
            fields=[
                *_timestamp_fields(),
                (
                    "external_uid",
                    models.CharField(
                        help_text="UID of the event in the external feed, used to deduplicate re-imports",
                        max_length=500,
                    ),
                ),
                ("title", models.CharField(blank=True, max_length=255)),
                ("description", models.TextField(blank=True)),
                ("location", models.CharField(blank=True, max_length=500)),
                ("start_time", models.DateTimeField(db_index=True)),
                ("end_time", models.DateTimeField()),
                ("is_all_day", models.BooleanField(default=False)),
                (
                    "subscription",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="events",
                        to="household_calendar.externalcalendarsubscription",
                    ),
                ),
            ],
            options={
                "ordering": ("start_time", "id"),
                "constraints": [
                    models.UniqueConstraint(
                        fields=("subscription", "external_uid"),
                        name="unique_external_calendar_event_uid",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="CalendarFeedToken",
            fields=[
                *_timestamp_fields(),
                _household_field(),
                ("token", models.CharField(max_length=64, unique=True)),
                ("label", models.CharField(blank=True, max_length=100)),
                ("is_revoked", models.BooleanField(default=False)),
                ("last_accessed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="calendar_feed_tokens",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ("-created",),
            },
        ),
    ]
