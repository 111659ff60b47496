# Track the rendered feed content per token so Last-Modified moves on deletions

from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ("household_calendar", "0001_initial"),
    ]

    operations = [
        migrations.AddField(
            model_name="calendarfeedtoken",
            name="content_digest",
            field=models.CharField(blank=True, max_length=64),
        ),
        migrations.AddField(
            model_name="calendarfeedtoken",
            name="content_last_modified",
            field=models.DateTimeField(blank=True, null=True),
        ),
    ]
