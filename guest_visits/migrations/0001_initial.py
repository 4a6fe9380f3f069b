import django.db.models.deletion
import providers.models
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("clinics", "0001_initial"),
        ("providers", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="GuestAffiliation",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("date", models.DateField()),
                ("window_start", models.TimeField()),
                ("window_end", models.TimeField()),
                (
                    "slot_duration_minutes",
                    models.PositiveIntegerField(
                        default=providers.models.default_slot_duration,
                        validators=[providers.models.validate_slot_minutes],
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[("PENDING", "Pending"), ("CONFIRMED", "Confirmed"), ("CANCELLED", "Cancelled")],
                        default="PENDING",
                        max_length=20,
                    ),
                ),
                (
                    "initiated_by",
                    models.CharField(choices=[("HOST", "Host location"), ("PROVIDER", "Provider")], max_length=20),
                ),
                ("note", models.TextField(blank=True, help_text="Message from the party that proposed the visit.")),
                (
                    "response_note",
                    models.TextField(blank=True, help_text="Message attached to the latest response."),
                ),
                ("responded_at", models.DateTimeField(blank=True, null=True)),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "host_location",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="guest_affiliations",
                        to="clinics.clinic",
                    ),
                ),
                (
                    "provider",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="guest_affiliations",
                        to="providers.provider",
                    ),
                ),
            ],
            options={
                "verbose_name": "Guest Visit",
                "verbose_name_plural": "Guest Visits",
                "ordering": ["date", "window_start"],
                "indexes": [
                    models.Index(fields=["provider", "date", "status"], name="guest_provider_day_status"),
                ],
            },
        ),
    ]
