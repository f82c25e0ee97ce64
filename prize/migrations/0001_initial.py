import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Prize",
            fields=[
                ("id", models.CharField(max_length=64, primary_key=True, serialize=False)),
                ("name_zh", models.CharField(max_length=255)),
                ("name_en", models.CharField(max_length=255)),
                ("total", models.PositiveIntegerField(default=0)),
                ("remaining", models.PositiveIntegerField(default=0)),
                ("image_icon", models.CharField(blank=True, max_length=512)),
                ("image_photo", models.CharField(blank=True, max_length=512)),
                (
                    "photo_link",
                    models.CharField(blank=True, default=None, max_length=512, null=True),
                ),
            ],
            options={
                "ordering": ["id"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("remaining__lte", models.F("total"))),
                        name="prize_remaining_within_total",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Allocation",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                ("requester_id", models.CharField(max_length=128, unique=True)),
                ("requester_name", models.CharField(max_length=128)),
                ("prize_name_zh", models.CharField(max_length=255)),
                ("prize_name_en", models.CharField(max_length=255)),
                ("origin_address", models.CharField(blank=True, db_index=True, max_length=64)),
                (
                    "created_at",
                    models.DateTimeField(db_index=True, default=django.utils.timezone.now),
                ),
                (
                    "prize",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="allocations",
                        to="prize.prize",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at", "-id"],
            },
        ),
    ]
