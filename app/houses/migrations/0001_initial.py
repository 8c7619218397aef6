from decimal import Decimal

import django.core.validators
import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="House",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("name", models.CharField(max_length=255)),
                (
                    "created_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="created_houses",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={"ordering": ["-created_at"]},
        ),
        migrations.CreateModel(
            name="HouseMember",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("is_active", models.BooleanField(db_index=True, default=True)),
                (
                    "house",
                    models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="members", to="houses.house"),
                ),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="house_memberships",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={"ordering": ["user_id"]},
        ),
        migrations.AddConstraint(
            model_name="housemember",
            constraint=models.UniqueConstraint(fields=("house", "user"), name="unique_house_member"),
        ),
        migrations.CreateModel(
            name="HouseService",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("name", models.CharField(max_length=255)),
                (
                    "service_type",
                    models.CharField(
                        choices=[
                            ("fixed_recurring", "Fixed Recurring"),
                            ("variable_recurring", "Variable Recurring"),
                            ("one_time", "One Time"),
                        ],
                        default="variable_recurring",
                        max_length=32,
                    ),
                ),
                (
                    "fee_category",
                    models.CharField(choices=[("card", "Card"), ("marketplace", "Marketplace")], default="card", max_length=16),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[("active", "Active"), ("pending", "Pending"), ("inactive", "Inactive")],
                        db_index=True,
                        default="active",
                        max_length=16,
                    ),
                ),
                (
                    "amount_cents",
                    models.PositiveBigIntegerField(blank=True, help_text="Monthly amount in cents for fixed recurring services", null=True),
                ),
                (
                    "create_day",
                    models.PositiveSmallIntegerField(
                        blank=True,
                        help_text="Day of month the recurring bill is generated",
                        null=True,
                        validators=[django.core.validators.MinValueValidator(1), django.core.validators.MaxValueValidator(31)],
                    ),
                ),
                (
                    "due_day",
                    models.PositiveSmallIntegerField(
                        blank=True,
                        help_text="Day of month the recurring bill is due",
                        null=True,
                        validators=[django.core.validators.MinValueValidator(1), django.core.validators.MaxValueValidator(31)],
                    ),
                ),
                (
                    "consent_required",
                    models.BooleanField(
                        default=False,
                        help_text="Roommates must authorize a payment method before charges are created",
                    ),
                ),
                (
                    "house",
                    models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="services", to="houses.house"),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [models.Index(fields=["service_type", "status", "create_day"], name="houseservice_recurring_idx")],
            },
        ),
        migrations.CreateModel(
            name="HouseStatusIndex",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                (
                    "score",
                    models.PositiveSmallIntegerField(
                        default=50,
                        validators=[django.core.validators.MinValueValidator(0), django.core.validators.MaxValueValidator(100)],
                    ),
                ),
                ("bracket", models.PositiveSmallIntegerField(default=5)),
                ("fee_multiplier", models.DecimalField(decimal_places=2, default=Decimal("1.00"), max_digits=4)),
                ("credit_multiplier", models.DecimalField(decimal_places=2, default=Decimal("1.00"), max_digits=4)),
                ("updated_reason", models.CharField(blank=True, default="", max_length=255)),
                (
                    "house",
                    models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name="status_index", to="houses.house"),
                ),
            ],
            options={
                "verbose_name": "House Status Index",
                "verbose_name_plural": "House Status Indexes",
            },
        ),
        migrations.AddConstraint(
            model_name="housestatusindex",
            constraint=models.CheckConstraint(
                condition=models.Q(("score__gte", 0), ("score__lte", 100)),
                name="hsi_score_in_range",
            ),
        ),
        migrations.CreateModel(
            name="HSIAdjustment",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                (
                    "outcome",
                    models.CharField(
                        choices=[
                            ("on_time_payment", "On-time Payment"),
                            ("late_payment", "Late Payment"),
                            ("default", "Default"),
                            ("manual_adjustment", "Manual Adjustment"),
                        ],
                        max_length=32,
                    ),
                ),
                ("delta", models.SmallIntegerField()),
                ("score_before", models.PositiveSmallIntegerField()),
                ("score_after", models.PositiveSmallIntegerField()),
                ("reason", models.CharField(blank=True, default="", max_length=255)),
                ("reference_key", models.CharField(blank=True, max_length=255, null=True, unique=True)),
                (
                    "index",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="adjustments",
                        to="houses.housestatusindex",
                    ),
                ),
            ],
            options={
                "verbose_name": "HSI Adjustment",
                "ordering": ["-created_at"],
            },
        ),
    ]
