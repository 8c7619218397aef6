from decimal import Decimal

import django.core.validators
import django.db.models.deletion
import django.utils.timezone
import django_fsm
from django.conf import settings
from django.db import migrations, models


def id_field():
    return ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID"))


def timestamps():
    return [
        ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
        ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
    ]


def metadata_field():
    return ("metadata", models.JSONField(blank=True, default=dict, help_text="Flexible key-value metadata storage"))


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ("houses", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="HouseServiceLedger",
            fields=[
                id_field(),
                *timestamps(),
                metadata_field(),
                (
                    "version",
                    models.PositiveIntegerField(
                        default=1,
                        help_text="Version for optimistic locking - incremented on each save",
                    ),
                ),
                ("funding_required_cents", models.BigIntegerField(default=0)),
                ("service_fee_cents", models.BigIntegerField(default=0)),
                ("total_required_cents", models.BigIntegerField(default=0)),
                ("funded_cents", models.BigIntegerField(default=0)),
                ("amount_fronted_cents", models.BigIntegerField(default=0)),
                ("cycle_start", models.DateTimeField(default=django.utils.timezone.now)),
                ("cycle_end", models.DateTimeField(blank=True, null=True)),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[("active", "Active"), ("closed", "Closed")],
                        db_index=True,
                        default="active",
                        help_text="Cycle state (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                ("accrual_sequence", models.PositiveIntegerField(default=0)),
                ("billed_sequence", models.PositiveIntegerField(default=0)),
                ("billed_base_cents", models.BigIntegerField(default=0)),
                ("reconciliation_hold", models.BooleanField(db_index=True, default=False)),
                ("reconciliation_note", models.TextField(blank=True, default="")),
                ("closed_on_time", models.BooleanField(blank=True, null=True)),
                (
                    "house_service",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="ledgers",
                        to="houses.houseservice",
                    ),
                ),
            ],
            options={"ordering": ["-cycle_start"], "verbose_name": "House Service Ledger"},
        ),
        migrations.AddConstraint(
            model_name="houseserviceledger",
            constraint=models.UniqueConstraint(
                condition=models.Q(status="active"),
                fields=("house_service",),
                name="one_active_ledger_per_service",
            ),
        ),
        migrations.AddConstraint(
            model_name="houseserviceledger",
            constraint=models.CheckConstraint(
                condition=models.Q(funded_cents__gte=0),
                name="ledger_funded_non_negative",
            ),
        ),
        migrations.CreateModel(
            name="Bill",
            fields=[
                id_field(),
                *timestamps(),
                ("sequence", models.PositiveIntegerField()),
                ("name", models.CharField(max_length=255)),
                (
                    "bill_type",
                    models.CharField(
                        choices=[
                            ("regular", "Regular"),
                            ("fixed_recurring", "Fixed Recurring"),
                            ("variable_recurring", "Variable Recurring"),
                            ("one_time", "One Time"),
                        ],
                        default="regular",
                        max_length=32,
                    ),
                ),
                ("base_amount_cents", models.BigIntegerField()),
                ("service_fee_cents", models.BigIntegerField(default=0)),
                ("amount_cents", models.BigIntegerField()),
                ("fee_multiplier", models.DecimalField(decimal_places=2, default=Decimal("1.00"), max_digits=4)),
                (
                    "status",
                    models.CharField(
                        choices=[("pending", "Pending"), ("partial_paid", "Partially Paid"), ("paid", "Paid")],
                        db_index=True,
                        default="pending",
                        max_length=16,
                    ),
                ),
                ("due_date", models.DateField(blank=True, null=True)),
                (
                    "ledger",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="bills",
                        to="billing.houseserviceledger",
                    ),
                ),
                (
                    "house",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="bills",
                        to="houses.house",
                    ),
                ),
            ],
            options={"ordering": ["-created_at"]},
        ),
        migrations.AddConstraint(
            model_name="bill",
            constraint=models.UniqueConstraint(fields=("ledger", "sequence"), name="unique_bill_per_accrual"),
        ),
        migrations.AddConstraint(
            model_name="bill",
            constraint=models.CheckConstraint(
                condition=models.Q(amount_cents=models.F("base_amount_cents") + models.F("service_fee_cents")),
                name="bill_amount_is_base_plus_fee",
            ),
        ),
        migrations.CreateModel(
            name="Task",
            fields=[
                id_field(),
                *timestamps(),
                (
                    "payment_status",
                    django_fsm.FSMField(
                        choices=[
                            ("not_required", "Not Required"),
                            ("pending", "Pending"),
                            ("authorized", "Authorized"),
                            ("completed", "Completed"),
                            ("failed", "Failed"),
                            ("cancelled", "Cancelled"),
                        ],
                        db_index=True,
                        default="not_required",
                        max_length=50,
                        protected=True,
                    ),
                ),
                ("payment_amount_cents", models.BigIntegerField(blank=True, null=True)),
                ("monthly_amount_cents", models.BigIntegerField(blank=True, null=True)),
                (
                    "stripe_payment_intent_id",
                    models.CharField(
                        blank=True,
                        help_text="PaymentIntent carrying the payment-method authorization",
                        max_length=255,
                        null=True,
                        unique=True,
                    ),
                ),
                ("authorized_at", models.DateTimeField(blank=True, null=True)),
                ("resolved_at", models.DateTimeField(blank=True, null=True)),
                ("failure_reason", models.TextField(blank=True, null=True)),
                (
                    "house_service",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="tasks",
                        to="houses.houseservice",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="tasks",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={"ordering": ["-created_at"]},
        ),
        migrations.AddConstraint(
            model_name="task",
            constraint=models.UniqueConstraint(fields=("house_service", "user"), name="unique_task_per_roommate"),
        ),
        migrations.CreateModel(
            name="Charge",
            fields=[
                id_field(),
                *timestamps(),
                metadata_field(),
                ("amount_cents", models.BigIntegerField()),
                ("base_amount_cents", models.BigIntegerField(default=0)),
                ("service_fee_cents", models.BigIntegerField(default=0)),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("unpaid", "Unpaid"),
                            ("processing", "Processing"),
                            ("paid", "Paid"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="unpaid",
                        max_length=50,
                        protected=True,
                    ),
                ),
                ("due_date", models.DateField(blank=True, db_index=True, null=True)),
                ("paid_at", models.DateTimeField(blank=True, null=True)),
                ("advanced", models.BooleanField(default=False)),
                ("advanced_at", models.DateTimeField(blank=True, null=True)),
                ("stripe_payment_intent_id", models.CharField(blank=True, db_index=True, max_length=255, null=True)),
                ("retry_count", models.PositiveSmallIntegerField(default=0)),
                ("error_message", models.TextField(blank=True, null=True)),
                (
                    "bill",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="charges",
                        to="billing.bill",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="charges",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "task",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="charges",
                        to="billing.task",
                    ),
                ),
            ],
            options={"ordering": ["bill_id", "user_id"]},
        ),
        migrations.AddConstraint(
            model_name="charge",
            constraint=models.UniqueConstraint(fields=("bill", "user"), name="unique_charge_per_roommate"),
        ),
        migrations.AddConstraint(
            model_name="charge",
            constraint=models.CheckConstraint(
                condition=models.Q(amount_cents__gte=0),
                name="charge_amount_non_negative",
            ),
        ),
        migrations.AddIndex(
            model_name="charge",
            index=models.Index(fields=["status", "due_date"], name="charge_status_due_idx"),
        ),
        migrations.CreateModel(
            name="VirtualCardRequest",
            fields=[
                id_field(),
                *timestamps(),
                ("service_name", models.CharField(max_length=255)),
                ("monthly_amount_cents", models.PositiveBigIntegerField()),
                (
                    "due_day",
                    models.PositiveSmallIntegerField(
                        validators=[
                            django.core.validators.MinValueValidator(1),
                            django.core.validators.MaxValueValidator(31),
                        ]
                    ),
                ),
                ("required_upfront_payment_cents", models.PositiveBigIntegerField(blank=True, null=True)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("approved", "Approved"),
                            ("declined", "Declined"),
                            ("issued", "Issued"),
                        ],
                        db_index=True,
                        default="pending",
                        max_length=16,
                    ),
                ),
                ("virtual_card_id", models.CharField(blank=True, max_length=255, null=True)),
                (
                    "house",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="virtual_card_requests",
                        to="houses.house",
                    ),
                ),
                (
                    "house_service",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="virtual_card_requests",
                        to="houses.houseservice",
                    ),
                ),
            ],
            options={"ordering": ["-created_at"]},
        ),
    ]
