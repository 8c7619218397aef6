"""
Admin configuration for billing models.

Ledger figures are read-only: they change only through LedgerCycleManager.
"""

from django.contrib import admin, messages

from billing.models import Bill, Charge, HouseServiceLedger, Task, VirtualCardRequest
from billing.services import LedgerCycleManager
from core.exceptions import BaseApplicationError


class BillInline(admin.TabularInline):
    model = Bill
    extra = 0
    can_delete = False
    fields = ["sequence", "name", "amount_cents", "service_fee_cents", "status", "due_date"]
    readonly_fields = fields


@admin.register(HouseServiceLedger)
class HouseServiceLedgerAdmin(admin.ModelAdmin):
    list_display = [
        "id",
        "house_service",
        "status",
        "funded_cents",
        "total_required_cents",
        "amount_fronted_cents",
        "reconciliation_hold",
        "cycle_start",
    ]
    list_filter = ["status", "reconciliation_hold"]
    readonly_fields = [
        "house_service",
        "status",
        "funding_required_cents",
        "service_fee_cents",
        "total_required_cents",
        "funded_cents",
        "amount_fronted_cents",
        "billed_base_cents",
        "accrual_sequence",
        "billed_sequence",
        "cycle_start",
        "cycle_end",
        "closed_on_time",
        "version",
    ]
    inlines = [BillInline]
    actions = ["release_reconciliation_hold"]

    @admin.action(description="Release reconciliation hold")
    def release_reconciliation_hold(self, request, queryset):
        for ledger in queryset.filter(reconciliation_hold=True):
            try:
                LedgerCycleManager.release_hold(ledger.pk, f"Released by {request.user}")
            except BaseApplicationError as e:
                self.message_user(request, f"Ledger {ledger.pk}: {e.message}", messages.ERROR)


class ChargeInline(admin.TabularInline):
    model = Charge
    extra = 0
    can_delete = False
    fields = ["user", "amount_cents", "status", "advanced", "retry_count"]
    readonly_fields = fields


@admin.register(Bill)
class BillAdmin(admin.ModelAdmin):
    list_display = ["id", "name", "house", "amount_cents", "status", "due_date", "created_at"]
    list_filter = ["status", "bill_type"]
    search_fields = ["name", "house__name"]
    inlines = [ChargeInline]


@admin.register(Charge)
class ChargeAdmin(admin.ModelAdmin):
    list_display = ["id", "bill", "user", "amount_cents", "status", "advanced", "due_date"]
    list_filter = ["status", "advanced"]
    search_fields = ["user__email", "stripe_payment_intent_id"]
    readonly_fields = ["status", "stripe_payment_intent_id", "retry_count", "error_message", "metadata"]


@admin.register(Task)
class TaskAdmin(admin.ModelAdmin):
    list_display = ["id", "house_service", "user", "payment_status", "authorized_at"]
    list_filter = ["payment_status"]
    readonly_fields = ["payment_status", "stripe_payment_intent_id", "authorized_at", "resolved_at"]


@admin.register(VirtualCardRequest)
class VirtualCardRequestAdmin(admin.ModelAdmin):
    list_display = ["id", "service_name", "house", "monthly_amount_cents", "due_day", "status"]
    list_filter = ["status"]
