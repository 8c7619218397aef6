"""
Admin configuration for house models.

The House Status Index is read-only here: score changes go through
HSIService so the audit trail stays complete.
"""

from django.contrib import admin

from houses.models import House, HouseMember, HouseService, HouseStatusIndex, HSIAdjustment


class HouseMemberInline(admin.TabularInline):
    model = HouseMember
    extra = 0


@admin.register(House)
class HouseAdmin(admin.ModelAdmin):
    list_display = ["id", "name", "created_by", "created_at"]
    search_fields = ["name"]
    inlines = [HouseMemberInline]


@admin.register(HouseService)
class HouseServiceAdmin(admin.ModelAdmin):
    list_display = ["id", "name", "house", "service_type", "fee_category", "status", "consent_required"]
    list_filter = ["service_type", "fee_category", "status"]
    search_fields = ["name", "house__name"]


class HSIAdjustmentInline(admin.TabularInline):
    model = HSIAdjustment
    extra = 0
    can_delete = False
    readonly_fields = ["outcome", "delta", "score_before", "score_after", "reason", "reference_key", "created_at"]


@admin.register(HouseStatusIndex)
class HouseStatusIndexAdmin(admin.ModelAdmin):
    list_display = ["house", "score", "bracket", "fee_multiplier", "credit_multiplier", "updated_at"]
    readonly_fields = ["house", "score", "bracket", "fee_multiplier", "credit_multiplier", "updated_reason"]
    inlines = [HSIAdjustmentInline]

    def has_add_permission(self, request):
        return False
