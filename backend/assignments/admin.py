from django.contrib import admin

from .models import AssignmentRecord, AutoAssignmentRule


@admin.register(AutoAssignmentRule)
class AutoAssignmentRuleAdmin(admin.ModelAdmin):
    list_display = ("name", "position_type", "target_role", "strategy",
                    "priority", "is_active", "times_applied")
    list_filter = ("strategy", "is_active", "target_role")
    search_fields = ("name",)
    readonly_fields = ("last_round_robin_index", "times_applied", "last_applied_at")


@admin.register(AssignmentRecord)
class AssignmentRecordAdmin(admin.ModelAdmin):
    list_display = ("application", "stage", "role", "officer", "action",
                    "strategy_used", "is_active", "assigned_at")
    list_filter = ("stage", "action", "is_active")
