from django.contrib import admin

from .models import ApplicationDocument, PositionApplication, StageOutcome


class StageOutcomeInline(admin.TabularInline):
    model = StageOutcome
    extra = 0
    can_delete = False
    readonly_fields = ("stage", "role", "attempt_number", "decision",
                       "officer", "comments", "digital_signature", "decided_at")

    def has_add_permission(self, request, obj=None):
        return False


class ApplicationDocumentInline(admin.TabularInline):
    model = ApplicationDocument
    extra = 0


@admin.register(PositionApplication)
class PositionApplicationAdmin(admin.ModelAdmin):
    list_display = ("id", "application_number", "applicant_name", "position_type",
                    "current_stage", "current_attempt", "needs_manual_assignment",
                    "created_at")
    list_filter = ("position_type", "current_stage", "needs_manual_assignment")
    search_fields = ("application_number", "applicant_name")
    readonly_fields = ("current_stage", "current_attempt", "rejected_at_stage")
    inlines = [ApplicationDocumentInline, StageOutcomeInline]


@admin.register(StageOutcome)
class StageOutcomeAdmin(admin.ModelAdmin):
    list_display = ("application", "stage", "role", "attempt_number",
                    "decision", "officer", "decided_at")
    list_filter = ("stage", "decision")

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(ApplicationDocument)
class ApplicationDocumentAdmin(admin.ModelAdmin):
    list_display = ("application", "document_type", "verification_status",
                    "verified_by", "verified_at")
    list_filter = ("verification_status",)
