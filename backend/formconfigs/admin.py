from django.contrib import admin

from .models import FormConfiguration, FormFeeHistory


class FormFeeHistoryInline(admin.TabularInline):
    model = FormFeeHistory
    extra = 0
    can_delete = False
    readonly_fields = ("old_base_fee", "new_base_fee", "old_processing_fee", "new_processing_fee",
                       "effective_from", "changed_by", "change_reason", "created_at")

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(FormConfiguration)
class FormConfigurationAdmin(admin.ModelAdmin):
    list_display = ("form_name", "position_type", "base_fee", "processing_fee",
                    "late_fee", "processing_days", "is_active", "allow_online_submission")
    list_filter = ("is_active", "allow_online_submission")
    search_fields = ("form_name",)
    inlines = [FormFeeHistoryInline]
