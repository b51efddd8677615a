from django.contrib import admin

from .models import DigitalSignature


@admin.register(DigitalSignature)
class DigitalSignatureAdmin(admin.ModelAdmin):
    list_display = ("id", "application", "stage", "officer", "status",
                    "otp_attempts", "signed_at", "failed_at")
    list_filter = ("status", "stage")
    search_fields = ("hsm_transaction_id", "application__application_number")
    readonly_fields = ("hsm_transaction_id", "otp_issued_at", "otp_expires_at",
                       "signed_at", "failed_at")
