from django.contrib import admin

from .models import Appointment


@admin.register(Appointment)
class AppointmentAdmin(admin.ModelAdmin):
    list_display = ("id", "application", "scheduled_at", "place", "status",
                    "scheduled_by", "reminder_sent")
    list_filter = ("status", "reminder_sent")
    search_fields = ("application__application_number", "place")
    readonly_fields = ("rescheduled_to", "reminder_sent_at")
