"""
Appointments app serializers.
"""

from __future__ import annotations

from rest_framework import serializers

from .models import Appointment


class AppointmentSerializer(serializers.ModelSerializer):
    application_number = serializers.CharField(source="application.application_number", read_only=True)
    rescheduled_from = serializers.SerializerMethodField()

    class Meta:
        model = Appointment
        fields = [
            "id",
            "application",
            "application_number",
            "scheduled_by",
            "scheduled_at",
            "place",
            "room_number",
            "contact_person",
            "comments",
            "status",
            "confirmed_at",
            "completed_at",
            "completion_notes",
            "cancelled_at",
            "cancellation_reason",
            "reschedule_reason",
            "rescheduled_to",
            "rescheduled_from",
            "reminder_sent",
            "reminder_sent_at",
            "created_at",
        ]
        read_only_fields = fields

    def get_rescheduled_from(self, obj) -> int | None:
        previous = getattr(obj, "rescheduled_from", None)
        return previous.pk if previous else None


class AppointmentScheduleSerializer(serializers.Serializer):
    scheduled_at = serializers.DateTimeField()
    place = serializers.CharField(max_length=255)
    room_number = serializers.CharField(max_length=50, required=False, allow_blank=True, default="")
    contact_person = serializers.CharField(max_length=150, required=False, allow_blank=True, default="")
    comments = serializers.CharField(required=False, allow_blank=True, default="")


class AppointmentCompleteSerializer(serializers.Serializer):
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class AppointmentCancelSerializer(serializers.Serializer):
    reason = serializers.CharField()


class AppointmentRescheduleSerializer(serializers.Serializer):
    scheduled_at = serializers.DateTimeField()
    reason = serializers.CharField(required=False, allow_blank=True, default="")
    place = serializers.CharField(max_length=255, required=False)
    room_number = serializers.CharField(max_length=50, required=False, allow_blank=True)


class DueRemindersQuerySerializer(serializers.Serializer):
    hours = serializers.IntegerField(min_value=1, required=False)
