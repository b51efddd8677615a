"""
Management command: ``send_delayed_reminders``

Creates an ``assignment_delayed`` notification for every officer whose
assignment has been waiting longer than the threshold.  Meant to be run
periodically (cron).

Usage::

    python manage.py send_delayed_reminders
    python manage.py send_delayed_reminders --hours 48
    python manage.py send_delayed_reminders --escalations
"""

from django.core.management.base import BaseCommand

from assignments.services import AssignmentService


class Command(BaseCommand):
    help = "Notify officers about assignments waiting longer than the delay threshold."

    def add_arguments(self, parser):
        parser.add_argument(
            "--hours",
            type=int,
            default=None,
            help="Delay threshold in hours (default: PMCRMS DELAY_THRESHOLD_HOURS).",
        )
        parser.add_argument(
            "--escalations",
            action="store_true",
            help="Also list assignments past their rule's escalation time.",
        )

    def handle(self, *args, **options):
        sent = AssignmentService.send_delayed_reminders(options["hours"])
        self.stdout.write(self.style.SUCCESS(f"Sent {sent} delayed-review reminder(s)."))

        if options["escalations"]:
            candidates = AssignmentService.escalation_candidates()
            self.stdout.write(self.style.MIGRATE_HEADING(
                f"\n{len(candidates)} escalation candidate(s):"
            ))
            for candidate in candidates:
                record = candidate["assignment"]
                self.stdout.write(
                    f"  {record.application.application_number} {record.stage}/{record.role} "
                    f"→ {record.officer.username}, waiting {candidate['hours_waiting']}h, "
                    f"escalate to {candidate['escalation_role'] or '-'}"
                )
