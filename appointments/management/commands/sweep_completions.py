from django.core.management.base import BaseCommand

from appointments.services import sweep_completions


class Command(BaseCommand):
    help = "Marks Confirmed appointments whose slot has ended as Completed"

    def add_arguments(self, parser):
        parser.add_argument(
            "--provider",
            type=int,
            dest="provider_id",
            help="Only sweep appointments of this provider ID.",
        )

    def handle(self, *args, **options):
        completed = sweep_completions(provider_id=options.get("provider_id"))

        if not completed:
            self.stdout.write(self.style.SUCCESS("No appointments to complete."))
            return

        for appointment in completed:
            self.stdout.write(
                f"  #{appointment.id} {appointment.slot_start:%Y-%m-%d %H:%M} provider={appointment.provider_id}"
            )
        self.stdout.write(
            self.style.SUCCESS(f"Completed {len(completed)} appointment(s).")
        )
