from django.core.management.base import BaseCommand

from hms.services import billing


class Command(BaseCommand):
    help = "Mark pending and partially paid bills past their due date as OVERDUE."

    def handle(self, *args, **options):
        n = billing.mark_overdue()
        self.stdout.write(self.style.SUCCESS(f"Marked {n} bills overdue"))
