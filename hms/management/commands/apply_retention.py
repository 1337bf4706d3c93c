from django.core.management.base import BaseCommand

from hms.services import compliance


class Command(BaseCommand):
    help = "Apply data retention policies and record a retention log row per policy."

    def handle(self, *args, **options):
        results = compliance.execute_retention()
        for table, r in results.items():
            self.stdout.write(f"{table}: {r['eligible']} past retention, {r['deleted']} deleted")
        self.stdout.write(self.style.SUCCESS("Retention policies applied"))
