from django.core.management.base import BaseCommand

from hms.services import blood_bank


class Command(BaseCommand):
    help = "Mark available blood units past their expiry date as EXPIRED."

    def handle(self, *args, **options):
        n = blood_bank.expire_units()
        self.stdout.write(self.style.SUCCESS(f"Expired {n} blood units"))
        for alert in blood_bank.low_stock_alerts():
            self.stdout.write(self.style.WARNING(
                f"Low stock: {alert['bloodType']} ({alert['availableUnits']} units)"))
