from django.core.cache import cache
from django.core.management.base import BaseCommand
from django.utils import timezone

from hms.realtime.notify import broadcast
from hms.services import appointments, dashboard, laboratory, pharmacy, radiology

# cache key -> payload builder
STATS = {
    'stats:appointments': lambda: {'ok': True, 'data': appointments.appointment_stats()},
    'stats:laboratory': lambda: {'ok': True, 'data': laboratory.statistics()},
    'stats:radiology': lambda: {'ok': True, 'data': radiology.statistics()},
    'stats:pharmacy': lambda: {'ok': True, 'data': pharmacy.statistics()},
    dashboard.CACHE_KEY: dashboard.build_overview,
}


class Command(BaseCommand):
    help = "Warm statistics caches and broadcast a WebSocket refresh event."

    def add_arguments(self, parser):
        parser.add_argument('--no-broadcast', action='store_true', help="Skip the WebSocket refresh event")

    def handle(self, *args, **options):
        now = timezone.now()
        keys_refreshed = []
        for key, build in STATS.items():
            cache.set(key, build())
            keys_refreshed.append(key)

        if not options['no_broadcast']:
            broadcast('broadcast.refresh', version=int(now.timestamp()), ts=now.isoformat(), keys=keys_refreshed)

        self.stdout.write(self.style.SUCCESS(f"Refreshed {len(keys_refreshed)} keys at {now}"))
