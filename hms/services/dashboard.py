"""Hospital-wide overview for administrators."""
from django.db.models import F
from django.utils import timezone

from hms.models import Appointment, LabTest, Medication, Patient, RadiologyTest
from hms.services import billing, blood_bank
from hms.services.common import cached, iso

CACHE_KEY = 'stats:dashboard'


def build_overview() -> dict:
    today = timezone.localdate()
    return {
        'generatedAt': iso(timezone.now()),
        'patients': {
            'total': Patient.objects.count(),
            'active': Patient.objects.filter(is_active=True).count(),
            'checkedInToday': Patient.objects.filter(last_check_in__date=today).count(),
        },
        'appointmentsToday': Appointment.objects.filter(appointment_date__date=today).count(),
        'pendingLabTests': LabTest.objects.filter(status__in=('ORDERED', 'SAMPLE_COLLECTED', 'RECEIVED')).count(),
        'pendingRadiology': RadiologyTest.objects.filter(status__in=('ORDERED', 'SCHEDULED', 'IN_PROGRESS')).count(),
        'lowStockBloodTypes': [a['bloodType'] for a in blood_bank.low_stock_alerts()],
        'lowStockMedications': Medication.objects.filter(is_active=True,
                                                         stock_quantity__lte=F('reorder_level')).count(),
        'billing': billing.outstanding_summary(),
    }


def overview() -> dict:
    return cached(CACHE_KEY, build_overview)
