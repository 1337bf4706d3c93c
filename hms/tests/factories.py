"""Small object builders shared by the test modules."""
from datetime import date, timedelta
from decimal import Decimal
from itertools import count

from django.utils import timezone

from hms.models import (
    BloodDonor, BloodUnit, LabReagent, LabTest, LabTestCatalog, Medication, Patient, StaffMember, User,
)

PASSWORD = 'P@ssw0rd-Test1'
_seq = count(1)


def make_user(role='patient', username=None, **extra):
    n = next(_seq)
    username = username or f'{role}{n}'
    extra.setdefault('email', f'{username}@hospital.test')
    return User.objects.create_user(username=username, password=PASSWORD, role=role, **extra)


def make_patient(user=None, **fields):
    user = user or make_user('patient', first_name='Pat', last_name=f'Ient{next(_seq)}')
    fields.setdefault('mrn', f'{timezone.now().year}{next(_seq):06d}')
    fields.setdefault('date_of_birth', date(1980, 5, 17))
    fields.setdefault('gender', 'FEMALE')
    return Patient.objects.create(user=user, **fields)


def make_doctor(user=None, **fields):
    user = user or make_user('doctor', first_name='Doc', last_name=f'Tor{next(_seq)}')
    return StaffMember.objects.create(user=user, staff_type='DOCTOR', **fields)


def make_catalog(code=None, **fields):
    code = code or f'T{next(_seq)}'
    fields.setdefault('name', f'Test {code}')
    fields.setdefault('department', 'Hematology')
    fields.setdefault('specimen_type', 'BLOOD')
    fields.setdefault('price', Decimal('25.00'))
    return LabTestCatalog.objects.create(code=code, **fields)


def make_lab_test(patient=None, catalog=None, **fields):
    fields.setdefault('order_number', f'L{timezone.now():%Y%m%d}{next(_seq):04d}')
    return LabTest.objects.create(patient=patient or make_patient(), catalog=catalog or make_catalog(), **fields)


def make_reagent(**fields):
    fields.setdefault('name', 'Glucose control')
    fields.setdefault('lot_number', f'LOT{next(_seq)}')
    fields.setdefault('expiry_date', timezone.localdate() + timedelta(days=90))
    return LabReagent.objects.create(**fields)


def make_medication(**fields):
    fields.setdefault('name', f'Medication {next(_seq)}')
    fields.setdefault('stock_quantity', 100)
    fields.setdefault('reorder_level', 10)
    fields.setdefault('unit_price', Decimal('1.50'))
    return Medication.objects.create(**fields)


def make_donor(**fields):
    n = next(_seq)
    fields.setdefault('donor_number', f'D{timezone.now():%Y}{n:05d}')
    fields.setdefault('first_name', 'Don')
    fields.setdefault('last_name', f'Or{n}')
    fields.setdefault('date_of_birth', date(1990, 1, 1))
    fields.setdefault('gender', 'MALE')
    fields.setdefault('blood_type', 'O+')
    fields.setdefault('phone', f'+1555{n:07d}')
    return BloodDonor.objects.create(**fields)


def make_unit(blood_type='O+', **fields):
    fields.setdefault('unit_number', f'BU{timezone.now():%Y%m%d}{next(_seq):04d}')
    fields.setdefault('volume_ml', 450)
    fields.setdefault('expiry_date', timezone.now() + timedelta(days=30))
    return BloodUnit.objects.create(blood_type=blood_type, **fields)
