"""
Management command to populate the database with demo data.
"""
import random
from datetime import date, timedelta
from decimal import Decimal

from django.contrib.auth.hashers import make_password
from django.core.management.base import BaseCommand
from django.utils import timezone

from hms.models import (
    Appointment, BloodDonor, LabReagent, LabTestCatalog, Medication, Patient, StaffMember, User,
)
from hms.services import billing, blood_bank, laboratory, patients, pharmacy

PASSWORD = 'Hospital#2024'


class Command(BaseCommand):
    help = 'Populate database with demo data'

    def add_arguments(self, parser):
        parser.add_argument('--seed', type=int, default=42)

    def handle(self, *args, **options):
        random.seed(options['seed'])
        self.stdout.write('Creating demo data...')

        admin = self.create_admin()
        doctors = self.create_doctors()
        patient_list = self.create_patients(admin)
        self.create_appointments(patient_list, doctors)
        catalog = self.create_lab_catalog()
        self.create_lab_orders(admin, patient_list, catalog)
        self.create_reagents()
        self.create_medications(admin)
        self.create_donors(admin)
        self.create_bills(admin, patient_list)

        self.stdout.write(self.style.SUCCESS('Demo data created.'))

    def create_admin(self):
        user, _ = User.objects.get_or_create(
            username='admin1',
            defaults={'email': 'admin1@hospital.test', 'password': make_password(PASSWORD), 'role': 'admin',
                      'first_name': 'Ada', 'last_name': 'Admin'},
        )
        return user

    def create_doctors(self):
        doctors = []
        data = [
            ('dr.house', 'Gregory', 'House', 'Diagnostics', 'MD-10001'),
            ('dr.grey', 'Meredith', 'Grey', 'General Surgery', 'MD-10002'),
            ('dr.strange', 'Stephen', 'Strange', 'Neurology', 'MD-10003'),
        ]
        for username, first, last, specialization, license_number in data:
            user, _ = User.objects.get_or_create(
                username=username,
                defaults={'email': f'{username}@hospital.test', 'password': make_password(PASSWORD),
                          'role': 'doctor', 'first_name': first, 'last_name': last},
            )
            doctor, _ = StaffMember.objects.get_or_create(
                user=user, staff_type='DOCTOR',
                defaults={'license_number': license_number, 'specialization': specialization,
                          'department': specialization, 'experience_years': random.randint(3, 25),
                          'consultation_fee': Decimal('150.00'), 'shift': 'MORNING'},
            )
            doctors.append(doctor)
            self.stdout.write(f'Doctor: {user.get_full_name()}')
        return doctors

    def create_patients(self, admin):
        names = [('John', 'Doe'), ('Jane', 'Roe'), ('Alex', 'Smith'), ('Maria', 'Garcia'), ('Li', 'Wei')]
        result = []
        for first, last in names:
            email = f'{first}.{last}@example.test'.lower()
            existing = Patient.objects.filter(user__email=email).first()
            if existing:
                result.append(existing)
                continue
            patient, _ = patients.register_patient(admin, {
                'email': email,
                'firstName': first,
                'lastName': last,
                'password': PASSWORD,
                'dateOfBirth': date(random.randint(1950, 2000), random.randint(1, 12), random.randint(1, 28)),
                'gender': random.choice(['MALE', 'FEMALE']),
                'bloodType': random.choice(blood_bank.BLOOD_TYPES),
                'registrationType': 'STAFF',
                'insuranceInfo': {'provider': 'Acme Health', 'policyNumber': f'POL{random.randint(100000, 999999)}'},
            })
            result.append(patient)
            self.stdout.write(f'Patient: {patient.mrn} {first} {last}')
        return result

    def create_appointments(self, patient_list, doctors):
        start = timezone.now().replace(minute=0, second=0, microsecond=0) + timedelta(days=1)
        for i, patient in enumerate(patient_list):
            Appointment.objects.get_or_create(
                patient=patient,
                doctor=doctors[i % len(doctors)],
                appointment_date=start + timedelta(hours=i),
                defaults={'reason': 'Routine checkup', 'type': 'ROUTINE_CHECKUP'},
            )

    def create_lab_catalog(self):
        data = [
            ('CBC', 'Complete Blood Count', 'Hematology', 'BLOOD', Decimal('25.00')),
            ('LIPID', 'Lipid Panel', 'Chemistry', 'BLOOD', Decimal('40.00')),
            ('UA', 'Urinalysis', 'Clinical Microscopy', 'URINE', Decimal('15.00')),
        ]
        catalog = []
        for code, name, department, specimen, price in data:
            item, _ = LabTestCatalog.objects.get_or_create(
                code=code,
                defaults={'name': name, 'department': department, 'category': department,
                          'specimen_type': specimen, 'price': price},
            )
            catalog.append(item)
        return catalog

    def create_lab_orders(self, admin, patient_list, catalog):
        for patient in patient_list[:3]:
            laboratory.create_lab_test(admin, {
                'patientId': patient.id,
                'catalogId': random.choice(catalog).id,
                'priority': random.choice(['ROUTINE', 'URGENT', 'STAT']),
            })

    def create_reagents(self):
        if LabReagent.objects.exists():
            return
        for name, lot in [('Hemoglobin control', 'HB2024A'), ('Glucose control', 'GL2024B')]:
            laboratory.register_reagent({
                'name': name,
                'lotNumber': lot,
                'manufacturer': 'Acme Diagnostics',
                'expiryDate': timezone.localdate() + timedelta(days=180),
                'quantity': 20,
                'unit': 'mL',
            })

    def create_medications(self, admin):
        data = [
            ('Amoxicillin', 'Amoxicillin', 'Antibiotic', '500mg', 200),
            ('Paracetamol', 'Acetaminophen', 'Analgesic', '500mg', 500),
            ('Metformin', 'Metformin', 'Antidiabetic', '850mg', 5),
        ]
        for name, generic, category, strength, stock in data:
            if Medication.objects.filter(name=name).exists():
                continue
            pharmacy.create_medication(admin, {
                'name': name,
                'genericName': generic,
                'category': category,
                'strength': strength,
                'dosageForm': 'Tablet',
                'unitPrice': Decimal('0.50'),
                'stockQuantity': stock,
                'reorderLevel': 20,
                'expiryDate': timezone.localdate() + timedelta(days=random.choice([20, 365])),
            })

    def create_donors(self, admin):
        for i, bt in enumerate(blood_bank.BLOOD_TYPES[:4]):
            phone = f'+1555000{i:04d}'
            if BloodDonor.objects.filter(phone=phone).exists():
                continue
            donor = blood_bank.register_donor(admin, {
                'firstName': f'Donor{i}',
                'lastName': 'Demo',
                'dateOfBirth': date(1985, 1, 1),
                'gender': 'MALE' if i % 2 else 'FEMALE',
                'bloodType': bt,
                'phone': phone,
            })
            blood_bank.record_donation(admin, {'donorId': donor.id, 'quantityMl': 450})

    def create_bills(self, admin, patient_list):
        for patient in patient_list[:2]:
            if patient.bills.exists():
                continue
            billing.create_bill(admin, {
                'patientId': patient.id,
                'billType': 'CONSULTATION',
                'items': [
                    {'description': 'Consultation fee', 'quantity': 1, 'unitPrice': Decimal('150.00')},
                    {'description': 'Lab: Complete Blood Count', 'quantity': 1, 'unitPrice': Decimal('25.00'),
                     'taxPercent': Decimal('5')},
                ],
            })
