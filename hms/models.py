"""
Database models for the hospital management backend.

One Django app holds every module: patients and staff, appointments,
the laboratory (catalog, orders, samples, results, reagents, QC and LIS
configuration), radiology and imaging studies, the blood bank, the
pharmacy, billing and the compliance/audit trail.  Status fields store
upper-case codes; the allowed transitions between them are enforced in
``hms.services`` rather than here.
"""
from __future__ import annotations

from decimal import Decimal

from django.conf import settings
from django.contrib.auth.models import AbstractUser
from django.db import models
from django.utils import timezone


BLOOD_TYPE_CHOICES = [
    ('A+', 'A+'),
    ('A-', 'A-'),
    ('B+', 'B+'),
    ('B-', 'B-'),
    ('AB+', 'AB+'),
    ('AB-', 'AB-'),
    ('O+', 'O+'),
    ('O-', 'O-'),
]

GENDER_CHOICES = [
    ('MALE', 'Male'),
    ('FEMALE', 'Female'),
    ('OTHER', 'Other'),
]


class User(AbstractUser):
    """Custom user model carrying the role used by permission checks."""
    ROLE_CHOICES = [
        ('super', 'Super Administrator'),
        ('admin', 'Administrator'),
        ('doctor', 'Doctor'),
        ('nurse', 'Nurse'),
        ('lab_technician', 'Lab Technician'),
        ('radiologist', 'Radiologist'),
        ('pharmacist', 'Pharmacist'),
        ('receptionist', 'Receptionist'),
        ('accountant', 'Accountant'),
        ('patient', 'Patient'),
    ]
    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default='patient', db_index=True)
    phone = models.CharField(max_length=32, blank=True)

    def __str__(self) -> str:
        return f"{self.username} ({self.role})"


class Patient(models.Model):
    """Clinical and demographic data attached to a patient user.

    ``mrn`` (medical record number) is the identifier used at the front
    desk.  Insurance details are stored as JSON with the policy number
    encrypted (see ``hms.services.encryption``).
    """
    REGISTRATION_CHOICES = [
        ('SELF', 'Self registration'),
        ('STAFF', 'Registered by staff'),
    ]
    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name='patient_profile')
    mrn = models.CharField(max_length=20, unique=True)
    date_of_birth = models.DateField()
    gender = models.CharField(max_length=10, choices=GENDER_CHOICES)
    blood_type = models.CharField(max_length=3, choices=BLOOD_TYPE_CHOICES, blank=True)
    emergency_contact = models.CharField(max_length=128, blank=True)
    emergency_phone = models.CharField(max_length=32, blank=True)
    address = models.JSONField(default=dict, blank=True)
    insurance_info = models.JSONField(default=dict, blank=True)
    medical_history = models.JSONField(default=dict, blank=True)
    allergies = models.JSONField(default=list, blank=True)
    current_medications = models.JSONField(default=list, blank=True)
    registration_type = models.CharField(max_length=10, choices=REGISTRATION_CHOICES, default='STAFF')
    is_active = models.BooleanField(default=True)
    last_check_in = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"{self.mrn} {self.user.get_full_name()}"


class StaffMember(models.Model):
    """A staff role held by a user (doctor, nurse, pharmacist, ...).

    A user may hold several staff types but each at most once.  License
    numbers are unique across all staff when present.
    """
    STAFF_TYPE_CHOICES = [
        ('DOCTOR', 'Doctor'),
        ('NURSE', 'Nurse'),
        ('RECEPTIONIST', 'Receptionist'),
        ('LAB_TECHNICIAN', 'Lab Technician'),
        ('PHARMACIST', 'Pharmacist'),
        ('RADIOLOGIST', 'Radiologist'),
        ('ADMIN', 'Administrator'),
    ]
    SHIFT_CHOICES = [
        ('MORNING', 'Morning'),
        ('EVENING', 'Evening'),
        ('NIGHT', 'Night'),
        ('ROTATING', 'Rotating'),
    ]
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='staff_profiles')
    staff_type = models.CharField(max_length=20, choices=STAFF_TYPE_CHOICES, db_index=True)
    license_number = models.CharField(max_length=64, unique=True, null=True, blank=True)
    specialization = models.CharField(max_length=128, blank=True)
    department = models.CharField(max_length=128, blank=True)
    experience_years = models.PositiveIntegerField(default=0)
    qualifications = models.JSONField(default=list, blank=True)
    schedule = models.JSONField(default=dict, blank=True)
    shift = models.CharField(max_length=10, choices=SHIFT_CHOICES, blank=True)
    consultation_fee = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    is_available = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        unique_together = [('user', 'staff_type')]

    def __str__(self) -> str:
        return f"{self.user.get_full_name() or self.user.username} ({self.staff_type})"


class Appointment(models.Model):
    TYPE_CHOICES = [
        ('CONSULTATION', 'Consultation'),
        ('FOLLOW_UP', 'Follow up'),
        ('EMERGENCY', 'Emergency'),
        ('ROUTINE_CHECKUP', 'Routine checkup'),
        ('PROCEDURE', 'Procedure'),
    ]
    STATUS_CHOICES = [
        ('SCHEDULED', 'Scheduled'),
        ('CONFIRMED', 'Confirmed'),
        ('IN_PROGRESS', 'In progress'),
        ('COMPLETED', 'Completed'),
        ('CANCELLED', 'Cancelled'),
        ('NO_SHOW', 'No show'),
    ]
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='appointments')
    doctor = models.ForeignKey(StaffMember, on_delete=models.PROTECT, related_name='appointments')
    appointment_date = models.DateTimeField(db_index=True)
    duration = models.PositiveIntegerField(default=30, help_text="Minutes")
    type = models.CharField(max_length=20, choices=TYPE_CHOICES, default='CONSULTATION')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='SCHEDULED', db_index=True)
    reason = models.TextField(blank=True)
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"{self.patient.mrn} with {self.doctor_id} at {self.appointment_date:%Y-%m-%d %H:%M}"


# -----------------------------------------------------------------------------
# Laboratory
# -----------------------------------------------------------------------------
class LabTestCatalog(models.Model):
    """A test that can be ordered, e.g. CBC or lipid panel."""
    code = models.CharField(max_length=32, unique=True)
    name = models.CharField(max_length=255)
    category = models.CharField(max_length=64, blank=True)
    department = models.CharField(max_length=64, blank=True, db_index=True)
    specimen_type = models.CharField(max_length=64, blank=True)
    description = models.TextField(blank=True)
    normal_range = models.CharField(max_length=128, blank=True)
    units = models.CharField(max_length=32, blank=True)
    turnaround_hours = models.PositiveIntegerField(default=24)
    price = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0'))
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return f"{self.code} {self.name}"


class LabTest(models.Model):
    """A lab order for one catalog test on one patient."""
    PRIORITY_CHOICES = [
        ('ROUTINE', 'Routine'),
        ('URGENT', 'Urgent'),
        ('STAT', 'Stat'),
    ]
    STATUS_CHOICES = [
        ('ORDERED', 'Ordered'),
        ('SAMPLE_COLLECTED', 'Sample collected'),
        ('RECEIVED', 'Received'),
        ('IN_PROGRESS', 'In progress'),
        ('COMPLETED', 'Completed'),
        ('CANCELLED', 'Cancelled'),
        ('REJECTED', 'Rejected'),
    ]
    order_number = models.CharField(max_length=32, unique=True)
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='lab_tests')
    catalog = models.ForeignKey(LabTestCatalog, on_delete=models.PROTECT, related_name='tests')
    ordered_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='lab_orders')
    ordered_date = models.DateTimeField(default=timezone.now, db_index=True)
    priority = models.CharField(max_length=10, choices=PRIORITY_CHOICES, default='ROUTINE')
    urgent = models.BooleanField(default=False)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='ORDERED', db_index=True)
    clinical_notes = models.TextField(blank=True)
    diagnosis = models.CharField(max_length=255, blank=True)
    rejection_reason = models.TextField(blank=True)
    cancellation_reason = models.TextField(blank=True)
    completed_date = models.DateTimeField(null=True, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return self.order_number


class LabSample(models.Model):
    CONDITION_CHOICES = [
        ('GOOD', 'Good'),
        ('HEMOLYZED', 'Hemolyzed'),
        ('CLOTTED', 'Clotted'),
        ('INSUFFICIENT', 'Insufficient'),
        ('CONTAMINATED', 'Contaminated'),
    ]
    lab_test = models.ForeignKey(LabTest, on_delete=models.CASCADE, related_name='samples')
    barcode = models.CharField(max_length=32, unique=True)
    sample_type = models.CharField(max_length=64, blank=True)
    collected_at = models.DateTimeField(default=timezone.now)
    # free text so that external systems (e.g. LIS_SYSTEM) can appear here
    collected_by = models.CharField(max_length=128, blank=True)
    volume = models.CharField(max_length=32, blank=True)
    condition = models.CharField(max_length=20, choices=CONDITION_CHOICES, default='GOOD')
    storage_location = models.CharField(max_length=128, blank=True)
    received_at = models.DateTimeField(null=True, blank=True)
    received_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    notes = models.TextField(blank=True)

    def __str__(self) -> str:
        return self.barcode


class LabResult(models.Model):
    FLAG_CHOICES = [
        ('NORMAL', 'Normal'),
        ('LOW', 'Low'),
        ('HIGH', 'High'),
        ('CRITICAL', 'Critical'),
    ]
    STATUS_CHOICES = [
        ('PRELIMINARY', 'Preliminary'),
        ('FINAL', 'Final'),
        ('CORRECTED', 'Corrected'),
    ]
    lab_test = models.ForeignKey(LabTest, on_delete=models.CASCADE, related_name='results')
    parameter = models.CharField(max_length=128)
    value = models.CharField(max_length=128)
    unit = models.CharField(max_length=32, blank=True)
    reference_range = models.CharField(max_length=128, blank=True)
    flag = models.CharField(max_length=10, choices=FLAG_CHOICES, blank=True)
    status = models.CharField(max_length=12, choices=STATUS_CHOICES, default='PRELIMINARY')
    performed_by = models.CharField(max_length=128, blank=True)
    performed_date = models.DateTimeField(default=timezone.now)
    verified_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    comments = models.TextField(blank=True)

    class Meta:
        unique_together = [('lab_test', 'parameter')]

    def __str__(self) -> str:
        return f"{self.parameter}={self.value}"


class LabReagent(models.Model):
    STATUS_CHOICES = [
        ('ACTIVE', 'Active'),
        ('EXPIRED', 'Expired'),
        ('DEPLETED', 'Depleted'),
    ]
    name = models.CharField(max_length=255)
    lot_number = models.CharField(max_length=64)
    manufacturer = models.CharField(max_length=128, blank=True)
    expiry_date = models.DateField()
    quantity = models.PositiveIntegerField(default=0)
    unit = models.CharField(max_length=32, blank=True)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default='ACTIVE')
    barcode = models.CharField(max_length=32, unique=True, null=True, blank=True)
    storage_conditions = models.CharField(max_length=128, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return f"{self.name} lot {self.lot_number}"


class LabEquipment(models.Model):
    STATUS_CHOICES = [
        ('OPERATIONAL', 'Operational'),
        ('MAINTENANCE', 'Maintenance'),
        ('OUT_OF_SERVICE', 'Out of service'),
    ]
    name = models.CharField(max_length=255)
    serial_number = models.CharField(max_length=64, unique=True)
    model_name = models.CharField(max_length=128, blank=True)
    manufacturer = models.CharField(max_length=128, blank=True)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default='OPERATIONAL')
    barcode = models.CharField(max_length=32, unique=True, null=True, blank=True)
    last_calibration = models.DateField(null=True, blank=True)
    next_calibration = models.DateField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return f"{self.name} ({self.serial_number})"


class LabQualityControl(models.Model):
    """One quality-control run of a control sample against a reagent lot."""
    LEVEL_CHOICES = [
        ('NORMAL', 'Normal'),
        ('ABNORMAL_LOW', 'Abnormal low'),
        ('ABNORMAL_HIGH', 'Abnormal high'),
    ]
    RESULT_CHOICES = [
        ('PASS', 'Pass'),
        ('WARNING', 'Warning'),
        ('FAIL', 'Fail'),
        ('INVALID', 'Invalid'),
    ]
    reagent = models.ForeignKey(LabReagent, on_delete=models.PROTECT, related_name='qc_results')
    parameter = models.CharField(max_length=128, db_index=True)
    control_lot = models.CharField(max_length=64)
    control_level = models.CharField(max_length=16, choices=LEVEL_CHOICES, default='NORMAL')
    expected_range = models.CharField(max_length=64)
    actual_value = models.CharField(max_length=64)
    result = models.CharField(max_length=10, choices=RESULT_CHOICES)
    performed_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    performed_at = models.DateTimeField(default=timezone.now, db_index=True)
    corrective_action = models.TextField(blank=True)
    notes = models.TextField(blank=True)

    def __str__(self) -> str:
        return f"QC {self.parameter} {self.result}"


def default_lis_timeout() -> int:
    return settings.LIS_TIMEOUT


class LISIntegration(models.Model):
    """Connection settings for an external laboratory information system."""
    name = models.CharField(max_length=128)
    endpoint = models.URLField()
    api_key = models.CharField(max_length=255)
    timeout = models.PositiveIntegerField(default=default_lis_timeout, help_text="Seconds")
    is_active = models.BooleanField(default=True)
    last_sync_at = models.DateTimeField(null=True, blank=True)
    last_sync_status = models.CharField(max_length=10, blank=True)
    last_error = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return self.name


# -----------------------------------------------------------------------------
# Radiology
# -----------------------------------------------------------------------------
class RadiologyTest(models.Model):
    MODALITY_CHOICES = [
        ('XRAY', 'X-Ray'),
        ('CT', 'CT'),
        ('MRI', 'MRI'),
        ('ULTRASOUND', 'Ultrasound'),
        ('MAMMOGRAPHY', 'Mammography'),
        ('FLUOROSCOPY', 'Fluoroscopy'),
        ('PET', 'PET'),
        ('NUCLEAR', 'Nuclear medicine'),
    ]
    STATUS_CHOICES = [
        ('ORDERED', 'Ordered'),
        ('SCHEDULED', 'Scheduled'),
        ('IN_PROGRESS', 'In progress'),
        ('COMPLETED', 'Completed'),
        ('CANCELLED', 'Cancelled'),
    ]
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='radiology_tests')
    test_name = models.CharField(max_length=255)
    modality = models.CharField(max_length=16, choices=MODALITY_CHOICES)
    body_part = models.CharField(max_length=64, blank=True)
    urgent = models.BooleanField(default=False)
    status = models.CharField(max_length=12, choices=STATUS_CHOICES, default='ORDERED', db_index=True)
    clinical_history = models.TextField(blank=True)
    ordered_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='radiology_orders')
    ordered_date = models.DateTimeField(default=timezone.now, db_index=True)
    scheduled_date = models.DateTimeField(null=True, blank=True)
    performed_date = models.DateTimeField(null=True, blank=True)
    radiologist = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='radiology_reads')
    report_date = models.DateTimeField(null=True, blank=True)
    findings = models.TextField(blank=True)
    impression = models.TextField(blank=True)
    recommendations = models.TextField(blank=True)
    images = models.JSONField(default=list, blank=True)
    notes = models.TextField(blank=True)
    cancellation_reason = models.TextField(blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"{self.modality} {self.test_name} ({self.status})"


class ImagingStudy(models.Model):
    """DICOM object metadata attached to a radiology test."""
    radiology_test = models.ForeignKey(RadiologyTest, on_delete=models.CASCADE, related_name='studies')
    study_instance_uid = models.CharField(max_length=128)
    series_instance_uid = models.CharField(max_length=128)
    sop_instance_uid = models.CharField(max_length=128, unique=True)
    modality = models.CharField(max_length=16)
    body_part = models.CharField(max_length=64, blank=True)
    study_date = models.DateTimeField(default=timezone.now)
    file_name = models.CharField(max_length=255, blank=True)
    file_size = models.PositiveIntegerField(default=0)
    metadata = models.JSONField(default=dict, blank=True)
    uploaded_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    created_at = models.DateTimeField(auto_now_add=True)


# -----------------------------------------------------------------------------
# Blood bank
# -----------------------------------------------------------------------------
COMPONENT_CHOICES = [
    ('WHOLE_BLOOD', 'Whole blood'),
    ('RED_CELLS', 'Packed red cells'),
    ('PLASMA', 'Fresh frozen plasma'),
    ('PLATELETS', 'Platelets'),
]


class BloodDonor(models.Model):
    donor_number = models.CharField(max_length=20, unique=True)
    first_name = models.CharField(max_length=64)
    last_name = models.CharField(max_length=64)
    date_of_birth = models.DateField()
    gender = models.CharField(max_length=10, choices=GENDER_CHOICES)
    blood_type = models.CharField(max_length=3, choices=BLOOD_TYPE_CHOICES)
    phone = models.CharField(max_length=32, unique=True)
    email = models.EmailField(unique=True, null=True, blank=True)
    address = models.JSONField(default=dict, blank=True)
    weight_kg = models.DecimalField(max_digits=5, decimal_places=1, null=True, blank=True)
    is_eligible = models.BooleanField(default=True)
    last_donation_date = models.DateTimeField(null=True, blank=True)
    total_donations = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return f"{self.donor_number} {self.first_name} {self.last_name}"


class BloodDonation(models.Model):
    STATUS_CHOICES = [
        ('COLLECTED', 'Collected'),
        ('TESTED', 'Tested'),
        ('PROCESSED', 'Processed'),
        ('DISCARDED', 'Discarded'),
    ]
    donor = models.ForeignKey(BloodDonor, on_delete=models.PROTECT, related_name='donations')
    donation_date = models.DateTimeField(default=timezone.now, db_index=True)
    blood_type = models.CharField(max_length=3, choices=BLOOD_TYPE_CHOICES)
    component = models.CharField(max_length=12, choices=COMPONENT_CHOICES, default='WHOLE_BLOOD')
    quantity_ml = models.PositiveIntegerField()
    hemoglobin = models.DecimalField(max_digits=4, decimal_places=1, null=True, blank=True)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default='COLLECTED')
    screening_results = models.JSONField(default=dict, blank=True)
    collected_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    notes = models.TextField(blank=True)


class BloodUnit(models.Model):
    STATUS_CHOICES = [
        ('AVAILABLE', 'Available'),
        ('RESERVED', 'Reserved'),
        ('ISSUED', 'Issued'),
        ('EXPIRED', 'Expired'),
        ('DISCARDED', 'Discarded'),
    ]
    unit_number = models.CharField(max_length=32, unique=True)
    donation = models.ForeignKey(BloodDonation, null=True, blank=True, on_delete=models.SET_NULL, related_name='units')
    blood_type = models.CharField(max_length=3, choices=BLOOD_TYPE_CHOICES, db_index=True)
    component = models.CharField(max_length=12, choices=COMPONENT_CHOICES, default='WHOLE_BLOOD')
    volume_ml = models.PositiveIntegerField()
    collection_date = models.DateTimeField(default=timezone.now)
    expiry_date = models.DateTimeField(db_index=True)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default='AVAILABLE', db_index=True)
    storage_location = models.CharField(max_length=64, blank=True)
    patient = models.ForeignKey(Patient, null=True, blank=True, on_delete=models.SET_NULL, related_name='blood_units')
    issued_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    issued_at = models.DateTimeField(null=True, blank=True)

    def __str__(self) -> str:
        return f"{self.unit_number} {self.blood_type} {self.status}"


class BloodCrossmatch(models.Model):
    RESULT_CHOICES = [
        ('COMPATIBLE', 'Compatible'),
        ('INCOMPATIBLE', 'Incompatible'),
    ]
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='crossmatches')
    blood_unit = models.ForeignKey(BloodUnit, on_delete=models.CASCADE, related_name='crossmatches')
    requested_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    requested_at = models.DateTimeField(auto_now_add=True)
    result = models.CharField(max_length=12, choices=RESULT_CHOICES, null=True, blank=True)
    performed_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    performed_at = models.DateTimeField(null=True, blank=True)
    notes = models.TextField(blank=True)


# -----------------------------------------------------------------------------
# Pharmacy
# -----------------------------------------------------------------------------
class Medication(models.Model):
    name = models.CharField(max_length=255, db_index=True)
    generic_name = models.CharField(max_length=255, blank=True)
    brand_name = models.CharField(max_length=255, blank=True)
    category = models.CharField(max_length=64, blank=True)
    dosage_form = models.CharField(max_length=64, blank=True)
    strength = models.CharField(max_length=64, blank=True)
    manufacturer = models.CharField(max_length=128, blank=True)
    unit_price = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0'))
    stock_quantity = models.PositiveIntegerField(default=0)
    reorder_level = models.PositiveIntegerField(default=10)
    batch_number = models.CharField(max_length=64, blank=True)
    expiry_date = models.DateField(null=True, blank=True)
    requires_prescription = models.BooleanField(default=True)
    is_active = models.BooleanField(default=True)
    description = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"{self.name} {self.strength}".strip()


class InventoryLog(models.Model):
    CHANGE_CHOICES = [
        ('RECEIVED', 'Received'),
        ('ISSUED', 'Issued'),
        ('ADJUSTED', 'Adjusted'),
        ('EXPIRED', 'Expired'),
    ]
    medication = models.ForeignKey(Medication, on_delete=models.CASCADE, related_name='inventory_logs')
    change_type = models.CharField(max_length=10, choices=CHANGE_CHOICES)
    quantity = models.PositiveIntegerField()
    previous_stock = models.PositiveIntegerField()
    new_stock = models.PositiveIntegerField()
    reason = models.CharField(max_length=255, blank=True)
    performed_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    created_at = models.DateTimeField(auto_now_add=True)


class Prescription(models.Model):
    STATUS_CHOICES = [
        ('ACTIVE', 'Active'),
        ('COMPLETED', 'Completed'),
        ('CANCELLED', 'Cancelled'),
        ('EXPIRED', 'Expired'),
    ]
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='prescriptions')
    doctor = models.ForeignKey(StaffMember, null=True, blank=True, on_delete=models.SET_NULL, related_name='prescriptions')
    medication = models.ForeignKey(Medication, on_delete=models.PROTECT, related_name='prescriptions')
    dosage = models.CharField(max_length=64)
    frequency = models.CharField(max_length=64)
    duration = models.CharField(max_length=64, blank=True)
    quantity = models.PositiveIntegerField()
    instructions = models.TextField(blank=True)
    refills = models.PositiveIntegerField(default=0)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default='ACTIVE', db_index=True)
    prescribed_date = models.DateTimeField(default=timezone.now)
    dispensed_date = models.DateTimeField(null=True, blank=True)
    dispensed_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')


# -----------------------------------------------------------------------------
# Billing
# -----------------------------------------------------------------------------
class Bill(models.Model):
    TYPE_CHOICES = [
        ('GENERAL', 'General'),
        ('CONSULTATION', 'Consultation'),
        ('LABORATORY', 'Laboratory'),
        ('RADIOLOGY', 'Radiology'),
        ('PHARMACY', 'Pharmacy'),
        ('PACKAGE', 'Package'),
    ]
    STATUS_CHOICES = [
        ('PENDING', 'Pending'),
        ('PARTIALLY_PAID', 'Partially paid'),
        ('PAID', 'Paid'),
        ('OVERDUE', 'Overdue'),
        ('CANCELLED', 'Cancelled'),
    ]
    bill_number = models.CharField(max_length=32, unique=True)
    patient = models.ForeignKey(Patient, on_delete=models.PROTECT, related_name='bills')
    bill_type = models.CharField(max_length=16, choices=TYPE_CHOICES, default='GENERAL')
    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))
    discount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))
    tax = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))
    total_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))
    paid_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))
    balance = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default='PENDING', db_index=True)
    due_date = models.DateField()
    notes = models.TextField(blank=True)
    created_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    created_at = models.DateTimeField(default=timezone.now, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return self.bill_number


class BillItem(models.Model):
    bill = models.ForeignKey(Bill, on_delete=models.CASCADE, related_name='items')
    description = models.CharField(max_length=255)
    quantity = models.PositiveIntegerField(default=1)
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)
    discount_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    discount_percent = models.DecimalField(max_digits=5, decimal_places=2, null=True, blank=True)
    tax_percent = models.DecimalField(max_digits=5, decimal_places=2, null=True, blank=True)
    total = models.DecimalField(max_digits=12, decimal_places=2)


class Payment(models.Model):
    METHOD_CHOICES = [
        ('CASH', 'Cash'),
        ('CARD', 'Card'),
        ('INSURANCE', 'Insurance'),
        ('BANK_TRANSFER', 'Bank transfer'),
        ('ONLINE', 'Online'),
    ]
    bill = models.ForeignKey(Bill, on_delete=models.CASCADE, related_name='payments')
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    method = models.CharField(max_length=16, choices=METHOD_CHOICES)
    reference = models.CharField(max_length=128, blank=True)
    received_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    paid_at = models.DateTimeField(default=timezone.now)


class InsuranceClaim(models.Model):
    STATUS_CHOICES = [
        ('SUBMITTED', 'Submitted'),
        ('APPROVED', 'Approved'),
        ('PARTIALLY_APPROVED', 'Partially approved'),
        ('REJECTED', 'Rejected'),
    ]
    bill = models.ForeignKey(Bill, on_delete=models.CASCADE, related_name='claims')
    claim_number = models.CharField(max_length=32, unique=True)
    provider = models.CharField(max_length=128)
    # AES-GCM ciphertext ``iv:tag:data``
    policy_number = models.CharField(max_length=255)
    claim_amount = models.DecimalField(max_digits=12, decimal_places=2)
    approved_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='SUBMITTED')
    submitted_at = models.DateTimeField(auto_now_add=True)
    processed_at = models.DateTimeField(null=True, blank=True)
    notes = models.TextField(blank=True)


# -----------------------------------------------------------------------------
# Compliance
# -----------------------------------------------------------------------------
class AuditLog(models.Model):
    """Append-only audit trail of sensitive operations."""
    user = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='audit_logs')
    action = models.CharField(max_length=64, db_index=True)
    resource = models.CharField(max_length=64, db_index=True)
    resource_id = models.CharField(max_length=64, blank=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.CharField(max_length=255, blank=True)
    details = models.JSONField(default=dict, blank=True)
    compliance_flags = models.JSONField(default=list, blank=True)
    success = models.BooleanField(default=True)
    timestamp = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        ordering = ['-timestamp']


class ComplianceCheck(models.Model):
    """Latest outcome of each automated compliance check, keyed by check id."""
    check_id = models.CharField(max_length=64, unique=True)
    name = models.CharField(max_length=128)
    description = models.CharField(max_length=255, blank=True)
    category = models.CharField(max_length=10)
    status = models.CharField(max_length=10)
    severity = models.CharField(max_length=10)
    details = models.TextField(blank=True)
    recommendations = models.JSONField(default=list, blank=True)
    last_checked = models.DateTimeField()
    next_check = models.DateTimeField()
    updated_at = models.DateTimeField(auto_now=True)


class DataRetentionLog(models.Model):
    table_name = models.CharField(max_length=64)
    data_category = models.CharField(max_length=20)
    retention_days = models.PositiveIntegerField()
    cutoff_date = models.DateTimeField()
    eligible_records = models.PositiveIntegerField(default=0)
    deleted_records = models.PositiveIntegerField(default=0)
    executed_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    executed_at = models.DateTimeField(auto_now_add=True)
