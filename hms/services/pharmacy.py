"""Pharmacy: medication catalogue, stock movements and prescriptions."""
import logging
from datetime import timedelta

from django.conf import settings
from django.db import transaction
from django.db.models import F, Q
from django.utils import timezone
from rest_framework.exceptions import NotFound, ValidationError

from hms.models import InventoryLog, Medication, Prescription, StaffMember
from hms.services.audit import log_action
from hms.services.common import iso, money

logger = logging.getLogger(__name__)


def format_medication(m: Medication) -> dict:
    return {
        'id': m.id,
        'name': m.name,
        'genericName': m.generic_name,
        'brandName': m.brand_name,
        'category': m.category,
        'dosageForm': m.dosage_form,
        'strength': m.strength,
        'manufacturer': m.manufacturer,
        'unitPrice': money(m.unit_price),
        'stockQuantity': m.stock_quantity,
        'reorderLevel': m.reorder_level,
        'lowStock': m.stock_quantity <= m.reorder_level,
        'batchNumber': m.batch_number,
        'expiryDate': iso(m.expiry_date),
        'requiresPrescription': m.requires_prescription,
        'isActive': m.is_active,
        'description': m.description,
    }


def format_inventory_log(log: InventoryLog) -> dict:
    return {
        'id': log.id,
        'medicationId': log.medication_id,
        'changeType': log.change_type,
        'quantity': log.quantity,
        'previousStock': log.previous_stock,
        'newStock': log.new_stock,
        'reason': log.reason,
        'performedBy': log.performed_by_id,
        'createdAt': iso(log.created_at),
    }


def format_prescription(p: Prescription) -> dict:
    return {
        'id': p.id,
        'patientId': p.patient_id,
        'doctorId': p.doctor_id,
        'medicationId': p.medication_id,
        'medicationName': str(p.medication),
        'dosage': p.dosage,
        'frequency': p.frequency,
        'duration': p.duration,
        'quantity': p.quantity,
        'instructions': p.instructions,
        'refills': p.refills,
        'status': p.status,
        'prescribedDate': iso(p.prescribed_date),
        'dispensedDate': iso(p.dispensed_date),
        'dispensedBy': p.dispensed_by_id,
    }


# -- medications --------------------------------------------------------------
MEDICATION_FIELDS = {
    'name': 'name',
    'genericName': 'generic_name',
    'brandName': 'brand_name',
    'category': 'category',
    'dosageForm': 'dosage_form',
    'strength': 'strength',
    'manufacturer': 'manufacturer',
    'unitPrice': 'unit_price',
    'reorderLevel': 'reorder_level',
    'batchNumber': 'batch_number',
    'expiryDate': 'expiry_date',
    'requiresPrescription': 'requires_prescription',
    'description': 'description',
    'isActive': 'is_active',
}


def create_medication(actor, data: dict) -> Medication:
    med = Medication(stock_quantity=data.get('stockQuantity') or 0)
    for key, attr in MEDICATION_FIELDS.items():
        if key in data and data[key] is not None:
            setattr(med, attr, data[key])
    with transaction.atomic():
        med.save()
        if med.stock_quantity:
            InventoryLog.objects.create(medication=med, change_type='RECEIVED', quantity=med.stock_quantity,
                                        previous_stock=0, new_stock=med.stock_quantity,
                                        reason='Initial stock', performed_by=actor)
    return med


def _expiry_cutoff(days: int | None = None):
    days = settings.PHARMACY_EXPIRY_WARNING_DAYS if days is None else days
    return timezone.localdate() + timedelta(days=days)


def list_medications(params: dict):
    qs = Medication.objects.filter(is_active=True).order_by('name')
    search = (params.get('search') or '').strip()
    if search:
        qs = qs.filter(Q(name__icontains=search) | Q(generic_name__icontains=search)
                       | Q(brand_name__icontains=search))
    if params.get('category'):
        qs = qs.filter(category=params['category'])
    if params.get('lowStock'):
        qs = qs.filter(stock_quantity__lte=F('reorder_level'))
    if params.get('expiringSoon'):
        qs = qs.filter(expiry_date__lte=_expiry_cutoff())
    return qs


def get_medication(med_id) -> Medication:
    med = Medication.objects.filter(id=med_id).first()
    if not med:
        raise NotFound('Medication not found')
    return med


def update_medication(med_id, data: dict) -> Medication:
    med = get_medication(med_id)
    for key, attr in MEDICATION_FIELDS.items():
        if key in data:
            setattr(med, attr, data[key])
    med.save()
    return med


def deactivate_medication(med_id) -> Medication:
    med = get_medication(med_id)
    med.is_active = False
    med.save(update_fields=['is_active', 'updated_at'])
    return med


def update_stock(actor, med_id, quantity: int, operation: str, reason: str = '') -> Medication:
    """Add or subtract stock and write the matching inventory log row."""
    with transaction.atomic():
        med = Medication.objects.select_for_update().filter(id=med_id).first()
        if not med:
            raise NotFound('Medication not found')
        previous = med.stock_quantity
        if operation == 'subtract':
            if quantity > previous:
                raise ValidationError('Insufficient stock')
            med.stock_quantity = previous - quantity
            change = 'ISSUED'
        else:
            med.stock_quantity = previous + quantity
            change = 'RECEIVED'
        med.save(update_fields=['stock_quantity', 'updated_at'])
        InventoryLog.objects.create(medication=med, change_type=change, quantity=quantity,
                                    previous_stock=previous, new_stock=med.stock_quantity,
                                    reason=reason, performed_by=actor)
    logger.info('Stock %s %s x%d: %d -> %d', change, med.name, quantity, previous, med.stock_quantity)
    return med


def low_stock():
    return Medication.objects.filter(is_active=True, stock_quantity__lte=F('reorder_level')).order_by('stock_quantity')


def expiring(days: int | None = None):
    return (Medication.objects.filter(is_active=True, expiry_date__lte=_expiry_cutoff(days))
            .order_by('expiry_date'))


def inventory_logs(med_id):
    get_medication(med_id)
    return InventoryLog.objects.filter(medication_id=med_id).order_by('-created_at', '-id')


# -- prescriptions ------------------------------------------------------------
def create_prescription(actor, data: dict, *, request=None) -> Prescription:
    from hms.services.patients import get_patient
    patient = get_patient(data['patientId'])
    med = get_medication(data['medicationId'])
    if med.stock_quantity < data['quantity']:
        raise ValidationError('Insufficient medication stock')
    doctor = None
    if data.get('doctorId'):
        doctor = StaffMember.objects.filter(id=data['doctorId'], staff_type='DOCTOR').first()
        if not doctor:
            raise NotFound('Doctor not found')
    else:
        doctor = StaffMember.objects.filter(user=actor, staff_type='DOCTOR').first()
    rx = Prescription.objects.create(
        patient=patient,
        doctor=doctor,
        medication=med,
        dosage=data['dosage'],
        frequency=data['frequency'],
        duration=data.get('duration') or '',
        quantity=data['quantity'],
        instructions=data.get('instructions') or '',
        refills=data.get('refills') or 0,
    )
    log_action(user=actor, action='PRESCRIPTION_CREATED', resource='prescription', resource_id=rx.id,
               details={'medication': med.name, 'quantity': rx.quantity},
               flags=['HIPAA'], request=request)
    return rx


def get_prescription(rx_id) -> Prescription:
    rx = Prescription.objects.select_related('medication').filter(id=rx_id).first()
    if not rx:
        raise NotFound('Prescription not found')
    return rx


def patient_prescriptions(patient_id, status: str | None = None):
    qs = Prescription.objects.select_related('medication').filter(patient_id=patient_id)
    if status:
        qs = qs.filter(status=status)
    return qs.order_by('-prescribed_date')


def dispense(actor, rx_id, *, request=None) -> Prescription:
    with transaction.atomic():
        rx = Prescription.objects.select_for_update().filter(id=rx_id).first()
        if not rx:
            raise NotFound('Prescription not found')
        if rx.status != 'ACTIVE':
            raise ValidationError('Prescription is not active')
        if rx.medication.stock_quantity < rx.quantity:
            raise ValidationError('Insufficient medication stock')
        update_stock(actor, rx.medication_id, rx.quantity, 'subtract', f'Dispensed prescription {rx.id}')
        rx.status = 'COMPLETED'
        rx.dispensed_date = timezone.now()
        rx.dispensed_by = actor
        rx.save()
    log_action(user=actor, action='PRESCRIPTION_DISPENSED', resource='prescription', resource_id=rx.id,
               flags=['HIPAA'], request=request)
    return rx


def statistics() -> dict:
    active = Medication.objects.filter(is_active=True)
    today = timezone.localdate()
    return {
        'totalMedications': active.count(),
        'lowStockCount': active.filter(stock_quantity__lte=F('reorder_level')).count(),
        'expiringCount': active.filter(expiry_date__lte=_expiry_cutoff()).count(),
        'activePrescriptions': Prescription.objects.filter(status='ACTIVE').count(),
        'dispensedToday': Prescription.objects.filter(dispensed_date__date=today).count(),
        'prescriptionsLast30Days': Prescription.objects.filter(
            prescribed_date__gte=timezone.now() - timedelta(days=30)).count(),
    }
