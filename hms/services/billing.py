"""
Billing: itemised bills, discounts, payments and insurance claims.

Amounts are ``Decimal`` throughout and rounded to cents when stored.
Per item the discount is the fixed ``discountAmount`` if given, else
``discountPercent`` of the item total; tax applies to the discounted
amount.
"""
import logging
from datetime import timedelta
from decimal import ROUND_HALF_UP, Decimal

from django.conf import settings
from django.db import transaction
from django.db.models import Count, Q, Sum
from django.utils import timezone
from rest_framework.exceptions import NotFound, PermissionDenied, ValidationError

from hms.exceptions import Conflict
from hms.models import Bill, BillItem, InsuranceClaim, Payment
from hms.permissions import BILLING_MANAGER_ROLES, has_role
from hms.services.audit import log_action
from hms.services.common import iso, money
from hms.services.encryption import PHICrypto, mask

logger = logging.getLogger(__name__)

FINANCIAL = ['FINANCIAL']
CENT = Decimal('0.01')
HUNDRED = Decimal('100')
OPEN_STATUSES = ('PENDING', 'PARTIALLY_PAID', 'OVERDUE')
DEPARTMENT_KEYWORDS = (('LAB', 'LABORATORY'), ('RADIO', 'RADIOLOGY'), ('CONSULT', 'CONSULTATION'))


def _d(value) -> Decimal:
    return Decimal(str(value or 0))


def _cents(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def compute_item(item: dict) -> dict:
    """Return ``total``, ``discount`` and ``tax`` for one bill item."""
    total = _d(item['quantity']) * _d(item['unitPrice'])
    if item.get('discountAmount'):
        discount = _d(item['discountAmount'])
    elif item.get('discountPercent'):
        discount = total * _d(item['discountPercent']) / HUNDRED
    else:
        discount = Decimal('0')
    tax = (total - discount) * _d(item.get('taxPercent')) / HUNDRED
    return {'total': total, 'discount': discount, 'tax': tax}


def compute_totals(items: list[dict]) -> dict:
    subtotal = discount = tax = Decimal('0')
    for item in items:
        parts = compute_item(item)
        subtotal += parts['total']
        discount += parts['discount']
        tax += parts['tax']
    return {
        'subtotal': _cents(subtotal),
        'discount': _cents(discount),
        'tax': _cents(tax),
        'total': _cents(subtotal - discount + tax),
    }


def format_item(i: BillItem) -> dict:
    return {
        'id': i.id,
        'description': i.description,
        'quantity': i.quantity,
        'unitPrice': money(i.unit_price),
        'discountAmount': money(i.discount_amount) if i.discount_amount is not None else None,
        'discountPercent': float(i.discount_percent) if i.discount_percent is not None else None,
        'taxPercent': float(i.tax_percent) if i.tax_percent is not None else None,
        'total': money(i.total),
    }


def format_payment(p: Payment) -> dict:
    return {
        'id': p.id,
        'billId': p.bill_id,
        'amount': money(p.amount),
        'method': p.method,
        'reference': p.reference,
        'receivedBy': p.received_by_id,
        'paidAt': iso(p.paid_at),
    }


def format_claim(c: InsuranceClaim) -> dict:
    try:
        policy = mask(PHICrypto.decrypt(c.policy_number))
    except ValueError:
        policy = mask(c.policy_number)
    return {
        'id': c.id,
        'billId': c.bill_id,
        'claimNumber': c.claim_number,
        'provider': c.provider,
        'policyNumber': policy,
        'claimAmount': money(c.claim_amount),
        'approvedAmount': money(c.approved_amount) if c.approved_amount is not None else None,
        'status': c.status,
        'submittedAt': iso(c.submitted_at),
        'processedAt': iso(c.processed_at),
        'notes': c.notes,
    }


def format_bill(b: Bill, detail: bool = False) -> dict:
    data = {
        'id': b.id,
        'billNumber': b.bill_number,
        'patientId': b.patient_id,
        'billType': b.bill_type,
        'subtotal': money(b.subtotal),
        'discount': money(b.discount),
        'tax': money(b.tax),
        'totalAmount': money(b.total_amount),
        'paidAmount': money(b.paid_amount),
        'balance': money(b.balance),
        'status': b.status,
        'dueDate': iso(b.due_date),
        'notes': b.notes,
        'createdBy': b.created_by_id,
        'createdAt': iso(b.created_at),
    }
    if detail:
        data['items'] = [format_item(i) for i in b.items.order_by('id')]
        data['payments'] = [format_payment(p) for p in b.payments.order_by('paid_at')]
        data['claims'] = [format_claim(c) for c in b.claims.order_by('submitted_at')]
    return data


def generate_bill_number() -> str:
    now = timezone.now()
    prefix = f"BILL{now:%Y}{now:%m}"
    seq = Bill.objects.filter(created_at__year=now.year, created_at__month=now.month).count() + 1
    number = f"{prefix}{seq:04d}"
    while Bill.objects.filter(bill_number=number).exists():
        seq += 1
        number = f"{prefix}{seq:04d}"
    return number


def _derive_status(bill: Bill) -> str:
    if bill.balance <= 0:
        return 'PAID'
    if bill.paid_amount > 0 or bill.balance < bill.total_amount:
        return 'PARTIALLY_PAID'
    return bill.status


def get_bill(bill_id) -> Bill:
    bill = Bill.objects.filter(id=bill_id).first()
    if not bill:
        raise NotFound('Bill not found')
    return bill


def create_bill(actor, data: dict, *, request=None) -> Bill:
    from hms.services.patients import get_patient
    patient = get_patient(data['patientId'])
    items = data['items']
    if not items:
        raise ValidationError('A bill needs at least one item')
    totals = compute_totals(items)
    due = data.get('dueDate') or (timezone.localdate() + timedelta(days=settings.BILL_DUE_DAYS))

    with transaction.atomic():
        bill = Bill.objects.create(
            bill_number=generate_bill_number(),
            patient=patient,
            bill_type=data.get('billType') or 'GENERAL',
            subtotal=totals['subtotal'],
            discount=totals['discount'],
            tax=totals['tax'],
            total_amount=totals['total'],
            balance=totals['total'],
            due_date=due,
            notes=data.get('notes') or '',
            created_by=actor,
        )
        BillItem.objects.bulk_create([
            BillItem(
                bill=bill,
                description=item['description'],
                quantity=item['quantity'],
                unit_price=_d(item['unitPrice']),
                discount_amount=item.get('discountAmount'),
                discount_percent=item.get('discountPercent'),
                tax_percent=item.get('taxPercent'),
                total=_cents(compute_item(item)['total']),
            )
            for item in items
        ])

    log_action(user=actor, action='BILL_CREATED', resource='bill', resource_id=bill.id,
               details={'billNumber': bill.bill_number, 'patientId': patient.id, 'billType': bill.bill_type,
                        'totalAmount': money(bill.total_amount), 'itemCount': len(items)},
               flags=FINANCIAL, request=request)
    return bill


def create_package_bill(actor, data: dict, *, request=None) -> Bill:
    note = f"Package: {data['packageName']}"
    if data.get('validityDays'):
        note += f" ({data['validityDays']} days validity)"
    return create_bill(actor, {**data, 'billType': 'PACKAGE', 'notes': note}, request=request)


def list_bills(params: dict):
    qs = Bill.objects.all()
    if params.get('status'):
        qs = qs.filter(status=params['status'])
    if params.get('patientId'):
        qs = qs.filter(patient_id=params['patientId'])
    if params.get('billType'):
        qs = qs.filter(bill_type=params['billType'])
    if params.get('dateFrom'):
        qs = qs.filter(created_at__date__gte=params['dateFrom'])
    if params.get('dateTo'):
        qs = qs.filter(created_at__date__lte=params['dateTo'])
    return qs.order_by('-created_at')


def apply_discount(actor, bill_id, data: dict, *, request=None) -> Bill:
    if not has_role(actor, BILLING_MANAGER_ROLES):
        raise PermissionDenied('Insufficient permissions to apply discount')
    with transaction.atomic():
        bill = Bill.objects.select_for_update().filter(id=bill_id).first()
        if not bill:
            raise NotFound('Bill not found')
        if bill.status != 'PENDING':
            raise ValidationError('Cannot apply discount to non-pending bill')
        if data.get('discountPercent'):
            discount = _cents(bill.subtotal * _d(data['discountPercent']) / HUNDRED)
        else:
            discount = _cents(_d(data.get('discountAmount')))
        if discount > bill.subtotal:
            raise ValidationError('Discount cannot exceed the bill subtotal')
        bill.discount = discount
        bill.total_amount = bill.subtotal + bill.tax - discount
        bill.balance = bill.total_amount - bill.paid_amount
        bill.notes = f"{bill.notes}\nDiscount applied: {discount} ({data['reason']})".strip()
        bill.save()
    percent = data.get('discountPercent')
    log_action(user=actor, action='DISCOUNT_APPLIED', resource='bill', resource_id=bill.id,
               details={'discountAmount': money(discount), 'discountPercent': money(percent) if percent else None,
                        'reason': data['reason'], 'billTotal': money(bill.total_amount)},
               flags=FINANCIAL, request=request)
    return bill


def process_payment(actor, bill_id, data: dict, *, request=None) -> tuple[Bill, Payment]:
    amount = _cents(_d(data['amount']))
    if amount <= 0:
        raise ValidationError('Payment amount must be greater than zero')
    with transaction.atomic():
        bill = Bill.objects.select_for_update().filter(id=bill_id).first()
        if not bill:
            raise NotFound('Bill not found')
        if bill.status == 'PAID':
            raise ValidationError('Bill is already fully paid')
        if bill.status == 'CANCELLED':
            raise ValidationError('Cannot pay a cancelled bill')
        if amount > bill.balance:
            raise ValidationError('Payment amount exceeds outstanding balance')
        payment = Payment.objects.create(
            bill=bill,
            amount=amount,
            method=data['method'],
            reference=data.get('reference') or '',
            received_by=actor,
            paid_at=data.get('paidAt') or timezone.now(),
        )
        bill.paid_amount += amount
        bill.balance = bill.total_amount - bill.paid_amount
        bill.status = _derive_status(bill)
        bill.save()
    log_action(user=actor, action='PAYMENT_PROCESSED', resource='bill', resource_id=bill.id,
               details={'amount': money(amount), 'paymentMethod': payment.method,
                        'referenceNumber': payment.reference, 'newBalance': money(bill.balance)},
               flags=FINANCIAL, request=request)
    return bill, payment


def submit_claim(actor, bill_id, data: dict, *, request=None) -> InsuranceClaim:
    bill = get_bill(bill_id)
    if InsuranceClaim.objects.filter(claim_number=data['claimNumber']).exists():
        raise Conflict(f"Claim {data['claimNumber']} already exists")
    amount = _d(data['claimAmount'])
    if amount > bill.balance:
        raise ValidationError('Claim amount exceeds outstanding balance')
    claim = InsuranceClaim.objects.create(
        bill=bill,
        claim_number=data['claimNumber'],
        provider=data['provider'],
        policy_number=PHICrypto.encrypt(data['policyNumber']),
        claim_amount=amount,
        notes=data.get('notes') or '',
    )
    log_action(user=actor, action='INSURANCE_CLAIM_SUBMITTED', resource='bill', resource_id=bill.id,
               details={'claimNumber': claim.claim_number, 'claimAmount': money(amount)},
               flags=FINANCIAL + ['INSURANCE'], request=request)
    return claim


def process_claim(actor, claim_id, data: dict, *, request=None) -> InsuranceClaim:
    with transaction.atomic():
        claim = InsuranceClaim.objects.select_related('bill').select_for_update().filter(id=claim_id).first()
        if not claim:
            raise NotFound('Insurance claim not found')
        if claim.status != 'SUBMITTED':
            raise ValidationError('Insurance claim has already been processed')
        status = data['status']
        approved = _cents(_d(data.get('approvedAmount')))
        if status == 'APPROVED' and not data.get('approvedAmount'):
            approved = claim.claim_amount
        bill = claim.bill
        if status in ('APPROVED', 'PARTIALLY_APPROVED'):
            if approved > bill.balance:
                raise ValidationError('Approved amount exceeds outstanding balance')
            bill.balance -= approved
            bill.notes = f"{bill.notes}\nInsurance claim {claim.claim_number}: {approved} approved".strip()
            bill.status = _derive_status(bill)
            bill.save()
            claim.approved_amount = approved
        claim.status = status
        claim.processed_at = timezone.now()
        if data.get('notes'):
            claim.notes = f"{claim.notes}\n{data['notes']}".strip()
        claim.save()
    log_action(user=actor, action='INSURANCE_CLAIM_PROCESSED', resource='bill', resource_id=bill.id,
               details={'claimNumber': claim.claim_number, 'status': status,
                        'approvedAmount': money(claim.approved_amount)},
               flags=FINANCIAL + ['INSURANCE'], request=request)
    return claim


def department_report(department: str | None, date_from, date_to) -> dict:
    qs = Bill.objects.filter(created_at__date__gte=date_from, created_at__date__lte=date_to)
    if department:
        qs = qs.filter(items__description__icontains=department).distinct()
    totals = qs.aggregate(billed=Sum('total_amount'), paid=Sum('paid_amount'), outstanding=Sum('balance'))
    by_status = {row['status']: row['n'] for row in qs.order_by().values('status').annotate(n=Count('id'))}
    return {
        'department': department or 'ALL',
        'period': {'dateFrom': iso(date_from), 'dateTo': iso(date_to)},
        'totalBills': qs.count(),
        'totalBilled': money(totals['billed']),
        'totalPaid': money(totals['paid']),
        'outstandingAmount': money(totals['outstanding']),
        'byStatus': by_status,
    }


def _department_of(description: str) -> str:
    text = description.upper()
    for keyword, department in DEPARTMENT_KEYWORDS:
        if keyword in text:
            return department
    return 'OTHER'


def revenue_analytics(date_from, date_to) -> dict:
    bills = list(Bill.objects.filter(status='PAID', created_at__date__gte=date_from,
                                     created_at__date__lte=date_to).prefetch_related('items', 'payments'))
    departments: dict[str, dict] = {}
    methods: dict[str, dict] = {}
    total = Decimal('0')
    for bill in bills:
        total += bill.total_amount
        for item in bill.items.all():
            bucket = departments.setdefault(_department_of(item.description), {'totalRevenue': 0.0, 'itemCount': 0})
            bucket['totalRevenue'] = round(bucket['totalRevenue'] + money(item.total), 2)
            bucket['itemCount'] += 1
        for payment in bill.payments.all():
            bucket = methods.setdefault(payment.method, {'count': 0, 'total': 0.0})
            bucket['count'] += 1
            bucket['total'] = round(bucket['total'] + money(payment.amount), 2)
    return {
        'period': {'dateFrom': iso(date_from), 'dateTo': iso(date_to)},
        'totalRevenue': money(total),
        'totalBills': len(bills),
        'averageBillValue': money(total / len(bills)) if bills else 0.0,
        'departmentBreakdown': departments,
        'paymentMethodBreakdown': methods,
    }


def mark_overdue() -> int:
    n = (Bill.objects.filter(status__in=('PENDING', 'PARTIALLY_PAID'), due_date__lt=timezone.localdate())
         .update(status='OVERDUE'))
    if n:
        logger.info('Marked %d bills overdue', n)
    return n


def outstanding_summary() -> dict:
    qs = Bill.objects.filter(status__in=OPEN_STATUSES)
    agg = qs.aggregate(n=Count('id'), balance=Sum('balance'), overdue=Count('id', filter=Q(status='OVERDUE')))
    return {'pendingBills': agg['n'], 'outstandingAmount': money(agg['balance']), 'overdueBills': agg['overdue']}
