"""
Django admin registrations.

Only minimal configuration is applied: list displays, filters and search
fields so administrators can inspect records under ``/admin/``.
"""
from django.contrib import admin

from .models import (
    AuditLog,
    Bill,
    BillItem,
    BloodCrossmatch,
    BloodDonation,
    BloodDonor,
    BloodUnit,
    ComplianceCheck,
    DataRetentionLog,
    ImagingStudy,
    InsuranceClaim,
    InventoryLog,
    LabEquipment,
    LabQualityControl,
    LabReagent,
    LabResult,
    LabSample,
    LabTest,
    LabTestCatalog,
    LISIntegration,
    Medication,
    Patient,
    Payment,
    Prescription,
    RadiologyTest,
    StaffMember,
    Appointment,
    User,
)


@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    list_display = ('username', 'email', 'role', 'is_active', 'last_login')
    list_filter = ('role', 'is_active')
    search_fields = ('username', 'email', 'first_name', 'last_name')


@admin.register(Patient)
class PatientAdmin(admin.ModelAdmin):
    list_display = ('mrn', 'user', 'gender', 'blood_type', 'is_active', 'created_at')
    list_filter = ('gender', 'blood_type', 'registration_type', 'is_active')
    search_fields = ('mrn', 'user__first_name', 'user__last_name', 'user__email')
    # insurance_info holds ciphertext
    exclude = ('insurance_info',)


@admin.register(StaffMember)
class StaffMemberAdmin(admin.ModelAdmin):
    list_display = ('user', 'staff_type', 'license_number', 'department', 'is_available')
    list_filter = ('staff_type', 'shift', 'is_available')
    search_fields = ('user__username', 'license_number', 'specialization', 'department')


@admin.register(Appointment)
class AppointmentAdmin(admin.ModelAdmin):
    list_display = ('id', 'patient', 'doctor', 'appointment_date', 'type', 'status')
    list_filter = ('status', 'type')
    search_fields = ('patient__mrn', 'doctor__user__last_name')


@admin.register(LabTestCatalog)
class LabTestCatalogAdmin(admin.ModelAdmin):
    list_display = ('code', 'name', 'category', 'department', 'price', 'is_active')
    list_filter = ('department', 'is_active')
    search_fields = ('code', 'name')


class LabSampleInline(admin.TabularInline):
    model = LabSample
    extra = 0


class LabResultInline(admin.TabularInline):
    model = LabResult
    extra = 0


@admin.register(LabTest)
class LabTestAdmin(admin.ModelAdmin):
    list_display = ('order_number', 'patient', 'catalog', 'priority', 'urgent', 'status', 'ordered_date')
    list_filter = ('status', 'priority', 'urgent')
    search_fields = ('order_number', 'patient__mrn')
    inlines = [LabSampleInline, LabResultInline]


@admin.register(LabReagent)
class LabReagentAdmin(admin.ModelAdmin):
    list_display = ('name', 'lot_number', 'barcode', 'status')
    list_filter = ('status',)
    search_fields = ('name', 'lot_number', 'barcode')


@admin.register(LabEquipment)
class LabEquipmentAdmin(admin.ModelAdmin):
    list_display = ('name', 'serial_number', 'model_name', 'barcode', 'status')
    list_filter = ('status',)
    search_fields = ('name', 'serial_number', 'barcode')


@admin.register(LabQualityControl)
class LabQualityControlAdmin(admin.ModelAdmin):
    list_display = ('parameter', 'reagent', 'control_level', 'expected_range', 'actual_value', 'result', 'performed_at')
    list_filter = ('result', 'control_level')
    search_fields = ('parameter', 'control_lot')


@admin.register(LISIntegration)
class LISIntegrationAdmin(admin.ModelAdmin):
    list_display = ('name', 'endpoint', 'is_active', 'last_sync_at', 'last_sync_status')
    exclude = ('api_key',)


@admin.register(RadiologyTest)
class RadiologyTestAdmin(admin.ModelAdmin):
    list_display = ('id', 'patient', 'test_name', 'modality', 'urgent', 'status', 'ordered_date')
    list_filter = ('status', 'modality', 'urgent')
    search_fields = ('test_name', 'patient__mrn')


@admin.register(ImagingStudy)
class ImagingStudyAdmin(admin.ModelAdmin):
    list_display = ('sop_instance_uid', 'radiology_test', 'modality', 'file_name', 'study_date')
    search_fields = ('study_instance_uid', 'sop_instance_uid')


@admin.register(BloodDonor)
class BloodDonorAdmin(admin.ModelAdmin):
    list_display = ('donor_number', 'first_name', 'last_name', 'blood_type', 'is_eligible', 'last_donation_date')
    list_filter = ('blood_type', 'is_eligible')
    search_fields = ('donor_number', 'first_name', 'last_name', 'phone', 'email')


@admin.register(BloodDonation)
class BloodDonationAdmin(admin.ModelAdmin):
    list_display = ('id', 'donor', 'blood_type', 'component', 'quantity_ml', 'status', 'donation_date')
    list_filter = ('status', 'component')


@admin.register(BloodUnit)
class BloodUnitAdmin(admin.ModelAdmin):
    list_display = ('unit_number', 'blood_type', 'component', 'status', 'expiry_date')
    list_filter = ('status', 'blood_type', 'component')
    search_fields = ('unit_number',)


@admin.register(BloodCrossmatch)
class BloodCrossmatchAdmin(admin.ModelAdmin):
    list_display = ('id', 'patient', 'blood_unit', 'result', 'requested_at', 'performed_at')
    list_filter = ('result',)


@admin.register(Medication)
class MedicationAdmin(admin.ModelAdmin):
    list_display = ('name', 'generic_name', 'category', 'stock_quantity', 'reorder_level', 'expiry_date', 'is_active')
    list_filter = ('category', 'is_active', 'requires_prescription')
    search_fields = ('name', 'generic_name', 'brand_name', 'batch_number')


@admin.register(InventoryLog)
class InventoryLogAdmin(admin.ModelAdmin):
    list_display = ('medication', 'change_type', 'quantity', 'previous_stock', 'new_stock', 'created_at')
    list_filter = ('change_type',)


@admin.register(Prescription)
class PrescriptionAdmin(admin.ModelAdmin):
    list_display = ('id', 'patient', 'medication', 'quantity', 'status', 'prescribed_date', 'dispensed_date')
    list_filter = ('status',)
    search_fields = ('patient__mrn', 'medication__name')


class BillItemInline(admin.TabularInline):
    model = BillItem
    extra = 0


class PaymentInline(admin.TabularInline):
    model = Payment
    extra = 0


@admin.register(Bill)
class BillAdmin(admin.ModelAdmin):
    list_display = ('bill_number', 'patient', 'bill_type', 'total_amount', 'balance', 'status', 'due_date')
    list_filter = ('status', 'bill_type')
    search_fields = ('bill_number', 'patient__mrn')
    inlines = [BillItemInline, PaymentInline]


@admin.register(InsuranceClaim)
class InsuranceClaimAdmin(admin.ModelAdmin):
    list_display = ('claim_number', 'bill', 'provider', 'claim_amount', 'approved_amount', 'status')
    list_filter = ('status',)
    search_fields = ('claim_number', 'provider')
    exclude = ('policy_number',)


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ('timestamp', 'user', 'action', 'resource', 'resource_id', 'success')
    list_filter = ('action', 'resource', 'success')
    search_fields = ('action', 'resource', 'resource_id', 'user__username')

    def has_change_permission(self, request, obj=None):
        return False


@admin.register(ComplianceCheck)
class ComplianceCheckAdmin(admin.ModelAdmin):
    list_display = ('check_id', 'name', 'category', 'status', 'severity', 'last_checked')
    list_filter = ('category', 'status', 'severity')


@admin.register(DataRetentionLog)
class DataRetentionLogAdmin(admin.ModelAdmin):
    list_display = ('table_name', 'retention_days', 'eligible_records', 'deleted_records', 'executed_at')
