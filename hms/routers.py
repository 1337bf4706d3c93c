"""
URL mappings for the hospital API.

Mounted under ``api/v1/`` by ``hospital.urls``.  Trailing slashes are
deliberately omitted (``APPEND_SLASH = False``).
"""
from django.urls import path

from .auth_views import login_view, logout_view, profile_view, refresh_view
from .views import appointments
from .views import billing
from .views import blood_bank
from .views import compliance
from .views import dashboard
from .views import laboratory
from .views import patients
from .views import pharmacy
from .views import radiology
from .views import staff

urlpatterns = [
    # Auth
    path('auth/login', login_view),
    path('auth/refresh', refresh_view),
    path('auth/logout', logout_view),
    path('auth/profile', profile_view),

    # Patients
    path('patients', patients.list_patients),
    path('patients/register', patients.register_patient),
    path('patients/search', patients.search_patients),
    path('patients/check-in', patients.check_in),
    path('patients/<int:pk>', patients.patient_detail),
    path('patients/<int:pk>/medical-summary', patients.medical_summary),

    # Appointments
    path('appointments', appointments.appointments),
    path('appointments/stats', appointments.appointment_stats),
    path('appointments/doctor/<int:doctor_id>/schedule', appointments.doctor_schedule),
    path('appointments/patient/<int:patient_id>', appointments.patient_appointments),
    path('appointments/<int:pk>', appointments.appointment_detail),
    path('appointments/<int:pk>/cancel', appointments.cancel_appointment),

    # Laboratory
    path('laboratory/catalog', laboratory.catalog),
    path('laboratory/catalog/<int:pk>', laboratory.catalog_detail),
    path('laboratory/tests', laboratory.lab_tests),
    path('laboratory/tests/batch', laboratory.batch_orders),
    path('laboratory/tests/pending', laboratory.pending_tests),
    path('laboratory/tests/<int:pk>', laboratory.lab_test_detail),
    path('laboratory/tests/<int:pk>/process', laboratory.process_order),
    path('laboratory/tests/<int:pk>/sample', laboratory.collect_sample),
    path('laboratory/tests/<int:pk>/receive', laboratory.receive_sample),
    path('laboratory/tests/<int:pk>/results', laboratory.enter_results),
    path('laboratory/tests/<int:pk>/status', laboratory.update_status),
    path('laboratory/tests/<int:pk>/cancel', laboratory.cancel_test),
    path('laboratory/statistics', laboratory.statistics),
    path('laboratory/barcodes/labels', laboratory.barcode_labels),
    path('laboratory/barcodes/<str:code>', laboratory.barcode_lookup),
    path('laboratory/reagents', laboratory.reagents),
    path('laboratory/equipment', laboratory.equipment),
    path('laboratory/qc', laboratory.qc_record),
    path('laboratory/qc/history', laboratory.qc_history),
    path('laboratory/qc/statistics', laboratory.qc_statistics),
    path('laboratory/qc/dashboard', laboratory.qc_dashboard),
    path('laboratory/lis/config', laboratory.lis_config),
    path('laboratory/lis/results', laboratory.lis_results),
    path('laboratory/lis/catalog/sync', laboratory.lis_sync_catalog),
    path('laboratory/lis/orders/<str:order_number>/status', laboratory.lis_order_status),

    # Radiology
    path('radiology/tests', radiology.radiology_tests),
    path('radiology/stats', radiology.stats),
    path('radiology/tests/<int:pk>', radiology.radiology_detail),
    path('radiology/tests/<int:pk>/schedule', radiology.schedule),
    path('radiology/tests/<int:pk>/start', radiology.start),
    path('radiology/tests/<int:pk>/complete', radiology.complete),
    path('radiology/tests/<int:pk>/cancel', radiology.cancel),
    path('radiology/tests/<int:pk>/dicom', radiology.upload_dicom),

    # Blood bank
    path('blood-bank/donors', blood_bank.donors),
    path('blood-bank/donors/<int:pk>', blood_bank.donor_detail),
    path('blood-bank/donations', blood_bank.donations),
    path('blood-bank/inventory', blood_bank.inventory),
    path('blood-bank/inventory/<str:blood_type>', blood_bank.units_by_type),
    path('blood-bank/crossmatches', blood_bank.crossmatches),
    path('blood-bank/crossmatches/<int:pk>/result', blood_bank.perform_crossmatch),
    path('blood-bank/units/<int:pk>/issue', blood_bank.issue_unit),
    path('blood-bank/alerts', blood_bank.alerts),

    # Pharmacy
    path('pharmacy/medications', pharmacy.medications),
    path('pharmacy/medications/low-stock', pharmacy.low_stock),
    path('pharmacy/medications/expiring', pharmacy.expiring),
    path('pharmacy/medications/<int:pk>', pharmacy.medication_detail),
    path('pharmacy/medications/<int:pk>/stock', pharmacy.update_stock),
    path('pharmacy/medications/<int:pk>/inventory-logs', pharmacy.inventory_logs),
    path('pharmacy/prescriptions', pharmacy.prescriptions),
    path('pharmacy/prescriptions/<int:pk>', pharmacy.prescription_detail),
    path('pharmacy/prescriptions/<int:pk>/dispense', pharmacy.dispense),
    path('pharmacy/patients/<int:patient_id>/prescriptions', pharmacy.patient_prescriptions),
    path('pharmacy/stats', pharmacy.stats),

    # Billing
    path('billing/bills', billing.bills),
    path('billing/bills/package', billing.package_bill),
    path('billing/bills/<int:pk>', billing.bill_detail),
    path('billing/bills/<int:pk>/discount', billing.apply_discount),
    path('billing/bills/<int:pk>/payments', billing.process_payment),
    path('billing/bills/<int:pk>/claims', billing.submit_claim),
    path('billing/claims/<int:pk>/process', billing.process_claim),
    path('billing/reports/department', billing.department_report),
    path('billing/reports/revenue', billing.revenue),
    path('billing/reports/outstanding', billing.outstanding),

    # Staff
    path('staff/stats', staff.stats),
    path('staff/<slug:segment>', staff.staff_list),
    path('staff/<slug:segment>/<int:pk>', staff.staff_detail),

    # Compliance
    path('compliance/checks', compliance.checks),
    path('compliance/report', compliance.report),
    path('compliance/retention/policies', compliance.retention_policies),
    path('compliance/retention/execute', compliance.execute_retention),
    path('compliance/retention/logs', compliance.retention_logs),
    path('compliance/audit-logs', compliance.audit_logs),

    # Dashboard
    path('dashboard', dashboard.overview),
]
