from datetime import timedelta

import pytest
from django.utils import timezone

from hms.models import Appointment
from hms.tests.factories import make_doctor, make_patient

pytestmark = pytest.mark.django_db


def slot(days=1, hour=10):
    return (timezone.now() + timedelta(days=days)).replace(hour=hour, minute=0, second=0, microsecond=0)


def book(client, patient, doctor, when, **extra):
    body = {'patientId': patient.id, 'doctorId': doctor.id, 'appointmentDate': when.isoformat(), **extra}
    return client.post('/api/v1/appointments', body, format='json')


def test_create_and_list_appointment(client_for, patient, doctor):
    client = client_for('receptionist')
    r = book(client, patient, doctor, slot(), reason='Headache')
    assert r.status_code == 201
    data = r.data['data']
    assert data['status'] == 'SCHEDULED'
    assert data['type'] == 'CONSULTATION'
    assert data['duration'] == 30
    assert data['mrn'] == patient.mrn

    r = client.get('/api/v1/appointments', {'doctorId': doctor.id})
    assert r.status_code == 200
    assert r.data['pagination']['total'] == 1


def test_double_booking_is_rejected(client_for, patient, doctor):
    client = client_for('receptionist')
    when = slot()
    assert book(client, patient, doctor, when).status_code == 201
    r = book(client, make_patient(), doctor, when)
    assert r.status_code == 400
    assert r.data['error']['message'] == 'Doctor already has an appointment at this time'


def test_cancelled_slot_can_be_rebooked(client_for, patient, doctor):
    client = client_for('receptionist')
    when = slot()
    appt_id = book(client, patient, doctor, when).data['data']['id']
    r = client.post(f'/api/v1/appointments/{appt_id}/cancel', {'reason': 'Travel'}, format='json')
    assert r.status_code == 200
    assert r.data['data']['status'] == 'CANCELLED'
    assert 'Travel' in r.data['data']['notes']
    assert book(client, make_patient(), doctor, when).status_code == 201

    r = client.post(f'/api/v1/appointments/{appt_id}/cancel', {}, format='json')
    assert r.status_code == 400


def test_unknown_doctor_or_patient(client_for, patient, doctor):
    client = client_for('receptionist')
    r = client.post('/api/v1/appointments', {
        'patientId': patient.id, 'doctorId': 9999, 'appointmentDate': slot().isoformat(),
    }, format='json')
    assert r.status_code == 404
    r = client.post('/api/v1/appointments', {
        'patientId': 9999, 'doctorId': doctor.id, 'appointmentDate': slot().isoformat(),
    }, format='json')
    assert r.status_code == 404


def test_reschedule_into_taken_slot(client_for, patient, doctor):
    client = client_for('receptionist')
    book(client, patient, doctor, slot(hour=9))
    second = book(client, make_patient(), doctor, slot(hour=11)).data['data']['id']
    r = client.patch(f'/api/v1/appointments/{second}', {'appointmentDate': slot(hour=9).isoformat()}, format='json')
    assert r.status_code == 400
    r = client.patch(f'/api/v1/appointments/{second}', {'status': 'CONFIRMED'}, format='json')
    assert r.status_code == 200
    assert r.data['data']['status'] == 'CONFIRMED'


def test_patient_books_only_for_self(client_for, doctor):
    own = make_patient()
    other = make_patient()
    client = client_for('patient', user=own.user)
    assert book(client, own, doctor, slot()).status_code == 201
    assert book(client, other, doctor, slot(hour=12)).status_code == 403

    book(client_for('receptionist'), other, doctor, slot(hour=14))
    r = client.get('/api/v1/appointments')
    assert r.status_code == 200
    assert [a['patientId'] for a in r.data['data']] == [own.id]
    assert client.get(f'/api/v1/appointments/patient/{other.id}').status_code == 403


def test_doctor_schedule_skips_cancelled(client_for, patient, doctor):
    client = client_for('nurse')
    day = slot(days=2)
    Appointment.objects.create(patient=patient, doctor=doctor, appointment_date=day.replace(hour=8))
    Appointment.objects.create(patient=patient, doctor=doctor, appointment_date=day.replace(hour=9),
                               status='CANCELLED')
    Appointment.objects.create(patient=patient, doctor=make_doctor(), appointment_date=day.replace(hour=8))
    r = client.get(f'/api/v1/appointments/doctor/{doctor.id}/schedule', {'date': timezone.localdate(day).isoformat()})
    assert r.status_code == 200
    assert len(r.data['data']) == 1


def test_delete_and_stats(client_for, patient, doctor):
    client = client_for('receptionist')
    appt_id = book(client, patient, doctor, slot()).data['data']['id']
    r = client.get('/api/v1/appointments/stats')
    assert r.data['data']['total'] == 1
    assert r.data['data']['scheduled'] == 1

    assert client.delete(f'/api/v1/appointments/{appt_id}').status_code == 200
    assert client.get(f'/api/v1/appointments/{appt_id}').status_code == 404
