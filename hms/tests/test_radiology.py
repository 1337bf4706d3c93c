import pytest
from django.core.files.uploadedfile import SimpleUploadedFile

from hms.models import ImagingStudy, RadiologyTest
from hms.services import dicom

pytestmark = pytest.mark.django_db


def dicom_bytes(body=b'\x00' * 64):
    return b'\x00' * 128 + b'DICM' + body


@pytest.fixture
def radiologist(client_for):
    return client_for('radiologist')


@pytest.fixture
def ordered(client_for, patient):
    r = client_for('doctor').post('/api/v1/radiology/tests', {
        'patientId': patient.id, 'testName': 'CT Chest', 'modality': 'CT', 'bodyPart': 'CHEST', 'urgent': True,
    }, format='json')
    assert r.status_code == 201
    return r.data['data']


def test_is_dicom():
    assert dicom.is_dicom(dicom_bytes())
    assert not dicom.is_dicom(b'DICM' + b'\x00' * 200)
    assert not dicom.is_dicom(b'\x00' * 128 + b'DIC')


def test_generated_uids_are_unique():
    uids = {dicom.generate_uid() for _ in range(50)}
    assert len(uids) == 50
    assert all(u.startswith('2.25.') for u in uids)


def test_workflow_to_report(radiologist, ordered):
    pk = ordered['id']
    assert ordered['status'] == 'ORDERED'

    r = radiologist.post(f'/api/v1/radiology/tests/{pk}/start')
    assert r.status_code == 400
    assert r.data['error']['message'] == 'Only SCHEDULED tests can be started'

    r = radiologist.post(f'/api/v1/radiology/tests/{pk}/schedule',
                         {'scheduledDate': '2030-01-15T09:30:00Z'}, format='json')
    assert r.data['data']['status'] == 'SCHEDULED'

    r = radiologist.post(f'/api/v1/radiology/tests/{pk}/start')
    assert r.data['data']['status'] == 'IN_PROGRESS'
    assert r.data['data']['radiologistId'] == radiologist.user.id

    r = radiologist.post(f'/api/v1/radiology/tests/{pk}/complete', {'findings': 'Clear lungs'}, format='json')
    assert r.status_code == 400

    r = radiologist.post(f'/api/v1/radiology/tests/{pk}/complete', {
        'findings': 'Clear lungs', 'impression': 'No acute disease',
    }, format='json')
    data = r.data['data']
    assert data['status'] == 'COMPLETED'
    assert data['reportDate']
    assert data['impression'] == 'No acute disease'

    r = radiologist.post(f'/api/v1/radiology/tests/{pk}/cancel', {}, format='json')
    assert r.status_code == 400
    assert r.data['error']['message'] == 'Cannot cancel a completed test'


def test_patch_status_follows_transitions(radiologist, ordered):
    pk = ordered['id']
    r = radiologist.patch(f'/api/v1/radiology/tests/{pk}', {'status': 'COMPLETED'}, format='json')
    assert r.status_code == 400
    assert r.data['error']['message'] == 'Invalid status transition from ORDERED to COMPLETED'
    r = radiologist.patch(f'/api/v1/radiology/tests/{pk}', {'status': 'CANCELLED', 'notes': 'patient left'},
                          format='json')
    assert r.data['data']['status'] == 'CANCELLED'
    assert r.data['data']['notes'] == 'patient left'


def test_dicom_upload(radiologist, ordered):
    pk = ordered['id']
    upload = SimpleUploadedFile('chest.dcm', dicom_bytes(), content_type='application/dicom')
    r = radiologist.post(f'/api/v1/radiology/tests/{pk}/dicom', {'file': upload}, format='multipart')
    assert r.status_code == 201
    data = r.data['data']
    assert data['modality'] == 'CT'
    assert data['bodyPart'] == 'CHEST'
    assert data['fileName'] == 'chest.dcm'
    assert data['fileSize'] == 196
    assert data['metadata']['rows'] == 512
    assert data['sopInstanceUID'] != data['studyInstanceUID']

    r = radiologist.get(f'/api/v1/radiology/tests/{pk}')
    assert len(r.data['data']['studies']) == 1


def test_non_dicom_upload_is_rejected(radiologist, ordered):
    upload = SimpleUploadedFile('notes.txt', b'hello world' * 20, content_type='text/plain')
    r = radiologist.post(f"/api/v1/radiology/tests/{ordered['id']}/dicom", {'file': upload}, format='multipart')
    assert r.status_code == 400
    assert r.data['error']['message'] == 'Invalid DICOM file'
    assert ImagingStudy.objects.count() == 0


def test_list_and_stats(radiologist, patient):
    RadiologyTest.objects.create(patient=patient, test_name='Knee X-ray', modality='XRAY')
    RadiologyTest.objects.create(patient=patient, test_name='Brain MRI', modality='MRI', urgent=True)
    RadiologyTest.objects.create(patient=patient, test_name='Old MRI', modality='MRI', status='COMPLETED')

    r = radiologist.get('/api/v1/radiology/tests', {'modality': 'MRI'})
    assert r.data['pagination']['total'] == 2
    assert r.data['data'][0]['testName'] == 'Brain MRI'

    r = radiologist.get('/api/v1/radiology/stats')
    data = r.data['data']
    assert data['total'] == 3
    assert data['pending'] == 2
    assert data['urgentPending'] == 1
    assert data['byModality'] == {'XRAY': 1, 'MRI': 2}


def test_pharmacist_has_no_access(client_for):
    assert client_for('pharmacist').get('/api/v1/radiology/tests').status_code == 403
