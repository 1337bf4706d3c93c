"""
Patient registration, search, check-in and record access.

Uses DRF's APITestCase; users are force-authenticated so the tests do
not depend on the login flow.
"""
from datetime import date, timedelta

from rest_framework.test import APIClient, APITestCase

from hms.models import AuditLog, Patient
from hms.services.encryption import PHICrypto
from hms.tests.factories import make_patient, make_user


class PatientAPITests(APITestCase):
    def setUp(self) -> None:
        self.receptionist = make_user('receptionist')
        self.client.force_authenticate(user=self.receptionist)

    def register(self, **overrides):
        body = {
            'email': 'john.doe@example.test',
            'firstName': 'John',
            'lastName': 'Doe',
            'dateOfBirth': '1985-03-14',
            'gender': 'MALE',
            'bloodType': 'A+',
            'insuranceInfo': {'provider': 'Acme Health', 'policyNumber': 'POL1234567'},
        }
        body.update(overrides)
        return self.client.post('/api/v1/patients/register', body, format='json')

    def test_staff_registration_generates_mrn_and_initial_password(self):
        r = self.register()
        self.assertEqual(r.status_code, 201)
        data = r.data['data']
        year = str(date.today().year)
        self.assertTrue(data['mrn'].startswith(year))
        self.assertEqual(len(data['mrn']), 10)
        self.assertEqual(data['registrationType'], 'STAFF')
        self.assertTrue(r.data['initialPassword'])
        # policy number is stored encrypted and only ever returned masked
        patient = Patient.objects.get(id=data['id'])
        self.assertTrue(PHICrypto.is_encrypted(patient.insurance_info['policyNumber']))
        self.assertEqual(data['insuranceInfo']['policyNumber'], '******4567')
        self.assertTrue(AuditLog.objects.filter(action='PATIENT_REGISTERED', resource_id=str(patient.id)).exists())

    def test_mrns_are_sequential(self):
        first = self.register().data['data']['mrn']
        second = self.register(email='jane.doe@example.test').data['data']['mrn']
        self.assertEqual(int(second), int(first) + 1)

    def test_duplicate_email_is_a_conflict(self):
        self.register()
        r = self.register(email='JOHN.DOE@example.test')
        self.assertEqual(r.status_code, 409)
        self.assertEqual(r.data['error']['message'], 'User with this email already exists')

    def test_no_initial_password_when_caller_sets_one(self):
        r = self.register(password='Str0ng-Passphrase!')
        self.assertEqual(r.status_code, 201)
        self.assertNotIn('initialPassword', r.data)

    def test_future_birth_date_is_rejected(self):
        r = self.register(dateOfBirth=(date.today() + timedelta(days=1)).isoformat())
        self.assertEqual(r.status_code, 400)

    def test_anonymous_self_registration_requires_adult(self):
        anon = APIClient()
        minor_dob = date.today().replace(year=date.today().year - 10).isoformat()
        r = anon.post('/api/v1/patients/register', {
            'email': 'kid@example.test', 'firstName': 'Kid', 'lastName': 'Doe',
            'dateOfBirth': minor_dob, 'gender': 'MALE', 'registrationType': 'STAFF',
        }, format='json')
        self.assertEqual(r.status_code, 400)
        self.assertIn('18', r.data['error']['message'])

        r = anon.post('/api/v1/patients/register', {
            'email': 'adult@example.test', 'firstName': 'Ad', 'lastName': 'Ult',
            'dateOfBirth': '1990-01-01', 'gender': 'FEMALE',
        }, format='json')
        self.assertEqual(r.status_code, 201)
        self.assertEqual(r.data['data']['registrationType'], 'SELF')

    def test_list_and_search(self):
        self.register()
        self.register(email='maria@example.test', firstName='Maria', lastName='Garcia', gender='FEMALE')
        r = self.client.get('/api/v1/patients', {'search': 'garcia'})
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.data['pagination']['total'], 1)

        r = self.client.get('/api/v1/patients/search', {'gender': 'MALE', 'limit': 5})
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.data['total'], 1)
        self.assertEqual(r.data['data'][0]['firstName'], 'John')
        self.assertEqual(r.data['limit'], 5)

    def test_check_in(self):
        mrn = self.register().data['data']['mrn']
        r = self.client.post('/api/v1/patients/check-in', {'mrn': mrn}, format='json')
        self.assertEqual(r.status_code, 200)
        self.assertIsNotNone(r.data['data']['lastCheckIn'])

        r = self.client.post('/api/v1/patients/check-in', {'mrn': '000000'}, format='json')
        self.assertEqual(r.status_code, 404)

    def test_check_in_inactive_patient(self):
        patient = make_patient(is_active=False)
        r = self.client.post('/api/v1/patients/check-in', {'mrn': patient.mrn}, format='json')
        self.assertEqual(r.status_code, 400)

    def test_update_patient(self):
        pid = self.register().data['data']['id']
        r = self.client.patch(f'/api/v1/patients/{pid}', {'phone': '+15550001', 'allergies': ['Penicillin']},
                              format='json')
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.data['data']['phone'], '+15550001')
        self.assertEqual(r.data['data']['allergies'], ['Penicillin'])

    def test_unknown_patient_is_404(self):
        r = self.client.get('/api/v1/patients/99999')
        self.assertEqual(r.status_code, 404)
        self.assertEqual(r.data['ok'], False)


class PatientAccessTests(APITestCase):
    def setUp(self) -> None:
        self.own = make_patient()
        self.other = make_patient()
        self.client.force_authenticate(user=self.own.user)

    def test_patient_reads_own_record_and_summary(self):
        self.assertEqual(self.client.get(f'/api/v1/patients/{self.own.id}').status_code, 200)
        r = self.client.get(f'/api/v1/patients/{self.own.id}/medical-summary')
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.data['data']['patient']['mrn'], self.own.mrn)
        self.assertEqual(r.data['data']['recentAppointments'], [])

    def test_patient_cannot_read_other_patient(self):
        self.assertEqual(self.client.get(f'/api/v1/patients/{self.other.id}').status_code, 403)
        self.assertEqual(self.client.get(f'/api/v1/patients/{self.other.id}/medical-summary').status_code, 403)

    def test_patient_cannot_list_or_update(self):
        self.assertEqual(self.client.get('/api/v1/patients').status_code, 403)
        r = self.client.patch(f'/api/v1/patients/{self.own.id}', {'phone': '1'}, format='json')
        self.assertEqual(r.status_code, 403)
