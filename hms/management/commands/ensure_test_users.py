from django.contrib.auth import get_user_model
from django.contrib.auth.hashers import make_password
from django.core.management.base import BaseCommand

User = get_user_model()

TEST_SET = [
    ("super1", "super"),
    ("admin1", "admin"),
    ("doctor1", "doctor"),
    ("nurse1", "nurse"),
    ("labtech1", "lab_technician"),
    ("radiologist1", "radiologist"),
    ("pharmacist1", "pharmacist"),
    ("reception1", "receptionist"),
    ("accountant1", "accountant"),
    ("patient1", "patient"),
]


class Command(BaseCommand):
    help = "Ensure one test user per role exists with a known password (idempotent)."

    def add_arguments(self, parser):
        parser.add_argument('--password', default='Hospital#2024', help="Password set on every test user")

    def handle(self, *args, **opts):
        password = make_password(opts['password'])
        for username, role in TEST_SET:
            u, created = User.objects.get_or_create(
                username=username,
                defaults={"role": role, "password": password, "is_active": True,
                          "email": f"{username}@hospital.test"},
            )
            if not created:
                # reset password, role and activation
                u.password = password
                u.role = role
                u.is_active = True
                u.save(update_fields=["password", "role", "is_active"])
            self.stdout.write(self.style.SUCCESS(f"ok: {username} ({role})"))
        self.stdout.write(self.style.SUCCESS("All test users ensured."))
