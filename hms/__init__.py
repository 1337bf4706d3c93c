"""Hospital management application.

Models, validators, services, views and URL registrations for the
patients, appointments, laboratory, radiology, blood bank, pharmacy,
billing, staff and compliance modules.
"""
