"""
Bookings Domain

Booking requests: a patient asks a doctor for a preferred time, the doctor
answers with a suggested time or rejects, and an approved request is
converted into a PENDING appointment on a concrete slot through the
appointment lifecycle in app/domain/appointments.
"""
