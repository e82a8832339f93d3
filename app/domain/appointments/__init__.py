"""
Appointments Domain

Booking checks (availability.py), the appointment lifecycle with its slot
bookkeeping (service.py) and doctor matching for unassigned appointments
(unassigned.py).
"""
