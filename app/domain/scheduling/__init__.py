"""
Scheduling Domain

Doctor schedules (one working window per doctor and date) and the bookable
slots inside them. Slot availability is only read here; it is flipped by the
appointment lifecycle in app/domain/appointments.
"""
