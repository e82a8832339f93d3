import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./clinic.db")

# Booking policy
# Minimum lead time before an appointment can still be cancelled
CANCELLATION_WINDOW_HOURS = float(os.getenv("CANCELLATION_WINDOW_HOURS", "1"))
# Upper bound for every best-effort calendar/email call made after a commit
SIDE_EFFECT_TIMEOUT_SECONDS = float(os.getenv("SIDE_EFFECT_TIMEOUT_SECONDS", "10"))
# Booking requests left unanswered this long expire
BOOKING_EXPIRY_DAYS = int(os.getenv("BOOKING_EXPIRY_DAYS", "7"))

# Resend Email Configuration
RESEND_API_KEY = os.getenv("RESEND_API_KEY")
EMAIL_FROM_ADDRESS = os.getenv("EMAIL_FROM_ADDRESS", "Clinic Bookings <noreply@clinic.local>")

# Google Calendar Configuration
# Events are created on a single clinic calendar; the refresh token is issued out of band.
# When any of these is missing the calendar service hands out fallback Meet links.
GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID")
GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET")
GOOGLE_REFRESH_TOKEN = os.getenv("GOOGLE_REFRESH_TOKEN")
GOOGLE_CALENDAR_ID = os.getenv("GOOGLE_CALENDAR_ID", "primary")
CLINIC_TIMEZONE = os.getenv("CLINIC_TIMEZONE", "America/New_York")
DEFAULT_DOCTOR_EMAIL = os.getenv("DEFAULT_DOCTOR_EMAIL", "doctor@clinic.local")

# CORS Configuration
ALLOWED_ORIGINS = os.getenv(
    "ALLOWED_ORIGINS",
    "http://localhost:5173,http://localhost:3000",
).split(",")
