"""
Google Calendar Service
Creates and moves calendar events carrying a Google Meet link for appointments.

Callers treat every function here as best-effort: failures are logged and
reported as None, never raised.
"""
import logging
import random
import string
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

import httpx

from ..config import (
    CLINIC_TIMEZONE,
    DEFAULT_DOCTOR_EMAIL,
    GOOGLE_CALENDAR_ID,
    GOOGLE_CLIENT_ID,
    GOOGLE_CLIENT_SECRET,
    GOOGLE_REFRESH_TOKEN,
)
from ..shared.time_utils import combine_utc

logger = logging.getLogger(__name__)

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_CALENDAR_API = "https://www.googleapis.com/calendar/v3"

# Cached access token and its expiry (UTC)
_token_cache: dict = {"access_token": None, "expires_at": None}


@dataclass
class MeetingResult:
    link: str
    event_id: Optional[str] = None


@dataclass
class MeetingRequest:
    appointment_date: date
    appointment_time: str  # HH:MM UTC
    duration_minutes: int
    host_name: str
    attendee_name: str
    subject: str
    attendee_email: Optional[str] = None
    host_email: Optional[str] = None


def is_configured() -> bool:
    return bool(GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET and GOOGLE_REFRESH_TOKEN)


def create_fallback_meet_link() -> str:
    """Meet-style link used when the calendar API is not configured"""

    def group(length: int) -> str:
        return "".join(random.choice(string.ascii_lowercase) for _ in range(length))

    link = f"https://meet.google.com/{group(3)}-{group(4)}-{group(3)}"
    logger.info(f"🔗 Generated fallback Meet link: {link}")
    return link


async def get_valid_access_token() -> Optional[str]:
    """
    Get a valid access token, refreshing if necessary
    Returns None if refresh fails
    """
    now = datetime.now(timezone.utc)
    expires_at = _token_cache["expires_at"]
    # Reuse the cached token unless it expires within 5 minutes
    if _token_cache["access_token"] and expires_at and expires_at > now + timedelta(minutes=5):
        return _token_cache["access_token"]

    logger.info("🔄 Google Calendar token expired, refreshing...")
    async with httpx.AsyncClient() as client:
        response = await client.post(
            GOOGLE_TOKEN_URL,
            data={
                "client_id": GOOGLE_CLIENT_ID,
                "client_secret": GOOGLE_CLIENT_SECRET,
                "refresh_token": GOOGLE_REFRESH_TOKEN,
                "grant_type": "refresh_token",
            },
        )

    if response.status_code != 200:
        logger.error(f"❌ Token refresh failed: {response.text}")
        return None

    tokens = response.json()
    access_token = tokens.get("access_token")
    if not access_token:
        logger.error("❌ No access token in refresh response")
        return None

    _token_cache["access_token"] = access_token
    _token_cache["expires_at"] = now + timedelta(seconds=tokens.get("expires_in", 3600))
    logger.info("✅ Google Calendar token refreshed successfully")
    return access_token


def build_event_body(request: MeetingRequest, with_conference: bool = True) -> dict:
    """Calendar event payload; times are converted from UTC to the clinic timezone"""
    tz = ZoneInfo(CLINIC_TIMEZONE)
    start = combine_utc(request.appointment_date, request.appointment_time).astimezone(tz)
    end = start + timedelta(minutes=request.duration_minutes)

    attendees = [{"email": request.host_email or DEFAULT_DOCTOR_EMAIL}]
    if request.attendee_email:
        attendees.append({"email": request.attendee_email})

    body = {
        "summary": f"{request.subject} - {request.host_name} & {request.attendee_name}",
        "description": (
            "Telemedicine Appointment\n\n"
            f"Doctor: {request.host_name}\n"
            f"Patient: {request.attendee_name}\n"
            f"Service: {request.subject}\n\n"
            "Please join this Google Meet call at your scheduled appointment time."
        ),
        "start": {"dateTime": start.replace(tzinfo=None).isoformat(), "timeZone": CLINIC_TIMEZONE},
        "end": {"dateTime": end.replace(tzinfo=None).isoformat(), "timeZone": CLINIC_TIMEZONE},
        "attendees": attendees,
        "reminders": {
            "useDefault": False,
            "overrides": [
                {"method": "email", "minutes": 24 * 60},
                {"method": "popup", "minutes": 10},
            ],
        },
    }
    if with_conference:
        body["conferenceData"] = {
            "createRequest": {
                "requestId": f"meet-{uuid.uuid4().hex}",
                "conferenceSolutionKey": {"type": "hangoutsMeet"},
            }
        }
    return body


def extract_meet_link(event: dict) -> Optional[str]:
    entry_points = (event.get("conferenceData") or {}).get("entryPoints") or []
    for entry in entry_points:
        if entry.get("entryPointType") == "video":
            return entry.get("uri")
    return event.get("hangoutLink")


async def generate_meeting_link(request: MeetingRequest) -> Optional[MeetingResult]:
    """
    Create a Google Calendar event with a Meet conference for an appointment
    Returns the link and event ID, a fallback link when the API is not configured,
    or None if the API call fails
    """
    if not is_configured():
        logger.info("ℹ️ Google Calendar not configured, using fallback Meet link")
        return MeetingResult(link=create_fallback_meet_link())

    try:
        access_token = await get_valid_access_token()
        if not access_token:
            logger.error("❌ Failed to get valid access token")
            return None

        async with httpx.AsyncClient() as client:
            response = await client.post(
                f"{GOOGLE_CALENDAR_API}/calendars/{GOOGLE_CALENDAR_ID}/events",
                headers={"Authorization": f"Bearer {access_token}"},
                params={"conferenceDataVersion": 1, "sendUpdates": "all"},
                json=build_event_body(request),
            )

        if response.status_code not in [200, 201]:
            logger.error(f"❌ Failed to create calendar event: {response.text}")
            return None

        event = response.json()
        link = extract_meet_link(event)
        if not link:
            logger.error("❌ Calendar event created without a Meet link")
            return None

        logger.info(f"✅ Google Calendar event created: {event.get('id')}")
        return MeetingResult(link=link, event_id=event.get("id"))

    except Exception as e:
        logger.error(f"❌ Error creating calendar event: {str(e)}")
        return None


async def update_meeting_event(event_id: str, request: MeetingRequest) -> Optional[MeetingResult]:
    """
    Move an existing calendar event to the appointment's new date/time
    Returns the (unchanged) Meet link and event ID, or None on failure
    """
    if not is_configured():
        logger.info("ℹ️ Google Calendar not configured, using fallback Meet link")
        return MeetingResult(link=create_fallback_meet_link())

    try:
        access_token = await get_valid_access_token()
        if not access_token:
            logger.error("❌ Failed to get valid access token")
            return None

        body = build_event_body(request, with_conference=False)
        async with httpx.AsyncClient() as client:
            response = await client.patch(
                f"{GOOGLE_CALENDAR_API}/calendars/{GOOGLE_CALENDAR_ID}/events/{event_id}",
                headers={"Authorization": f"Bearer {access_token}"},
                params={"sendUpdates": "all"},
                json={k: body[k] for k in ("start", "end", "attendees", "summary", "description")},
            )

        if response.status_code != 200:
            logger.error(f"❌ Failed to update calendar event: {response.text}")
            return None

        event = response.json()
        link = extract_meet_link(event)
        if not link:
            logger.error(f"❌ Updated calendar event {event_id} has no Meet link")
            return None

        logger.info(f"✅ Google Calendar event updated: {event_id}")
        return MeetingResult(link=link, event_id=event.get("id", event_id))

    except Exception as e:
        logger.error(f"❌ Error updating calendar event: {str(e)}")
        return None


async def sync_meeting_for_reschedule(
    event_id: Optional[str], request: MeetingRequest
) -> Optional[MeetingResult]:
    """Update the existing event if there is one, otherwise (or if that fails) create a new one"""
    if event_id:
        logger.info(f"📅 Appointment has existing event ID ({event_id}), updating it...")
        result = await update_meeting_event(event_id, request)
        if result:
            return result
        logger.warning("⚠️ Failed to update existing event, creating new one")
    return await generate_meeting_link(request)
