"""
Email Service using Resend
Provides appointment emails using MJML templates for responsive design
"""

import logging
from typing import Optional, Union

import resend
from mjml import mjml_to_html

from .config import EMAIL_FROM_ADDRESS, RESEND_API_KEY
from .email_templates import (
    appointment_cancelled_template,
    appointment_confirmation_template,
    appointment_rescheduled_template,
    doctor_appointment_notification_template,
    doctor_cancellation_template,
)

logger = logging.getLogger(__name__)

resend.api_key = RESEND_API_KEY


def compile_mjml_to_html(mjml_content: str) -> str:
    """Compile MJML template to production-ready HTML"""
    try:
        result = mjml_to_html(mjml_content)
        if result.errors:
            logger.warning(f"MJML compilation warnings: {result.errors}")
        return result.html
    except Exception as e:
        logger.error(f"MJML compilation error: {e}")
        raise Exception(f"Failed to compile MJML template: {str(e)}") from e


async def send_email(
    to: Union[str, list[str]],
    subject: str,
    mjml_content: str,
    from_address: Optional[str] = None,
) -> dict:
    """
    Send an email through Resend

    Args:
        to: Recipient email(s)
        subject: Email subject line
        mjml_content: MJML template content (will be compiled to HTML)
        from_address: Optional custom from address

    Returns:
        Send response dict
    """
    if not RESEND_API_KEY:
        logger.error("❌ No email service configured - RESEND_API_KEY missing")
        raise Exception("Email service not configured")

    html_content = compile_mjml_to_html(mjml_content)
    recipients = [to] if isinstance(to, str) else to

    try:
        logger.info(f"📧 Sending email via Resend to: {to}")
        response = resend.Emails.send(
            {
                "from": from_address or EMAIL_FROM_ADDRESS,
                "to": recipients,
                "subject": subject,
                "html": html_content,
            }
        )
        logger.info(f"✅ Email sent successfully via Resend: {response}")
        return response
    except Exception as e:
        logger.error(f"❌ Email send error to {recipients}: {e}")
        raise Exception(f"Failed to send email: {str(e)}") from e


# ============================================
# Appointment emails
# ============================================


async def send_appointment_confirmation_email(
    to: str,
    patient_name: str,
    doctor_name: str,
    service_name: str,
    appointment_date: str,
    appointment_time: str,
    amount: str,
    meet_link: Optional[str] = None,
    additional_services: Optional[list[dict]] = None,
) -> dict:
    mjml_content = appointment_confirmation_template(
        patient_name,
        doctor_name,
        service_name,
        appointment_date,
        appointment_time,
        amount,
        meet_link,
        additional_services,
    )
    return await send_email(
        to=to,
        subject=f"Appointment Confirmed - {appointment_date} {appointment_time}",
        mjml_content=mjml_content,
    )


async def send_doctor_appointment_notification(
    to: str,
    doctor_name: str,
    patient_name: str,
    service_name: str,
    appointment_date: str,
    appointment_time: str,
    meet_link: Optional[str] = None,
) -> dict:
    mjml_content = doctor_appointment_notification_template(
        doctor_name, patient_name, service_name, appointment_date, appointment_time, meet_link
    )
    return await send_email(
        to=to,
        subject=f"New Appointment - {patient_name}",
        mjml_content=mjml_content,
    )


async def send_cancellation_email(
    to: str,
    patient_name: str,
    doctor_name: str,
    appointment_date: str,
    appointment_time: str,
    amount: str,
) -> dict:
    """Send cancellation notice to the patient"""
    mjml_content = appointment_cancelled_template(
        patient_name, doctor_name, appointment_date, appointment_time, amount
    )
    return await send_email(
        to=to,
        subject=f"Appointment Cancelled - {appointment_date}",
        mjml_content=mjml_content,
    )


async def send_doctor_cancellation_notification(
    to: str,
    doctor_name: str,
    patient_name: str,
    patient_email: str,
    appointment_date: str,
    appointment_time: str,
    amount: str,
) -> dict:
    """Send cancellation notice with refund request to the doctor"""
    mjml_content = doctor_cancellation_template(
        doctor_name, patient_name, patient_email, appointment_date, appointment_time, amount
    )
    return await send_email(
        to=to,
        subject=f"Appointment Cancelled - {patient_name}",
        mjml_content=mjml_content,
    )


async def send_reschedule_email(
    to: str,
    recipient_name: str,
    counterpart_name: str,
    old_date: str,
    old_time: str,
    new_date: str,
    new_time: str,
    meet_link: Optional[str] = None,
) -> dict:
    mjml_content = appointment_rescheduled_template(
        recipient_name, counterpart_name, old_date, old_time, new_date, new_time, meet_link
    )
    return await send_email(
        to=to,
        subject=f"Appointment Rescheduled - {new_date} {new_time}",
        mjml_content=mjml_content,
    )
