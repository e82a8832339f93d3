"""
MJML Email Templates
All appointment emails using MJML for responsive, cross-client compatibility
"""

from typing import Optional

# App theme colors - Teal/Slate color scheme
THEME = {
    "primary": "#14b8a6",
    "primary_dark": "#0d9488",
    "primary_light": "#ccfbf1",
    "background": "#f8fafc",
    "card_bg": "#ffffff",
    "text_primary": "#0f172a",
    "text_secondary": "#334155",
    "text_muted": "#64748b",
    "border": "#e2e8f0",
    "success": "#14b8a6",
    "warning": "#f59e0b",
    "danger": "#ef4444",
}


def get_base_template(
    title: str,
    preview_text: str,
    content_sections: str,
    cta_url: Optional[str] = None,
    cta_label: Optional[str] = None,
) -> str:
    """Base MJML template wrapper for all emails"""

    cta_section = ""
    if cta_url and cta_label:
        cta_section = f"""
        <mj-section padding="20px 0">
          <mj-column>
            <mj-button
              href="{cta_url}"
              background-color="{THEME['primary']}"
              color="#ffffff"
              font-weight="600"
              border-radius="8px"
              padding="18px 40px"
              font-size="16px">
              {cta_label}
            </mj-button>
          </mj-column>
        </mj-section>
        """

    return f"""
    <mjml>
      <mj-head>
        <mj-title>{title}</mj-title>
        <mj-preview>{preview_text}</mj-preview>
        <mj-attributes>
          <mj-all font-family="-apple-system, BlinkMacSystemFont, 'Segoe UI', 'Helvetica Neue', Arial, sans-serif" />
          <mj-text font-size="16px" line-height="1.6" color="{THEME['text_secondary']}" />
        </mj-attributes>
      </mj-head>
      <mj-body background-color="{THEME['background']}">
        <!-- Main Content -->
        <mj-section background-color="#ffffff" padding="40px 40px 48px 40px">
          <mj-column>
            <mj-text font-size="24px" font-weight="600" color="{THEME['text_primary']}" line-height="1.3" padding="0 0 16px 0">
              {title}
            </mj-text>

            {content_sections}
          </mj-column>
        </mj-section>

        {cta_section}

        <!-- Footer -->
        <mj-section padding="32px 20px">
          <mj-column>
            <mj-text align="center" font-size="13px" color="#94a3b8" padding="0">
              You're receiving this because you have an appointment with our clinic.
            </mj-text>
          </mj-column>
        </mj-section>
      </mj-body>
    </mjml>
    """


def _services_line(additional_services: Optional[list[dict]]) -> str:
    if not additional_services:
        return ""
    names = ", ".join(s.get("name", "") for s in additional_services)
    return f"<br/>Additional services: {names}"


def appointment_confirmation_template(
    patient_name: str,
    doctor_name: str,
    service_name: str,
    appointment_date: str,
    appointment_time: str,
    amount: str,
    meet_link: Optional[str] = None,
    additional_services: Optional[list[dict]] = None,
) -> str:
    """Appointment confirmed email for the patient"""
    content = f"""
    <mj-text>
      Hi {patient_name},
    </mj-text>

    <mj-text>
      Your appointment with <strong>{doctor_name}</strong> is confirmed.
    </mj-text>

    <mj-text font-size="14px" color="{THEME['text_muted']}" padding="20px 0">
      📅 {appointment_date} {appointment_time} (UTC)<br/>
      Service: {service_name}{_services_line(additional_services)}<br/>
      Amount: ${amount}
    </mj-text>
    """

    return get_base_template(
        title="Appointment Confirmed",
        preview_text=f"Your appointment on {appointment_date} is confirmed",
        content_sections=content,
        cta_url=meet_link,
        cta_label="Join Google Meet" if meet_link else None,
    )


def doctor_appointment_notification_template(
    doctor_name: str,
    patient_name: str,
    service_name: str,
    appointment_date: str,
    appointment_time: str,
    meet_link: Optional[str] = None,
) -> str:
    """New confirmed appointment notification for the doctor"""
    content = f"""
    <mj-text>
      Hi {doctor_name},
    </mj-text>

    <mj-text>
      <strong>{patient_name}</strong> has a confirmed appointment with you.
    </mj-text>

    <mj-text font-size="14px" color="{THEME['text_muted']}" padding="20px 0">
      📅 {appointment_date} {appointment_time} (UTC)<br/>
      Service: {service_name}
    </mj-text>
    """

    return get_base_template(
        title="New Appointment",
        preview_text=f"New appointment with {patient_name}",
        content_sections=content,
        cta_url=meet_link,
        cta_label="Join Google Meet" if meet_link else None,
    )


def appointment_cancelled_template(
    patient_name: str,
    doctor_name: str,
    appointment_date: str,
    appointment_time: str,
    amount: str,
) -> str:
    """Cancellation email for the patient"""
    content = f"""
    <mj-text>
      Hi {patient_name},
    </mj-text>

    <mj-text>
      Your appointment with <strong>{doctor_name}</strong> has been cancelled.
    </mj-text>

    <mj-text font-size="14px" color="{THEME['text_muted']}" padding="20px 0">
      📅 {appointment_date} {appointment_time} (UTC)<br/>
      Amount: ${amount}<br/>
      Status: Cancelled
    </mj-text>

    <mj-text>
      If a refund applies, it will be processed to your original payment method.
    </mj-text>
    """

    return get_base_template(
        title="Appointment Cancelled",
        preview_text=f"Your appointment on {appointment_date} was cancelled",
        content_sections=content,
    )


def doctor_cancellation_template(
    doctor_name: str,
    patient_name: str,
    patient_email: str,
    appointment_date: str,
    appointment_time: str,
    amount: str,
) -> str:
    """Cancellation notice for the doctor, including the refund request"""
    content = f"""
    <mj-text>
      Hi {doctor_name},
    </mj-text>

    <mj-text>
      <strong>{patient_name}</strong> ({patient_email}) cancelled their appointment.
    </mj-text>

    <mj-text font-size="14px" color="{THEME['text_muted']}" padding="20px 0">
      📅 {appointment_date} {appointment_time} (UTC)<br/>
      Refund requested: ${amount}
    </mj-text>
    """

    return get_base_template(
        title="Appointment Cancelled",
        preview_text=f"{patient_name} cancelled their appointment",
        content_sections=content,
    )


def appointment_rescheduled_template(
    recipient_name: str,
    counterpart_name: str,
    old_date: str,
    old_time: str,
    new_date: str,
    new_time: str,
    meet_link: Optional[str] = None,
) -> str:
    """Reschedule email, shared by patient and doctor"""
    content = f"""
    <mj-text>
      Hi {recipient_name},
    </mj-text>

    <mj-text>
      Your appointment with <strong>{counterpart_name}</strong> has been rescheduled.
    </mj-text>

    <mj-text font-size="14px" color="{THEME['text_muted']}" padding="20px 0">
      Previous: {old_date} {old_time} (UTC)<br/>
      New: 📅 {new_date} {new_time} (UTC)
    </mj-text>
    """

    return get_base_template(
        title="Appointment Rescheduled",
        preview_text=f"Appointment moved to {new_date} {new_time}",
        content_sections=content,
        cta_url=meet_link,
        cta_label="Join Google Meet" if meet_link else None,
    )
