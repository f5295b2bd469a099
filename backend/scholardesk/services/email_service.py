import logging
from typing import List, Optional, Dict, Any
import resend
from jinja2 import Template
from scholardesk.config import settings

logger = logging.getLogger(__name__)

# Configure Resend global API key
resend.api_key = settings.RESEND_API_KEY


_LAYOUT = """
<!DOCTYPE html>
<html>
<head>
    <style>
        body { font-family: Arial, sans-serif; line-height: 1.6; color: #333; }
        .container { max-width: 600px; margin: 0 auto; padding: 20px; }
        .header { background: #4F46E5; color: white; padding: 20px; text-align: center; }
        .content { padding: 20px; background: #f9fafb; }
        .button { background: #4F46E5; color: white; padding: 12px 24px; text-decoration: none; border-radius: 6px; display: inline-block; margin: 20px 0; }
        .footer { text-align: center; padding: 20px; color: #666; font-size: 12px; }
    </style>
</head>
<body>
    <div class="container">
        <div class="header"><h1>{{ heading }}</h1></div>
        <div class="content">{{ body }}</div>
        <div class="footer"><p>{{ app_name }}</p></div>
    </div>
</body>
</html>
"""

# template_key -> (subject, heading, body)
TEMPLATES: Dict[str, tuple] = {
    "quote_ready": (
        "Your quote for {{ title }} is ready",
        "Quote Ready",
        """
        <p>Hi {{ client_name }},</p>
        <p>We have reviewed <strong>{{ title }}</strong> and prepared a quote.</p>
        <p><strong>Amount:</strong> {{ "%.2f"|format(amount) }}</p>
        {% if deadline %}<p><strong>Deadline:</strong> {{ deadline }}</p>{% endif %}
        <a href="{{ app_url }}/assignments/{{ assignment_id }}" class="button">Review Quote</a>
        """,
    ),
    "assignment_delivered": (
        "{{ title }} has been delivered",
        "Assignment Delivered",
        """
        <p>Hi {{ client_name }},</p>
        <p>Your assignment <strong>{{ title }}</strong> is ready.</p>
        {% if files %}<ul>{% for f in files %}<li>{{ f }}</li>{% endfor %}</ul>{% endif %}
        <a href="{{ app_url }}/assignments/{{ assignment_id }}" class="button">Download Files</a>
        """,
    ),
    "assignment_rejected": (
        "Update on {{ title }}",
        "Request Declined",
        """
        <p>Hi {{ client_name }},</p>
        <p>Unfortunately we cannot take on <strong>{{ title }}</strong>.</p>
        {% if reason %}<p><strong>Reason:</strong> {{ reason }}</p>{% endif %}
        """,
    ),
}


class EmailService:
    """Email service with template rendering."""

    @staticmethod
    def send_email(
        to: List[str],
        subject: str,
        html_content: str,
        from_email: Optional[str] = None,
    ) -> bool:
        """
        Send email using Resend.

        Without a configured API key the call is logged and reported as sent,
        so local and test environments never reach the network.
        """
        api_key = settings.RESEND_API_KEY
        if not api_key or api_key.startswith("your-") or api_key == "None":
            logger.info(f"Resend API key missing, mocking send to {to}: {subject}")
            return True

        params = {
            "from": from_email or settings.EMAIL_FROM,
            "to": to,
            "subject": subject,
            "html": html_content
        }
        response = resend.Emails.send(params)
        logger.info(f"Email sent to {to}: {response}")
        return True

    @staticmethod
    def render_template(template_str: str, context: Dict[str, Any]) -> str:
        """Render Jinja2 template with context."""
        template = Template(template_str)
        return template.render(**context)

    @staticmethod
    def send_template(address: str, template_key: str, data: Dict[str, Any]) -> bool:
        if template_key not in TEMPLATES:
            raise ValueError(f"Unknown email template: {template_key}")
        subject_tpl, heading, body_tpl = TEMPLATES[template_key]
        context = {
            "app_url": settings.FRONTEND_URL or "http://localhost:3000",
            "app_name": settings.APP_NAME,
            **data,
        }
        body = EmailService.render_template(body_tpl, context)
        html_content = EmailService.render_template(_LAYOUT, {**context, "heading": heading, "body": body})
        return EmailService.send_email(
            to=[address],
            subject=EmailService.render_template(subject_tpl, context),
            html_content=html_content,
        )
