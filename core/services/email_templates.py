# =============================================================================
# core/services/email_templates.py - Transactional E-mail Templates
# =============================================================================
# HTML bodies for every mail the platform sends, rendered with Jinja2.
# All templates extend one table-based layout (mail clients ignore most CSS)
# and autoescape every variable, since names, titles and cover letters are
# user input.
#
# Usage:
#   html = verification_email(frontend_url, token)
# =============================================================================

from jinja2 import DictLoader, Environment, StrictUndefined, select_autoescape

COLORS = {
    "primary_text": "#111827",
    "secondary_text": "#6B7280",
    "background": "#F9FAFB",
    "button": "#2563EB",
    "success": "#059669",
    "warning": "#D97706",
    "error": "#DC2626",
}

_LAYOUT = """\
<!DOCTYPE html>
<html>
<body style="margin:0;padding:0;background-color:{{ colors.background }};font-family:Arial,sans-serif;">
<table role="presentation" width="100%" cellspacing="0" cellpadding="0" border="0">
  <tr><td align="center" style="padding:32px 16px;">
    <table role="presentation" width="600" cellspacing="0" cellpadding="0" border="0" style="background:#ffffff;border-radius:8px;">
      <tr><td style="padding:24px 32px;border-bottom:1px solid #E5E7EB;">
        <h1 style="margin:0;font-size:24px;color:{{ colors.primary_text }};">Codionix</h1>
        <p style="margin:4px 0 0 0;font-size:14px;color:{{ colors.secondary_text }};">Build. Learn. Grow.</p>
      </td></tr>
      <tr><td style="padding:32px;color:{{ colors.primary_text }};font-size:15px;line-height:24px;">
        {% block content %}{% endblock %}
      </td></tr>
      <tr><td style="padding:24px 32px;font-size:12px;color:{{ colors.secondary_text }};">
        <p style="margin:0 0 8px 0;">This email was sent by Codionix</p>
        <p style="margin:0;">Questions? Contact support@codionix.com</p>
      </td></tr>
    </table>
  </td></tr>
</table>
</body>
</html>
"""

_MACROS = """\
{% macro button(label, url, color=colors.button) -%}
<table role="presentation" cellspacing="0" cellpadding="0" border="0" style="margin:24px 0;">
  <tr><td style="border-radius:6px;background-color:{{ color }};">
    <a href="{{ url }}" style="display:inline-block;padding:12px 24px;color:#ffffff;text-decoration:none;font-weight:600;">{{ label }}</a>
  </td></tr>
</table>
{%- endmacro %}
{% macro note(text, color=colors.secondary_text) -%}
<p style="margin:24px 0 0 0;padding:12px;font-size:13px;color:{{ color }};background-color:{{ colors.background }};border-radius:4px;">{{ text }}</p>
{%- endmacro %}
"""

_TEMPLATES = {
    "layout.html": _LAYOUT,
    "macros.html": _MACROS,
    "verify_email.html": """\
{% extends "layout.html" %}
{% block content %}{% import "macros.html" as m with context %}
<h2 style="margin:0 0 16px 0;font-size:20px;">Verify Your Email Address</h2>
<p>Thank you for registering with Codionix. Please verify your email address to complete your account setup.</p>
<p style="font-weight:600;color:{{ colors.warning }};">This link expires in 24 hours</p>
{{ m.button("Verify Email Address", url, colors.success) }}
<p style="font-size:13px;color:{{ colors.secondary_text }};">Or copy and paste this link into your browser:</p>
<p style="font-family:monospace;font-size:12px;word-break:break-all;">{{ url }}</p>
{{ m.note("If you didn't create this account, you can safely ignore this email.") }}
{% endblock %}
""",
    "password_reset.html": """\
{% extends "layout.html" %}
{% block content %}{% import "macros.html" as m with context %}
<h2 style="margin:0 0 16px 0;font-size:20px;">Reset Your Password</h2>
<p>You requested to reset the password for your Codionix account. Click the button below to choose a new one.</p>
<p style="font-weight:600;color:{{ colors.error }};">This link expires in 1 hour for your security.</p>
{{ m.button("Reset Password", url) }}
<p style="font-size:13px;color:{{ colors.secondary_text }};">Or copy and paste this link into your browser:</p>
<p style="font-family:monospace;font-size:12px;word-break:break-all;">{{ url }}</p>
{{ m.note("If you didn't request a password reset, you can ignore this email. Your password will not be changed.") }}
{% endblock %}
""",
    "welcome.html": """\
{% extends "layout.html" %}
{% block content %}{% import "macros.html" as m with context %}
<h2 style="margin:0 0 16px 0;font-size:20px;">Welcome to Codionix, {{ full_name }}</h2>
<p>Your email has been verified. You now have full access to the platform.</p>
<p><strong>{{ message.headline }}</strong><br>{{ message.description }}</p>
{{ m.button(message.cta, url) }}
<p style="font-weight:600;">Next Steps:</p>
<ul>
  <li>Complete your profile with skills and bio</li>
  <li>Upload a professional profile picture</li>
  <li>{{ "Browse and apply to projects" if role == "STUDENT" else "Create your first project" }}</li>
</ul>
{% endblock %}
""",
    "new_application.html": """\
{% extends "layout.html" %}
{% block content %}{% import "macros.html" as m with context %}
<h2 style="margin:0 0 16px 0;font-size:20px;">New Application Received</h2>
<p>Hi {{ owner_name }},</p>
<p><strong>{{ student_name }}</strong> has applied to your project <strong>"{{ project_title }}"</strong>.</p>
<p style="font-size:13px;font-weight:600;color:{{ colors.secondary_text }};">COVER LETTER PREVIEW</p>
<p style="font-style:italic;">"{{ cover_letter_preview }}"</p>
{{ m.button("Review Application", url) }}
<p style="font-size:14px;color:{{ colors.secondary_text }};">Quick responses improve candidate experience and help you find the right match faster.</p>
{% endblock %}
""",
    "application_status.html": """\
{% extends "layout.html" %}
{% block content %}{% import "macros.html" as m with context %}
<span style="display:inline-block;padding:4px 12px;border-radius:12px;color:#ffffff;background-color:{{ config.color }};font-size:12px;font-weight:600;">{{ config.badge }}</span>
<h2 style="margin:16px 0;font-size:20px;">{{ config.headline }}</h2>
<p>Hi {{ student_name }},</p>
<p>{{ config.message }}</p>
{% if rejection_reason %}
<p style="font-size:13px;font-weight:600;color:{{ colors.error }};">FEEDBACK FROM PROJECT OWNER</p>
<p>{{ rejection_reason }}</p>
{% endif %}
<p style="font-weight:600;">What's Next?</p>
<ul>{% for step in config.next_steps %}<li>{{ step }}</li>{% endfor %}</ul>
{{ m.button(config.cta, url) }}
{% endblock %}
""",
}

_env = Environment(
    loader=DictLoader(_TEMPLATES),
    autoescape=select_autoescape(default=True),
    undefined=StrictUndefined,
)
_env.globals["colors"] = COLORS

WELCOME_MESSAGES = {
    "STUDENT": {
        "headline": "Start applying to real-world projects",
        "description": "Browse opportunities, submit applications, and get professional feedback from experienced mentors.",
        "cta": "Explore Projects",
    },
    "MENTOR": {
        "headline": "Start sharing your expertise",
        "description": "Create projects, review applications, and help the next generation of developers grow.",
        "cta": "Create Your First Project",
    },
    "EMPLOYER": {
        "headline": "Find talented developers",
        "description": "Post internships and projects, review applications, and build your team with motivated candidates.",
        "cta": "Post Your First Project",
    },
}

COVER_LETTER_PREVIEW_CHARS = 150


def render(template_name: str, **context) -> str:
    return _env.get_template(template_name).render(**context)


def verification_email(frontend_url: str, token: str) -> str:
    return render("verify_email.html", url=f"{frontend_url}/verify-email?token={token}")


def password_reset_email(frontend_url: str, token: str) -> str:
    return render("password_reset.html", url=f"{frontend_url}/reset-password?token={token}")


def welcome_email(frontend_url: str, full_name: str, role: str) -> str:
    message = WELCOME_MESSAGES.get(role, WELCOME_MESSAGES["STUDENT"])
    return render(
        "welcome.html",
        url=f"{frontend_url}/projects",
        full_name=full_name,
        role=role,
        message=message,
    )


def new_application_email(
    frontend_url: str,
    owner_name: str,
    student_name: str,
    project_title: str,
    application_id: str,
    cover_letter: str,
) -> str:
    preview = cover_letter[:COVER_LETTER_PREVIEW_CHARS]
    if len(cover_letter) > COVER_LETTER_PREVIEW_CHARS:
        preview += "..."
    return render(
        "new_application.html",
        url=f"{frontend_url}/applications/{application_id}",
        owner_name=owner_name,
        student_name=student_name,
        project_title=project_title,
        cover_letter_preview=preview,
    )


def application_status_email(
    frontend_url: str,
    student_name: str,
    project_title: str,
    status: str,
    owner_name: str,
    rejection_reason: str | None = None,
) -> str:
    """
    Body for ACCEPTED, REJECTED and UNDER_REVIEW transitions.

    Raises:
        KeyError: For any other status (PENDING never triggers a mail)
    """
    configs = {
        "ACCEPTED": {
            "color": COLORS["success"],
            "badge": "Accepted",
            "headline": "Congratulations! Your application was accepted",
            "message": f'Great news! {owner_name} has accepted your application for "{project_title}".',
            "next_steps": [
                "The project owner will contact you with next steps",
                "Check your email regularly for updates",
                "Prepare any materials or questions you may have",
            ],
            "cta": "View Project Details",
            "path": "/my-applications",
        },
        "REJECTED": {
            "color": COLORS["error"],
            "badge": "Not Selected",
            "headline": "Application Update",
            "message": (
                f'Thank you for your interest in "{project_title}". After careful review, '
                f"{owner_name} has decided not to move forward with your application at this time."
            ),
            "next_steps": [
                "Review the feedback below to improve future applications",
                "Keep exploring other opportunities on the platform",
                "Update your profile with new skills and projects",
            ],
            "cta": "Browse More Projects",
            "path": "/projects",
        },
        "UNDER_REVIEW": {
            "color": COLORS["warning"],
            "badge": "Under Review",
            "headline": "Your application is being reviewed",
            "message": f'{owner_name} is currently reviewing your application for "{project_title}".',
            "next_steps": [
                "We'll notify you as soon as a decision is made",
                "Make sure your profile is up to date",
                "Continue exploring other opportunities",
            ],
            "cta": "View Application",
            "path": "/my-applications",
        },
    }
    config = configs[status]
    return render(
        "application_status.html",
        url=f"{frontend_url}{config['path']}",
        config=config,
        student_name=student_name,
        rejection_reason=rejection_reason,
    )
