# marketingpro/services/notifier.py
import logging
from datetime import datetime

from flask import current_app
from flask_mail import Message
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from marketingpro.extensions import mail

logger = logging.getLogger(__name__)

VERIFICATION_SALT = "email-verification"


def _serializer():
    return URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt=VERIFICATION_SALT)


def create_verification_token(email):
    return _serializer().dumps(email)


def confirm_verification_token(token, max_age=None):
    """Return the email a token was issued for, or None if invalid or expired."""
    if max_age is None:
        max_age = int(current_app.config["VERIFICATION_TOKEN_MAX_AGE"].total_seconds())
    try:
        return _serializer().loads(token, max_age=max_age)
    except (SignatureExpired, BadSignature):
        return None


class EmailTemplates:
    """Email template definitions"""

    @staticmethod
    def verification(app_name, verification_url):
        subject = f"Verify Your Email Address - {app_name}"

        html = f"""
        <!DOCTYPE html>
        <html>
        <head>
            <style>
                body {{ font-family: Arial, sans-serif; line-height: 1.6; }}
                .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
                .button {{ display: inline-block; background: #007bff; color: white; padding: 12px 24px; text-decoration: none; border-radius: 4px; }}
                .footer {{ margin-top: 30px; padding-top: 20px; border-top: 1px solid #dee2e6; color: #6c757d; }}
            </style>
        </head>
        <body>
            <div class="container">
                <h1>{app_name}</h1>
                <p>Thanks for subscribing! Please verify your email address to finish setting up your account.</p>
                <p style="text-align: center; margin: 30px 0;">
                    <a href="{verification_url}" class="button">Verify Email</a>
                </p>
                <p>This link expires in 24 hours.</p>
                <div class="footer">
                    <p>&copy; {datetime.now().year} {app_name}. All rights reserved.</p>
                </div>
            </div>
        </body>
        </html>
        """
        return subject, html


class MailNotifier:
    """Outbound transactional email through Flask-Mail."""

    def send_verification_email(self, email, token):
        app_name = current_app.config.get("APP_NAME", "MarketingPro")
        verification_url = f"{current_app.config['APP_URL']}/auth/verify?token={token}"
        subject, html = EmailTemplates.verification(app_name, verification_url)

        message = Message(subject=subject, recipients=[email], html=html)
        mail.send(message)

        logger.info("Verification email sent", extra={"email": email})
