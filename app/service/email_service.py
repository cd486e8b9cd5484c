import datetime

import aiosmtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import Optional, Dict
from ..config.settings import settings
from ..util.logger import logger

BASE_STYLE = """
    body {
        font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, Helvetica, Arial, sans-serif;
        line-height: 1.6;
        color: #333;
        max-width: 600px;
        margin: 0 auto;
        padding: 20px;
        background: #f8f5ee;
    }
    .container {
        background: #fff9ed;
        border-radius: 10px;
        box-shadow: 0 2px 10px rgba(0,0,0,0.1);
        padding: 30px;
    }
    .code-box {
        background: #f8f5ee;
        border: 2px solid #d4a373;
        border-radius: 8px;
        font-size: 36px;
        font-weight: bold;
        text-align: center;
        padding: 25px;
        margin: 30px 0;
        letter-spacing: 10px;
        font-family: 'Courier New', monospace;
    }
    .footer {
        text-align: center;
        color: #6c757d;
        font-size: 14px;
        margin-top: 40px;
    }
"""


def _wrap_html(title: str, content: str) -> str:
    return f"""
    <!DOCTYPE html>
    <html>
    <head>
        <meta charset="UTF-8">
        <style>{BASE_STYLE}</style>
    </head>
    <body>
        <div class="container">
            <h1 style="font-family: Georgia, serif;">{title}</h1>
            {content}
            <div class="footer">
                <p>I Thought Of You</p>
                <p style="font-size: 12px; color: #999;">© {datetime.datetime.now().year} I Thought Of You</p>
            </div>
        </div>
    </body>
    </html>
    """


def generate_reset_code_email_template(code: str, user_name: str, expire_minutes: int) -> Dict[str, str]:
    """Gera templates HTML e texto para o código de recuperação"""

    html = _wrap_html("Reset your password", f"""
            <p style="font-size: 18px;">Hi <strong>{user_name}</strong>,</p>
            <p>Use this code in the app to reset your password:</p>
            <div class="code-box">{code}</div>
            <p>This code expires in <strong>{expire_minutes} minutes</strong>.
            If you did not request a password reset, you can ignore this email.</p>
    """)

    text = f"""
    Hi {user_name},

    Your password reset code is: {code}

    This code expires in {expire_minutes} minutes.
    If you did not request a password reset, you can ignore this email.
    """

    return {"html": html, "text": text}


def generate_reset_link_email_template(link: str, user_name: str, expire_minutes: int) -> Dict[str, str]:
    """Gera templates para o link de recuperação (fluxo legado)"""

    html = _wrap_html("Reset your password", f"""
            <p style="font-size: 18px;">Hi <strong>{user_name}</strong>,</p>
            <p>Tap the link below on your phone to choose a new password:</p>
            <p><a href="{link}">{link}</a></p>
            <p>This link expires in <strong>{expire_minutes} minutes</strong>.</p>
    """)

    text = f"""
    Hi {user_name},

    Open this link on your phone to reset your password:
    {link}

    This link expires in {expire_minutes} minutes.
    """

    return {"html": html, "text": text}


def generate_password_changed_template(user_name: str) -> Dict[str, str]:
    html = _wrap_html("Password changed", f"""
            <p style="font-size: 18px;">Hi <strong>{user_name}</strong>,</p>
            <p>Your password was changed on
            {datetime.datetime.now(datetime.timezone.utc).strftime('%Y-%m-%d %H:%M UTC')}.</p>
            <p>If this wasn't you, contact support right away.</p>
    """)

    text = f"Hi {user_name}, your password was changed. If this wasn't you, contact support right away."

    return {"html": html, "text": text}


class EmailService:
    """Serviço para envio de emails"""

    def __init__(self):
        self.host = settings.SMTP_HOST
        self.port = settings.SMTP_PORT
        self.username = settings.SMTP_USER
        self.password = settings.SMTP_PASSWORD
        self.from_email = settings.SMTP_FROM
        self.use_tls = settings.EMAIL_USE_TLS

    async def send_email(
            self,
            to_email: str,
            subject: str,
            body_html: str,
            body_text: Optional[str] = None
    ) -> bool:
        """Envia email assíncrono. Retorna False em qualquer falha do provedor."""
        try:
            message = MIMEMultipart("alternative")
            message["From"] = self.from_email
            message["To"] = to_email
            message["Subject"] = subject

            # Parte texto
            if body_text:
                part_text = MIMEText(body_text, "plain", "utf-8")
                message.attach(part_text)

            # Parte HTML
            part_html = MIMEText(body_html, "html", "utf-8")
            message.attach(part_html)

            # Enviar
            await aiosmtplib.send(
                message,
                hostname=self.host,
                port=self.port,
                username=self.username,
                password=self.password,
                start_tls=self.use_tls
            )

            return True

        except (aiosmtplib.SMTPException, OSError) as e:
            logger.error(f"Email delivery failed: {e}")
            return False
