"""
SMTP email sender for monitoring alerts.

Handles:
  - SMTP connection with STARTTLS
  - MIME multipart construction (HTML + plaintext fallback)
  - Credential management (env vars > config file)
"""
import os
import ssl
import json
import smtplib
import logging
from contextlib import contextmanager
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, formatdate

logger = logging.getLogger("pmonitor.notifications.email_sender")

SEVERITY_COLORS = {
    "critical": "#dc3545",
    "high": "#fd7e14",
    "medium": "#ffc107",
    "low": "#17a2b8",
}


class EmailSender:
    """
    SMTP email sender.

    Credential resolution order:
      1. Environment variables: PMONITOR_SMTP_USER, PMONITOR_SMTP_PASS
      2. Config file: config.email.smtp_username, config.email.smtp_password
    """

    def __init__(self, config: dict):
        email_config = config.get("email", {})
        self.smtp_host = email_config.get("smtp_host", "")
        self.smtp_port = email_config.get("smtp_port", 587)
        self.use_tls = email_config.get("use_tls", True)
        self.from_address = email_config.get("from_address", "")
        self.to_address = email_config.get("to_address", "")
        self.from_name = email_config.get("from_name", "Proactive Monitor")
        self.environment = config.get("environment", "development")

        self.username = os.environ.get(
            "PMONITOR_SMTP_USER",
            email_config.get("smtp_username", ""),
        )
        self.password = os.environ.get(
            "PMONITOR_SMTP_PASS",
            email_config.get("smtp_password", ""),
        )

    def is_configured(self) -> bool:
        """Check if all required SMTP fields are present."""
        return all([self.smtp_host, self.from_address, self.to_address,
                    self.username, self.password])

    def missing_fields(self) -> list:
        fields = {
            "smtp_host": self.smtp_host,
            "from_address": self.from_address,
            "to_address": self.to_address,
            "smtp_username": self.username,
            "smtp_password": self.password,
        }
        return [name for name, val in fields.items() if not val]

    def send_alert(self, alert) -> bool:
        """Send a single alert email."""
        if not self.is_configured():
            return False

        severity = alert.severity.value
        subject = f"[{severity.upper()}] {alert.title}"

        msg = MIMEMultipart("alternative")
        msg["From"] = formataddr((self.from_name, self.from_address))
        msg["To"] = self.to_address
        msg["Subject"] = subject
        msg["Date"] = formatdate(localtime=True)
        if severity == "critical":
            msg["X-Priority"] = "1"
        msg.attach(MIMEText(self._render_text(alert), "plain", "utf-8"))
        msg.attach(MIMEText(self._render_html(alert), "html", "utf-8"))

        return self._send(msg)

    def _render_text(self, alert) -> str:
        lines = [
            f"{alert.severity.value.upper()}: {alert.title}",
            "",
            alert.message,
            "",
            f"Type: {alert.type.value}",
            f"Time: {alert.created_at.isoformat()}",
            f"Alert ID: {alert.id or 'N/A'}",
        ]
        if alert.metadata:
            lines += ["", json.dumps(alert.metadata, indent=2, default=str)]
        return "\n".join(lines)

    def _render_html(self, alert) -> str:
        color = SEVERITY_COLORS.get(alert.severity.value, "#6c757d")
        metadata_html = ""
        if alert.metadata:
            metadata_html = f"""
                <div style="background: #f8f9fa; padding: 15px; border-radius: 4px;">
                    <h3 style="margin-top: 0;">Additional Details</h3>
                    <pre style="font-size: 12px;">{json.dumps(alert.metadata, indent=2, default=str)}</pre>
                </div>
            """
        return f"""
        <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
            <div style="background: {color}; color: white; padding: 20px;">
                <h1 style="margin: 0; font-size: 22px;">{alert.title}</h1>
                <p style="margin: 5px 0 0 0;">Severity: {alert.severity.value.upper()}</p>
            </div>
            <div style="padding: 20px;">
                <p style="line-height: 1.6;">{alert.message}</p>
                <div style="background: #f8f9fa; padding: 15px; border-radius: 4px; margin: 20px 0;">
                    <p><strong>Type:</strong> {alert.type.value}</p>
                    <p><strong>Time:</strong> {alert.created_at.isoformat()}</p>
                    <p><strong>Alert ID:</strong> {alert.id or 'N/A'}</p>
                </div>
                {metadata_html}
                <p style="color: #666; font-size: 12px;">Environment: {self.environment}</p>
            </div>
        </div>
        """

    def test_connection(self) -> dict:
        """Open an authenticated SMTP session and close it without sending."""
        server = f"{self.smtp_host}:{self.smtp_port}"
        if not self.is_configured():
            return {"status": "error", "server": server,
                    "message": f"Missing: {', '.join(self.missing_fields())}"}
        try:
            with self._session(timeout=10):
                pass
        except smtplib.SMTPAuthenticationError as e:
            message = f"Authentication failed for {self.username} ({e.smtp_code})"
        except (smtplib.SMTPException, OSError) as e:
            message = f"Could not reach {server}: {e}"
        else:
            logger.info(f"SMTP check passed for {server}")
            return {"status": "ok", "server": server, "message": f"Authenticated to {server}"}
        logger.warning(f"SMTP check failed: {message}")
        return {"status": "error", "server": server, "message": message}

    @contextmanager
    def _session(self, timeout):
        context = ssl.create_default_context()
        with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=timeout) as server:
            server.ehlo()
            if self.use_tls:
                server.starttls(context=context)
                server.ehlo()
            server.login(self.username, self.password)
            yield server

    def _send(self, msg: MIMEMultipart) -> bool:
        """Internal: send a constructed MIME message via SMTP."""
        try:
            with self._session(timeout=30) as server:
                server.send_message(msg)
            logger.info(f"Email sent to {self.to_address}: {msg['Subject']}")
            return True
        except smtplib.SMTPAuthenticationError:
            logger.error("SMTP authentication failed. Check username/password.")
            return False
        except smtplib.SMTPRecipientsRefused:
            logger.error(f"Recipient refused: {self.to_address}")
            return False
        except Exception as e:
            logger.error(f"Email send failed: {e}")
            return False
