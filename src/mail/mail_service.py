import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import Dict
import logging

from src.config import config
from .template_loader import template_loader

logger = logging.getLogger(__name__)

class MailService:
    def __init__(self):
        self.smtp_server = config.SMTP_SERVER
        self.smtp_port = config.SMTP_PORT
        self.sender_email = config.SENDER_EMAIL
        self.sender_password = config.SENDER_PASSWORD
        self.enabled = config.MAIL_ENABLED

    def _send(self, recipient_email: str, subject: str, body: str) -> Dict[str, str]:
        """Gửi một email HTML qua SMTP"""
        if not self.enabled:
            logger.info("Mail disabled, skipping '%s' to %s", subject, recipient_email)
            return {"status": "skipped", "message": "Mail sending is disabled"}

        try:
            # Tạo message
            msg = MIMEMultipart()
            msg['From'] = self.sender_email
            msg['To'] = recipient_email
            msg['Subject'] = subject
            msg.attach(MIMEText(body, 'html'))

            # Gửi email
            server = smtplib.SMTP(self.smtp_server, self.smtp_port)
            server.starttls()
            server.login(self.sender_email, self.sender_password)
            server.sendmail(self.sender_email, recipient_email, msg.as_string())
            server.quit()

            logger.info("Email '%s' sent to %s", subject, recipient_email)
            return {"status": "success", "message": "Email sent"}

        except Exception as e:
            logger.error("Failed to send email '%s' to %s", subject, recipient_email, exc_info=True)
            return {"status": "error", "message": f"Lỗi gửi email: {str(e)}"}

    def send_verification_email(self, recipient_email: str, verification_url: str,
                                expires_in_minutes: int) -> Dict[str, str]:
        """
        Gửi email xác thực tài khoản

        Args:
            recipient_email: Email người nhận
            verification_url: Link xác thực có kèm token
            expires_in_minutes: Thời hạn của token

        Returns:
            Dict với trạng thái gửi email
        """
        body = template_loader.render_verification_email(verification_url, expires_in_minutes)
        return self._send(recipient_email, "Verify Account - Book Store", body)

    def send_password_reset_email(self, recipient_email: str, reset_url: str,
                                  expires_in_minutes: int) -> Dict[str, str]:
        """Gửi email chứa link đặt lại mật khẩu"""
        body = template_loader.render_reset_password_email(reset_url, expires_in_minutes)
        return self._send(recipient_email, "Reset Password - Book Store", body)

# Instance của MailService
mail_service = MailService()
