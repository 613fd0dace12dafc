import logging
import smtplib
import time
from email.message import EmailMessage
from html import escape
from typing import Callable, Optional

import resend
from resend.exceptions import InvalidApiKeyError, MissingApiKeyError

from pontocarro.core.config import Settings


logger = logging.getLogger(__name__)

# Retrying cannot fix bad credentials
AUTH_ERRORS = (smtplib.SMTPAuthenticationError, InvalidApiKeyError, MissingApiKeyError)


class EmailDeliveryError(Exception):
    pass


class Mailer:
    """
    Sends mail through resend when an API key is configured, otherwise SMTP.
    Without either it only logs the message (local development).
    """

    def __init__(self, settings: Settings, sleep: Callable[[float], None] = time.sleep) -> None:
        self.settings = settings
        self._sleep = sleep

    @property
    def transport_name(self) -> str:
        if self.settings.RESEND_API_KEY:
            return "resend"
        if self.settings.SMTP_HOST:
            return "smtp"
        return "log_only"

    def _build_smtp_client(self) -> smtplib.SMTP:
        host = self.settings.SMTP_HOST
        port = self.settings.SMTP_PORT
        if self.settings.SMTP_USE_SSL:
            return smtplib.SMTP_SSL(host, port)
        client = smtplib.SMTP(host, port)
        if self.settings.SMTP_USE_TLS:
            client.starttls()
        return client

    def _send_via_resend(self, to_email: str, subject: str, html: str) -> None:
        resend.api_key = self.settings.RESEND_API_KEY
        resend.Emails.send(
            {
                "from": self.settings.RESEND_FROM or self.settings.MAIL_FROM,
                "to": to_email,
                "subject": subject,
                "html": html,
            }
        )

    def _send_via_smtp(self, to_email: str, subject: str, html: str) -> None:
        msg = EmailMessage()
        msg["From"] = self.settings.MAIL_FROM
        msg["To"] = to_email
        msg["Subject"] = subject
        msg.set_content("Abra este e-mail em um cliente compatível com HTML.")
        msg.add_alternative(html, subtype="html")

        client = self._build_smtp_client()
        try:
            if self.settings.SMTP_USER and self.settings.SMTP_PASSWORD:
                client.login(self.settings.SMTP_USER, self.settings.SMTP_PASSWORD)
            client.send_message(msg)
        finally:
            try:
                client.quit()
            except smtplib.SMTPException:
                pass

    def _send_once(self, to_email: str, subject: str, html: str) -> None:
        transport = self.transport_name
        if transport == "resend":
            self._send_via_resend(to_email, subject, html)
        elif transport == "smtp":
            self._send_via_smtp(to_email, subject, html)
        else:
            logger.info("[email:log_only] to=%s subject=%s body=%s", to_email, subject, html)

    def send(self, to_email: str, subject: str, html: str) -> None:
        """Send with retries; raises EmailDeliveryError when every attempt fails."""
        attempts = max(1, self.settings.MAIL_RETRY_ATTEMPTS)
        last_error: Optional[Exception] = None

        for attempt in range(1, attempts + 1):
            try:
                self._send_once(to_email, subject, html)
                logger.info("[email:%s] sent to=%s subject=%s", self.transport_name, to_email, subject)
                return
            except AUTH_ERRORS as exc:
                logger.error("[email:%s] authentication failed, giving up: %s", self.transport_name, exc)
                raise EmailDeliveryError("Falha de autenticação no envio de e-mail") from exc
            except Exception as exc:
                last_error = exc
                logger.warning(
                    "[email:%s] attempt %s/%s failed: %s", self.transport_name, attempt, attempts, exc
                )
                if attempt < attempts:
                    self._sleep(self.settings.MAIL_RETRY_DELAY_SECONDS * attempt)

        raise EmailDeliveryError("Não foi possível enviar o e-mail") from last_error

    def close(self) -> None:
        pass


def send_reset_email(mailer: Mailer, email: str, username: Optional[str], token: str) -> None:
    reset_url = f"{mailer.settings.FRONTEND_URL}/redefinir-senha/{token}"
    subject = ".CARRO: Redefinição de Senha"
    html = f"""
        Olá {escape(username or 'usuário')},
        <p>Recebemos uma solicitação para redefinir a senha da sua conta .CARRO.</p>
        <p>Para prosseguir com a redefinição, por favor, clique no link abaixo:</p>
        <h3><a href="{reset_url}" style="color: #007bff; text-decoration: none;">Redefinir minha senha</a></h3>
        <p>Este link é válido por <b>1 hora</b>.</p>
        <p>Se você não solicitou esta redefinição de senha, ignore este e-mail.</p>
        <p>Obrigado,<br/>Equipe .CARRO</p>
    """
    mailer.send(email, subject, html)
