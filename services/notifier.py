# services/notifier.py
"""
Email transports for rate alerts

Each notifier sends one alert to one recipient and raises SendError on
failure. The alert cycle isolates failures per recipient, so nothing here
retries or aggregates errors.

Supported transports:
- smtp: RFC-compliant SMTP via aiosmtplib
- smtp2go: SMTP2GO transactional email HTTP API with a stored template
- log: development transport that only logs the alert
"""

import asyncio
import uuid
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from email import policy
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, formatdate
from typing import Any, Dict, Mapping, Optional

import aiosmtplib
import requests

from core.exceptions import NotifierConfigurationError, SendError
from core.models import AlertMessage
from core.template_engine import AlertTemplateEngine, DEFAULT_SUBJECT

logger = logging.getLogger(__name__)

SMTP2GO_SEND_URL = 'https://api.smtp2go.com/v3/email/send'


def build_template_data(message: AlertMessage,
                        issued_at: Optional[datetime] = None,
                        from_currency: str = 'BZD',
                        to_currency: str = 'MXN',
                        unsubscribe_url: str = '') -> Dict[str, Any]:
    """
    Variables shared by every alert template

    DATE and TIME use the day-first 24-hour layout of the stored SMTP2GO
    template (dd/mm/yyyy, HH:MM:SS).
    """
    issued_at = issued_at or datetime.now(timezone.utc)
    return {
        'FROM_CURRENCY': from_currency,
        'TO_CURRENCY': to_currency,
        'RATE': f"{message.rate:.4f}" if message.rate is not None else 'n/a',
        'DATE': issued_at.strftime('%d/%m/%Y'),
        'TIME': issued_at.strftime('%H:%M:%S'),
        'MESSAGE': message.text,
        'CLASSIFICATION': message.classification.value,
        'UNSUBSCRIBE_URL': unsubscribe_url,
    }


class Notifier(ABC):
    """Sends one alert message to one recipient"""

    name = 'notifier'

    def __init__(self,
                 from_currency: str = 'BZD',
                 to_currency: str = 'MXN',
                 unsubscribe_url: str = ''):
        self.from_currency = from_currency
        self.to_currency = to_currency
        self.unsubscribe_url = unsubscribe_url

    def template_data(self, message: AlertMessage, issued_at: Optional[datetime] = None) -> Dict[str, Any]:
        return build_template_data(
            message,
            issued_at=issued_at,
            from_currency=self.from_currency,
            to_currency=self.to_currency,
            unsubscribe_url=self.unsubscribe_url
        )

    @abstractmethod
    def send(self, recipient, message: AlertMessage, issued_at: Optional[datetime] = None) -> None:
        """
        Deliver message to recipient.email

        Raises:
            SendError: delivery failed for this recipient
        """


class LogNotifier(Notifier):
    """Development transport: logs instead of sending"""

    name = 'log'

    def send(self, recipient, message: AlertMessage, issued_at: Optional[datetime] = None) -> None:
        data = self.template_data(message, issued_at)
        logger.info(f"[log transport] Alert for {recipient.email}: {data['MESSAGE']} (rate {data['RATE']})")


class SMTPNotifier(Notifier):
    """SMTP transport rendering the alert with AlertTemplateEngine"""

    name = 'smtp'

    def __init__(self,
                 smtp_config: Dict[str, Any],
                 template_engine: Optional[AlertTemplateEngine] = None,
                 **kwargs):
        super().__init__(**kwargs)
        for key in ('host', 'port', 'from_address'):
            if not smtp_config.get(key):
                raise NotifierConfigurationError(f"SMTP configuration is missing '{key}'")

        self.smtp_config = smtp_config
        self.template_engine = template_engine or AlertTemplateEngine(
            subject_template=smtp_config.get('subject', DEFAULT_SUBJECT)
        )

    def build_message(self, recipient_email: str, message: AlertMessage,
                      issued_at: Optional[datetime] = None) -> MIMEMultipart:
        rendered = self.template_engine.render(self.template_data(message, issued_at))

        msg = MIMEMultipart('alternative', policy=policy.SMTP)
        msg['Subject'] = rendered.subject
        msg['From'] = formataddr((
            self.smtp_config.get('from_name', 'Exchange Rate Alerts'),
            self.smtp_config['from_address']
        ))
        msg['To'] = recipient_email
        msg['Date'] = formatdate(localtime=True)
        msg['Message-ID'] = f"<{uuid.uuid4()}@{self.smtp_config.get('domain', 'localhost')}>"

        # List management headers (RFC 2369)
        if self.unsubscribe_url:
            msg['List-Unsubscribe'] = f"<{self.unsubscribe_url}>"

        msg.attach(MIMEText(rendered.text, 'plain', 'utf-8', policy=policy.SMTP))
        msg.attach(MIMEText(rendered.html, 'html', 'utf-8', policy=policy.SMTP))
        return msg

    def send(self, recipient, message: AlertMessage, issued_at: Optional[datetime] = None) -> None:
        msg = self.build_message(recipient.email, message, issued_at)

        logger.debug(f"Sending alert to {recipient.email} via SMTP {self.smtp_config['host']}")
        asyncio.run(self._async_send_smtp(msg))

    async def _async_send_smtp(self, msg: MIMEMultipart) -> None:
        """
        Async SMTP sending: implicit TLS on 465, STARTTLS on 587
        """
        port = int(self.smtp_config['port'])
        smtp = aiosmtplib.SMTP(
            hostname=self.smtp_config['host'],
            port=port,
            timeout=self.smtp_config.get('timeout', 60),
            use_tls=port == 465,
            start_tls=port == 587,
            validate_certs=self.smtp_config.get('validate_certs', True)
        )

        try:
            await smtp.connect()

            if self.smtp_config.get('username') and self.smtp_config.get('password'):
                await smtp.login(self.smtp_config['username'], self.smtp_config['password'])

            await smtp.send_message(msg)
            await smtp.quit()
        except aiosmtplib.SMTPResponseException as e:
            raise SendError(f"SMTP error {e.code}: {e.message}") from e
        except (aiosmtplib.SMTPException, OSError, asyncio.TimeoutError) as e:
            raise SendError(f"SMTP delivery failed: {str(e)}") from e
        finally:
            if smtp.is_connected:
                smtp.close()


class SMTP2GONotifier(Notifier):
    """SMTP2GO HTTP API transport using a stored email template"""

    name = 'smtp2go'

    def __init__(self,
                 api_key: str,
                 sender: str,
                 template_id: str,
                 subject: str = DEFAULT_SUBJECT,
                 url: str = SMTP2GO_SEND_URL,
                 timeout: float = 15.0,
                 session: Optional[requests.Session] = None,
                 **kwargs):
        super().__init__(**kwargs)
        if not api_key or not sender or not template_id:
            raise NotifierConfigurationError(
                "SMTP2GO transport requires SMTP2GO_API_KEY, EMAIL_USER and SMTP2GO_TEMPLATE_ID"
            )

        self.api_key = api_key
        self.sender = sender
        self.template_id = template_id
        self.subject = subject
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()

    def build_payload(self, recipient_email: str, message: AlertMessage,
                      issued_at: Optional[datetime] = None) -> Dict[str, Any]:
        return {
            'api_key': self.api_key,
            'to': [recipient_email],
            'sender': self.sender,
            'subject': self.subject,
            'template_id': self.template_id,
            'template_data': self.template_data(message, issued_at),
        }

    def send(self, recipient, message: AlertMessage, issued_at: Optional[datetime] = None) -> None:
        payload = self.build_payload(recipient.email, message, issued_at)

        try:
            response = self.session.post(self.url, json=payload, timeout=self.timeout)
        except requests.exceptions.RequestException as exc:
            raise SendError(f"SMTP2GO request failed: {exc}") from exc

        try:
            body = response.json()
        except ValueError as exc:
            raise SendError(f"SMTP2GO returned invalid JSON (HTTP {response.status_code})") from exc

        data = body.get('data') if isinstance(body, dict) else None
        if not isinstance(data, dict) or not data.get('succeeded', 0) > 0:
            raise SendError(f"SMTP2GO rejected the message: {body}")


def create_notifier(config: Mapping[str, Any]) -> Notifier:
    """
    Build the notifier selected by EMAIL_TRANSPORT

    Raises:
        NotifierConfigurationError: unknown transport or missing credentials
    """
    transport = (config.get('EMAIL_TRANSPORT') or 'log').lower()
    common = {
        'from_currency': config.get('FROM_CURRENCY_LABEL', 'BZD'),
        'to_currency': config.get('TO_CURRENCY_LABEL', 'MXN'),
        'unsubscribe_url': config.get('UNSUBSCRIBE_URL', ''),
    }
    subject = config.get('EMAIL_SUBJECT', DEFAULT_SUBJECT)

    if transport == 'smtp':
        smtp_config = {
            'host': config.get('SMTP_HOST'),
            'port': config.get('SMTP_PORT', 587),
            'username': config.get('SMTP_USERNAME'),
            'password': config.get('SMTP_PASSWORD'),
            'timeout': config.get('SMTP_TIMEOUT', 60),
            'from_address': config.get('EMAIL_USER'),
            'from_name': config.get('EMAIL_FROM_NAME', 'Exchange Rate Alerts'),
            'subject': subject,
        }
        return SMTPNotifier(smtp_config, **common)

    if transport == 'smtp2go':
        return SMTP2GONotifier(
            api_key=config.get('SMTP2GO_API_KEY', ''),
            sender=config.get('EMAIL_USER', ''),
            template_id=config.get('SMTP2GO_TEMPLATE_ID', ''),
            subject=subject,
            **common
        )

    if transport == 'log':
        return LogNotifier(**common)

    raise NotifierConfigurationError(f"Unknown EMAIL_TRANSPORT {transport!r}")
