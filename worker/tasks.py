import logging
import smtplib
import ssl
from email.message import EmailMessage

from celery import Celery
from prometheus_client import CollectorRegistry, Counter, Histogram, push_to_gateway

from worker_config import settings

logger = logging.getLogger(__name__)

celery_app = Celery(
    "helpdesk_worker",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

worker_registry = CollectorRegistry()
emails_sent_total = Counter(
    "emails_sent_total",
    "Emails delivered by the worker",
    ["outcome"],
    registry=worker_registry,
)
smtp_latency_seconds = Histogram(
    "smtp_latency_seconds",
    "SMTP delivery latency in seconds",
    registry=worker_registry,
)


def _push_metrics():
    try:
        push_to_gateway(settings.pushgateway_url, job="helpdesk-worker", registry=worker_registry)
    except Exception:
        return


def build_message(to: str, subject: str, text: str | None = None, html: str | None = None) -> EmailMessage:
    msg = EmailMessage()
    msg["From"] = settings.smtp_from or settings.smtp_user or ""
    msg["To"] = to
    msg["Subject"] = subject
    msg.set_content(text or "")
    if html:
        msg.add_alternative(html, subtype="html")
    return msg


def _smtp_client() -> smtplib.SMTP:
    if settings.smtp_secure:
        return smtplib.SMTP_SSL(
            settings.smtp_host,
            settings.smtp_port,
            timeout=settings.smtp_timeout,
            context=ssl.create_default_context(),
        )
    client = smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=settings.smtp_timeout)
    if settings.smtp_starttls:
        client.starttls(context=ssl.create_default_context())
    return client


def deliver(msg: EmailMessage) -> None:
    with _smtp_client() as client:
        if settings.smtp_user and settings.smtp_pass:
            client.login(settings.smtp_user, settings.smtp_pass)
        client.send_message(msg)


@celery_app.task(name="send_email", bind=True, max_retries=3, default_retry_delay=30)
def send_email(self, to: str, subject: str, text: str | None = None, html: str | None = None):
    if not settings.smtp_host:
        logger.warning("SMTP not configured, dropping email to %s", to)
        emails_sent_total.labels(outcome="skipped").inc()
        _push_metrics()
        return {"sent": False, "reason": "smtp not configured"}

    msg = build_message(to, subject, text, html)
    try:
        with smtp_latency_seconds.time():
            deliver(msg)
    except (smtplib.SMTPException, OSError) as e:
        emails_sent_total.labels(outcome="error").inc()
        _push_metrics()
        logger.error("Email delivery to %s failed: %s", to, e)
        raise self.retry(exc=e)

    emails_sent_total.labels(outcome="sent").inc()
    _push_metrics()
    return {"sent": True, "to": to}
