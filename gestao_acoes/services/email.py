import logging

import httpx

from gestao_acoes.core.config import settings

logger = logging.getLogger("gestao_acoes.email")


class EmailError(RuntimeError):
    pass


def is_email_configured() -> bool:
    return bool(settings.EMAIL_API_KEY and settings.EMAIL_API_URL)


def send_email(to: list[str], subject: str, content: str, timeout: float = 10.0) -> None:
    recipients = [address.strip() for address in to if address and address.strip()]
    if not recipients:
        raise EmailError("Nenhum destinatario de email informado")
    if not is_email_configured():
        raise EmailError("EMAIL_API_KEY nao configurada")

    payload = {
        "from": settings.EMAIL_FROM,
        "to": recipients,
        "subject": subject,
        "html": content,
    }
    headers = {"Authorization": f"Bearer {settings.EMAIL_API_KEY}"}
    try:
        with httpx.Client(timeout=timeout) as client:
            response = client.post(settings.EMAIL_API_URL, json=payload, headers=headers)
    except httpx.RequestError as exc:
        raise EmailError(f"Falha ao enviar email: {exc}") from exc
    if response.status_code >= 400:
        try:
            message = response.json().get("message")
        except ValueError:
            message = None
        raise EmailError(message or f"HTTP {response.status_code}")
    logger.info("Email enviado para %s", ", ".join(recipients))
