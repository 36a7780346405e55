"""Outbound offer delivery to doctors.

The cascade hands each offer to a NotificationSink once per enabled
channel after its transaction commits. Delivery failures never affect
cascade state; the cascade logs them and moves on.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import uuid4

from teleconsulta.core.config import settings
from teleconsulta.fixtures.message_templates import (
    DEFAULT_WHATSAPP_TEMPLATE,
    MESSAGE_TEMPLATES,
    render_template,
)
from teleconsulta.models.cascade import NotificationChannel

logger = logging.getLogger(__name__)


class NotificationDeliveryError(Exception):
    """Raised when an offer cannot be delivered on a channel."""

    pass


@dataclass
class CascadeOffer:
    """Everything a channel needs to tell one doctor about one consultation."""

    consultation_id: str
    doctor_id: str
    doctor_name: str
    doctor_email: str | None
    doctor_whatsapp: str | None
    round_number: int
    response_deadline: datetime
    timeout_minutes: int
    patient_name: str
    patient_phone: str | None
    specialty: str
    urgency: str
    description: str | None
    whatsapp_template: str = DEFAULT_WHATSAPP_TEMPLATE

    @property
    def accept_url(self) -> str:
        base = settings.public_base_url.rstrip("/")
        return f"{base}/consulta/{self.consultation_id}/aceitar?doctor={self.doctor_id}"

    @property
    def reject_url(self) -> str:
        base = settings.public_base_url.rstrip("/")
        return f"{base}/consulta/{self.consultation_id}/recusar?doctor={self.doctor_id}"

    def template_context(self) -> dict[str, Any]:
        """Values available to message templates."""
        return {
            "doctor_name": self.doctor_name,
            "round_number": self.round_number,
            "patient_name": self.patient_name,
            "patient_phone": self.patient_phone or "Não informado",
            "specialty": self.specialty,
            "urgency": self.urgency.upper(),
            "description": self.description or "Não informada",
            "timeout_minutes": self.timeout_minutes,
            "accept_url": self.accept_url,
            "reject_url": self.reject_url,
        }


class NotificationSink(ABC):
    """Receives "notify doctor X about consultation Y" requests."""

    @abstractmethod
    async def notify(self, offer: CascadeOffer, channel: NotificationChannel) -> None:
        """Deliver an offer on one channel.

        Raises NotificationDeliveryError (or any exception) on failure.
        """
        pass


class ChannelProvider(ABC):
    """Abstract base class for per-channel transports."""

    @abstractmethod
    async def send(
        self,
        recipient: str,
        subject: str | None,
        body: str,
        **kwargs: Any,
    ) -> tuple[str, dict]:
        """Send a message and return (provider_message_id, metadata)."""
        pass


class WhatsAppProvider(ChannelProvider):
    """WhatsApp Business API abstraction."""

    def __init__(self, provider_name: str = "whatsapp_cloud", sender_number: str = ""):
        self.provider_name = provider_name
        self.sender_number = sender_number

    async def send(
        self,
        recipient: str,
        subject: str | None,
        body: str,
        **kwargs: Any,
    ) -> tuple[str, dict]:
        """Send WhatsApp message."""
        # In production, this would call the WhatsApp Business API
        logger.info(f"Sending WhatsApp to {recipient}: {body[:50]}...")

        message_id = f"wa_{uuid4().hex[:16]}"

        return message_id, {
            "provider": self.provider_name,
            "from": self.sender_number,
            "to": recipient,
        }


class EmailProvider(ChannelProvider):
    """Email provider abstraction (SMTP, SES, ...)."""

    def __init__(
        self,
        provider_name: str = "smtp",
        from_email: str = "",
        from_name: str = "Teleconsulta",
    ):
        self.provider_name = provider_name
        self.from_email = from_email
        self.from_name = from_name

    async def send(
        self,
        recipient: str,
        subject: str | None,
        body: str,
        **kwargs: Any,
    ) -> tuple[str, dict]:
        """Send email message."""
        logger.info(f"Sending email to {recipient}: {subject}")

        message_id = f"email_{uuid4().hex[:16]}"

        return message_id, {
            "provider": self.provider_name,
            "from": f"{self.from_name} <{self.from_email}>",
            "to": recipient,
        }


class PushProvider(ChannelProvider):
    """In-app push notification abstraction."""

    def __init__(self, provider_name: str = "webpush"):
        self.provider_name = provider_name

    async def send(
        self,
        recipient: str,
        subject: str | None,
        body: str,
        **kwargs: Any,
    ) -> tuple[str, dict]:
        """Send push notification to a doctor's devices."""
        logger.info(f"Sending push to doctor {recipient}: {subject}")

        message_id = f"push_{uuid4().hex[:16]}"

        return message_id, {
            "provider": self.provider_name,
            "to": recipient,
        }


class ChannelNotificationSink(NotificationSink):
    """Default sink: renders the channel's template and hands it to a provider."""

    def __init__(
        self,
        whatsapp_provider: ChannelProvider | None = None,
        email_provider: ChannelProvider | None = None,
        push_provider: ChannelProvider | None = None,
    ):
        self.providers: dict[NotificationChannel, ChannelProvider] = {
            NotificationChannel.WHATSAPP: whatsapp_provider or WhatsAppProvider(),
            NotificationChannel.EMAIL: email_provider or EmailProvider(),
            NotificationChannel.PUSH: push_provider or PushProvider(),
        }

    def _get_provider(self, channel: NotificationChannel) -> ChannelProvider:
        provider = self.providers.get(channel)
        if provider is None:
            raise NotificationDeliveryError(f"Unsupported channel: {channel}")
        return provider

    def _recipient(self, offer: CascadeOffer, channel: NotificationChannel) -> str | None:
        if channel == NotificationChannel.WHATSAPP:
            return offer.doctor_whatsapp
        if channel == NotificationChannel.EMAIL:
            return offer.doctor_email
        return offer.doctor_id

    def render(self, offer: CascadeOffer, channel: NotificationChannel) -> tuple[str | None, str]:
        """Render (subject, body) for an offer on a channel."""
        context = offer.template_context()
        if channel == NotificationChannel.WHATSAPP:
            return None, render_template(offer.whatsapp_template, context)

        template = MESSAGE_TEMPLATES.get(channel)
        if template is None:
            raise NotificationDeliveryError(f"No template for channel: {channel}")
        return (
            render_template(template["subject"], context),
            render_template(template["body"], context),
        )

    async def notify(self, offer: CascadeOffer, channel: NotificationChannel) -> None:
        provider = self._get_provider(channel)
        recipient = self._recipient(offer, channel)
        if not recipient:
            raise NotificationDeliveryError(
                f"Doctor {offer.doctor_id} has no {channel.value} address"
            )

        subject, body = self.render(offer, channel)
        provider_id, _ = await provider.send(recipient=recipient, subject=subject, body=body)

        logger.info(
            f"Offer delivered via {channel.value}: {provider_id}",
            extra={
                "consultation_id": offer.consultation_id,
                "doctor_id": offer.doctor_id,
                "round_number": offer.round_number,
            },
        )
