"""Seed data for the teleconsultation service.

Contains:
- Offer message templates (WhatsApp default, email, push)
"""

from teleconsulta.fixtures.message_templates import (
    DEFAULT_WHATSAPP_TEMPLATE,
    MESSAGE_TEMPLATES,
    render_template,
)

__all__ = ["DEFAULT_WHATSAPP_TEMPLATE", "MESSAGE_TEMPLATES", "render_template"]
