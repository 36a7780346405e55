"""Message templates for cascade offers sent to doctors.

The WhatsApp body is the default copied into the cascade settings row,
where admins may edit it. Email and push templates are fixed.
Placeholders use the {{name}} form.
"""

from teleconsulta.models.cascade import NotificationChannel

DEFAULT_WHATSAPP_TEMPLATE = """🏥 *Nova Consulta Disponível - Rodada {{round_number}}*

👤 *Paciente:* {{patient_name}}
📞 *Telefone:* {{patient_phone}}
🩺 *Especialidade:* {{specialty}}
⚠️ *Urgência:* {{urgency}}

📝 *Descrição:*
{{description}}

⏰ *Tempo para responder:* {{timeout_minutes}} minutos

✅ Aceitar: {{accept_url}}
❌ Recusar: {{reject_url}}

_Sistema de Teleconsulta_"""


MESSAGE_TEMPLATES = {
    # =========================================================================
    # Offer (Email)
    # =========================================================================
    NotificationChannel.EMAIL: {
        "subject": "Nova consulta disponível - {{specialty}} ({{urgency}})",
        "body": """Olá, {{doctor_name}}.

Uma nova consulta está disponível para você (rodada {{round_number}}).

Paciente: {{patient_name}}
Especialidade: {{specialty}}
Urgência: {{urgency}}

Descrição:
{{description}}

Você tem {{timeout_minutes}} minutos para responder.

Aceitar: {{accept_url}}
Recusar: {{reject_url}}

Sistema de Teleconsulta""",
    },
    # =========================================================================
    # Offer (Push)
    # =========================================================================
    NotificationChannel.PUSH: {
        "subject": "Nova consulta - {{specialty}}",
        "body": "{{patient_name}} · urgência {{urgency}} · responda em {{timeout_minutes}} min",
    },
}


def render_template(template: str | None, context: dict) -> str | None:
    """Substitute {{name}} placeholders with context values.

    Unknown placeholders are left untouched.
    """
    if template is None:
        return None
    rendered = template
    for key, value in context.items():
        placeholder = f"{{{{{key}}}}}"
        rendered = rendered.replace(placeholder, str(value))
    return rendered
