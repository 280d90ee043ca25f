"""
Message content builders for invitation and onboarding notifications.

All patient-facing copy is Spanish. HTML bodies escape user-supplied
values (names, custom messages).
"""

from html import escape
from typing import Optional

from core.config import APP_URL
from shared_types.delivery import MessageContent

PRODUCT_NAME = "GestionTerapeutica"


def registration_url(code: str) -> str:
    """Frontend link a patient follows to redeem an invitation code."""
    return f"{APP_URL.rstrip('/')}/register/{code}"


def _expiry_line(expiration_days: int) -> str:
    unit = "día" if expiration_days == 1 else "días"
    return f"Este código expira en {expiration_days} {unit}."


def invitation_sms(
    patient_name: str,
    code: str,
    professional_name: str,
    custom_message: Optional[str] = None,
    expiration_days: int = 7,
) -> MessageContent:
    parts = [f"Hola {patient_name},"]
    if custom_message:
        parts.append(custom_message)
    parts.append(f"{professional_name} te ha invitado a unirte a {PRODUCT_NAME}.")
    parts.append(f"Tu código de invitación: {code}")
    parts.append(f"Regístrate aquí: {registration_url(code)}")
    parts.append(_expiry_line(expiration_days))
    return MessageContent(body="\n\n".join(parts))


def invitation_whatsapp(
    patient_name: str,
    code: str,
    professional_name: str,
    custom_message: Optional[str] = None,
    expiration_days: int = 7,
) -> MessageContent:
    # WhatsApp renders *text* as bold
    parts = [f"Hola {patient_name} 👋"]
    if custom_message:
        parts.append(custom_message)
    parts.append(f"*{professional_name}* te ha invitado a unirte a *{PRODUCT_NAME}*.")
    parts.append(f"🔑 Tu código de invitación:\n*{code}*")
    parts.append(f"📱 Regístrate aquí:\n{registration_url(code)}")
    parts.append(f"⏰ {_expiry_line(expiration_days)}")
    return MessageContent(body="\n\n".join(parts))


def invitation_email(
    patient_name: str,
    code: str,
    professional_name: str,
    custom_message: Optional[str] = None,
    expiration_days: int = 7,
) -> MessageContent:
    """Invitation email with plain-text and HTML parts."""
    url = registration_url(code)
    subject = f"Invitación a {PRODUCT_NAME} de {professional_name}"

    text_parts = [f"Hola {patient_name},"]
    if custom_message:
        text_parts.append(f"Mensaje de {professional_name}:\n{custom_message}")
    text_parts.extend([
        f"{professional_name} te ha invitado a unirte a {PRODUCT_NAME}.",
        f"Tu código de invitación: {code}",
        f"Regístrate aquí: {url}",
        _expiry_line(expiration_days),
        "Si no solicitaste esta invitación, puedes ignorar este correo.",
    ])

    custom_block = ""
    if custom_message:
        custom_block = (
            f'<div class="custom-message"><strong>Mensaje de {escape(professional_name)}:</strong><br>'
            f"{escape(custom_message)}</div>"
        )

    html = f"""<!DOCTYPE html>
<html>
<head><meta charset="UTF-8"></head>
<body>
  <div class="container">
    <div class="header"><div class="logo">{PRODUCT_NAME}</div></div>
    <div class="content">
      <h2>Hola {escape(patient_name)},</h2>
      {custom_block}
      <p><strong>{escape(professional_name)}</strong> te ha invitado a unirte a {PRODUCT_NAME}, una plataforma para gestionar tu proceso terapéutico de manera segura y eficiente.</p>
      <p>Para completar tu registro, usa el siguiente código de invitación:</p>
      <div class="code-box"><div class="code">{code}</div></div>
      <p style="text-align: center;"><a href="{url}" class="button">Registrarme Ahora</a></p>
      <p>O copia y pega este enlace en tu navegador:<br><a href="{url}">{url}</a></p>
    </div>
    <div class="footer">
      <p>{_expiry_line(expiration_days)}</p>
      <p>Si no solicitaste esta invitación, puedes ignorar este correo.</p>
    </div>
  </div>
</body>
</html>"""

    return MessageContent(body="\n\n".join(text_parts), subject=subject, html=html)


def welcome_email(name: str) -> MessageContent:
    """Welcome email sent after a patient completes registration."""
    login_url = f"{APP_URL.rstrip('/')}/login"
    text = (
        f"¡Bienvenido, {name}!\n\n"
        "Tu cuenta ha sido creada exitosamente.\n"
        "Ahora puedes acceder a la plataforma y comenzar tu proceso terapéutico.\n\n"
        f"Iniciar sesión: {login_url}"
    )
    html = f"""<!DOCTYPE html>
<html>
<head><meta charset="UTF-8"></head>
<body>
  <div class="container">
    <div class="logo">{PRODUCT_NAME}</div>
    <h2>¡Bienvenido, {escape(name)}!</h2>
    <p>Tu cuenta ha sido creada exitosamente.</p>
    <p>Ahora puedes acceder a la plataforma y comenzar tu proceso terapéutico.</p>
    <p style="text-align: center;"><a href="{login_url}" class="button">Iniciar Sesión</a></p>
  </div>
</body>
</html>"""
    return MessageContent(body=text, subject=f"¡Bienvenido a {PRODUCT_NAME}!", html=html)


def invitation_content(
    channel: str,
    patient_name: str,
    code: str,
    professional_name: str,
    custom_message: Optional[str] = None,
    expiration_days: int = 7,
) -> MessageContent:
    """Pick the invitation template for a delivery channel."""
    builders = {
        "SMS": invitation_sms,
        "WHATSAPP": invitation_whatsapp,
        "EMAIL": invitation_email,
    }
    builder = builders.get(channel)
    if builder is None:
        raise ValueError(f"Unsupported channel: {channel}")
    return builder(patient_name, code, professional_name, custom_message, expiration_days)
