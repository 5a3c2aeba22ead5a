"""
Localized SMS templates.

Placeholders use the ``{name}`` syntax. Every placeholder of a template is a
required variable for that template.
"""
import math
import re
from typing import Any, Dict, List, Mapping

from smsgateway.core.exceptions import ErrorCode, MissingTemplateFieldError, ValidationError
from smsgateway.schemas.sms import NotificationKind

DEFAULT_LOCALE = "fr"

PLACEHOLDER_PATTERN = re.compile(r"\{([a-zA-Z_][a-zA-Z0-9_]*)\}")

TEMPLATES: Dict[str, Dict[str, str]] = {
    NotificationKind.OTP.value: {
        "fr": "Votre code OTP pour CovoiturApp est: {code}. Valide 10 minutes.",
        "en": "Your OTP code for CovoiturApp is: {code}. Valid for 10 minutes.",
    },
    NotificationKind.VERIFICATION_COMPTE.value: {
        "fr": "Votre code de vérification CovoiturApp: {code}. Valide 10 minutes.",
        "en": "Your CovoiturApp verification code: {code}. Valid for 10 minutes.",
    },
    NotificationKind.CONFIRMATION_PAIEMENT.value: {
        "fr": "Paiement de {montant} FCFA confirmé. Ref: {reference}",
        "en": "Payment of {montant} FCFA confirmed. Ref: {reference}",
    },
    NotificationKind.ECHEC_PAIEMENT.value: {
        "fr": "Échec du paiement de {montant} FCFA. Réessayez.",
        "en": "Payment of {montant} FCFA failed. Please try again.",
    },
    NotificationKind.REMBOURSEMENT.value: {
        "fr": "Remboursement de {montant} FCFA traité. Ref: {reference}",
        "en": "Refund of {montant} FCFA processed. Ref: {reference}",
    },
    NotificationKind.SOLDE_INSUFFISANT.value: {
        "fr": "Solde insuffisant. Rechargez votre portefeuille.",
        "en": "Insufficient balance. Please top up your wallet.",
    },
    NotificationKind.LITIGE.value: {
        "fr": "Litige ouvert pour transaction {reference}. Contactez le support CovoiturApp.",
        "en": "Dispute opened for transaction {reference}. Please contact CovoiturApp support.",
    },
    NotificationKind.NOTIFICATION_TRAJET.value: {
        "fr": "Nouveau trajet disponible! De {origine} à {destination}. Prix: {prix} FCFA",
        "en": "New ride available! From {origine} to {destination}. Price: {prix} FCFA",
    },
}

# Variables that must hold a non-negative number
NUMERIC_FIELDS = ("montant", "prix")


def _key(template_key) -> str:
    return template_key.value if isinstance(template_key, NotificationKind) else str(template_key)


def has_template(template_key) -> bool:
    return _key(template_key) in TEMPLATES


def get_template(template_key, locale: str = DEFAULT_LOCALE) -> str:
    """
    Get the template text for a key, falling back to French.

    Raises:
        ValidationError: If no template exists for the key
    """
    variants = TEMPLATES.get(_key(template_key))
    if not variants:
        raise ValidationError(
            message=f"No template found for {_key(template_key)}",
            code=ErrorCode.UNKNOWN_TEMPLATE,
        )
    locale = locale.lower() if isinstance(locale, str) else DEFAULT_LOCALE
    return variants.get(locale, variants[DEFAULT_LOCALE])


def required_fields(template_key) -> List[str]:
    """Placeholders of the French variant, in order of appearance."""
    fields = PLACEHOLDER_PATTERN.findall(get_template(template_key, DEFAULT_LOCALE))
    return list(dict.fromkeys(fields))


def sanitize_value(value: Any) -> str:
    """Convert a variable to text and strip angle brackets."""
    return re.sub(r"[<>]", "", str(value))


def validate_variables(template_key, variables: Mapping[str, Any]) -> None:
    """
    Check that every required variable is present and well-formed.

    Raises:
        MissingTemplateFieldError: If a required variable is absent or empty
        ValidationError: If an amount is not a non-negative number
    """
    missing = [
        field for field in required_fields(template_key)
        if variables.get(field) is None or str(variables.get(field)).strip() == ""
    ]
    if missing:
        raise MissingTemplateFieldError(_key(template_key), missing)

    for field in NUMERIC_FIELDS:
        if field not in variables:
            continue
        try:
            amount = float(variables[field])
        except (TypeError, ValueError):
            amount = -1
        if not math.isfinite(amount) or amount < 0:
            raise ValidationError(
                message=f"Invalid amount for {field}",
                code=ErrorCode.INVALID_TEMPLATE_FIELD,
                details={"field": field},
            )


def render(template_key, locale: str = DEFAULT_LOCALE, variables: Mapping[str, Any] = None) -> str:
    """
    Render a template with sanitized variables.

    Args:
        template_key: NotificationKind or its value
        locale: "fr" or "en"; anything else falls back to French
        variables: Values for the template placeholders

    Returns:
        str: Rendered message body
    """
    variables = variables or {}
    validate_variables(template_key, variables)
    template = get_template(template_key, locale)

    def substitute(match: "re.Match") -> str:
        name = match.group(1)
        if name not in variables:
            return match.group(0)
        return sanitize_value(variables[name])

    return PLACEHOLDER_PATTERN.sub(substitute, template)


def clean_message(message: str) -> str:
    """
    Normalize a message body before sending.

    Curly quotes become straight quotes, the ellipsis character becomes
    three dots, and whitespace runs collapse to single spaces.
    """
    if not message or not isinstance(message, str):
        return ""
    cleaned = re.sub(r"[“”]", '"', message)
    cleaned = re.sub(r"[‘’]", "'", cleaned)
    cleaned = cleaned.replace("…", "...")
    cleaned = re.sub(r"\s+", " ", cleaned)
    return cleaned.strip()
