import pytest

from smsgateway.core.exceptions import MissingTemplateFieldError, ValidationError
from smsgateway.schemas.sms import NotificationKind
from smsgateway.services.sms import templates


def test_every_kind_has_french_and_english_variants():
    for kind in NotificationKind:
        assert templates.get_template(kind, "fr")
        assert templates.get_template(kind, "en")


def test_unknown_locale_falls_back_to_french():
    assert templates.get_template(NotificationKind.LITIGE, "de") == templates.get_template(NotificationKind.LITIGE, "fr")


def test_non_string_locale_falls_back_to_french():
    assert templates.get_template(NotificationKind.OTP, 1) == templates.get_template(NotificationKind.OTP, "fr")


def test_unknown_template():
    with pytest.raises(ValidationError) as exc_info:
        templates.get_template("NEWSLETTER")
    assert exc_info.value.code == "UNKNOWN_TEMPLATE"


def test_required_fields():
    assert templates.required_fields(NotificationKind.NOTIFICATION_TRAJET) == ["origine", "destination", "prix"]
    assert templates.required_fields(NotificationKind.SOLDE_INSUFFISANT) == []


def test_render_english():
    body = templates.render(NotificationKind.REMBOURSEMENT, "en", {"montant": 2500, "reference": "RF-9"})
    assert body == "Refund of 2500 FCFA processed. Ref: RF-9"


def test_empty_field_is_missing():
    with pytest.raises(MissingTemplateFieldError) as exc_info:
        templates.render(NotificationKind.LITIGE, "fr", {"reference": "  "})
    assert exc_info.value.missing == ["reference"]


@pytest.mark.parametrize("amount", [-5, "beaucoup", "nan", "inf", float("-inf")])
def test_invalid_amount(amount):
    with pytest.raises(ValidationError) as exc_info:
        templates.render(NotificationKind.ECHEC_PAIEMENT, "fr", {"montant": amount})
    assert exc_info.value.code == "INVALID_TEMPLATE_FIELD"


def test_clean_message():
    assert templates.clean_message("“Bonjour”\t l’ami…\n") == "\"Bonjour\" l'ami..."
    assert templates.clean_message(None) == ""
