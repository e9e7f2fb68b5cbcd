from app.models.types import EncryptedString, mask_account_number
from tests.fakes import make_loan


def test_account_number_is_encrypted_at_rest():
    column_type = EncryptedString(secret="column-secret")

    stored = column_type.process_bind_param("00123456789", dialect=None)

    assert isinstance(stored, bytes)
    assert b"00123456789" not in stored
    assert column_type.process_result_value(stored, dialect=None) == "00123456789"
    assert column_type.process_bind_param(None, dialect=None) is None


def test_mask_account_number():
    assert mask_account_number("00123456789") == "****6789"
    assert mask_account_number(None) == "****"


def test_missing_upload_slots_and_offer_flag():
    loan = make_loan(first_flyer=None, third_flyer="")

    assert loan.missing_upload_slots() == ["first_flyer", "third_flyer"]
    assert loan.awaiting_client_response is False
    loan.new_cantity_opt = True
    assert loan.awaiting_client_response is True
