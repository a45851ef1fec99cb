import base64

from o365mail.auth.sasl import (
    MECHANISM,
    XOAuth2Mechanism,
    build_mechanism_payload,
    encode_mechanism_payload,
)


def test_payload_exact_bytes() -> None:
    payload = build_mechanism_payload("alice@contoso.com", "tok123")

    assert payload == b"user=alice@contoso.com\x01auth=Bearer tok123\x01\x01"


def test_encoded_payload_is_base64_of_raw() -> None:
    encoded = encode_mechanism_payload("alice@contoso.com", "tok123")

    assert base64.b64decode(encoded) == build_mechanism_payload("alice@contoso.com", "tok123")


def test_mechanism_initial_response_and_continuation() -> None:
    mech = XOAuth2Mechanism("alice@contoso.com", "tok123")

    assert mech.name == MECHANISM == "XOAUTH2"
    assert mech.initial_response() == b"user=alice@contoso.com\x01auth=Bearer tok123\x01\x01"
    assert mech.next(b'{"status":"400"}') == b""
    assert mech.next(b"", more=True) == b""


def test_mechanism_as_imaplib_authobject() -> None:
    mech = XOAuth2Mechanism("alice@contoso.com", "tok123")

    assert mech(b"") == build_mechanism_payload("alice@contoso.com", "tok123")
    assert mech(b'{"status":"401"}') == b""


def test_repr_hides_token() -> None:
    assert "tok123" not in repr(XOAuth2Mechanism("alice@contoso.com", "tok123"))
