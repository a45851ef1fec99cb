"""XOAUTH2 SASL mechanism shared by the IMAP and SMTP backends."""

from __future__ import annotations

import base64

MECHANISM = "XOAUTH2"


def build_mechanism_payload(user: str, access_token: str) -> bytes:
    """Return ``user=<user>\\x01auth=Bearer <token>\\x01\\x01``."""
    return f"user={user}\x01auth=Bearer {access_token}\x01\x01".encode("utf-8")


def encode_mechanism_payload(user: str, access_token: str) -> str:
    """Base64 form used on the wire by ``AUTH XOAUTH2 <payload>``."""
    return base64.b64encode(build_mechanism_payload(user, access_token)).decode("ascii")


class XOAuth2Mechanism:
    """Client side of XOAUTH2.

    There is no real challenge-response: a server challenge means the login
    failed, and it is answered with an empty response so the server sends its
    final status.

    Instances are also callables for ``imaplib.IMAP4.authenticate``.
    """

    name = MECHANISM

    def __init__(self, user: str, access_token: str):
        self.user = user
        self._access_token = access_token
        self._started = False

    def initial_response(self) -> bytes:
        return build_mechanism_payload(self.user, self._access_token)

    def next(self, challenge: bytes | None, more: bool = False) -> bytes:
        return b""

    def __call__(self, challenge: bytes | None = None) -> bytes:
        if not self._started:
            self._started = True
            return self.initial_response()
        return self.next(challenge)

    def __repr__(self) -> str:
        return f"XOAuth2Mechanism(user={self.user!r})"
