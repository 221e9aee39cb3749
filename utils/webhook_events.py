"""Stripe webhook verification and event typing.

Signatures cover the exact bytes Stripe sent. Callers must pass the raw request
body; anything that was parsed and re-serialized will never verify.
"""
import enum
import json
from dataclasses import dataclass, field
from typing import Optional

import stripe

# Replay window for the signed timestamp (seconds)
SIGNATURE_TOLERANCE_SEC = 300


class VerificationError(Exception):
    pass


class EventKind(str, enum.Enum):
    COMPLETION = "completion"
    PAYMENT_SUCCEEDED = "payment_succeeded"
    PAYMENT_FAILED = "payment_failed"
    OTHER = "other"


_KINDS = {
    "checkout.session.completed": EventKind.COMPLETION,
    "payment_intent.succeeded": EventKind.PAYMENT_SUCCEEDED,
    "payment_intent.payment_failed": EventKind.PAYMENT_FAILED,
}


@dataclass
class ParsedEvent:
    id: str
    type: str
    kind: EventKind
    payload: dict = field(default_factory=dict)
    envelope: dict = field(default_factory=dict)

    @property
    def object_id(self) -> str:
        return str(self.payload.get("id") or "")


def verify(raw_body: bytes, signature_header: Optional[str], secret: Optional[str]) -> ParsedEvent:
    if not isinstance(raw_body, (bytes, bytearray)):
        # A str/dict body means something upstream already decoded the request
        raise TypeError("webhook body must be the raw request bytes")
    if not (secret or "").strip():
        raise VerificationError("webhook secret is not configured")
    if not (signature_header or "").strip():
        raise VerificationError("missing signature header")

    try:
        text = bytes(raw_body).decode("utf-8")
    except UnicodeDecodeError as ex:
        raise VerificationError("body is not valid UTF-8") from ex

    try:
        stripe.WebhookSignature.verify_header(text, signature_header, secret, tolerance=SIGNATURE_TOLERANCE_SEC)
    except stripe.SignatureVerificationError as ex:
        raise VerificationError(str(ex)) from ex

    try:
        envelope = json.loads(text)
    except ValueError as ex:
        raise VerificationError(f"invalid JSON payload: {ex}") from ex
    if not isinstance(envelope, dict):
        raise VerificationError("event payload must be a JSON object")

    evt_type = str(envelope.get("type") or "")
    data = envelope.get("data") if isinstance(envelope.get("data"), dict) else {}
    obj = data.get("object") if isinstance(data.get("object"), dict) else {}
    return ParsedEvent(
        id=str(envelope.get("id") or ""),
        type=evt_type,
        kind=_KINDS.get(evt_type, EventKind.OTHER),
        payload=obj,
        envelope=envelope,
    )
