"""Entry/exit access tokens.

Wire format (ASCII, five ``|``-separated fields)::

    ISSUER|subjectId|epochMillis|vehiclePlate|hexDigest

``hexDigest`` is the lowercase hex SHA-256 of the first four fields joined
with ``|``. A token is only trusted once structure, issuer, integrity and
freshness have all been checked, in that order.
"""
import hashlib
import hmac
import re
from typing import Optional

from vaultpark.config.settings_env import settings
from vaultpark.domain.entities import AccessToken
from vaultpark.domain.errors import (
    MalformedToken,
    InvalidTimestamp,
    EmptySubject,
    EmptyVehicle,
    IntegrityMismatch,
    Expired,
)

SEPARATOR = "|"
FIELD_COUNT = 5
_INTEGER = re.compile(r"-?[0-9]+")


def compute_digest(issuer_tag: str, subject_id: str, issued_at: str, vehicle_plate: str) -> str:
    payload = SEPARATOR.join((issuer_tag, subject_id, issued_at, vehicle_plate))
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class TokenCodec:
    def __init__(self, issuer_tag: Optional[str] = None, ttl_millis: Optional[int] = None):
        self.issuer_tag = issuer_tag or settings.TOKEN_ISSUER
        self.ttl_millis = ttl_millis if ttl_millis is not None else settings.TOKEN_TTL_MILLIS

    def encode(self, subject_id: str, vehicle_plate: str, now_millis: int) -> str:
        for name, value in (("subject_id", subject_id), ("vehicle_plate", vehicle_plate)):
            if not value or not value.strip():
                raise ValueError(f"{name} must not be blank")
            if SEPARATOR in value:
                raise ValueError(f"{name} must not contain '{SEPARATOR}'")

        issued_at = str(int(now_millis))
        digest = compute_digest(self.issuer_tag, subject_id, issued_at, vehicle_plate)
        return SEPARATOR.join((self.issuer_tag, subject_id, issued_at, vehicle_plate, digest))

    def decode(self, token: str) -> AccessToken:
        """Parse and integrity-check a token. Freshness is not checked here."""
        parts = token.split(SEPARATOR)
        if len(parts) != FIELD_COUNT:
            raise MalformedToken(f"Expected {FIELD_COUNT} fields, got {len(parts)}")

        issuer_tag, subject_id, raw_timestamp, vehicle_plate, provided_digest = parts
        if issuer_tag != self.issuer_tag:
            raise MalformedToken(f"Expected issuer '{self.issuer_tag}', got '{issuer_tag}'")

        if not _INTEGER.fullmatch(raw_timestamp):
            raise InvalidTimestamp(f"Invalid timestamp format: '{raw_timestamp}'")

        if not subject_id.strip():
            raise EmptySubject("Subject id is empty")
        if not vehicle_plate.strip():
            raise EmptyVehicle("Vehicle number is empty")

        expected = compute_digest(issuer_tag, subject_id, raw_timestamp, vehicle_plate)
        if not hmac.compare_digest(expected.encode("utf-8"), provided_digest.encode("utf-8")):
            raise IntegrityMismatch("Digest does not match token contents")

        return AccessToken(
            issuer_tag=issuer_tag,
            subject_id=subject_id,
            issued_at_millis=int(raw_timestamp),
            vehicle_plate=vehicle_plate,
            integrity_digest=provided_digest,
        )

    def is_expired(self, token: AccessToken, now_millis: int) -> bool:
        return now_millis - token.issued_at_millis > self.ttl_millis

    def validate(self, token: str, now_millis: int) -> AccessToken:
        access_token = self.decode(token)
        if self.is_expired(access_token, now_millis):
            age = now_millis - access_token.issued_at_millis
            raise Expired(f"Token is {age}ms old, limit is {self.ttl_millis}ms")
        return access_token


def encode(issuer_tag: str, subject_id: str, vehicle_plate: str, now_millis: int) -> str:
    return TokenCodec(issuer_tag=issuer_tag).encode(subject_id, vehicle_plate, now_millis)


def decode(token: str, issuer_tag: Optional[str] = None) -> AccessToken:
    return TokenCodec(issuer_tag=issuer_tag).decode(token)


def validate(token: str, now_millis: int, issuer_tag: Optional[str] = None) -> AccessToken:
    return TokenCodec(issuer_tag=issuer_tag).validate(token, now_millis)
