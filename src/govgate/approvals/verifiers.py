"""
Approver proof verification.

The workflow engine only needs ``verify(approver, action_id, proof)``;
any credential scheme can sit behind it.
"""

from __future__ import annotations

import hashlib
import hmac
from typing import Iterable, Protocol

import structlog

from govgate.audit.chain import canonical_json

logger = structlog.get_logger()


class SignatureVerifier(Protocol):
    def verify(self, approver: str, action_id: str, proof: str) -> bool: ...


def _message(approver: str, action_id: str) -> bytes:
    return canonical_json([approver, action_id]).encode("utf-8")


class HmacSignatureVerifier:
    """Shared-secret HMAC proofs with key rotation and revocation.

    Proofs have the form ``<key_id>:<hex sha256 hmac>``.
    """

    DEFAULT_KEY_ID = "govgate-key-v1"

    def __init__(self, secret: str | bytes, key_id: str = DEFAULT_KEY_ID) -> None:
        self._keys: dict[str, bytes] = {}
        self._revoked: set[str] = set()
        self.active_key_id = key_id
        self.add_key(key_id, secret)

    def add_key(self, key_id: str, secret: str | bytes, activate: bool = False) -> None:
        self._keys[key_id] = secret.encode("utf-8") if isinstance(secret, str) else secret
        if activate:
            self.active_key_id = key_id

    def revoke_key(self, key_id: str) -> None:
        """Proofs signed with a revoked key no longer verify."""
        self._revoked.add(key_id)

    def sign(self, approver: str, action_id: str) -> str:
        if self.active_key_id in self._revoked:
            raise ValueError(f"Active key {self.active_key_id} is revoked")
        digest = hmac.new(
            self._keys[self.active_key_id], _message(approver, action_id), hashlib.sha256
        ).hexdigest()
        return f"{self.active_key_id}:{digest}"

    def verify(self, approver: str, action_id: str, proof: str) -> bool:
        key_id, sep, digest = proof.partition(":")
        if not sep:
            return False
        if key_id in self._revoked:
            logger.warning(
                "approval_proof_rejected", approver=approver, key_id=key_id, reason="revoked"
            )
            return False
        secret = self._keys.get(key_id)
        if secret is None:
            logger.warning(
                "approval_proof_rejected", approver=approver, key_id=key_id, reason="unknown_key"
            )
            return False
        expected = hmac.new(secret, _message(approver, action_id), hashlib.sha256).hexdigest()
        return hmac.compare_digest(expected, digest)


class AnyOfVerifier:
    """Accept a proof if any of several schemes accepts it."""

    def __init__(self, verifiers: Iterable[SignatureVerifier]) -> None:
        self.verifiers = list(verifiers)

    def verify(self, approver: str, action_id: str, proof: str) -> bool:
        return any(v.verify(approver, action_id, proof) for v in self.verifiers)
