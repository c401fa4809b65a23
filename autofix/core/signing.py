"""
HMAC-SHA256 signing of persisted patch records.

The MAC covers the canonical JSON form of the record (sorted keys, compact
separators) with any previous signature triple removed, so re-signing a record
produces the same MAC as the first signature until the record itself changes.
"""

import json
import secrets
from typing import Any, Dict

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, hmac

from .certificate import Certificate
from .errors import NotFound
from .schema import PatchRecord, utc_now
from .store import PatchStore
from util.logging import logger

SIGNATURE_FIELDS = ("signature", "signedAt", "signer")


def canonical_payload(record: PatchRecord) -> bytes:
    data = record.to_dict()
    for name in SIGNATURE_FIELDS:
        data.pop(name, None)
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def _mac(key: bytes, payload: bytes) -> hmac.HMAC:
    h = hmac.HMAC(key, hashes.SHA256())
    h.update(payload)
    return h


class PatchSigner:
    """Signs, verifies and certifies patch records held in a PatchStore."""

    def __init__(self, store: PatchStore, signing_key: str = "", signer_id: str = "autofix-server"):
        self.store = store
        self.signer_id = signer_id
        self.ephemeral = not signing_key
        if self.ephemeral:
            logger.warning("SIGNING_KEY not set; using a per-process key. Signatures will not verify after restart.")
            self._key = secrets.token_bytes(32)
        else:
            self._key = signing_key.encode("utf-8")

    def compute_signature(self, record: PatchRecord) -> str:
        return _mac(self._key, canonical_payload(record)).finalize().hex()

    async def _require(self, patch_id: str) -> PatchRecord:
        record = await self.store.get(patch_id)
        if record is None:
            raise NotFound("patch", patch_id)
        return record

    async def sign(self, patch_id: str) -> Dict[str, Any]:
        """Attach {signature, signedAt, signer} to the record; re-signing overwrites."""
        record = await self._require(patch_id)
        signature = self.compute_signature(record)
        signed_at = utc_now()

        updated = await self.store.update(patch_id, signature=signature, signed_at=signed_at, signer=self.signer_id)
        if updated is None:
            raise NotFound("patch", patch_id)

        logger.log_signing(patch_id, self.signer_id, self.ephemeral)
        return {"id": patch_id, "signature": signature, "signedAt": signed_at, "signer": self.signer_id}

    async def verify(self, patch_id: str) -> bool:
        """Recompute the MAC over the stored record and compare in constant time."""
        record = await self._require(patch_id)
        if not record.is_signed:
            return False
        try:
            expected = bytes.fromhex(record.signature)
        except ValueError:
            return False
        try:
            _mac(self._key, canonical_payload(record)).verify(expected)
        except InvalidSignature:
            return False
        return True

    async def certificate(self, patch_id: str) -> Certificate:
        record = await self._require(patch_id)
        return Certificate.from_record(record)
