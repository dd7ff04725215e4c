"""Decryption oracle bridge — asynchronous, proof-carrying plaintext delivery.

The core hands the oracle one or more ciphertexts and gets back an opaque
request id immediately. Some time later, at most once per request and in
no particular order relative to other requests, the oracle invokes the
registered callback with ``(request_id, cleartexts, proof)``. The core
only trusts ``cleartexts`` after the proof verifies.

Wire conventions:
- Cleartexts are 32-byte big-endian unsigned words, concatenated.
- The proof is an Ethereum ``personal_sign`` signature by the oracle's
  key over sha256(request_id as a 32-byte word || cleartexts).

Request id 0 is never assigned; it is the default/sentinel value and is
always rejected by the correlation table.
"""

from __future__ import annotations

import hashlib
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol, runtime_checkable

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_keys.exceptions import BadSignature, ValidationError

from smokeshield.crypto.encrypted import WORD_BYTES, PlaintextSimulator

logger = logging.getLogger(__name__)

SIGNATURE_BYTES = 65

DecryptionCallback = Callable[[int, bytes, bytes], Any]


def encode_cleartexts(values: list[int]) -> bytes:
    """Encode plaintext integers as concatenated 32-byte words."""
    return b"".join(v.to_bytes(WORD_BYTES, "big") for v in values)


def decode_cleartexts(raw: bytes) -> list[int]:
    """Decode concatenated 32-byte words. Raises ValueError on a ragged payload."""
    if not raw or len(raw) % WORD_BYTES:
        raise ValueError(
            f"Cleartext payload must be a non-empty multiple of {WORD_BYTES} bytes, "
            f"got {len(raw)}"
        )
    return [
        int.from_bytes(raw[i:i + WORD_BYTES], "big")
        for i in range(0, len(raw), WORD_BYTES)
    ]


def proof_digest(request_id: int, cleartexts: bytes) -> bytes:
    """Digest the oracle signs: binds the cleartexts to their request."""
    return hashlib.sha256(request_id.to_bytes(WORD_BYTES, "big") + cleartexts).digest()


@runtime_checkable
class DecryptionOracle(Protocol):
    """External decryption service consumed by the disclosure state machine."""

    def request_decryption(
        self,
        ciphertexts: list[bytes],
        callback: DecryptionCallback,
    ) -> int:
        """Queue a decryption and return its request id without blocking.

        Implementations must not invoke ``callback`` before returning.
        """
        ...


@runtime_checkable
class ProofVerifier(Protocol):
    """Checks that an oracle response is authentic."""

    def verify(self, request_id: int, cleartexts: bytes, proof: bytes) -> bool:
        """Return True only if ``proof`` attests ``cleartexts`` for ``request_id``."""
        ...


class SignedProofVerifier(ProofVerifier):
    """Accepts responses signed by a single known oracle address."""

    def __init__(self, signer_address: str) -> None:
        if not signer_address:
            raise ValueError("Oracle signer address is required")
        self._signer = signer_address.lower()

    @property
    def signer_address(self) -> str:
        return self._signer

    def verify(self, request_id: int, cleartexts: bytes, proof: bytes) -> bool:
        if not isinstance(proof, (bytes, bytearray)) or len(proof) != SIGNATURE_BYTES:
            return False
        message = encode_defunct(primitive=proof_digest(request_id, bytes(cleartexts)))
        try:
            recovered = Account.recover_message(message, signature=bytes(proof))
        except (ValueError, TypeError, BadSignature, ValidationError):
            return False
        return recovered.lower() == self._signer


@dataclass
class _PendingDecryption:
    ciphertexts: list[bytes]
    callback: DecryptionCallback


class LocalDecryptionOracle(DecryptionOracle):
    """In-process oracle holding the decryption capability and a signing key.

    Responses are queued and only delivered when ``deliver`` or
    ``deliver_all`` is called, which makes late, reordered and never
    delivered responses easy to reproduce.

    Usage:
        sim = PlaintextSimulator()
        oracle = LocalDecryptionOracle.for_simulator(sim, private_key)
        request_id = oracle.request_decryption([raw], callback)
        oracle.deliver(request_id)
    """

    def __init__(
        self,
        decrypt: Callable[[bytes], int],
        private_key: Optional[str] = None,
        start_after: int = 0,
    ) -> None:
        self._decrypt = decrypt
        self._account = Account.from_key(private_key) if private_key else Account.create()
        self._pending: dict[int, _PendingDecryption] = {}
        # Ids already handed out by a previous run must not be reissued.
        self._next_id = max(0, start_after)
        self._lock = threading.Lock()

    @classmethod
    def for_simulator(
        cls,
        simulator: PlaintextSimulator,
        private_key: Optional[str] = None,
        start_after: int = 0,
    ) -> LocalDecryptionOracle:
        return cls(
            lambda raw: simulator.reveal(simulator.from_bytes(raw)),
            private_key=private_key,
            start_after=start_after,
        )

    @property
    def signer_address(self) -> str:
        return self._account.address

    @property
    def pending_ids(self) -> list[int]:
        return list(self._pending)

    def request_decryption(
        self,
        ciphertexts: list[bytes],
        callback: DecryptionCallback,
    ) -> int:
        if not ciphertexts:
            raise ValueError("At least one ciphertext is required")
        with self._lock:
            self._next_id += 1
            request_id = self._next_id
            self._pending[request_id] = _PendingDecryption(list(ciphertexts), callback)
        logger.debug("Decryption request %d queued (%d ciphertexts)", request_id, len(ciphertexts))
        return request_id

    def build_response(self, request_id: int) -> tuple[bytes, bytes]:
        """Decrypt and sign a pending request without delivering it."""
        pending = self._pending.get(request_id)
        if pending is None:
            raise ValueError(f"No pending decryption request: {request_id}")
        cleartexts = encode_cleartexts([self._decrypt(c) for c in pending.ciphertexts])
        return cleartexts, self.sign(request_id, cleartexts)

    def sign(self, request_id: int, cleartexts: bytes) -> bytes:
        message = encode_defunct(primitive=proof_digest(request_id, cleartexts))
        return bytes(self._account.sign_message(message).signature)

    def deliver(self, request_id: int) -> Any:
        """Deliver one response; returns whatever the callback returns."""
        cleartexts, proof = self.build_response(request_id)
        with self._lock:
            pending = self._pending.pop(request_id, None)
        if pending is None:
            raise ValueError(f"Decryption request already delivered: {request_id}")
        logger.debug("Delivering decryption response %d", request_id)
        return pending.callback(request_id, cleartexts, proof)

    def deliver_all(self, order: Optional[list[int]] = None) -> list[Any]:
        """Deliver queued responses, FIFO unless an explicit order is given."""
        ids = list(order) if order is not None else sorted(self._pending)
        return [self.deliver(rid) for rid in ids]
