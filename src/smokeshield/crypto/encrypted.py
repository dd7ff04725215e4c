"""Encrypted value capability — the only arithmetic the core performs.

The aggregation pipeline never sees plaintext. It manipulates opaque
ciphertexts through an injected EncryptedArithmetic backend that exposes
addition, multiplication, division by a plaintext scalar, an encrypted
zero, and a transport byte encoding. There is no decrypt
operation on the interface: plaintext only ever leaves through the
decryption oracle.

PlaintextSimulator implements the same contract over unencrypted
integers so the pipeline can be exercised deterministically without a
cryptographic backend. Values behave like 256-bit unsigned words: results
wrap modulo 2**256 and division truncates.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable


# Opaque handle produced and consumed only by an EncryptedArithmetic backend.
Ciphertext = Any

WORD_BYTES = 32
_MODULUS = 1 << (WORD_BYTES * 8)


@runtime_checkable
class EncryptedArithmetic(Protocol):
    """Homomorphic operations the core relies on.

    Addition and multiplication must be commutative and associative under
    the backend's guarantees, so aggregation order never matters.
    Backends subclass it explicitly to inherit ``sum``.
    """

    def add(self, a: Ciphertext, b: Ciphertext) -> Ciphertext:
        """Return an encryption of a + b."""
        ...

    def mul(self, a: Ciphertext, b: Ciphertext) -> Ciphertext:
        """Return an encryption of a * b."""
        ...

    def div_scalar(self, a: Ciphertext, n: int) -> Ciphertext:
        """Return an encryption of a // n for a positive plaintext n."""
        ...

    def encode_zero(self) -> Ciphertext:
        """Return a fresh encryption of zero."""
        ...

    def to_bytes(self, a: Ciphertext) -> bytes:
        """Serialise a ciphertext to its transport representation."""
        ...

    def from_bytes(self, raw: bytes) -> Ciphertext:
        """Parse a transport representation back into a ciphertext."""
        ...

    def sum(self, values: list[Ciphertext]) -> Ciphertext:
        total = self.encode_zero()
        for value in values:
            total = self.add(total, value)
        return total


@dataclass(frozen=True)
class SimulatedCiphertext:
    """Stand-in ciphertext carrying its value in the clear."""
    value: int

    def __repr__(self) -> str:
        # Keep the value out of logs and tracebacks like a real ciphertext would.
        return "SimulatedCiphertext(<opaque>)"


class PlaintextSimulator(EncryptedArithmetic):
    """Plaintext-simulating backend for tests, demos and the CLI.

    Usage:
        sim = PlaintextSimulator()
        c = sim.add(sim.encrypt(2), sim.encrypt(4))
        sim.reveal(c)  # 6, only for the local oracle
    """

    MAGIC = b"SIM1"

    def encrypt(self, value: int) -> SimulatedCiphertext:
        """Contributor-side encryption of a non-negative integer."""
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"Only integers can be encrypted, got {type(value).__name__}")
        if value < 0 or value >= _MODULUS:
            raise ValueError(f"Value out of range for a {WORD_BYTES * 8}-bit word: {value}")
        return SimulatedCiphertext(value)

    def reveal(self, a: Ciphertext) -> int:
        """Oracle-side decryption. Never called by the core."""
        return self._unwrap(a)

    def add(self, a: Ciphertext, b: Ciphertext) -> SimulatedCiphertext:
        return SimulatedCiphertext((self._unwrap(a) + self._unwrap(b)) % _MODULUS)

    def mul(self, a: Ciphertext, b: Ciphertext) -> SimulatedCiphertext:
        return SimulatedCiphertext((self._unwrap(a) * self._unwrap(b)) % _MODULUS)

    def div_scalar(self, a: Ciphertext, n: int) -> SimulatedCiphertext:
        if n <= 0:
            raise ValueError(f"Scalar divisor must be positive, got {n}")
        return SimulatedCiphertext(self._unwrap(a) // n)

    def encode_zero(self) -> SimulatedCiphertext:
        return SimulatedCiphertext(0)

    def to_bytes(self, a: Ciphertext) -> bytes:
        return self.MAGIC + self._unwrap(a).to_bytes(WORD_BYTES, "big")

    def from_bytes(self, raw: bytes) -> SimulatedCiphertext:
        if len(raw) != len(self.MAGIC) + WORD_BYTES or not raw.startswith(self.MAGIC):
            raise ValueError("Not a simulated ciphertext")
        return SimulatedCiphertext(int.from_bytes(raw[len(self.MAGIC):], "big"))

    @staticmethod
    def _unwrap(a: Ciphertext) -> int:
        if not isinstance(a, SimulatedCiphertext):
            raise TypeError(f"Foreign ciphertext type: {type(a).__name__}")
        return a.value
