"""Cryptographic boundary — encrypted arithmetic capability and decryption oracle."""

from smokeshield.crypto.encrypted import EncryptedArithmetic, PlaintextSimulator
from smokeshield.crypto.oracle import (
    DecryptionOracle,
    LocalDecryptionOracle,
    ProofVerifier,
    SignedProofVerifier,
)

__all__ = [
    "EncryptedArithmetic",
    "PlaintextSimulator",
    "DecryptionOracle",
    "LocalDecryptionOracle",
    "ProofVerifier",
    "SignedProofVerifier",
]
