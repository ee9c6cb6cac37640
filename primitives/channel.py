"""
Fiat-Shamir channel over Keccak-256.

The channel state is a 32-byte digest plus a draw counter. Mixing replaces the
digest with Keccak(digest || data) and leaves the counter alone; every draw
hashes Keccak(digest || n_draws) and bumps the counter. Field elements are
serialised as little-endian u32 words, four per QM31.
"""
from typing import List, Sequence

import numpy as np
from Crypto.Hash import keccak

from primitives.field import M31, M31_PRIME, QM31, SECURE_EXTENSION_DEGREE

# Hash size in bytes
DIGEST_SIZE = 32

# Base felts obtained from one draw
FELTS_PER_HASH = 8


def keccak256(data: bytes) -> bytes:
    k = keccak.new(digest_bits=256)
    k.update(data)
    return k.digest()


def u32s_to_bytes(values: Sequence[int]) -> bytes:
    """Little-endian u32 serialisation."""
    return np.asarray(values, dtype="<u4").tobytes()


def felts_to_bytes(felts: Sequence[QM31]) -> bytes:
    return u32s_to_bytes([c.value for felt in felts for c in felt.to_m31_array()])


class KeccakChannel:
    """
    Fiat-Shamir transcript hashing with Keccak-256.

    Attributes:
        digest: Current 32-byte state
        n_draws: Number of draws since the digest last changed the draw stream
    """

    def __init__(self, digest: bytes = bytes(DIGEST_SIZE), n_draws: int = 0):
        if len(digest) != DIGEST_SIZE:
            raise ValueError(f"digest must be {DIGEST_SIZE} bytes, got {len(digest)}")
        self.digest = bytes(digest)
        self.n_draws = n_draws

    def copy(self) -> "KeccakChannel":
        return KeccakChannel(self.digest, self.n_draws)

    # --- Mixing ---

    def _update_digest(self, data: bytes) -> None:
        self.digest = keccak256(self.digest + data)

    def mix_root(self, root: bytes) -> None:
        """Absorb a Merkle root."""
        self._update_digest(bytes(root))

    def mix_felts(self, felts: Sequence[QM31]) -> None:
        """Absorb secure field elements."""
        self._update_digest(felts_to_bytes(felts))

    def mix_u32s(self, values: Sequence[int]) -> None:
        self._update_digest(u32s_to_bytes(values))

    def mix_u64(self, value: int) -> None:
        """Absorb a u64 as two little-endian u32 words (low word first)."""
        self.mix_u32s([value & 0xFFFFFFFF, value >> 32])

    # --- Drawing ---

    def draw_random_bytes(self) -> bytes:
        """Draw 32 pseudorandom bytes and advance the draw counter."""
        data = self.digest + u32s_to_bytes([self.n_draws])
        self.n_draws += 1
        return keccak256(data)

    def draw_base_felts(self) -> List[M31]:
        """Draw FELTS_PER_HASH uniform base field elements.

        Words are accepted only when all of them are below 2P, so that a single
        fold reduction maps them uniformly onto M31.
        """
        while True:
            words = np.frombuffer(self.draw_random_bytes(), dtype="<u4")
            if all(int(w) < 2 * M31_PRIME for w in words):
                return [M31(int(w)) for w in words]

    def draw_secure_felt(self) -> QM31:
        felts = self.draw_base_felts()
        return QM31.from_m31_array(felts[:SECURE_EXTENSION_DEGREE])

    def draw_secure_felts(self, n_felts: int) -> List[QM31]:
        felts: List[M31] = []
        while len(felts) < n_felts * SECURE_EXTENSION_DEGREE:
            felts.extend(self.draw_base_felts())
        return [
            QM31.from_m31_array(felts[i * SECURE_EXTENSION_DEGREE:(i + 1) * SECURE_EXTENSION_DEGREE])
            for i in range(n_felts)
        ]

    # --- Proof of Work ---

    def pow_hash(self, nonce: int) -> bytes:
        return keccak256(self.digest + np.asarray([nonce], dtype="<u8").tobytes())

    def verify_pow_nonce(self, n_bits: int, nonce: int) -> bool:
        """Check Keccak(digest || nonce) starts with n_bits zero bits.

        Does not mutate the channel; callers mix the accepted nonce afterwards.
        """
        value = int.from_bytes(self.pow_hash(nonce), "big")
        return value >> (8 * DIGEST_SIZE - n_bits) == 0
