"""Unit tests for the Keccak Fiat-Shamir channel."""

import numpy as np

from primitives.channel import DIGEST_SIZE, KeccakChannel, keccak256, u32s_to_bytes
from primitives.field import M31_PRIME, QM31


class TestKeccak:
    """Tests for the hash and serialisation helpers."""

    def test_empty_input(self) -> None:
        """Keccak-256 (not SHA3-256) of the empty string."""
        assert keccak256(b"").hex() == "c5d2460186f7233c927e7db2dcc703c0e500b653ca82273b7bfad8045d85a470"

    def test_u32s_little_endian(self) -> None:
        assert u32s_to_bytes([1, 0x01020304]) == bytes([1, 0, 0, 0, 4, 3, 2, 1])
        assert u32s_to_bytes([]) == b""


class TestKeccakChannel:
    """Tests for channel state transitions."""

    def test_initial_state(self) -> None:
        channel = KeccakChannel()
        assert channel.digest == bytes(DIGEST_SIZE)
        assert channel.n_draws == 0

    def test_draw_is_deterministic(self) -> None:
        a, b = KeccakChannel(), KeccakChannel()
        assert a.draw_secure_felt() == b.draw_secure_felt()
        assert a.draw_random_bytes() == b.draw_random_bytes()

    def test_draw_advances_counter_only(self) -> None:
        channel = KeccakChannel()
        digest = channel.digest
        first = channel.draw_random_bytes()
        assert channel.n_draws == 1
        assert channel.digest == digest
        assert channel.draw_random_bytes() != first

    def test_draw_random_bytes_layout(self) -> None:
        """A draw hashes digest || n_draws as a little-endian u32."""
        channel = KeccakChannel(bytes(range(32)), 5)
        expected = keccak256(bytes(range(32)) + (5).to_bytes(4, "little"))
        assert channel.draw_random_bytes() == expected

    def test_mix_changes_digest_not_counter(self) -> None:
        channel = KeccakChannel()
        channel.draw_random_bytes()
        channel.mix_root(bytes([7]) * 32)
        assert channel.n_draws == 1
        assert channel.digest == keccak256(bytes(DIGEST_SIZE) + bytes([7]) * 32)

    def test_mix_felts_serialisation(self) -> None:
        channel = KeccakChannel()
        channel.mix_felts([QM31.from_ints(1, 2, 3, 4)])
        expected = keccak256(bytes(DIGEST_SIZE) + np.array([1, 2, 3, 4], dtype="<u4").tobytes())
        assert channel.digest == expected

    def test_mix_u64_is_two_words(self) -> None:
        a, b = KeccakChannel(), KeccakChannel()
        a.mix_u64((5 << 32) | 9)
        b.mix_u32s([9, 5])
        assert a.digest == b.digest

    def test_base_felts_are_canonical(self) -> None:
        channel = KeccakChannel()
        for _ in range(20):
            felts = channel.draw_base_felts()
            assert len(felts) == 8
            assert all(0 <= f.value < M31_PRIME for f in felts)

    def test_draw_secure_felts(self) -> None:
        a, b = KeccakChannel(), KeccakChannel()
        felts = a.draw_secure_felts(3)
        assert len(felts) == 3
        # One draw yields two secure felts; the first matches a single draw.
        assert felts[0] == b.draw_secure_felt()

    def test_copy_is_independent(self) -> None:
        channel = KeccakChannel()
        clone = channel.copy()
        clone.mix_u32s([1])
        clone.draw_random_bytes()
        assert channel.digest == bytes(DIGEST_SIZE)
        assert channel.n_draws == 0


class TestProofOfWork:
    """Tests for grinding nonce checks."""

    def test_zero_bits_always_pass(self) -> None:
        assert KeccakChannel().verify_pow_nonce(0, 12345)

    def test_found_nonce_passes_and_leaves_channel(self) -> None:
        channel = KeccakChannel()
        nonce = next(n for n in range(1 << 16) if channel.verify_pow_nonce(8, n))
        assert channel.pow_hash(nonce)[0] == 0
        assert channel.digest == bytes(DIGEST_SIZE)
        assert channel.n_draws == 0

    def test_leading_zero_bits(self) -> None:
        """The check counts zero bits from the most significant end of the hash."""
        channel = KeccakChannel()
        for nonce in range(64):
            leading = int.from_bytes(channel.pow_hash(nonce), "big")
            n_zero_bits = 256 - leading.bit_length()
            assert channel.verify_pow_nonce(n_zero_bits, nonce)
            assert not channel.verify_pow_nonce(n_zero_bits + 1, nonce)
