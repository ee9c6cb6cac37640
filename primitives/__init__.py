"""Primitives - Low-level cryptographic and mathematical building blocks."""

from primitives.channel import KeccakChannel, keccak256
from primitives.circle import (
    M31_CIRCLE_GEN,
    CanonicCoset,
    CircleDomain,
    CirclePoint,
    CirclePointIndex,
    Coset,
    LineDomain,
    bit_reverse_index,
    coset_vanishing,
)
from primitives.field import (
    CM31,
    FF,
    M31,
    M31_PRIME,
    QM31,
    ArithmeticDomainError,
    SecureField,
)
from primitives.merkle_prover import MerkleProver
from primitives.merkle_verifier import MerkleDecommitment, MerkleRoot, MerkleVerifier
from primitives.polynomial import CirclePoly, LinePoly, SecureCirclePoly

__all__ = [
    # Field
    "FF",
    "M31",
    "CM31",
    "QM31",
    "SecureField",
    "M31_PRIME",
    "ArithmeticDomainError",
    # Circle
    "CirclePoint",
    "CirclePointIndex",
    "Coset",
    "CanonicCoset",
    "CircleDomain",
    "LineDomain",
    "M31_CIRCLE_GEN",
    "bit_reverse_index",
    "coset_vanishing",
    # Polynomials
    "CirclePoly",
    "LinePoly",
    "SecureCirclePoly",
    # Channel
    "KeccakChannel",
    "keccak256",
    # Merkle Tree
    "MerkleVerifier",
    "MerkleProver",
    "MerkleDecommitment",
    "MerkleRoot",
]
