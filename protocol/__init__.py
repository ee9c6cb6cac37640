"""Protocol - Circle STARK verification algorithms."""

from protocol.fri import (
    CIRCLE_TO_LINE_FOLD_STEP,
    FOLD_STEP,
    CirclePolyDegreeBound,
    FriVerifier,
    LinePolyDegreeBound,
    Queries,
)
from protocol.pcs import CommitmentSchemeVerifier, PointSample, fri_answers
from protocol.proof import (
    FriConfig,
    FriLayerProof,
    FriProof,
    MalformedProofError,
    PcsConfig,
    StarkProof,
)
from protocol.verifier import VerificationError, check_proof, verify

__all__ = [
    # FRI
    "CIRCLE_TO_LINE_FOLD_STEP",
    "FOLD_STEP",
    "CirclePolyDegreeBound",
    "LinePolyDegreeBound",
    "FriVerifier",
    "Queries",
    # Commitment scheme
    "CommitmentSchemeVerifier",
    "PointSample",
    "fri_answers",
    # Proof and configuration
    "FriConfig",
    "PcsConfig",
    "FriLayerProof",
    "FriProof",
    "StarkProof",
    "MalformedProofError",
    # STARK
    "verify",
    "check_proof",
    "VerificationError",
]
