"""STARK proof data structures and configuration."""

from dataclasses import dataclass, field

from primitives.field import M31_PRIME, QM31
from primitives.merkle_verifier import MerkleDecommitment, MerkleRoot
from primitives.polynomial import LinePoly, SecureCirclePoly

# --- Type Aliases ---
TreeVec = list          # indexed by commitment tree
ColumnVec = list        # indexed by column within a tree

# --- Tree Indices ---
PREPROCESSED_TRACE_IDX = 0
ORIGINAL_TRACE_IDX = 1
INTERACTION_TRACE_IDX = 2
COMPOSITION_TRACE_IDX = 3
N_TRACE_TREES = 3

# --- Configuration Bounds ---
LOG_MIN_BLOWUP_FACTOR = 1
LOG_MAX_BLOWUP_FACTOR = 16
LOG_MAX_LAST_LAYER_DEGREE_BOUND = 10
MAX_POW_BITS = 64


class MalformedProofError(ValueError):
    """Proof or verifier input whose shape is inconsistent with the protocol."""


# --- Configuration ---


@dataclass(frozen=True)
class FriConfig:
    """FRI parameters.

    Attributes:
        log_blowup_factor: log2 of evaluation domain size / polynomial degree bound
        log_last_layer_degree_bound: log2 of the coefficient count sent in the clear
        n_queries: Number of query positions sampled
    """

    log_blowup_factor: int
    log_last_layer_degree_bound: int
    n_queries: int

    def __post_init__(self):
        if not LOG_MIN_BLOWUP_FACTOR <= self.log_blowup_factor <= LOG_MAX_BLOWUP_FACTOR:
            raise ValueError(f"log_blowup_factor {self.log_blowup_factor} out of range")
        if not 0 <= self.log_last_layer_degree_bound <= LOG_MAX_LAST_LAYER_DEGREE_BOUND:
            raise ValueError(
                f"log_last_layer_degree_bound {self.log_last_layer_degree_bound} out of range"
            )
        if self.n_queries <= 0:
            raise ValueError("n_queries must be positive")

    def last_layer_domain_size(self) -> int:
        return 1 << (self.log_last_layer_degree_bound + self.log_blowup_factor)

    def security_bits(self) -> int:
        return self.log_blowup_factor * self.n_queries


@dataclass(frozen=True)
class PcsConfig:
    """Polynomial commitment scheme parameters: grinding plus FRI."""

    pow_bits: int
    fri_config: FriConfig

    def __post_init__(self):
        if not 0 <= self.pow_bits <= MAX_POW_BITS:
            raise ValueError(f"pow_bits {self.pow_bits} out of range")

    def security_bits(self) -> int:
        return self.pow_bits + self.fri_config.security_bits()


# --- Proof Data Structures ---


@dataclass
class FriLayerProof:
    """One committed FRI layer.

    Attributes:
        fri_witness: Sibling evaluations the verifier cannot compute itself
        decommitment: Merkle witness for the layer's tree
        commitment: Merkle root of the layer's evaluations
    """

    fri_witness: list[QM31] = field(default_factory=list)
    decommitment: MerkleDecommitment = field(default_factory=MerkleDecommitment)
    commitment: MerkleRoot = b""


@dataclass
class FriProof:
    """FRI opening proof: first (circle) layer, inner (line) layers, last layer in the clear."""

    first_layer: FriLayerProof = field(default_factory=FriLayerProof)
    inner_layers: list[FriLayerProof] = field(default_factory=list)
    last_layer_poly: LinePoly = None


@dataclass
class StarkProof:
    """Complete STARK proof.

    Attributes:
        commitments: Merkle roots [preprocessed, original trace, interaction, composition]
        sampled_values: Out-of-domain openings per tree, column and mask point
        queried_values: Per tree, the flat column values at the queried positions
        decommitments: Per tree Merkle witness
        config: Commitment scheme parameters the proof was generated with
        proof_of_work: Grinding nonce
        composition_poly: Constraint composition polynomial as 4 M31 coordinate polynomials
        fri_proof: Low-degree proof of the DEEP quotients
    """

    commitments: list[MerkleRoot] = field(default_factory=list)
    sampled_values: TreeVec = field(default_factory=list)
    queried_values: TreeVec = field(default_factory=list)
    decommitments: list[MerkleDecommitment] = field(default_factory=list)
    config: PcsConfig = None
    proof_of_work: int = 0
    composition_poly: SecureCirclePoly = None
    fri_proof: FriProof = field(default_factory=FriProof)


# --- Structural Validation ---


def validate_proof_shape(proof: StarkProof, n_trees: int) -> None:
    """Raise MalformedProofError unless per-tree arrays line up and values are canonical."""
    if proof.config is None:
        raise MalformedProofError("proof has no config")
    if proof.composition_poly is None or proof.fri_proof.last_layer_poly is None:
        raise MalformedProofError("proof is missing a polynomial")
    for name in ("commitments", "sampled_values", "queried_values", "decommitments"):
        if len(getattr(proof, name)) != n_trees:
            raise MalformedProofError(
                f"{name} has {len(getattr(proof, name))} trees, expected {n_trees}"
            )
    for tree_values in proof.queried_values:
        if any(not 0 <= v < M31_PRIME for v in tree_values):
            raise MalformedProofError("queried value is not a canonical M31 element")
    fri_layers = [proof.fri_proof.first_layer, *proof.fri_proof.inner_layers]
    for decommitment in proof.decommitments + [layer.decommitment for layer in fri_layers]:
        if any(not 0 <= v < M31_PRIME for v in decommitment.column_witness):
            raise MalformedProofError("column witness value is not a canonical M31 element")
    if not 0 <= proof.proof_of_work < 1 << 64:
        raise MalformedProofError("proof of work nonce is not a u64")
