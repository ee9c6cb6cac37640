"""Circle STARK proof verification.

The verifier checks that a proof demonstrates knowledge of a trace satisfying
the AIR constraints of the given components, without re-executing anything.

Verification proceeds in protocol order; the Fiat-Shamir channel must see
exactly the same sequence of mixes and draws as the prover's:

1. Commit - Mix the trace tree roots (preprocessed, original, interaction)
2. Composition - Draw the constraint-combination coefficient, mix the composition root
3. OODS - Draw the out-of-domain point and derive every mask point
4. Constraint check - Composition polynomial at the OODS point must equal both the
   sampled composition values and the constraint quotients recomputed from the openings
5. FRI commit - Mix the openings, draw the quotient coefficient, replay FRI layer commitments
6. Query sampling - Draw query positions on the largest domain
7. Merkle check - Verify every tree's decommitment at the queried positions
8. FRI decommit - Compute DEEP quotients at the queries and run the FRI folding checks
9. Proof of work - Check the grinding nonce, then mix it

Soundness failures make verify() return False and print the failing phase.
Inputs whose shapes do not fit together raise MalformedProofError instead.
"""

from enum import Enum
from typing import TYPE_CHECKING, Optional, Sequence

from primitives.channel import DIGEST_SIZE, KeccakChannel
from primitives.circle import CirclePoint
from primitives.field import QM31, SECURE_EXTENSION_DEGREE
from primitives.merkle_verifier import MerkleRoot
from protocol.fri import FriVerifier
from protocol.pcs import CommitmentSchemeVerifier, PointSample, fri_answers
from protocol.proof import (
    N_TRACE_TREES,
    ORIGINAL_TRACE_IDX,
    MalformedProofError,
    StarkProof,
    TreeVec,
    validate_proof_shape,
)

if TYPE_CHECKING:
    from constraints.base import Components


class VerificationError(Enum):
    """Phase at which a well-formed proof was rejected."""

    COMMITMENT_MISMATCH = "Trace tree roots do not match the proof commitments"
    COMPOSITION_MISMATCH = "Sampled composition values do not match the composition polynomial"
    OODS_NOT_MATCHING = "Constraint evaluation does not match the composition polynomial"
    MERKLE = "Merkle tree verification failed"
    FRI = "FRI verification failed"
    PROOF_OF_WORK = "PoW verification failed"


# --- Main Entry Point ---


def verify(
    proof: StarkProof,
    components: "Components",
    tree_roots: Sequence[MerkleRoot],
    tree_column_log_sizes: TreeVec,
    initial_digest: bytes = bytes(DIGEST_SIZE),
    initial_n_draws: int = 0,
) -> bool:
    """Verify a Circle STARK proof.

    Args:
        proof: Proof to verify
        components: AIR components the proof claims to satisfy
        tree_roots: Roots of the preprocessed, original and interaction trees
        tree_column_log_sizes: Per trace tree, the evaluation-domain log size of each column
        initial_digest: Channel digest after any public-input binding
        initial_n_draws: Channel draw counter matching initial_digest

    Returns:
        True if the proof is valid, False otherwise

    Raises:
        MalformedProofError: If proof and parameters do not fit together
    """
    error = check_proof(
        proof, components, tree_roots, tree_column_log_sizes, initial_digest, initial_n_draws
    )
    if error is not None:
        print(f"ERROR: {error.value}")
        return False
    return True


def check_proof(
    proof: StarkProof,
    components: "Components",
    tree_roots: Sequence[MerkleRoot],
    tree_column_log_sizes: TreeVec,
    initial_digest: bytes = bytes(DIGEST_SIZE),
    initial_n_draws: int = 0,
) -> Optional[VerificationError]:
    """Run verification; returns the rejecting phase, or None if the proof is valid."""
    config = proof.config
    _validate_inputs(proof, components, tree_roots, tree_column_log_sizes)
    log_blowup_factor = config.fri_config.log_blowup_factor
    composition_log_size = components.composition_log_degree_bound()

    # --- Init ---
    channel = KeccakChannel(initial_digest, initial_n_draws)
    commitment_scheme = CommitmentSchemeVerifier(config)

    # --- Commit phase ---
    if list(tree_roots) != list(proof.commitments[:-1]):
        return VerificationError.COMMITMENT_MISMATCH
    for root, column_log_sizes in zip(tree_roots, tree_column_log_sizes):
        commitment_scheme.commit(root, column_log_sizes, channel)

    # --- Composition phase ---
    random_coeff = channel.draw_secure_felt()
    commitment_scheme.commit(
        proof.commitments[-1],
        [composition_log_size + log_blowup_factor] * SECURE_EXTENSION_DEGREE,
        channel,
    )

    # --- OODS phase ---
    oods_point = CirclePoint.get_random_point(channel)
    sample_points = components.mask_points(oods_point)
    sample_points.append([[oods_point] for _ in range(SECURE_EXTENSION_DEGREE)])
    _validate_sampled_values(proof.sampled_values, sample_points)

    # --- Constraint phase ---
    composition_eval = proof.composition_poly.eval_at_point(oods_point)
    sampled_composition = QM31.from_partial_evals([column[0] for column in proof.sampled_values[-1]])
    if composition_eval != sampled_composition:
        return VerificationError.COMPOSITION_MISMATCH
    constraint_eval = components.eval_composition_polynomial_at_point(
        oods_point, proof.sampled_values, random_coeff
    )
    if composition_eval != constraint_eval:
        return VerificationError.OODS_NOT_MATCHING

    # --- FRI commit phase ---
    channel.mix_felts([v for tree in proof.sampled_values for column in tree for v in column])
    fri_random_coeff = channel.draw_secure_felt()
    fri_verifier = FriVerifier.commit(
        channel, config.fri_config, proof.fri_proof, commitment_scheme.calculate_bounds()
    )

    # --- Query sample phase ---
    query_positions = fri_verifier.sample_query_positions(channel)
    commitment_scheme.validate_queried_values(query_positions, proof.queried_values)

    # --- Merkle verify phase ---
    if not commitment_scheme.verify_decommitments(
        query_positions, proof.queried_values, proof.decommitments
    ):
        return VerificationError.MERKLE

    # --- FRI decommit phase ---
    samples = [
        [
            [PointSample(point, value) for point, value in zip(column_points, column_values)]
            for column_points, column_values in zip(tree_points, tree_values)
        ]
        for tree_points, tree_values in zip(sample_points, proof.sampled_values)
    ]
    answers = fri_answers(
        commitment_scheme.column_log_sizes(),
        samples,
        fri_random_coeff,
        query_positions,
        proof.queried_values,
    )
    if not fri_verifier.decommit(answers):
        return VerificationError.FRI

    # --- PoW check phase ---
    if not channel.verify_pow_nonce(config.pow_bits, proof.proof_of_work):
        return VerificationError.PROOF_OF_WORK
    channel.mix_u64(proof.proof_of_work)

    return None


# --- Structural Validation ---


def _validate_inputs(
    proof: StarkProof,
    components: "Components",
    tree_roots: Sequence[MerkleRoot],
    tree_column_log_sizes: TreeVec,
) -> None:
    if len(tree_roots) != N_TRACE_TREES or len(tree_column_log_sizes) != N_TRACE_TREES:
        raise MalformedProofError(
            f"expected {N_TRACE_TREES} trace trees, got {len(tree_roots)} roots "
            f"and {len(tree_column_log_sizes)} column size lists"
        )
    validate_proof_shape(proof, N_TRACE_TREES + 1)

    if len(tree_column_log_sizes[0]) != components.n_preprocessed_columns:
        raise MalformedProofError("preprocessed column count does not match the components")
    log_blowup_factor = proof.config.fri_config.log_blowup_factor
    expected_sizes = components.column_log_sizes()
    for tree_index in range(ORIGINAL_TRACE_IDX, N_TRACE_TREES):
        expected = [s + log_blowup_factor for s in expected_sizes[tree_index]]
        if list(tree_column_log_sizes[tree_index]) != expected:
            raise MalformedProofError(
                f"tree {tree_index} column sizes {list(tree_column_log_sizes[tree_index])} "
                f"do not match the components {expected}"
            )

    composition_log_size = components.composition_log_degree_bound()
    if proof.composition_poly.log_size != composition_log_size:
        raise MalformedProofError(
            f"composition polynomial has log size {proof.composition_poly.log_size}, "
            f"expected {composition_log_size}"
        )


def _validate_sampled_values(sampled_values: TreeVec, sample_points: TreeVec) -> None:
    for tree_index, (tree_values, tree_points) in enumerate(zip(sampled_values, sample_points)):
        if len(tree_values) != len(tree_points):
            raise MalformedProofError(
                f"tree {tree_index} has {len(tree_values)} sampled columns, expected {len(tree_points)}"
            )
        for column_index, (values, points) in enumerate(zip(tree_values, tree_points)):
            if len(values) != len(points):
                raise MalformedProofError(
                    f"column {column_index} of tree {tree_index} has {len(values)} samples, "
                    f"expected {len(points)}"
                )
            if not all(isinstance(v, QM31) for v in values):
                raise MalformedProofError("sampled value is not a secure field element")
