"""End-to-end tests for Circle STARK verification.

Proofs come from tests.prover, which runs the protocol honestly; every test
either verifies such a proof or tampers with a deep copy of it.
"""

import copy

import pytest

from primitives.field import QM31
from protocol.proof import FriConfig, MalformedProofError, PcsConfig
from protocol.verifier import VerificationError, check_proof, verify
from tests.prover import prove_wide_fibonacci


def run(statement, **overrides):
    """check_proof on the statement's inputs with some replaced."""
    args = dict(zip(
        ("proof", "components", "tree_roots", "tree_column_log_sizes", "initial_digest", "initial_n_draws"),
        statement.verify_args(),
    ))
    args.update(overrides)
    return check_proof(**args)


class TestReferenceProof:
    """WideFibonacci, 32 rows by 10 columns, 10 PoW bits, blowup 4, 70 queries."""

    def test_shape(self, reference_statement) -> None:
        proof = reference_statement.proof
        assert len(proof.commitments) == 4
        assert proof.config.security_bits() == 10 + 2 * 70
        assert len(proof.fri_proof.last_layer_poly) == 4

    def test_verifies(self, reference_statement, capsys) -> None:
        assert verify(*reference_statement.verify_args()) is True
        assert capsys.readouterr().out == ""

    def test_idempotent(self, reference_statement) -> None:
        """Verification does not mutate its inputs."""
        first = verify(*reference_statement.verify_args())
        second = verify(*reference_statement.verify_args())
        assert first == second is True

    @pytest.mark.parametrize("bit", [0, 1, 7, 31, 63])
    def test_flipped_pow_bit_rejects(self, reference_statement, bit, capsys) -> None:
        proof = copy.deepcopy(reference_statement.proof)
        proof.proof_of_work ^= 1 << bit
        args = list(reference_statement.verify_args())
        args[0] = proof
        assert verify(*args) is False
        assert "ERROR: PoW verification failed" in capsys.readouterr().out


class TestRejection:
    """Soundness failures on the small proof map to the failing phase."""

    def test_honest(self, small_statement) -> None:
        assert run(small_statement) is None

    def test_tree_root_mismatch(self, small_statement) -> None:
        roots = list(small_statement.tree_roots)
        roots[1] = bytes(32)
        assert run(small_statement, tree_roots=roots) == VerificationError.COMMITMENT_MISMATCH

    def test_tampered_sampled_trace_value(self, small_statement) -> None:
        proof = copy.deepcopy(small_statement.proof)
        column = proof.sampled_values[1][2]
        column[0] = column[0] + QM31.one()
        assert run(small_statement, proof=proof) == VerificationError.OODS_NOT_MATCHING

    def test_tampered_sampled_composition_value(self, small_statement) -> None:
        proof = copy.deepcopy(small_statement.proof)
        column = proof.sampled_values[3][1]
        column[0] = column[0] + QM31.one()
        assert run(small_statement, proof=proof) == VerificationError.COMPOSITION_MISMATCH

    def test_tampered_composition_poly(self, small_statement) -> None:
        proof = copy.deepcopy(small_statement.proof)
        coeffs = proof.composition_poly.polys[0].coeffs
        coeffs[0] = coeffs[0] + 1
        assert run(small_statement, proof=proof) == VerificationError.COMPOSITION_MISMATCH

    def test_tampered_queried_value(self, small_statement) -> None:
        proof = copy.deepcopy(small_statement.proof)
        values = proof.queried_values[1]
        values[0] = (values[0] + 1) % (2**31 - 1)
        assert run(small_statement, proof=proof) == VerificationError.MERKLE

    def test_tampered_decommitment(self, small_statement) -> None:
        proof = copy.deepcopy(small_statement.proof)
        proof.decommitments[3].hash_witness[0] = bytes(32)
        assert run(small_statement, proof=proof) == VerificationError.MERKLE

    def test_different_initial_digest(self, small_statement) -> None:
        """The proof is bound to the channel state it was made from."""
        assert run(small_statement, initial_digest=bytes([1]) * 32) is not None

    def test_bound_to_initial_state(self) -> None:
        config = PcsConfig(pow_bits=2, fri_config=FriConfig(log_blowup_factor=1, log_last_layer_degree_bound=0, n_queries=5))
        statement = prove_wide_fibonacci(3, 3, config, initial_digest=bytes([9]) * 32, initial_n_draws=4)
        assert run(statement) is None
        assert run(statement, initial_n_draws=0) is not None


class TestMalformed:
    """Inputs that do not fit together raise instead of returning False."""

    def test_wrong_tree_count(self, small_statement) -> None:
        with pytest.raises(MalformedProofError):
            run(small_statement, tree_roots=small_statement.tree_roots[:2])

    def test_missing_commitment(self, small_statement) -> None:
        proof = copy.deepcopy(small_statement.proof)
        proof.commitments.pop()
        with pytest.raises(MalformedProofError):
            run(small_statement, proof=proof)

    def test_column_sizes_disagree_with_components(self, small_statement) -> None:
        sizes = copy.deepcopy(small_statement.tree_column_log_sizes)
        sizes[1] = sizes[1][:-1]
        with pytest.raises(MalformedProofError):
            run(small_statement, tree_column_log_sizes=sizes)

    def test_non_canonical_queried_value(self, small_statement) -> None:
        proof = copy.deepcopy(small_statement.proof)
        proof.queried_values[1][0] = 2**31 - 1
        with pytest.raises(MalformedProofError):
            run(small_statement, proof=proof)

    def test_missing_queried_value(self, small_statement) -> None:
        proof = copy.deepcopy(small_statement.proof)
        proof.queried_values[1].pop()
        with pytest.raises(MalformedProofError):
            run(small_statement, proof=proof)

    def test_extra_queried_value(self, small_statement) -> None:
        proof = copy.deepcopy(small_statement.proof)
        proof.queried_values[1].append(0)
        with pytest.raises(MalformedProofError):
            run(small_statement, proof=proof)

    def test_missing_sampled_value(self, small_statement) -> None:
        proof = copy.deepcopy(small_statement.proof)
        proof.sampled_values[1].pop()
        with pytest.raises(MalformedProofError):
            run(small_statement, proof=proof)

    def test_nonce_out_of_range(self, small_statement) -> None:
        proof = copy.deepcopy(small_statement.proof)
        proof.proof_of_work = 1 << 64
        with pytest.raises(MalformedProofError):
            run(small_statement, proof=proof)

    def test_too_many_queries(self, small_statement) -> None:
        proof = copy.deepcopy(small_statement.proof)
        fri_config = proof.config.fri_config
        proof.config = PcsConfig(
            pow_bits=proof.config.pow_bits,
            fri_config=FriConfig(fri_config.log_blowup_factor, fri_config.log_last_layer_degree_bound, 1000),
        )
        with pytest.raises(MalformedProofError):
            run(small_statement, proof=proof)
