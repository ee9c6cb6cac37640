"""FRI low-degree test over circle and line domains.

The first layer holds one secure column per distinct degree bound, evaluated
on circle domains. Folding it once (circle to line) lands on the first inner
layer; each inner layer folds in half again until the degree bound reaches
log_last_layer_degree_bound, whose polynomial is sent in the clear.
Evaluations are stored in bit-reversed order, so the two points folded
together always sit at positions 2j and 2j + 1.
"""

from collections import deque
from dataclasses import dataclass
from typing import Optional, Sequence

from primitives.batch_inverse import batch_inverse_m31
from primitives.channel import KeccakChannel
from primitives.circle import CanonicCoset, CircleDomain, Coset, LineDomain, bit_reverse_index
from primitives.field import QM31, SECURE_EXTENSION_DEGREE
from primitives.merkle_verifier import MerkleVerifier
from protocol.proof import FriConfig, FriLayerProof, FriProof, MalformedProofError

# --- Constants ---

CIRCLE_TO_LINE_FOLD_STEP = 1
"""Folds applied when going from the circle (first) layer to the first line layer."""

FOLD_STEP = 1
"""Folds applied between consecutive line layers."""

QUERY_BYTES = 4


# --- Degree Bounds ---


@dataclass(frozen=True, order=True)
class CirclePolyDegreeBound:
    """log2 of the coefficient count of a circle polynomial."""

    log_degree_bound: int

    def fold_to_line(self) -> "LinePolyDegreeBound":
        return LinePolyDegreeBound(self.log_degree_bound - CIRCLE_TO_LINE_FOLD_STEP)


@dataclass(frozen=True, order=True)
class LinePolyDegreeBound:
    """log2 of the coefficient count of a line polynomial."""

    log_degree_bound: int

    def fold(self, n_folds: int) -> Optional["LinePolyDegreeBound"]:
        if self.log_degree_bound < n_folds:
            return None
        return LinePolyDegreeBound(self.log_degree_bound - n_folds)


# --- Queries ---


@dataclass
class Queries:
    """Sorted, deduplicated positions in a domain of size 2^log_domain_size."""

    positions: list[int]
    log_domain_size: int

    @classmethod
    def generate(cls, channel: KeccakChannel, log_domain_size: int, n_queries: int) -> "Queries":
        """Draw n_queries positions as masked little-endian u32 words."""
        mask = (1 << log_domain_size) - 1
        positions = set()
        n_drawn = 0
        while n_drawn < n_queries:
            random_bytes = channel.draw_random_bytes()
            for offset in range(0, len(random_bytes), QUERY_BYTES):
                word = int.from_bytes(random_bytes[offset:offset + QUERY_BYTES], "little")
                positions.add(word & mask)
                n_drawn += 1
                if n_drawn == n_queries:
                    break
        return cls(sorted(positions), log_domain_size)

    def fold(self, n_folds: int) -> "Queries":
        if n_folds > self.log_domain_size:
            raise ValueError(f"cannot fold {self.log_domain_size}-bit queries {n_folds} times")
        return Queries(sorted({q >> n_folds for q in self.positions}), self.log_domain_size - n_folds)

    def __len__(self) -> int:
        return len(self.positions)

    def __iter__(self):
        return iter(self.positions)


# --- Folding ---


def fold_line_pair(f_x: QM31, f_neg_x: QM31, x_inverse, alpha: QM31) -> QM31:
    """(f(x) + f(-x)) + alpha * (f(x) - f(-x)) / x."""
    return (f_x + f_neg_x) + alpha * ((f_x - f_neg_x) * x_inverse)


def fold_circle_pair(f_p: QM31, f_conj_p: QM31, y_inverse, alpha: QM31) -> QM31:
    """(f(p) + f(conj p)) + alpha * (f(p) - f(conj p)) / p.y."""
    return (f_p + f_conj_p) + alpha * ((f_p - f_conj_p) * y_inverse)


def fold_line(evals: Sequence[QM31], domain: LineDomain, alpha: QM31) -> list[QM31]:
    """Fold a bit-reversed line evaluation onto the doubled domain."""
    n = len(evals)
    if n != domain.size() or n < 2:
        raise ValueError("line evaluation does not match its domain")
    xs = [domain.at(bit_reverse_index(i, domain.log_size())) for i in range(0, n, 2)]
    x_inverses = batch_inverse_m31(xs)
    return [
        fold_line_pair(evals[2 * j], evals[2 * j + 1], x_inverses[j], alpha)
        for j in range(n // 2)
    ]


def fold_circle_into_line(evals: Sequence[QM31], domain: CircleDomain, alpha: QM31) -> list[QM31]:
    """Fold a bit-reversed circle evaluation onto the line domain of its half coset."""
    n = len(evals)
    if n != domain.size():
        raise ValueError("circle evaluation does not match its domain")
    ys = [domain.at(bit_reverse_index(i, domain.log_size())).y for i in range(0, n, 2)]
    y_inverses = batch_inverse_m31(ys)
    return [
        fold_circle_pair(evals[2 * j], evals[2 * j + 1], y_inverses[j], alpha)
        for j in range(n // 2)
    ]


@dataclass
class SparseEvaluation:
    """Evaluations on the fold subsets touched by the queries.

    Attributes:
        subset_evals: Per subset, the 2^fold_step evaluations in bit-reversed order
        subset_domain_initial_indexes: Per subset, the natural-order domain index
            of its first point
    """

    subset_evals: list[list[QM31]]
    subset_domain_initial_indexes: list[int]

    def fold_line(self, alpha: QM31, source_domain: LineDomain) -> list[QM31]:
        xs = [source_domain.at(i) for i in self.subset_domain_initial_indexes]
        x_inverses = batch_inverse_m31(xs)
        return [
            fold_line_pair(evals[0], evals[1], x_inverse, alpha)
            for evals, x_inverse in zip(self.subset_evals, x_inverses)
        ]

    def fold_circle(self, alpha: QM31, source_domain: CircleDomain) -> list[QM31]:
        ys = [source_domain.at(i).y for i in self.subset_domain_initial_indexes]
        y_inverses = batch_inverse_m31(ys)
        return [
            fold_circle_pair(evals[0], evals[1], y_inverse, alpha)
            for evals, y_inverse in zip(self.subset_evals, y_inverses)
        ]

    def flat_m31_values(self) -> list[int]:
        """Coordinates of every subset evaluation, as committed in the layer's tree."""
        return [c.value for evals in self.subset_evals for e in evals for c in e.to_m31_array()]


def compute_decommitment_positions_and_rebuild_evals(
    queries: Queries,
    query_evals: Sequence[QM31],
    witness: deque,
    fold_step: int,
) -> Optional[tuple[list[int], SparseEvaluation]]:
    """Complete every queried fold subset with witness values.

    Returns:
        (positions to decommit, sparse evaluation), or None if the witness runs out
    """
    if len(query_evals) != len(queries):
        raise MalformedProofError(
            f"got {len(query_evals)} evaluations for {len(queries)} queries"
        )
    subset_size = 1 << fold_step
    positions: list[int] = []
    subset_evals: list[list[QM31]] = []
    initial_indexes: list[int] = []

    pending = deque(zip(queries.positions, query_evals))
    while pending:
        subset_start = (pending[0][0] >> fold_step) << fold_step
        evals = []
        for position in range(subset_start, subset_start + subset_size):
            positions.append(position)
            if pending and pending[0][0] == position:
                evals.append(pending.popleft()[1])
            elif witness:
                evals.append(witness.popleft())
            else:
                return None
        subset_evals.append(evals)
        initial_indexes.append(bit_reverse_index(subset_start, queries.log_domain_size))

    return positions, SparseEvaluation(subset_evals, initial_indexes)


def accumulate_line(layer_evals: list[QM31], folded_evals: Sequence[QM31], alpha: QM31) -> None:
    """layer_evals[i] = layer_evals[i] * alpha^2 + folded_evals[i], in place."""
    alpha_square = alpha.square()
    for i, value in enumerate(folded_evals):
        layer_evals[i] = layer_evals[i] * alpha_square + value


# --- Layer Verifiers ---


class FriFirstLayerVerifier:
    """Circle layer holding one secure column per degree bound."""

    def __init__(
        self,
        column_bounds: list[CirclePolyDegreeBound],
        column_commitment_domains: list[CircleDomain],
        folding_alpha: QM31,
        proof: FriLayerProof,
    ):
        self.column_bounds = column_bounds
        self.column_commitment_domains = column_commitment_domains
        self.folding_alpha = folding_alpha
        self.proof = proof

    def verify(self, queries: Queries, query_evals_by_column: Sequence[Sequence[QM31]]) -> Optional[list[SparseEvaluation]]:
        """Check the layer's Merkle decommitment; None on rejection."""
        if len(query_evals_by_column) != len(self.column_commitment_domains):
            raise MalformedProofError(
                f"got answers for {len(query_evals_by_column)} columns, "
                f"expected {len(self.column_commitment_domains)}"
            )
        max_column_log_size = self.column_commitment_domains[0].log_size()
        witness = deque(self.proof.fri_witness)
        positions_by_log_size: dict[int, list[int]] = {}
        decommitted_values: list[int] = []
        sparse_evals: list[SparseEvaluation] = []

        for domain, column_evals in zip(self.column_commitment_domains, query_evals_by_column):
            column_queries = queries.fold(max_column_log_size - domain.log_size())
            rebuilt = compute_decommitment_positions_and_rebuild_evals(
                column_queries, column_evals, witness, CIRCLE_TO_LINE_FOLD_STEP
            )
            if rebuilt is None:
                return None
            positions, sparse_eval = rebuilt
            positions_by_log_size[domain.log_size()] = positions
            decommitted_values.extend(sparse_eval.flat_m31_values())
            sparse_evals.append(sparse_eval)

        if witness:
            return None

        merkle_verifier = MerkleVerifier(
            self.proof.commitment,
            [d.log_size() for d in self.column_commitment_domains for _ in range(SECURE_EXTENSION_DEGREE)],
        )
        if not merkle_verifier.verify(positions_by_log_size, decommitted_values, self.proof.decommitment):
            return None
        return sparse_evals


class FriInnerLayerVerifier:
    """Line layer of a given degree bound."""

    def __init__(
        self,
        degree_bound: LinePolyDegreeBound,
        domain: LineDomain,
        folding_alpha: QM31,
        layer_index: int,
        proof: FriLayerProof,
    ):
        self.degree_bound = degree_bound
        self.domain = domain
        self.folding_alpha = folding_alpha
        self.layer_index = layer_index
        self.proof = proof

    def verify_and_fold(self, queries: Queries, query_evals: Sequence[QM31]) -> Optional[tuple[Queries, list[QM31]]]:
        witness = deque(self.proof.fri_witness)
        rebuilt = compute_decommitment_positions_and_rebuild_evals(
            queries, query_evals, witness, FOLD_STEP
        )
        if rebuilt is None or witness:
            return None
        positions, sparse_eval = rebuilt

        merkle_verifier = MerkleVerifier(
            self.proof.commitment, [self.domain.log_size()] * SECURE_EXTENSION_DEGREE
        )
        if not merkle_verifier.verify(
            {self.domain.log_size(): positions}, sparse_eval.flat_m31_values(), self.proof.decommitment
        ):
            return None

        return queries.fold(FOLD_STEP), sparse_eval.fold_line(self.folding_alpha, self.domain)


# --- FRI Verifier ---


class FriVerifier:
    """FRI verifier state: committed layers, then sampled queries, then decommitment.

    Usage:
        fri = FriVerifier.commit(channel, config, proof, column_bounds)
        positions = fri.sample_query_positions(channel)
        ok = fri.decommit(first_layer_query_evals)
    """

    def __init__(
        self,
        config: FriConfig,
        first_layer: FriFirstLayerVerifier,
        inner_layers: list[FriInnerLayerVerifier],
        last_layer_domain: LineDomain,
        last_layer_poly,
    ):
        self.config = config
        self.first_layer = first_layer
        self.inner_layers = inner_layers
        self.last_layer_domain = last_layer_domain
        self.last_layer_poly = last_layer_poly
        self.queries: Optional[Queries] = None

    @classmethod
    def commit(
        cls,
        channel: KeccakChannel,
        config: FriConfig,
        proof: FriProof,
        column_bounds: list[CirclePolyDegreeBound],
    ) -> "FriVerifier":
        """Replay the layer commitments, drawing one folding alpha per layer.

        Raises:
            MalformedProofError: If the layer count or last layer size does not
                match the degree bounds and config
        """
        if not column_bounds:
            raise MalformedProofError("no columns to test")
        if list(column_bounds) != sorted(column_bounds, reverse=True) or len(set(column_bounds)) != len(column_bounds):
            raise ValueError("column bounds must be distinct and descending")
        if column_bounds[-1].fold_to_line().log_degree_bound < config.log_last_layer_degree_bound:
            raise MalformedProofError("column degree bound below the last layer degree bound")

        channel.mix_root(proof.first_layer.commitment)
        column_domains = [
            CanonicCoset(bound.log_degree_bound + config.log_blowup_factor).circle_domain()
            for bound in column_bounds
        ]
        first_layer = FriFirstLayerVerifier(
            list(column_bounds), column_domains, channel.draw_secure_felt(), proof.first_layer
        )

        layer_bound = column_bounds[0].fold_to_line()
        layer_domain = LineDomain(Coset.half_odds(layer_bound.log_degree_bound + config.log_blowup_factor))
        inner_layers = []
        for layer_index, layer_proof in enumerate(proof.inner_layers):
            channel.mix_root(layer_proof.commitment)
            inner_layers.append(
                FriInnerLayerVerifier(
                    layer_bound, layer_domain, channel.draw_secure_felt(), layer_index, layer_proof
                )
            )
            layer_bound = layer_bound.fold(FOLD_STEP)
            if layer_bound is None:
                raise MalformedProofError("too many FRI layers")
            layer_domain = layer_domain.double()

        if layer_bound.log_degree_bound != config.log_last_layer_degree_bound:
            raise MalformedProofError(
                f"FRI layers end at degree bound {layer_bound.log_degree_bound}, "
                f"expected {config.log_last_layer_degree_bound}"
            )
        last_layer_poly = proof.last_layer_poly
        if len(last_layer_poly) != 1 << config.log_last_layer_degree_bound:
            raise MalformedProofError(
                f"last layer polynomial has {len(last_layer_poly)} coefficients, "
                f"expected {1 << config.log_last_layer_degree_bound}"
            )
        channel.mix_felts(last_layer_poly.coeffs)

        return cls(config, first_layer, inner_layers, layer_domain, last_layer_poly)

    def column_log_sizes(self) -> list[int]:
        return [d.log_size() for d in self.first_layer.column_commitment_domains]

    def sample_query_positions(self, channel: KeccakChannel) -> dict[int, list[int]]:
        """Draw queries on the largest domain and fold them to every column size."""
        log_sizes = sorted(set(self.column_log_sizes()), reverse=True)
        max_log_size = log_sizes[0]
        if self.config.n_queries > 1 << max_log_size:
            raise MalformedProofError(
                f"{self.config.n_queries} queries exceed domain size {1 << max_log_size}"
            )
        self.queries = Queries.generate(channel, max_log_size, self.config.n_queries)
        return {
            log_size: self.queries.fold(max_log_size - log_size).positions
            for log_size in log_sizes
        }

    def decommit(self, first_layer_query_evals: Sequence[Sequence[QM31]]) -> bool:
        """Check every layer against its commitment and the last layer polynomial.

        Args:
            first_layer_query_evals: Per first-layer column (descending size),
                the DEEP quotient values at that column's folded query positions
        """
        if self.queries is None:
            raise ValueError("queries have not been sampled")

        sparse_evals = self.first_layer.verify(self.queries, first_layer_query_evals)
        if sparse_evals is None:
            return False

        first_layer_columns = deque(
            zip(self.first_layer.column_bounds, self.first_layer.column_commitment_domains, sparse_evals)
        )
        previous_alpha = self.first_layer.folding_alpha
        layer_queries = self.queries.fold(CIRCLE_TO_LINE_FOLD_STEP)
        layer_evals = [QM31.zero()] * len(layer_queries)

        for layer in self.inner_layers:
            self._fold_first_layer_columns(first_layer_columns, layer.degree_bound, layer_evals, previous_alpha)
            folded = layer.verify_and_fold(layer_queries, layer_evals)
            if folded is None:
                return False
            layer_queries, layer_evals = folded
            previous_alpha = layer.folding_alpha

        last_bound = LinePolyDegreeBound(self.config.log_last_layer_degree_bound)
        self._fold_first_layer_columns(first_layer_columns, last_bound, layer_evals, previous_alpha)
        if first_layer_columns:
            raise MalformedProofError("first layer column was never folded")

        domain = self.last_layer_domain
        for position, value in zip(layer_queries.positions, layer_evals):
            x = domain.at(bit_reverse_index(position, domain.log_size()))
            if value != self.last_layer_poly.eval_at_point(x):
                return False
        return True

    @staticmethod
    def _fold_first_layer_columns(
        columns: deque, degree_bound: LinePolyDegreeBound, layer_evals: list[QM31], alpha: QM31
    ) -> None:
        while columns and columns[0][0].fold_to_line() == degree_bound:
            _, domain, sparse_eval = columns.popleft()
            accumulate_line(layer_evals, sparse_eval.fold_circle(alpha, domain), alpha)
