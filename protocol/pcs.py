"""Circle polynomial commitment scheme: committed trees, degree bounds and DEEP quotients.

Each committed tree is a Merkle tree over base-field columns, recorded with
the log size of every column's evaluation domain. Opening the columns at
out-of-domain points is reduced to one low-degree claim per column size:
the random linear combination of the quotients

    (f(X) - L(X)) / V(X)

where L interpolates the claimed value v at the sample point P and its complex
conjugate, and V is the line through P and conj(P). FRI then tests those
quotient columns.
"""

from collections import Counter
from dataclasses import dataclass, field
from typing import Sequence

from primitives.batch_inverse import batch_inverse_cm31
from primitives.channel import KeccakChannel
from primitives.circle import CanonicCoset, CirclePoint, bit_reverse_index
from primitives.field import M31, QM31, ArithmeticDomainError
from primitives.merkle_verifier import MerkleDecommitment, MerkleRoot, MerkleVerifier
from protocol.fri import CirclePolyDegreeBound
from protocol.proof import MalformedProofError, PcsConfig, TreeVec

# --- Type Aliases ---

QueryPositions = dict[int, list[int]]  # column log size -> ascending positions


# --- Commitment Scheme ---


class CommitmentSchemeVerifier:
    """Tracks the committed trees of a proof.

    Usage:
        scheme = CommitmentSchemeVerifier(config)
        scheme.commit(root, column_log_sizes, channel)    # once per tree, in order
        bounds = scheme.calculate_bounds()
    """

    def __init__(self, config: PcsConfig):
        self.config = config
        self.trees: list[MerkleVerifier] = []

    def commit(self, root: MerkleRoot, column_log_sizes: Sequence[int], channel: KeccakChannel) -> None:
        """Mix the column sizes and root into the channel and record the tree."""
        channel.mix_u32s(list(column_log_sizes))
        channel.mix_root(root)
        self.trees.append(MerkleVerifier(root, column_log_sizes))

    def column_log_sizes(self) -> TreeVec:
        return [tree.column_log_sizes for tree in self.trees]

    def calculate_bounds(self) -> list[CirclePolyDegreeBound]:
        """One degree bound per distinct committed column size, largest first."""
        log_blowup_factor = self.config.fri_config.log_blowup_factor
        log_sizes = sorted({s for sizes in self.column_log_sizes() for s in sizes}, reverse=True)
        if log_sizes and log_sizes[-1] < log_blowup_factor:
            raise MalformedProofError(
                f"column log size {log_sizes[-1]} is smaller than the blowup {log_blowup_factor}"
            )
        return [CirclePolyDegreeBound(s - log_blowup_factor) for s in log_sizes]

    def validate_queried_values(self, query_positions: QueryPositions, queried_values: TreeVec) -> None:
        """Raise unless each tree carries one value per column per query of its size."""
        for tree_index, tree in enumerate(self.trees):
            expected = sum(
                n_columns * len(query_positions[log_size])
                for log_size, n_columns in Counter(tree.column_log_sizes).items()
            )
            if len(queried_values[tree_index]) != expected:
                raise MalformedProofError(
                    f"tree {tree_index} has {len(queried_values[tree_index])} queried values, "
                    f"expected {expected}"
                )

    def verify_decommitments(
        self,
        query_positions: QueryPositions,
        queried_values: TreeVec,
        decommitments: Sequence[MerkleDecommitment],
    ) -> bool:
        """Verify every tree's decommitment at the sampled positions."""
        for tree_index, tree in enumerate(self.trees):
            queries = {s: query_positions[s] for s in set(tree.column_log_sizes)}
            if not tree.verify(queries, queried_values[tree_index], decommitments[tree_index]):
                print(f"ERROR: Merkle decommitment of tree {tree_index} failed")
                return False
        return True


# --- DEEP Quotients ---


@dataclass
class PointSample:
    """A claimed evaluation of a column at an out-of-domain point."""

    point: CirclePoint
    value: QM31


@dataclass
class ColumnSampleBatch:
    """All columns (of one size) sampled at the same point."""

    point: CirclePoint
    columns_and_values: list[tuple[int, QM31]] = field(default_factory=list)

    @classmethod
    def new_vec(cls, samples: Sequence[Sequence[PointSample]]) -> list["ColumnSampleBatch"]:
        """Group samples by point, in order of first appearance."""
        batches: dict[CirclePoint, ColumnSampleBatch] = {}
        for column_index, column_samples in enumerate(samples):
            for sample in column_samples:
                batch = batches.setdefault(sample.point, cls(sample.point))
                batch.columns_and_values.append((column_index, sample.value))
        return list(batches.values())


def complex_conjugate_line_coeffs(sample: PointSample, alpha: QM31) -> tuple[QM31, QM31, QM31]:
    """alpha-scaled (a, b, c) with c * f - (a * y + b) vanishing at the sample and its conjugate."""
    point, value = sample.point, sample.value
    if not point.is_on_curve():
        raise ArithmeticDomainError(f"sample point {point} is not on the circle")
    if point.y == point.y.complex_conjugate():
        raise ArithmeticDomainError(f"cannot build a line through a single point {point}")
    a = value.complex_conjugate() - value
    c = point.complex_conjugate().y - point.y
    b = value * c - a * point.y
    return alpha * a, alpha * b, alpha * c


@dataclass
class QuotientConstants:
    """Per batch: alpha-scaled line coefficients per column and alpha^(batch size)."""

    line_coeffs: list[list[tuple[QM31, QM31, QM31]]]
    batch_random_coeffs: list[QM31]


def quotient_constants(batches: Sequence[ColumnSampleBatch], random_coeff: QM31) -> QuotientConstants:
    line_coeffs = []
    for batch in batches:
        alpha = QM31.one()
        coeffs = []
        for _, value in batch.columns_and_values:
            alpha = alpha * random_coeff
            coeffs.append(complex_conjugate_line_coeffs(PointSample(batch.point, value), alpha))
        line_coeffs.append(coeffs)
    batch_random_coeffs = [random_coeff ** len(b.columns_and_values) for b in batches]
    return QuotientConstants(line_coeffs, batch_random_coeffs)


def denominator_inverses(batches: Sequence[ColumnSampleBatch], domain_point: CirclePoint) -> list:
    """1 / ((Pr.x - x) * Pi.y - (Pr.y - y) * Pi.x) per batch, in CM31."""
    denominators = []
    for batch in batches:
        prx, pix = batch.point.x.first, batch.point.x.second
        pry, piy = batch.point.y.first, batch.point.y.second
        denominators.append((prx - domain_point.x) * piy - (pry - domain_point.y) * pix)
    return batch_inverse_cm31(denominators)


def accumulate_row_quotients(
    batches: Sequence[ColumnSampleBatch],
    queried_values_at_row: Sequence[M31],
    constants: QuotientConstants,
    domain_point: CirclePoint,
) -> QM31:
    inverses = denominator_inverses(batches, domain_point)
    accumulator = QM31.zero()
    for batch, line_coeffs, batch_coeff, inverse in zip(
        batches, constants.line_coeffs, constants.batch_random_coeffs, inverses
    ):
        numerator = QM31.zero()
        for (column_index, _), (a, b, c) in zip(batch.columns_and_values, line_coeffs):
            value = c * queried_values_at_row[column_index]
            linear_term = a * domain_point.y + b
            numerator = numerator + (value - linear_term)
        accumulator = accumulator * batch_coeff + numerator * inverse
    return accumulator


def fri_answers(
    column_log_sizes: TreeVec,
    samples: TreeVec,
    random_coeff: QM31,
    query_positions: QueryPositions,
    queried_values: TreeVec,
) -> list[list[QM31]]:
    """DEEP quotient values at the queried positions, one list per column size (descending).

    Args:
        column_log_sizes: Per tree, per column, evaluation domain log size
        samples: Per tree, per column, the PointSamples of that column
        random_coeff: Coefficient combining the quotients
        query_positions: Query positions per column log size
        queried_values: Per tree, flat M31 values ordered by column log size
            (descending), then position, then column

    Raises:
        MalformedProofError: If the queried values do not match the layout
    """
    n_columns_per_log_size = [Counter(sizes) for sizes in column_log_sizes]
    value_cursors = [0] * len(queried_values)

    columns = [
        (log_size, column_samples)
        for sizes, tree_samples in zip(column_log_sizes, samples)
        for log_size, column_samples in zip(sizes, tree_samples)
    ]
    answers = []
    for log_size in sorted({log_size for log_size, _ in columns}, reverse=True):
        size_samples = [s for size, s in columns if size == log_size]
        batches = ColumnSampleBatch.new_vec(size_samples)
        constants = quotient_constants(batches, random_coeff)
        domain = CanonicCoset(log_size).circle_domain()

        column_answers = []
        for position in query_positions[log_size]:
            row: list[M31] = []
            for tree_index, tree_values in enumerate(queried_values):
                n_columns = n_columns_per_log_size[tree_index].get(log_size, 0)
                start = value_cursors[tree_index]
                if start + n_columns > len(tree_values):
                    raise MalformedProofError(f"tree {tree_index} is missing queried values")
                row.extend(M31(v) for v in tree_values[start:start + n_columns])
                value_cursors[tree_index] = start + n_columns
            domain_point = domain.at(bit_reverse_index(position, log_size))
            column_answers.append(accumulate_row_quotients(batches, row, constants, domain_point))
        answers.append(column_answers)

    for tree_index, tree_values in enumerate(queried_values):
        if value_cursors[tree_index] != len(tree_values):
            raise MalformedProofError(f"tree {tree_index} has unused queried values")
    return answers
