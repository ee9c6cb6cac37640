"""Base classes for AIR constraint evaluation.

A FrameworkEval describes an AIR once, against the abstract EvalAtRow
interface. The same evaluate() runs under different evaluators:

    InfoEvaluator   - records which columns and row offsets are read (the mask)
                      and how many constraints there are
    PointEvaluator  - reads prover-supplied openings at an out-of-domain point
                      and accumulates the constraint values

Example:
    class Fib(FrameworkEval):
        def evaluate(self, eval):
            a = eval.next_trace_mask()
            b = eval.next_trace_mask()
            c = eval.next_trace_mask()
            eval.add_constraint(c - (a + b))
            return eval
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Sequence

from primitives.circle import CanonicCoset, CirclePoint, coset_vanishing
from primitives.field import QM31, ArithmeticDomainError
from protocol.proof import (
    N_TRACE_TREES,
    ORIGINAL_TRACE_IDX,
    PREPROCESSED_TRACE_IDX,
    MalformedProofError,
    TreeVec,
)


# --- Accumulator ---


class PointEvaluationAccumulator:
    """Horner-style random linear combination of constraint evaluations."""

    def __init__(self, random_coeff: QM31):
        self.random_coeff = random_coeff
        self.accumulation = QM31.zero()

    def accumulate(self, evaluation) -> None:
        """accumulation = accumulation * random_coeff + evaluation."""
        self.accumulation = self.accumulation * self.random_coeff + evaluation

    def accumulate_block(self, evaluation, n_terms: int) -> None:
        """Absorb a value that already combines n_terms evaluations with the same coefficient."""
        self.accumulation = self.accumulation * self.random_coeff ** n_terms + evaluation

    def finalize(self) -> QM31:
        return self.accumulation


# --- Evaluators ---


class EvalAtRow(ABC):
    """Uniform interface through which a FrameworkEval reads columns and emits constraints."""

    @abstractmethod
    def next_interaction_mask(self, interaction: int, offsets: Sequence[int]) -> list:
        """Values of the next column of tree `interaction` at each row offset."""
        pass

    @abstractmethod
    def get_preprocessed_column(self, column_index: int):
        """Value of preprocessed column `column_index` at the current row."""
        pass

    @abstractmethod
    def add_constraint(self, constraint) -> None:
        pass

    def next_trace_mask(self):
        """Next original-trace column at the current row."""
        return self.next_interaction_mask(ORIGINAL_TRACE_IDX, [0])[0]


class InfoEvaluator(EvalAtRow):
    """Collects the mask structure and constraint count of an AIR."""

    def __init__(self):
        self.mask_offsets: TreeVec = [[] for _ in range(N_TRACE_TREES)]
        self.preprocessed_columns: list[int] = []
        self.n_constraints = 0

    def next_interaction_mask(self, interaction: int, offsets: Sequence[int]) -> list:
        if interaction == PREPROCESSED_TRACE_IDX:
            raise ValueError("preprocessed columns are read with get_preprocessed_column")
        self.mask_offsets[interaction].append(list(offsets))
        return [QM31.zero() for _ in offsets]

    def get_preprocessed_column(self, column_index: int):
        self.preprocessed_columns.append(column_index)
        return QM31.zero()

    def add_constraint(self, constraint) -> None:
        self.n_constraints += 1


class PointEvaluator(EvalAtRow):
    """Evaluates constraints on openings at a single point.

    Args:
        mask: Per tree, per column, the opened values (preprocessed tree in the
            order the AIR requests the columns)
        accumulator: Receives each raw constraint value
        denom_inverse: Inverse of the trace-domain vanishing polynomial at the point
        log_size: Trace log size of the component
    """

    def __init__(
        self,
        mask: TreeVec,
        accumulator: PointEvaluationAccumulator,
        denom_inverse,
        log_size: int,
    ):
        self.mask = mask
        self.accumulator = accumulator
        self.denom_inverse = denom_inverse
        self.log_size = log_size
        self.col_index = [0] * len(mask)
        self.n_constraints = 0

    def next_interaction_mask(self, interaction: int, offsets: Sequence[int]) -> list:
        index = self.col_index[interaction]
        self.col_index[interaction] += 1
        if index >= len(self.mask[interaction]):
            raise MalformedProofError(f"tree {interaction} has no column {index} in the mask")
        values = self.mask[interaction][index]
        if len(values) != len(offsets):
            raise MalformedProofError(
                f"column {index} of tree {interaction} has {len(values)} openings, expected {len(offsets)}"
            )
        return list(values)

    def get_preprocessed_column(self, column_index: int):
        return self.next_interaction_mask(PREPROCESSED_TRACE_IDX, [0])[0]

    def add_constraint(self, constraint) -> None:
        self.accumulator.accumulate(constraint)
        self.n_constraints += 1

    def finalize(self) -> QM31:
        """Accumulated constraints divided by the vanishing polynomial."""
        return self.accumulator.finalize() * self.denom_inverse


# --- Components ---


class FrameworkEval(ABC):
    """An AIR: its trace size, degree bound and constraints."""

    @abstractmethod
    def log_size(self) -> int:
        pass

    @abstractmethod
    def max_constraint_log_degree_bound(self) -> int:
        pass

    @abstractmethod
    def evaluate(self, eval: EvalAtRow) -> EvalAtRow:
        pass


@dataclass
class ComponentInfo:
    """Static description of a component, discovered by running it under InfoEvaluator."""

    log_size: int
    max_constraint_log_degree_bound: int
    mask_offsets: TreeVec
    preprocessed_columns: list[int]
    n_constraints: int

    @classmethod
    def from_eval(cls, framework_eval: FrameworkEval) -> "ComponentInfo":
        info = framework_eval.evaluate(InfoEvaluator())
        return cls(
            log_size=framework_eval.log_size(),
            max_constraint_log_degree_bound=framework_eval.max_constraint_log_degree_bound(),
            mask_offsets=info.mask_offsets,
            preprocessed_columns=info.preprocessed_columns,
            n_constraints=info.n_constraints,
        )


@dataclass
class TraceLocationAllocator:
    """Hands out consecutive column ranges per tree to components."""

    next_tree_offsets: list[int] = field(default_factory=lambda: [0] * N_TRACE_TREES)

    def next_for_structure(self, mask_offsets: TreeVec) -> list[range]:
        locations = []
        for tree_index, columns in enumerate(mask_offsets):
            start = self.next_tree_offsets[tree_index]
            self.next_tree_offsets[tree_index] = start + len(columns)
            locations.append(range(start, start + len(columns)))
        return locations


class FrameworkComponent:
    """A FrameworkEval placed in the trace, evaluated at out-of-domain points.

    Args:
        location_allocator: Assigns the component its column ranges per tree
        framework_eval: The AIR
        claimed_sum: Logup sum the component claims for its interaction trace.
            Carried with the component for callers that balance lookups across
            components; constraint evaluation does not read it.
    """

    def __init__(
        self,
        location_allocator: TraceLocationAllocator,
        framework_eval: FrameworkEval,
        claimed_sum: QM31 = None,
    ):
        self.eval = framework_eval
        self.info = ComponentInfo.from_eval(framework_eval)
        self.claimed_sum = claimed_sum if claimed_sum is not None else QM31.zero()
        self.trace_locations = location_allocator.next_for_structure(self.info.mask_offsets)

    def log_size(self) -> int:
        return self.info.log_size

    def n_constraints(self) -> int:
        return self.info.n_constraints

    def max_constraint_log_degree_bound(self) -> int:
        return self.info.max_constraint_log_degree_bound

    def trace_log_degree_bounds(self) -> TreeVec:
        return [[self.log_size()] * len(columns) for columns in self.info.mask_offsets]

    def mask_points(self, point: CirclePoint) -> TreeVec:
        """Per tree, per column, point + offset * (trace step) for each mask offset."""
        step = CanonicCoset(self.log_size()).step
        if isinstance(point.x, QM31):
            step = step.into_ef()
        points = []
        for tree_index, columns in enumerate(self.info.mask_offsets):
            if tree_index == PREPROCESSED_TRACE_IDX:
                points.append([])
                continue
            points.append([[point + _signed_mul(step, offset) for offset in offsets] for offsets in columns])
        return points

    def evaluate_constraint_quotients_at_point(
        self,
        point: CirclePoint,
        mask: TreeVec,
        accumulator: PointEvaluationAccumulator,
    ) -> None:
        """Fold this component's constraint quotients at point into accumulator.

        Args:
            point: Out-of-domain point
            mask: Openings of every committed column (all components), per tree
            accumulator: Shared accumulator
        """
        component_mask = [[mask[PREPROCESSED_TRACE_IDX][i] for i in self.info.preprocessed_columns]]
        for tree_index in range(ORIGINAL_TRACE_IDX, N_TRACE_TREES):
            location = self.trace_locations[tree_index]
            component_mask.append(mask[tree_index][location.start:location.stop])

        denominator = coset_vanishing(CanonicCoset(self.log_size()).coset, point)
        if denominator.is_zero():
            raise ArithmeticDomainError("evaluation point lies on the trace domain")

        evaluator = PointEvaluator(
            component_mask,
            PointEvaluationAccumulator(accumulator.random_coeff),
            denominator.inverse(),
            self.log_size(),
        )
        self.eval.evaluate(evaluator)
        accumulator.accumulate_block(evaluator.finalize(), evaluator.n_constraints)


def _signed_mul(step: CirclePoint, offset: int) -> CirclePoint:
    if offset < 0:
        return step.mul(-offset).conjugate()
    return step.mul(offset)


class Components:
    """All components of a proof, sharing one composition polynomial."""

    def __init__(self, components: Sequence[FrameworkComponent], n_preprocessed_columns: int):
        self.components = list(components)
        self.n_preprocessed_columns = n_preprocessed_columns

    def composition_log_degree_bound(self) -> int:
        return max(c.max_constraint_log_degree_bound() for c in self.components)

    def column_log_sizes(self) -> TreeVec:
        """Trace log size of every column the components read, per tree (preprocessed excluded)."""
        sizes: TreeVec = [[] for _ in range(N_TRACE_TREES)]
        for component in self.components:
            for tree_index in range(ORIGINAL_TRACE_IDX, N_TRACE_TREES):
                sizes[tree_index].extend(component.trace_log_degree_bounds()[tree_index])
        return sizes

    def mask_points(self, point: CirclePoint) -> TreeVec:
        points: TreeVec = [[] for _ in range(N_TRACE_TREES)]
        for component in self.components:
            component_points = component.mask_points(point)
            for tree_index in range(ORIGINAL_TRACE_IDX, N_TRACE_TREES):
                points[tree_index].extend(component_points[tree_index])
        points[PREPROCESSED_TRACE_IDX] = [[] for _ in range(self.n_preprocessed_columns)]
        for component in self.components:
            for column_index in component.info.preprocessed_columns:
                if column_index >= self.n_preprocessed_columns:
                    raise MalformedProofError(f"preprocessed column {column_index} does not exist")
                points[PREPROCESSED_TRACE_IDX][column_index] = [point]
        return points

    def eval_composition_polynomial_at_point(
        self, point: CirclePoint, mask_values: TreeVec, random_coeff: QM31
    ) -> QM31:
        accumulator = PointEvaluationAccumulator(random_coeff)
        for component in self.components:
            component.evaluate_constraint_quotients_at_point(point, mask_values, accumulator)
        return accumulator.finalize()

