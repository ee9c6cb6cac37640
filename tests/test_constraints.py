"""Tests for AIR constraint evaluation at out-of-domain points."""

import pytest

from constraints import (
    CONSTRAINT_REGISTRY,
    Components,
    FrameworkComponent,
    InfoEvaluator,
    PointEvaluationAccumulator,
    PointEvaluator,
    TraceLocationAllocator,
    WideFibonacciEval,
    get_constraint_module,
)
from primitives.channel import KeccakChannel
from primitives.circle import CanonicCoset, CirclePoint, coset_vanishing
from primitives.field import M31_PRIME, QM31, ArithmeticDomainError
from protocol.proof import MalformedProofError


class TestWideFibonacciEval:
    """WideFibonacci constraints under the different evaluators."""

    def test_info(self) -> None:
        info = WideFibonacciEval(log_n_rows=3, n_columns=10).evaluate(InfoEvaluator())
        assert info.n_constraints == 8
        assert info.mask_offsets[1] == [[0]] * 10
        assert info.mask_offsets[0] == [] and info.mask_offsets[2] == []

    def test_point_evaluation_with_zero_coefficient(self) -> None:
        """With a zero random coefficient only the last constraint survives: 10 - (8 + 9) = P - 7."""
        mask = [[], [[QM31(i)] for i in range(1, 11)], []]
        accumulator = PointEvaluationAccumulator(QM31.zero())
        evaluator = PointEvaluator(mask, accumulator, QM31.zero(), 3)
        WideFibonacciEval(log_n_rows=3, n_columns=10).evaluate(evaluator)
        assert accumulator.accumulation.first.real.value == 2147483640
        assert accumulator.accumulation.first.real.value == M31_PRIME - 7
        assert evaluator.n_constraints == 8

    def test_satisfied_row_accumulates_zero(self) -> None:
        row = [1, 1]
        while len(row) < 6:
            row.append(row[-1] + row[-2])
        mask = [[], [[QM31(v)] for v in row], []]
        accumulator = PointEvaluationAccumulator(QM31.from_ints(5, 6, 7, 8))
        WideFibonacciEval(log_n_rows=2, n_columns=6).evaluate(
            PointEvaluator(mask, accumulator, QM31.one(), 2)
        )
        assert accumulator.finalize().is_zero()

    def test_short_mask_is_malformed(self) -> None:
        mask = [[], [[QM31(1)], [QM31(2)]], []]
        evaluator = PointEvaluator(mask, PointEvaluationAccumulator(QM31.one()), QM31.one(), 2)
        with pytest.raises(MalformedProofError):
            WideFibonacciEval(log_n_rows=2, n_columns=3).evaluate(evaluator)

    def test_needs_two_columns(self) -> None:
        with pytest.raises(ValueError):
            WideFibonacciEval(log_n_rows=2, n_columns=1)


class TestAccumulator:
    """Horner-style accumulation."""

    def test_accumulate(self) -> None:
        alpha = QM31.from_ints(2, 0, 0, 0)
        accumulator = PointEvaluationAccumulator(alpha)
        for value in (1, 2, 3):
            accumulator.accumulate(QM31(value))
        # (1 * 2 + 2) * 2 + 3
        assert accumulator.finalize() == QM31(11)

    def test_accumulate_block(self) -> None:
        alpha = QM31.from_ints(3, 1, 0, 2)
        accumulator = PointEvaluationAccumulator(alpha)
        accumulator.accumulate(QM31(5))
        accumulator.accumulate_block(QM31(7), 3)
        assert accumulator.finalize() == QM31(5) * alpha ** 3 + QM31(7)


class TestFrameworkComponent:
    """Components, mask points and the composition evaluation."""

    @pytest.fixture(autouse=True)
    def setup(self) -> None:
        self.component = FrameworkComponent(TraceLocationAllocator(), WideFibonacciEval(4, 5))
        self.components = Components([self.component], n_preprocessed_columns=0)
        self.point = CirclePoint.get_random_point(KeccakChannel())

    def test_bounds(self) -> None:
        assert self.components.composition_log_degree_bound() == 5
        assert self.components.column_log_sizes() == [[], [4] * 5, []]
        assert self.component.n_constraints() == 3

    def test_mask_points(self) -> None:
        points = self.components.mask_points(self.point)
        assert points[0] == []
        assert points[1] == [[self.point]] * 5
        assert points[2] == []

    def test_allocator_places_components_side_by_side(self) -> None:
        allocator = TraceLocationAllocator()
        first = FrameworkComponent(allocator, WideFibonacciEval(3, 4))
        second = FrameworkComponent(allocator, WideFibonacciEval(3, 6))
        assert first.trace_locations[1] == range(0, 4)
        assert second.trace_locations[1] == range(4, 10)

    def test_composition_divides_by_vanishing(self) -> None:
        """One constraint: composition is (c - a - b) / Z(point)."""
        component = FrameworkComponent(TraceLocationAllocator(), WideFibonacciEval(3, 3))
        components = Components([component], n_preprocessed_columns=0)
        a, b, c = QM31.from_ints(1, 2, 3, 4), QM31.from_ints(5, 6, 7, 8), QM31.from_ints(9, 9, 9, 9)
        mask = [[], [[a], [b], [c]], []]
        result = components.eval_composition_polynomial_at_point(self.point, mask, QM31.from_ints(4, 3, 2, 1))
        vanishing = coset_vanishing(CanonicCoset(3).coset, self.point)
        assert result == (c - (a + b)) / vanishing

    def test_claimed_sum_does_not_affect_composition(self) -> None:
        claimed = QM31.from_ints(3, 1, 4, 1)
        carrying = Components(
            [FrameworkComponent(TraceLocationAllocator(), WideFibonacciEval(4, 5), claimed)],
            n_preprocessed_columns=0,
        )
        assert self.component.claimed_sum == QM31.zero()
        assert carrying.components[0].claimed_sum == claimed
        mask = [[], [[QM31.from_ints(i, 1, 0, 2)] for i in range(5)], []]
        coeff = QM31.from_ints(2, 0, 0, 1)
        assert carrying.eval_composition_polynomial_at_point(self.point, mask, coeff) == (
            self.components.eval_composition_polynomial_at_point(self.point, mask, coeff)
        )

    def test_point_on_trace_domain_raises(self) -> None:
        point = CanonicCoset(4).coset.at(3).into_ef()
        mask = [[], [[QM31(i)] for i in range(5)], []]
        with pytest.raises(ArithmeticDomainError):
            self.components.eval_composition_polynomial_at_point(point, mask, QM31.one())


class TestRegistry:
    """Constraint module lookup by AIR name."""

    def test_registered(self) -> None:
        assert CONSTRAINT_REGISTRY["WideFibonacci"] is WideFibonacciEval
        framework_eval = get_constraint_module("WideFibonacci", log_n_rows=4, n_columns=8)
        assert isinstance(framework_eval, WideFibonacciEval)
        assert framework_eval.log_size() == 4

    def test_unknown_air(self) -> None:
        with pytest.raises(KeyError):
            get_constraint_module("NoSuchAir")
