"""Circle and line polynomials in coefficient form.

Coefficients are over the FFT basis of the circle STARK: for a circle
polynomial of log size n the basis element of index b is

    y^{b_0} * x^{b_1} * pi(x)^{b_2} * ... * pi^{n-2}(x)^{b_{n-1}},    pi(x) = 2x^2 - 1

and a line polynomial drops the y factor. Evaluation is a recursive fold of the
coefficient vector against these twiddle factors, so no interpolation machinery
is needed on the verifier side.
"""

from typing import Sequence, Union

from primitives.circle import CirclePoint, double_x
from primitives.field import M31, QM31, SECURE_EXTENSION_DEGREE


def fold(values: Sequence, factors: Sequence):
    """Fold values against factors: fold(lhs, factors[1:]) + fold(rhs, factors[1:]) * factors[0].

    len(values) must equal 2^len(factors).
    """
    n = len(values)
    if n != 1 << len(factors):
        raise ValueError(f"cannot fold {n} values with {len(factors)} factors")
    if n == 1:
        return values[0]
    half = n // 2
    lhs = fold(values[:half], factors[1:])
    rhs = fold(values[half:], factors[1:])
    return lhs + rhs * factors[0]


def _log2(size: int) -> int:
    log_size = size.bit_length() - 1
    if size <= 0 or 1 << log_size != size:
        raise ValueError(f"size {size} is not a power of two")
    return log_size


class CirclePoly:
    """Base-field polynomial on the circle, stored as FFT-basis coefficients."""

    def __init__(self, coeffs: Sequence[Union[M31, int]]):
        self.coeffs = [c if isinstance(c, M31) else M31(c) for c in coeffs]
        self.log_size = _log2(len(self.coeffs))

    def eval_at_point(self, point: CirclePoint):
        """Evaluate at an M31 or QM31 point; the result lives in the point's field."""
        if self.log_size == 0:
            return point.x * 0 + self.coeffs[0]
        mappings = [point.y]
        x = point.x
        for _ in range(1, self.log_size):
            mappings.append(x)
            x = double_x(x)
        return fold(self.coeffs, mappings[::-1])

    def __len__(self) -> int:
        return len(self.coeffs)


class SecureCirclePoly:
    """QM31 circle polynomial held as four coordinate CirclePolys."""

    def __init__(self, polys: Sequence[CirclePoly]):
        if len(polys) != SECURE_EXTENSION_DEGREE:
            raise ValueError(
                f"secure polynomial needs {SECURE_EXTENSION_DEGREE} coordinates, got {len(polys)}"
            )
        self.polys = list(polys)

    @classmethod
    def from_coeffs(cls, coeffs: Sequence[Sequence[int]]) -> "SecureCirclePoly":
        return cls([CirclePoly(c) for c in coeffs])

    @property
    def log_size(self) -> int:
        return self.polys[0].log_size

    def eval_columns_at_point(self, point: CirclePoint[QM31]) -> list[QM31]:
        return [QM31.lift(poly.eval_at_point(point)) for poly in self.polys]

    def eval_at_point(self, point: CirclePoint[QM31]) -> QM31:
        return QM31.from_partial_evals(self.eval_columns_at_point(point))


class LinePoly:
    """Secure-field polynomial on a line domain, FFT-basis coefficients."""

    def __init__(self, coeffs: Sequence[QM31]):
        self.coeffs = list(coeffs)
        self.log_size = _log2(len(self.coeffs))

    def eval_at_point(self, x: Union[M31, QM31]) -> QM31:
        mappings = []
        for _ in range(self.log_size):
            mappings.append(x)
            x = double_x(x)
        return QM31.lift(fold(self.coeffs, mappings))

    def __len__(self) -> int:
        return len(self.coeffs)
