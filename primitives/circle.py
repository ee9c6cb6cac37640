"""The circle curve x^2 + y^2 = 1 over M31 and QM31, its cosets and domains.

The M31 points form a cyclic group of order 2^31 generated by M31_CIRCLE_GEN;
CirclePointIndex names the point index * G additively, which keeps coset and
domain arithmetic in plain integers. Evaluation domains are CanonicCoset
circle domains; FRI line domains are the x-projections of half cosets.
"""

from dataclasses import dataclass
from functools import lru_cache
from typing import TYPE_CHECKING, Generic, TypeVar, Union

from primitives.field import M31, QM31, ArithmeticDomainError

if TYPE_CHECKING:
    from primitives.channel import KeccakChannel

F = TypeVar("F", M31, QM31)

M31_CIRCLE_LOG_ORDER = 31
M31_CIRCLE_ORDER = 1 << M31_CIRCLE_LOG_ORDER


# --- Points ---


class CirclePoint(Generic[F]):
    """Point (x, y) on the unit circle; the group law is complex multiplication."""

    __slots__ = ("x", "y")

    def __init__(self, x: F, y: F):
        self.x = x
        self.y = y

    @classmethod
    def zero(cls, field=M31) -> "CirclePoint":
        """Group identity (1, 0)."""
        return cls(field(1), field(0))

    def __add__(self, other: "CirclePoint") -> "CirclePoint":
        return CirclePoint(
            self.x * other.x - self.y * other.y,
            self.x * other.y + self.y * other.x,
        )

    def __neg__(self) -> "CirclePoint":
        return self.conjugate()

    def __sub__(self, other: "CirclePoint") -> "CirclePoint":
        return self + other.conjugate()

    def double(self) -> "CirclePoint":
        return self + self

    def conjugate(self) -> "CirclePoint":
        """Group inverse (x, -y)."""
        return CirclePoint(self.x, -self.y)

    def antipode(self) -> "CirclePoint":
        """(-x, -y), i.e. the point shifted by the element of order 2."""
        return CirclePoint(-self.x, -self.y)

    def complex_conjugate(self) -> "CirclePoint":
        """Coordinate-wise QM31 conjugation over CM31."""
        return CirclePoint(self.x.complex_conjugate(), self.y.complex_conjugate())

    def mul(self, scalar: int) -> "CirclePoint":
        """Scalar multiplication by double-and-add."""
        result = CirclePoint.zero(type(self.x))
        base = self
        while scalar > 0:
            if scalar & 1:
                result = result + base
            base = base.double()
            scalar >>= 1
        return result

    def repeated_double(self, n: int) -> "CirclePoint":
        point = self
        for _ in range(n):
            point = point.double()
        return point

    def into_ef(self) -> "CirclePoint[QM31]":
        """Lift an M31 point into the secure field."""
        if isinstance(self.x, QM31):
            return self
        return CirclePoint(QM31(self.x), QM31(self.y))

    def is_on_curve(self) -> bool:
        return self.x * self.x + self.y * self.y == 1

    def __eq__(self, other) -> bool:
        if not isinstance(other, CirclePoint):
            return NotImplemented
        return self.x == other.x and self.y == other.y

    def __hash__(self) -> int:
        return hash((self.x, self.y))

    def __repr__(self) -> str:
        return f"CirclePoint({self.x!r}, {self.y!r})"

    @staticmethod
    def get_random_point(channel: "KeccakChannel") -> "CirclePoint[QM31]":
        """Map a channel draw t to ((1 - t^2) / (1 + t^2), 2t / (1 + t^2)).

        Redraws while 1 + t^2 vanishes, so the result is always on the curve.
        """
        while True:
            t = channel.draw_secure_felt()
            t_square = t.square()
            denominator = t_square + 1
            if not denominator.is_zero():
                break
        inverse = denominator.inverse()
        return CirclePoint((1 - t_square) * inverse, t.double() * inverse)


def double_x(x: F) -> F:
    """x-coordinate of 2P given x(P): 2x^2 - 1."""
    return x.square().double() - 1


M31_CIRCLE_GEN = CirclePoint(M31(2), M31(1268011823))
"""Generator of the order-2^31 circle group over M31."""


@lru_cache(maxsize=None)
def _index_to_point(index: int) -> CirclePoint:
    return M31_CIRCLE_GEN.mul(index)


# --- Point Indices ---


@dataclass(frozen=True)
class CirclePointIndex:
    """Additive name of the M31 point value * G, value taken modulo 2^31."""

    value: int

    def __post_init__(self):
        object.__setattr__(self, "value", self.value % M31_CIRCLE_ORDER)

    @classmethod
    def zero(cls) -> "CirclePointIndex":
        return cls(0)

    @classmethod
    def generator(cls) -> "CirclePointIndex":
        return cls(1)

    @classmethod
    def subgroup_gen(cls, log_size: int) -> "CirclePointIndex":
        """Generator of the subgroup of order 2^log_size."""
        if log_size > M31_CIRCLE_LOG_ORDER:
            raise ValueError(f"no circle subgroup of log order {log_size}")
        return cls(1 << (M31_CIRCLE_LOG_ORDER - log_size))

    def __add__(self, other: "CirclePointIndex") -> "CirclePointIndex":
        return CirclePointIndex(self.value + other.value)

    def __sub__(self, other: "CirclePointIndex") -> "CirclePointIndex":
        return CirclePointIndex(self.value - other.value)

    def __neg__(self) -> "CirclePointIndex":
        return CirclePointIndex(-self.value)

    def __mul__(self, scalar: int) -> "CirclePointIndex":
        return CirclePointIndex(self.value * scalar)

    def half(self) -> "CirclePointIndex":
        if self.value & 1:
            raise ArithmeticDomainError(f"index {self.value} has no half")
        return CirclePointIndex(self.value >> 1)

    def to_point(self) -> CirclePoint[M31]:
        return _index_to_point(self.value)


# --- Cosets and Domains ---


@dataclass(frozen=True)
class Coset:
    """initial + <step>, a coset of the subgroup of order 2^log_size."""

    initial_index: CirclePointIndex
    step_size: CirclePointIndex
    log_size: int

    @classmethod
    def new(cls, initial_index: CirclePointIndex, log_size: int) -> "Coset":
        return cls(initial_index, CirclePointIndex.subgroup_gen(log_size), log_size)

    @classmethod
    def subgroup(cls, log_size: int) -> "Coset":
        return cls.new(CirclePointIndex.zero(), log_size)

    @classmethod
    def odds(cls, log_size: int) -> "Coset":
        """G_{2n} + <G_n>."""
        return cls.new(CirclePointIndex.subgroup_gen(log_size + 1), log_size)

    @classmethod
    def half_odds(cls, log_size: int) -> "Coset":
        """G_{4n} + <G_n>; together with its conjugate it forms odds(log_size + 1)."""
        return cls.new(CirclePointIndex.subgroup_gen(log_size + 2), log_size)

    def size(self) -> int:
        return 1 << self.log_size

    @property
    def initial(self) -> CirclePoint[M31]:
        return self.initial_index.to_point()

    @property
    def step(self) -> CirclePoint[M31]:
        return self.step_size.to_point()

    def index_at(self, index: int) -> CirclePointIndex:
        return self.initial_index + self.step_size * index

    def at(self, index: int) -> CirclePoint[M31]:
        return self.index_at(index).to_point()

    def double(self) -> "Coset":
        if self.log_size == 0:
            raise ValueError("cannot double a single-point coset")
        return Coset(self.initial_index * 2, self.step_size * 2, self.log_size - 1)

    def repeated_double(self, n: int) -> "Coset":
        coset = self
        for _ in range(n):
            coset = coset.double()
        return coset

    def conjugate(self) -> "Coset":
        return Coset(-self.initial_index, -self.step_size, self.log_size)


@dataclass(frozen=True)
class CircleDomain:
    """half_coset union its conjugate; natural order lists the half coset first."""

    half_coset: Coset

    def log_size(self) -> int:
        return self.half_coset.log_size + 1

    def size(self) -> int:
        return 1 << self.log_size()

    def index_at(self, index: int) -> CirclePointIndex:
        half_size = self.half_coset.size()
        if index < half_size:
            return self.half_coset.index_at(index)
        return -self.half_coset.index_at(index - half_size)

    def at(self, index: int) -> CirclePoint[M31]:
        return self.index_at(index).to_point()

    def is_canonic(self) -> bool:
        return self.half_coset.initial_index * 4 == self.half_coset.step_size


@dataclass(frozen=True)
class CanonicCoset:
    """odds(log_size): the trace domain of a component with 2^log_size rows."""

    log_size: int

    def __post_init__(self):
        if self.log_size <= 0:
            raise ValueError("canonic coset log size must be positive")

    @property
    def coset(self) -> Coset:
        return Coset.odds(self.log_size)

    def size(self) -> int:
        return 1 << self.log_size

    def circle_domain(self) -> CircleDomain:
        return CircleDomain(Coset.half_odds(self.log_size - 1))

    @property
    def step(self) -> CirclePoint[M31]:
        return CirclePointIndex.subgroup_gen(self.log_size).to_point()

    def at(self, index: int) -> CirclePoint[M31]:
        return self.coset.at(index)


@dataclass(frozen=True)
class LineDomain:
    """x-coordinates of a coset whose points have pairwise distinct x."""

    coset: Coset

    def __post_init__(self):
        if self.coset.log_size >= 2:
            return
        if self.coset.log_size == 1 and self.coset.initial.x == -self.coset.initial.x:
            raise ArithmeticDomainError("line domain points must have distinct x")

    def log_size(self) -> int:
        return self.coset.log_size

    def size(self) -> int:
        return self.coset.size()

    def at(self, index: int) -> M31:
        return self.coset.at(index).x

    def double(self) -> "LineDomain":
        return LineDomain(self.coset.double())


# --- Helpers ---


def bit_reverse_index(index: int, log_size: int) -> int:
    """Reverse the low log_size bits of index."""
    if log_size == 0:
        return index
    return int(format(index, f"0{log_size}b")[::-1], 2)


def coset_vanishing(coset: Coset, point: CirclePoint) -> Union[M31, QM31]:
    """Evaluate at point the polynomial vanishing exactly on coset.

    Shifts point by -initial + step/2 so the coset maps onto the canonic
    odds coset, then takes x after log_size - 1 doublings.
    """
    shift = (coset.step_size.half() - coset.initial_index).to_point()
    if isinstance(point.x, QM31):
        shift = shift.into_ef()
    shifted = point + shift
    x = shifted.x
    for _ in range(1, coset.log_size):
        x = double_x(x)
    return x
