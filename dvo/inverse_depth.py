""" Inverse depth estimates and the single level inverse depth map.

We keep inverse depth d = 1 / Z rather than depth Z: uncertainty is close to
gaussian in d, even for points very far away (d -> 0).

A map covers exactly the pixel grid of one pyramid level. Cells without an
estimate are unknown (stored as NaN), which is a different thing than an
inverse depth of zero (a point at infinity).
"""
import enum
import logging
import math
from typing import Iterator, Optional, Tuple

import attr
import numpy as np

from dvo.errors import FrozenDepthMapError, InvalidGeometryError
from dvo.types import InverseDepthArray
from utils.custom_types import DepthImageArray, Pixel

logger = logging.getLogger(__name__)


@attr.frozen
class InverseDepth:
    value: float
    variance: float

    @classmethod
    def from_depth(cls, depth: float, variance: float) -> 'InverseDepth':
        return cls(value=1.0 / depth, variance=variance)

    @property
    def is_fixed(self) -> bool:
        """ Variance of zero marks an estimate seeded from ground truth. """
        return self.variance == 0.0

    @property
    def depth(self) -> float:
        return math.inf if self.value == 0.0 else 1.0 / self.value


class InsertionPolicy(enum.Enum):
    REJECT = 'reject'   # negative or non-finite input raises
    CLAMP = 'clamp'     # negative input clamped to zero, non-finite input still raises


def _check_estimate(value: float, variance: float, policy: InsertionPolicy) -> Tuple[float, float]:
    if not (math.isfinite(value) and math.isfinite(variance)):
        raise InvalidGeometryError(f'non-finite inverse depth estimate: {value=}, {variance=}')

    if policy is InsertionPolicy.CLAMP:
        return max(value, 0.0), max(variance, 0.0)

    if value < 0.0:
        raise InvalidGeometryError(f'negative inverse depth: {value=}')
    if variance < 0.0:
        raise InvalidGeometryError(f'negative variance: {variance=}')

    return value, variance


def _check_arrays(
    values: InverseDepthArray,
    variances: InverseDepthArray,
    policy: InsertionPolicy
) -> Tuple[InverseDepthArray, InverseDepthArray]:
    """ Vectorized counterpart of _check_estimate. NaN values are unknown cells. """
    values = np.array(values, dtype=np.float64)
    variances = np.array(variances, dtype=np.float64)

    if values.ndim != 2 or values.shape != variances.shape:
        raise InvalidGeometryError(f'expected two 2d arrays of same shape, got {values.shape} and {variances.shape}')

    known = ~np.isnan(values)
    if np.any(np.isinf(values[known])) or not np.all(np.isfinite(variances[known])):
        raise InvalidGeometryError('non-finite inverse depth estimate in known cells')

    if policy is InsertionPolicy.CLAMP:
        values[known] = np.maximum(values[known], 0.0)
        variances[known] = np.maximum(variances[known], 0.0)
    else:
        if np.any(values[known] < 0.0):
            raise InvalidGeometryError('negative inverse depth in known cells')
        if np.any(variances[known] < 0.0):
            raise InvalidGeometryError('negative variance in known cells')

    variances[~known] = np.nan
    return values, variances


def _array_equal_nan(a: np.ndarray, b: np.ndarray) -> bool:
    return a.shape == b.shape and bool(np.array_equal(a, b, equal_nan=True))


@attr.define
class InverseDepthMap:
    """ Inverse depth estimates of one pyramid level, indexed by (row, col). """
    level: int
    policy: InsertionPolicy
    _values: InverseDepthArray = attr.ib(repr=False, eq=attr.cmp_using(eq=_array_equal_nan))
    _variances: InverseDepthArray = attr.ib(repr=False, eq=attr.cmp_using(eq=_array_equal_nan))
    _frozen: bool = attr.ib(default=False, eq=False)

    @classmethod
    def empty(
        cls,
        height: int,
        width: int,
        level: int = 0,
        policy: InsertionPolicy = InsertionPolicy.REJECT
    ) -> 'InverseDepthMap':
        if height < 0 or width < 0:
            raise InvalidGeometryError(f'negative map size: {height=}, {width=}')
        return cls(
            level=level,
            policy=policy,
            values=np.full((height, width), np.nan, dtype=np.float64),
            variances=np.full((height, width), np.nan, dtype=np.float64),
        )

    @classmethod
    def from_arrays(
        cls,
        values: InverseDepthArray,
        variances: InverseDepthArray,
        level: int = 0,
        policy: InsertionPolicy = InsertionPolicy.REJECT
    ) -> 'InverseDepthMap':
        values, variances = _check_arrays(values, variances, policy)
        return cls(level=level, policy=policy, values=values, variances=variances)

    @property
    def shape(self) -> Tuple[int, int]:
        return self._values.shape

    @property
    def height(self) -> int:
        return self._values.shape[0]

    @property
    def width(self) -> int:
        return self._values.shape[1]

    @property
    def values(self) -> InverseDepthArray:
        """ Read only view, NaN where unknown. """
        view = self._values.view()
        view.flags.writeable = False
        return view

    @property
    def variances(self) -> InverseDepthArray:
        view = self._variances.view()
        view.flags.writeable = False
        return view

    @property
    def known_mask(self) -> np.ndarray:
        return ~np.isnan(self._values)

    @property
    def nb_known(self) -> int:
        return int(np.count_nonzero(self.known_mask))

    @property
    def density(self) -> float:
        """ Ratio of known cells over the full grid. """
        size = self._values.size
        return self.nb_known / size if size > 0 else 0.0

    @property
    def is_frozen(self) -> bool:
        return self._frozen

    def in_bounds(self, pixel: Pixel) -> bool:
        row, col = pixel
        return 0 <= row < self.height and 0 <= col < self.width

    def _check_pixel(self, pixel: Pixel):
        if not self.in_bounds(pixel):
            raise InvalidGeometryError(f'pixel {pixel} outside of level {self.level} grid of shape {self.shape}')

    def get(self, pixel: Pixel) -> Optional[InverseDepth]:
        self._check_pixel(pixel)
        value = self._values[pixel]
        if np.isnan(value):
            return None
        return InverseDepth(value=float(value), variance=float(self._variances[pixel]))

    def is_known(self, pixel: Pixel) -> bool:
        return self.get(pixel) is not None

    def insert(self, pixel: Pixel, estimate: InverseDepth):
        """ Insert or update the estimate of a cell. """
        if self._frozen:
            raise FrozenDepthMapError(f'depth map of level {self.level} is frozen')
        self._check_pixel(pixel)
        value, variance = _check_estimate(estimate.value, estimate.variance, self.policy)
        self._values[pixel] = value
        self._variances[pixel] = variance

    def known_cells(self) -> Iterator[Tuple[Pixel, InverseDepth]]:
        """ Known cells in row-major order. """
        for row, col in np.argwhere(self.known_mask):
            yield (int(row), int(col)), InverseDepth(
                value=float(self._values[row, col]),
                variance=float(self._variances[row, col])
            )

    def copy(self) -> 'InverseDepthMap':
        """ Mutable deep copy, even of a frozen map. """
        return InverseDepthMap(
            level=self.level,
            policy=self.policy,
            values=np.copy(self._values),
            variances=np.copy(self._variances),
        )

    def freeze(self) -> 'InverseDepthMap':
        self._frozen = True
        self._values.flags.writeable = False
        self._variances.flags.writeable = False
        return self

    def is_identical_to(self, other: 'InverseDepthMap') -> bool:
        """ Bit for bit comparison, unknown cells compare equal. """
        return (
            self.level == other.level
            and self.shape == other.shape
            and self._values.tobytes() == other._values.tobytes()
            and self._variances.tobytes() == other._variances.tobytes()
        )


def inverse_depth_from_depth_map(
    depth_map: DepthImageArray,
    depth_scale: float,
    variance: float
) -> Tuple[InverseDepthArray, InverseDepthArray]:
    """ Depth png values are scaled, e.g. 5000 is 1 meter. Zero means no measurement. """
    depth = np.asarray(depth_map, dtype=np.float64)
    known = depth > 0

    values = np.full(depth.shape, np.nan, dtype=np.float64)
    values[known] = depth_scale / depth[known]

    variances = np.full(depth.shape, np.nan, dtype=np.float64)
    variances[known] = variance

    return values, variances


def inverse_depth_map_from_depth_map(
    depth_map: DepthImageArray,
    depth_scale: float,
    variance: float,
    level: int = 0
) -> InverseDepthMap:
    values, variances = inverse_depth_from_depth_map(depth_map, depth_scale, variance)
    return InverseDepthMap.from_arrays(values, variances, level=level)
