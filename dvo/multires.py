""" Helper functions for generation of multi-resolution data.

Every level of a pyramid is half the resolution of the previous one: a cell
(r, c) at level k + 1 summarizes the 2x2 block
(2r, 2c), (2r, 2c + 1), (2r + 1, 2c), (2r + 1, 2c + 1) at level k.
Since we are using 2x2 blocks, the last row / column of odd sized levels is dropped.
"""
import concurrent.futures
import logging
from typing import Callable, Iterator, List, Optional, Sequence, Tuple, TypeVar

import attr
import numpy as np

from dvo.inverse_depth import InverseDepthMap
from dvo.strategies import AggregationStrategy
from dvo.types import BlockStack
from utils.custom_types import Array, GrayImageArray
from utils.profiling import just_time

logger = logging.getLogger(__name__)

T = TypeVar('T')
U = TypeVar('U')


def block_stack(mat: Array) -> Optional[BlockStack]:
    """ (H, W) -> (H // 2, W // 2, 4), children in row-major order. None if a side is < 2. """
    h, w = mat.shape[:2]
    half_h, half_w = h // 2, w // 2
    if half_h == 0 or half_w == 0:
        return None

    cropped = mat[:2 * half_h, :2 * half_w]
    return cropped.reshape(half_h, 2, half_w, 2).transpose(0, 2, 1, 3).reshape(half_h, half_w, 4)


def halve(mat: Array, f: Callable[[BlockStack], Array]) -> Optional[Array]:
    """ Halve the resolution of a matrix by applying f to each 2x2 block.
    f gets the stack of all blocks at once and returns the (H // 2, W // 2) result. """
    blocks = block_stack(mat)
    if blocks is None:
        return None
    return f(blocks)


def sequence(mat: T, init: Callable[[T], U], f: Callable[[U], Optional[U]]) -> List[U]:
    """ Apply f to its own output until it returns None. The sequence starts with init(mat). """
    seq = [init(mat)]
    while (new_mat := f(seq[-1])) is not None:
        seq.append(new_mat)
    return seq


def limited_sequence(
    max_length: int,
    mat: T,
    init: Callable[[T], U],
    f: Callable[[U], Optional[U]]
) -> List[U]:
    """ Like sequence, but stops after max_length elements.
    max_length = 0 behaves as max_length = 1: init(mat) is always there. """
    length = 1

    def f_limited(x: U) -> Optional[U]:
        nonlocal length
        if length < max_length:
            length += 1
            return f(x)
        return None

    return sequence(mat, init, f_limited)


def _block_mean(blocks: BlockStack) -> Array:
    # integer mean, some precision is lost to keep the dtype (uint8 images, uint16 depth maps)
    return (blocks.astype(np.uint64).sum(axis=-1) // 4).astype(blocks.dtype)


def mean_pyramid(max_levels: int, img: GrayImageArray) -> List[GrayImageArray]:
    """ The original image stays as level 0, without copy. """
    return limited_sequence(max_levels, img, lambda m: m, lambda m: halve(m, _block_mean))


def _block_squared_gradient_norm(blocks: BlockStack) -> Array:
    blocks = blocks.astype(np.int32)
    top_left, top_right, bottom_left, bottom_right = (blocks[..., i] for i in range(4))
    grad_x = top_right + bottom_right - top_left - bottom_left
    grad_y = bottom_left + bottom_right - top_left - top_right
    return (grad_x * grad_x + grad_y * grad_y) // 4


def gradients_squared_norm(multires_img: Sequence[GrayImageArray]) -> List[Array]:
    """ Squared gradient norm at each resolution, computed on the 2x2 blocks of
    the image one level finer. There is one less level than in the image pyramid. """
    return [halve(img, _block_squared_gradient_norm) for img in multires_img[:-1]]


def halve_depth_map(depth_map: InverseDepthMap, strategy: AggregationStrategy) -> Optional[InverseDepthMap]:
    value_blocks = block_stack(depth_map.values)
    if value_blocks is None:
        return None
    variance_blocks = block_stack(depth_map.variances)

    parent_values, parent_variances = strategy.reduce_blocks(value_blocks, variance_blocks)
    return InverseDepthMap.from_arrays(
        parent_values,
        parent_variances,
        level=depth_map.level + 1,
        policy=depth_map.policy
    ).freeze()


@attr.frozen
class DepthPyramid:
    """ Inverse depth maps from full resolution (level 0) to coarsest. Read only. """
    levels: Tuple[InverseDepthMap, ...]
    strategy_name: str

    def level(self, k: int) -> InverseDepthMap:
        if not 0 <= k < len(self.levels):
            raise IndexError(f'pyramid has {len(self.levels)} levels, asked for level {k}')
        return self.levels[k]

    def level_count(self) -> int:
        return len(self.levels)

    @property
    def coarsest(self) -> InverseDepthMap:
        return self.levels[-1]

    def is_identical_to(self, other: 'DepthPyramid') -> bool:
        return (
            self.level_count() == other.level_count()
            and all(a.is_identical_to(b) for a, b in zip(self.levels, other.levels))
        )

    def __len__(self) -> int:
        return len(self.levels)

    def __iter__(self) -> Iterator[InverseDepthMap]:
        return iter(self.levels)


def build_pyramid(
    level_0: InverseDepthMap,
    strategy: AggregationStrategy,
    max_levels: Optional[int] = None,
    min_level_size: int = 1,
) -> DepthPyramid:
    """ Build levels 1..N by applying the strategy block-wise, level after level.

    Stops when a level cannot be halved anymore (a side < 2), when the next
    level would have a side smaller than min_level_size, or when max_levels
    levels (level 0 included) are built. The caller's map is copied, all
    levels of the result are frozen.
    """
    assert min_level_size >= 1, f'{min_level_size=} has to be at least 1'

    def next_level(depth_map: InverseDepthMap) -> Optional[InverseDepthMap]:
        halved = halve_depth_map(depth_map, strategy)
        if halved is None or min(halved.shape) < min_level_size:
            return None
        return halved

    def init(depth_map: InverseDepthMap) -> InverseDepthMap:
        return depth_map.copy().freeze()

    with just_time(f'building {strategy.name} pyramid', verbose=logger.isEnabledFor(logging.DEBUG)):
        if max_levels is None:
            levels = sequence(level_0, init, next_level)
        else:
            levels = limited_sequence(max_levels, level_0, init, next_level)

    logger.debug(
        'Built %s pyramid: %s',
        strategy.name,
        ', '.join(f'{m.height}x{m.width} ({m.nb_known} known)' for m in levels)
    )
    return DepthPyramid(levels=tuple(levels), strategy_name=strategy.name)


def build_pyramids(
    level_0_maps: Sequence[InverseDepthMap],
    strategy: AggregationStrategy,
    max_levels: Optional[int] = None,
    min_level_size: int = 1,
    max_workers: Optional[int] = None,
) -> List[DepthPyramid]:
    """ Pyramids of independent frames, built on a thread pool. Order of the input is kept.
    Frames share nothing mutable: each task copies its own level 0. """
    with concurrent.futures.ThreadPoolExecutor(max_workers=max_workers) as executor:
        return list(executor.map(
            lambda level_0: build_pyramid(level_0, strategy, max_levels=max_levels, min_level_size=min_level_size),
            level_0_maps
        ))
