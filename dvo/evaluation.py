""" How good is a depth pyramid built by a strategy, compared to ground truth. """
from typing import List, Optional

import attr
import numpy as np

from dvo.candidates import Candidate, candidates_to_depth_map
from dvo.config import DepthPyramidConfig
from dvo.inverse_depth import InverseDepthMap, inverse_depth_map_from_depth_map
from dvo.multires import DepthPyramid, build_pyramid, mean_pyramid
from dvo.strategies import AggregationStrategy
from utils.custom_types import DepthImageArray


@attr.frozen
class StrategyEvaluation:
    ratio: float   # known cells in both estimate and ground truth, over the full grid
    rmse_or_none: Optional[float]   # on those cells, None if there are none


def evaluate_inverse_depth(estimate: InverseDepthMap, ground_truth: InverseDepthMap) -> StrategyEvaluation:
    assert estimate.shape == ground_truth.shape, f'{estimate.shape=} != {ground_truth.shape=}'

    both_known = estimate.known_mask & ground_truth.known_mask
    count = int(np.count_nonzero(both_known))
    if count == 0:
        return StrategyEvaluation(ratio=0.0, rmse_or_none=None)

    diffs = estimate.values[both_known] - ground_truth.values[both_known]
    return StrategyEvaluation(
        ratio=count / estimate.values.size,
        rmse_or_none=float(np.sqrt(np.mean(diffs ** 2)))
    )


def ground_truth_pyramid(depth_map: DepthImageArray, config: DepthPyramidConfig) -> List[InverseDepthMap]:
    """ Depth maps are averaged in depth, 2x2 block by 2x2 block, then inverted. """
    return [
        inverse_depth_map_from_depth_map(depth, config.depth_scale, config.idepth_variance, level=level)
        for level, depth in enumerate(mean_pyramid(config.max_pyramid_levels, depth_map))
    ]


def evaluate_strategy_on(
    depth_map: DepthImageArray,
    candidates: List[Candidate],
    strategy: AggregationStrategy,
    config: DepthPyramidConfig,
) -> StrategyEvaluation:
    """ Build a pyramid from the candidates only (this emulates back projection of
    known points into a new keyframe) and compare its coarsest level with the
    ground truth at the same resolution. """
    height, width = depth_map.shape
    level_0 = candidates_to_depth_map(candidates, height, width, policy=config.insertion_policy)

    pyramid = build_pyramid(
        level_0,
        strategy,
        max_levels=config.max_pyramid_levels,
        min_level_size=config.min_level_size
    )
    ground_truth = ground_truth_pyramid(depth_map, config)

    return evaluate_pyramid(pyramid, ground_truth)


def evaluate_pyramid(pyramid: DepthPyramid, ground_truth: List[InverseDepthMap]) -> StrategyEvaluation:
    coarsest = pyramid.coarsest
    return evaluate_inverse_depth(coarsest, ground_truth[coarsest.level])
