""" Aggregation strategies: how the four children of a 2x2 block at level L
are fused into one parent cell at level L + 1.

Strategies work on whole levels at once: children of every block are stacked
on the last axis (see dvo.types.BlockStack), NaN marks an unknown child.
The result of a reduction only depends on the set of children, never on the
order in which they are stacked.
"""
from typing import Optional, Protocol, Tuple, runtime_checkable

import attr
import numpy as np

from dvo.inverse_depth import InverseDepth
from dvo.types import BlockStack, InverseDepthArray


@runtime_checkable
class AggregationStrategy(Protocol):
    name: str

    def reduce_blocks(
        self,
        values: BlockStack,
        variances: BlockStack
    ) -> Tuple[InverseDepthArray, InverseDepthArray]:
        """ Fuse children stacks of shape (..., 4) into parents of shape (...). """
        ...

    def reduce_block(
        self,
        a: Optional[InverseDepth],
        b: Optional[InverseDepth],
        c: Optional[InverseDepth],
        d: Optional[InverseDepth],
    ) -> Optional[InverseDepth]:
        """ Single block convenience wrapper around reduce_blocks. """
        children = (a, b, c, d)
        values = np.array([np.nan if x is None else x.value for x in children], dtype=np.float64)
        variances = np.array([np.nan if x is None else x.variance for x in children], dtype=np.float64)

        value, variance = self.reduce_blocks(values, variances)
        if np.isnan(value):
            return None
        return InverseDepth(value=float(value), variance=float(variance))


@attr.frozen
class DsoMean(AggregationStrategy):
    """ Average whatever is known in the block. A fully unknown block stays unknown,
    a single known child is still informative. """
    name: str = attr.ib(default='dso_mean', init=False)

    def reduce_blocks(
        self,
        values: BlockStack,
        variances: BlockStack
    ) -> Tuple[InverseDepthArray, InverseDepthArray]:
        known = ~np.isnan(values)
        nb_known = known.sum(axis=-1)

        with np.errstate(invalid='ignore', divide='ignore'):
            # divide before summing, large inverse depths would overflow otherwise
            share = 1.0 / np.expand_dims(nb_known, -1)
            mean_values = (np.where(known, values, 0.0) * share).sum(axis=-1)
            mean_variances = (np.where(known, variances, 0.0) * share).sum(axis=-1)

        parent_values = np.where(nb_known > 0, mean_values, np.nan)
        parent_variances = np.where(nb_known > 0, mean_variances, np.nan)

        return parent_values, parent_variances


def _weighted_mean(
    values: BlockStack,
    variances: BlockStack,
    members: np.ndarray
) -> Tuple[InverseDepthArray, InverseDepthArray]:
    """ Inverse-variance weighted mean of the members of each block and its variance.
    Fixed members (variance 0) take over: their plain mean with variance 0.
    NaN where a block has no member. """
    fixed = members & (variances == 0.0)
    nb_fixed = fixed.sum(axis=-1)
    soft = members & ~fixed

    with np.errstate(invalid='ignore', divide='ignore'):
        weights = np.where(soft, 1.0 / variances, 0.0)
        sum_weights = weights.sum(axis=-1)
        normalized_weights = weights / np.expand_dims(sum_weights, -1)
        soft_mean = (np.where(soft, values, 0.0) * normalized_weights).sum(axis=-1)
        soft_variance = 1.0 / sum_weights

        fixed_mean = (np.where(fixed, values, 0.0) / np.expand_dims(nb_fixed, -1)).sum(axis=-1)

    mean = np.where(nb_fixed > 0, fixed_mean, np.where(sum_weights > 0, soft_mean, np.nan))
    variance = np.where(nb_fixed > 0, 0.0, np.where(sum_weights > 0, soft_variance, np.nan))

    # a lonely member is taken as is, bit for bit
    single = members.sum(axis=-1) == 1
    mean = np.where(single, np.where(members, values, 0.0).sum(axis=-1), mean)
    variance = np.where(single, np.where(members, variances, 0.0).sum(axis=-1), variance)
    return mean, variance


def _normalized_deviations(
    values: BlockStack,
    variances: BlockStack,
    members: np.ndarray,
    min_std: float,
) -> BlockStack:
    """ For each member child: distance to the weighted mean of the other members,
    in standard deviations of that difference. 0 for non members and lonely members.
    The standard deviation is at least min_std, so that fixed children (variance 0)
    are ranked by how far off they are instead of all being infinitely off. """
    deviations = np.zeros(values.shape, dtype=np.float64)

    for i in range(values.shape[-1]):
        others = members.copy()
        others[..., i] = False
        others_mean, others_variance = _weighted_mean(values, variances, others)

        with np.errstate(invalid='ignore', divide='ignore'):
            diff = np.abs(values[..., i] - others_mean)
            std = np.maximum(np.sqrt(variances[..., i] + others_variance), min_std)
            z = diff / std

        has_others = ~np.isnan(others_mean)
        deviations[..., i] = np.where(members[..., i] & has_others, z, 0.0)

    return deviations


@attr.frozen
class StatisticallySimilar(AggregationStrategy):
    """ Only fuse children that agree with each other.

    A block straddling a depth discontinuity should not be smeared into a
    depth in between the two surfaces. Children are tested against the
    inverse-variance weighted mean of the other children; the worst child is
    excluded while it is more than k standard deviations off. Ties are
    excluded together, so two children disagreeing with each other leave the
    parent unknown: there is no majority to anchor the test.

    min_std is the smallest standard deviation a difference is measured with,
    in inverse depth units. It only matters between fixed children, which
    agree when they are within k * min_std of each other.
    """
    k: float = attr.ib(default=2.0, validator=attr.validators.gt(0.0))
    min_std: float = attr.ib(default=1e-6, validator=attr.validators.gt(0.0))
    name: str = attr.ib(default='statistically_similar', init=False)

    def select_consistent(self, values: BlockStack, variances: BlockStack) -> np.ndarray:
        """ Mask of children kept for fusion. """
        members = ~np.isnan(values)

        # every round excludes at least one child of each offending block
        for _ in range(values.shape[-1] - 1):
            deviations = _normalized_deviations(values, variances, members, self.min_std)
            worst = deviations.max(axis=-1, keepdims=True)
            offending = worst > self.k
            if not np.any(offending):
                break
            tied_with_worst = np.isclose(deviations, worst, rtol=1e-9, atol=0.0)
            members = members & ~(offending & tied_with_worst)

        return members

    def reduce_blocks(
        self,
        values: BlockStack,
        variances: BlockStack
    ) -> Tuple[InverseDepthArray, InverseDepthArray]:
        values = np.asarray(values, dtype=np.float64)
        variances = np.asarray(variances, dtype=np.float64)
        members = self.select_consistent(values, variances)
        return _weighted_mean(values, variances, members)


_STRATEGIES = {
    'dso_mean': DsoMean,
    'statistically_similar': StatisticallySimilar,
}


def strategy_from_name(name: str, **kwargs) -> AggregationStrategy:
    if name not in _STRATEGIES:
        raise ValueError(f'unknown aggregation strategy {name!r}, pick one of {sorted(_STRATEGIES)}')
    return _STRATEGIES[name](**kwargs)
