""" Candidate points: the sparse set of pixels worth tracking.

Candidates are picked where the image gradient is strong, with a coarse to
fine competition between neighbouring pixels so that they spread over the
whole image instead of piling up on the few strongest edges.
"""
import logging
from typing import List, Optional, Tuple

import attr
import cv2
import numpy as np

from dvo.config import DepthPyramidConfig
from dvo.errors import InvalidGeometryError
from dvo.inverse_depth import InsertionPolicy, InverseDepth, InverseDepthMap, inverse_depth_from_depth_map
from dvo.multires import block_stack, halve, limited_sequence
from dvo.types import InverseDepthArray
from utils.custom_types import DepthImageArray, FloatImageArray, GrayImageArray, MaskArray, Pixel

logger = logging.getLogger(__name__)


@attr.frozen
class Candidate:
    pixel: Pixel   # at level 0
    estimate: InverseDepth
    score: float   # gradient magnitude


def gradient_magnitude(img: GrayImageArray) -> FloatImageArray:
    """ Norm of centered differences. Meaningless on the 1 px border. """
    img = img.astype(np.float32)
    grad_x = cv2.Sobel(img, cv2.CV_32F, 1, 0, ksize=1)
    grad_y = cv2.Sobel(img, cv2.CV_32F, 0, 1, ksize=1)
    return cv2.magnitude(grad_x, grad_y)


def _select_in_blocks(finer: FloatImageArray, parent_selected: MaskArray, diff_threshold: float) -> MaskArray:
    """ Inside each block of a selected parent keep the strongest child,
    and the second strongest too if it is almost as strong. """
    blocks = block_stack(finer)
    half_h, half_w = blocks.shape[:2]

    order = np.argsort(-blocks, axis=-1, kind='stable')
    sorted_blocks = np.take_along_axis(blocks, order, axis=-1)
    keep_second = (sorted_blocks[..., 0] - sorted_blocks[..., 1]) < diff_threshold

    chosen_sorted = np.zeros(blocks.shape, dtype=bool)
    chosen_sorted[..., 0] = True
    chosen_sorted[..., 1] = keep_second

    chosen = np.zeros(blocks.shape, dtype=bool)
    np.put_along_axis(chosen, order, chosen_sorted, axis=-1)
    chosen &= parent_selected[:half_h, :half_w, np.newaxis]

    selected = np.zeros(finer.shape, dtype=bool)
    selected[:2 * half_h, :2 * half_w] = chosen.reshape(half_h, half_w, 2, 2).transpose(0, 2, 1, 3).reshape(
        2 * half_h, 2 * half_w
    )
    return selected


def region_competition(gradient: FloatImageArray, nb_levels: int, diff_threshold: float) -> MaskArray:
    """ Walk the max-pooled gradient pyramid from the coarsest level down to level 0. """
    multires_gradient = limited_sequence(
        nb_levels,
        gradient,
        lambda m: m,
        lambda m: halve(m, lambda blocks: blocks.max(axis=-1))
    )

    selected = np.ones(multires_gradient[-1].shape, dtype=bool)
    for finer in reversed(multires_gradient[:-1]):
        selected = _select_in_blocks(finer, selected, diff_threshold)

    return selected


def _border_mask(shape: Tuple[int, int], margin: int) -> MaskArray:
    mask = np.zeros(shape, dtype=bool)
    h, w = shape
    if h > 2 * margin and w > 2 * margin:
        mask[margin:h - margin, margin:w - margin] = True
    return mask


def select_candidates(
    img: GrayImageArray,
    config: DepthPyramidConfig,
    inverse_depth_prior: Optional[Tuple[InverseDepthArray, InverseDepthArray]] = None,
) -> List[Candidate]:
    """ Candidates in row-major order, unique, strictly inside the border margin.

    Without prior every candidate gets the default hypothesis of the config.
    With a prior (values, variances), candidates take the prior at their
    pixel, and are skipped where it is unknown (NaN).
    An empty list is a valid answer: e.g. nothing stands out of a uniform image.
    """
    img = np.asarray(img)
    if img.ndim != 2 or img.size == 0:
        raise InvalidGeometryError(f'expected a non-empty grayscale image, got shape {img.shape}')

    if inverse_depth_prior is not None:
        prior_values, prior_variances = inverse_depth_prior
        if prior_values.shape != img.shape or prior_variances.shape != img.shape:
            raise InvalidGeometryError(f'prior of shape {prior_values.shape} does not match image {img.shape}')

    gradient = gradient_magnitude(img)
    mask = (
        region_competition(gradient, config.nb_levels, config.candidates_diff_threshold)
        & (gradient >= config.gradient_threshold)
        & _border_mask(img.shape, config.border_margin)
    )

    candidates = []
    nb_without_prior = 0

    for row, col in np.argwhere(mask):
        if inverse_depth_prior is None:
            estimate = InverseDepth(value=config.default_inverse_depth, variance=config.default_variance)
        elif np.isnan(prior_values[row, col]):
            nb_without_prior += 1
            continue
        else:
            estimate = InverseDepth(value=float(prior_values[row, col]), variance=float(prior_variances[row, col]))

        candidates.append(Candidate(pixel=(int(row), int(col)), estimate=estimate, score=float(gradient[row, col])))

    if nb_without_prior > 0:
        logger.debug('Skipped %d candidates without inverse depth prior', nb_without_prior)
    logger.debug('Selected %d candidates in %dx%d image', len(candidates), *img.shape)

    return candidates


def select_candidates_with_depth(
    img: GrayImageArray,
    depth_map: DepthImageArray,
    config: DepthPyramidConfig,
) -> List[Candidate]:
    """ Candidates seeded from a (ground truth / sensor) depth map. """
    prior = inverse_depth_from_depth_map(depth_map, config.depth_scale, config.idepth_variance)
    return select_candidates(img, config, inverse_depth_prior=prior)


def candidates_to_depth_map(
    candidates: List[Candidate],
    height: int,
    width: int,
    policy: InsertionPolicy = InsertionPolicy.REJECT,
) -> InverseDepthMap:
    """ Sparse level 0 map: only candidates are known. """
    depth_map = InverseDepthMap.empty(height, width, level=0, policy=policy)
    for candidate in candidates:
        depth_map.insert(candidate.pixel, candidate.estimate)
    return depth_map
