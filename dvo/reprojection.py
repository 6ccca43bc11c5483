""" Moving inverse depth estimates from one camera to another.

Both cameras have to be expressed at the resolution of the depth map level,
e.g. Camera.at_level(depth_map.level) if the map comes from a pyramid.
"""
import logging
from typing import Optional

import numpy as np

from dvo.cam import BackProjectionResult, Camera, ProjectionResult
from dvo.inverse_depth import InverseDepth, InverseDepthMap
from utils.custom_types import GrayImageArray, SubPixel

logger = logging.getLogger(__name__)


def bilinear_interpolation(img: GrayImageArray, sub_pixel: SubPixel) -> float:
    """ Intensity at a fractional (row, col), which has to lie inside the image. """
    row, col = sub_pixel
    h, w = img.shape
    row_0 = min(int(np.floor(row)), h - 2) if h > 1 else 0
    col_0 = min(int(np.floor(col)), w - 2) if w > 1 else 0
    a = col - col_0
    b = row - row_0

    row_1 = min(row_0 + 1, h - 1)
    col_1 = min(col_0 + 1, w - 1)

    img = img.astype(np.float64, copy=False)
    return float(
        (1.0 - a) * (1.0 - b) * img[row_0, col_0]
        + (1.0 - a) * b * img[row_1, col_0]
        + a * (1.0 - b) * img[row_0, col_1]
        + a * b * img[row_1, col_1]
    )


def reproject_depth_map(depth_map: InverseDepthMap, cam_from: Camera, cam_to: Camera) -> InverseDepthMap:
    """ Known cells of depth_map seen from cam_to. The inverse depth is the one of
    the point in cam_to, variance is carried over. Cells failing to project are
    dropped; when two land on the same pixel, the closest one wins. """
    reprojected = InverseDepthMap.empty(
        cam_to.intrinsics.screen_h,
        cam_to.intrinsics.screen_w,
        level=depth_map.level,
        policy=depth_map.policy
    )
    nb_failures = 0

    for pixel, estimate in depth_map.known_cells():
        back_projected = cam_from.back_project(pixel, estimate.value)
        if not isinstance(back_projected, BackProjectionResult.Success):
            nb_failures += 1
            continue

        projected = cam_to.project(back_projected.point_in_world)
        if not isinstance(projected, ProjectionResult.Success):
            nb_failures += 1
            continue

        new_pixel = projected.pixel
        if not reprojected.in_bounds(new_pixel):
            nb_failures += 1
            continue

        existing = reprojected.get(new_pixel)
        if existing is None or existing.value < projected.inverse_depth:
            reprojected.insert(new_pixel, InverseDepth(value=projected.inverse_depth, variance=estimate.variance))

    logger.debug('Reprojection: %d of %d cells failed', nb_failures, depth_map.nb_known)
    return reprojected


def photometric_reprojection_error(
    depth_map: InverseDepthMap,
    img_from: GrayImageArray,
    img_to: GrayImageArray,
    cam_from: Camera,
    cam_to: Camera,
) -> Optional[float]:
    """ Inverse-variance weighted mean of |img_to(reprojected) - img_from(pixel)|.
    If some estimates are fixed (variance 0), only those count, with equal weights.
    None if no cell reprojects into img_to. """
    errors = []
    variances = []

    for pixel, estimate in depth_map.known_cells():
        back_projected = cam_from.back_project(pixel, estimate.value)
        if not isinstance(back_projected, BackProjectionResult.Success):
            continue
        projected = cam_to.project(back_projected.point_in_world)
        if not isinstance(projected, ProjectionResult.Success):
            continue

        intensity_to = bilinear_interpolation(img_to, projected.sub_pixel)
        intensity_from = float(img_from[pixel])
        errors.append(abs(intensity_to - intensity_from))
        variances.append(estimate.variance)

    if len(errors) == 0:
        return None

    variances = np.array(variances, dtype=np.float64)
    if np.any(variances == 0.0):
        weights = (variances == 0.0).astype(np.float64)
    else:
        weights = 1.0 / variances

    return float(np.average(np.array(errors), weights=weights))
