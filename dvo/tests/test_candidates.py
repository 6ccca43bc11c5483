import numpy as np
import pytest

from dvo.candidates import candidates_to_depth_map, gradient_magnitude, region_competition, select_candidates, \
    select_candidates_with_depth
from dvo.config import DepthPyramidConfig
from dvo.errors import InvalidGeometryError
from dvo.inverse_depth import InverseDepth


def _vertical_edge_image(height: int = 32, width: int = 32) -> np.ndarray:
    img = np.zeros((height, width), dtype=np.uint8)
    img[:, width // 2:] = 255
    return img


@pytest.mark.parametrize('threshold', [0.5, 7.0, 100.0])
def test_uniform_image_has_no_candidates(threshold):
    img = np.full((32, 48), 128, dtype=np.uint8)
    config = DepthPyramidConfig(gradient_threshold=threshold)
    assert select_candidates(img, config) == []


def test_candidates_lie_on_the_edge():
    img = _vertical_edge_image()
    config = DepthPyramidConfig.from_defaults()
    candidates = select_candidates(img, config)

    pixels = [candidate.pixel for candidate in candidates]
    assert len(pixels) > 0
    assert len(set(pixels)) == len(pixels)
    assert pixels == sorted(pixels)
    assert all(col in (15, 16) for _, col in pixels)
    assert all(candidate.score == pytest.approx(255.0) for candidate in candidates)
    assert all(
        candidate.estimate == InverseDepth(value=config.default_inverse_depth, variance=config.default_variance)
        for candidate in candidates
    )


def test_border_margin_is_excluded():
    img = _vertical_edge_image()
    config = DepthPyramidConfig(border_margin=4)
    candidates = select_candidates(img, config)

    assert len(candidates) > 0
    for candidate in candidates:
        row, col = candidate.pixel
        assert 4 <= row < 32 - 4
        assert 4 <= col < 32 - 4


def test_gradient_magnitude_of_an_edge():
    gradient = gradient_magnitude(_vertical_edge_image())
    assert gradient.shape == (32, 32)
    assert np.allclose(gradient[:, 15:17], 255.0)
    assert np.allclose(gradient[:, :14], 0.0)


def test_region_competition_spreads_selection():
    gradient = np.zeros((8, 8), dtype=np.float32)
    gradient[1, 1] = 50.0
    gradient[5, 6] = 80.0
    selected = region_competition(gradient, nb_levels=4, diff_threshold=1.0)

    assert selected.shape == (8, 8)
    assert selected[5, 6]
    # at most two children of a selected parent are kept, at every level
    assert selected.sum() <= 2 ** 3 * 2


def test_seeding_from_depth_map():
    img = _vertical_edge_image()
    depth = np.full(img.shape, 10000, dtype=np.uint16)
    depth[:8] = 0   # no measurement in the top rows

    config = DepthPyramidConfig(idepth_variance=0.01)
    candidates = select_candidates_with_depth(img, depth, config)

    assert len(candidates) > 0
    for candidate in candidates:
        assert candidate.pixel[0] >= 8
        assert candidate.estimate == InverseDepth(value=0.5, variance=0.01)


def test_rejects_malformed_images():
    config = DepthPyramidConfig.from_defaults()
    with pytest.raises(InvalidGeometryError):
        select_candidates(np.zeros((0, 10), dtype=np.uint8), config)
    with pytest.raises(InvalidGeometryError):
        select_candidates(np.zeros((10, 10, 3), dtype=np.uint8), config)
    with pytest.raises(InvalidGeometryError):
        select_candidates(
            np.zeros((10, 10), dtype=np.uint8),
            config,
            inverse_depth_prior=(np.zeros((5, 5)), np.zeros((5, 5)))
        )


def test_candidates_to_depth_map():
    img = _vertical_edge_image()
    candidates = select_candidates(img, DepthPyramidConfig.from_defaults())
    depth_map = candidates_to_depth_map(candidates, *img.shape)

    assert depth_map.shape == img.shape
    assert depth_map.level == 0
    assert depth_map.nb_known == len(candidates)
    assert [pixel for pixel, _ in depth_map.known_cells()] == [c.pixel for c in candidates]


def test_no_candidates_gives_empty_level_0():
    img = np.zeros((16, 16), dtype=np.uint8)
    depth_map = candidates_to_depth_map(select_candidates(img, DepthPyramidConfig()), 16, 16)
    assert depth_map.nb_known == 0
