import numpy as np
import pytest

from dvo.errors import FrozenDepthMapError
from dvo.inverse_depth import InverseDepth, InverseDepthMap
from dvo.multires import block_stack, build_pyramid, build_pyramids, gradients_squared_norm, halve, \
    limited_sequence, mean_pyramid, sequence
from dvo.strategies import DsoMean, StatisticallySimilar

STRATEGIES = [DsoMean(), StatisticallySimilar()]


def _random_sparse_map(height: int, width: int, seed: int = 0, density: float = 0.1) -> InverseDepthMap:
    rng = np.random.default_rng(seed)
    values = rng.uniform(0.1, 2.0, size=(height, width))
    variances = rng.uniform(0.001, 0.1, size=(height, width))
    values[rng.uniform(size=(height, width)) > density] = np.nan
    return InverseDepthMap.from_arrays(values, variances)


def test_block_stack_children_order():
    mat = np.arange(16).reshape(4, 4)
    blocks = block_stack(mat)

    assert blocks.shape == (2, 2, 4)
    assert np.array_equal(blocks[0, 0], [0, 1, 4, 5])
    assert np.array_equal(blocks[1, 1], [10, 11, 14, 15])


def test_halve_drops_odd_border():
    mat = np.ones((5, 7))
    halved = halve(mat, lambda blocks: blocks.sum(axis=-1))
    assert halved.shape == (2, 3)
    assert np.all(halved == 4)

    assert halve(np.ones((1, 8)), lambda blocks: blocks.sum(axis=-1)) is None


def test_sequences():
    assert sequence(10, lambda x: x, lambda x: x // 2 if x > 1 else None) == [10, 5, 2, 1]
    assert limited_sequence(2, 10, lambda x: x, lambda x: x // 2 if x > 1 else None) == [10, 5]
    assert limited_sequence(0, 10, lambda x: x, lambda x: x // 2) == [10]


def test_mean_pyramid():
    img = np.full((48, 64), 200, dtype=np.uint8)
    img[0, 0] = 0
    pyramid = mean_pyramid(6, img)

    assert [level.shape for level in pyramid] == [(48, 64), (24, 32), (12, 16), (6, 8), (3, 4), (1, 2)]
    assert all(level.dtype == np.uint8 for level in pyramid)
    assert pyramid[0] is img
    assert pyramid[1][0, 0] == 150

    depth = np.full((4, 4), 65535, dtype=np.uint16)
    assert mean_pyramid(3, depth)[-1][0, 0] == 65535


def test_gradients_squared_norm():
    img = np.zeros((8, 8), dtype=np.uint8)
    img[:, 3:] = 100
    gradients = gradients_squared_norm(mean_pyramid(3, img))

    assert len(gradients) == 2
    assert gradients[0].shape == (4, 4)
    assert np.all(gradients[0][:, 1] == (2 * 100) ** 2 // 4)
    assert np.all(gradients[0][:, [0, 2, 3]] == 0)
    assert np.all(gradients[1][:, 0] == (2 * 50) ** 2 // 4)
    assert np.all(gradients[1][:, 1] == 0)


def test_level_sizes_halve():
    level_0 = _random_sparse_map(37, 53)
    pyramid = build_pyramid(level_0, DsoMean())

    assert pyramid.level_count() == 6
    for k in range(pyramid.level_count() - 1):
        assert pyramid.level(k + 1).height == pyramid.level(k).height // 2
        assert pyramid.level(k + 1).width == pyramid.level(k).width // 2
        assert pyramid.level(k + 1).level == k + 1
    assert pyramid.coarsest.shape == (1, 1)


def test_level_limits():
    level_0 = _random_sparse_map(37, 53)

    assert build_pyramid(level_0, DsoMean(), max_levels=3).level_count() == 3
    assert build_pyramid(level_0, DsoMean(), min_level_size=4).coarsest.shape == (4, 6)
    assert build_pyramid(InverseDepthMap.empty(1, 10), DsoMean()).level_count() == 1

    with pytest.raises(IndexError):
        build_pyramid(level_0, DsoMean(), max_levels=3).level(3)


def test_parent_covers_its_block():
    level_0 = InverseDepthMap.empty(8, 8)
    level_0.insert((2, 3), InverseDepth(value=0.7, variance=0.01))
    pyramid = build_pyramid(level_0, DsoMean())

    level_1 = pyramid.level(1)
    assert level_1.get((1, 1)) == InverseDepth(value=0.7, variance=0.01)
    assert level_1.nb_known == 1
    assert pyramid.level(2).get((0, 0)) == InverseDepth(value=0.7, variance=0.01)


def test_empty_level_0_gives_empty_pyramid():
    pyramid = build_pyramid(InverseDepthMap.empty(16, 16), StatisticallySimilar())
    assert all(level.nb_known == 0 for level in pyramid)


@pytest.mark.parametrize('strategy', STRATEGIES)
def test_rebuilding_is_bit_identical(strategy):
    level_0 = _random_sparse_map(64, 48, density=0.3)

    first = build_pyramid(level_0, strategy)
    second = build_pyramid(level_0, strategy)

    assert first.is_identical_to(second)
    assert first == second
    assert first.strategy_name == strategy.name


def test_pyramid_is_immutable_and_detached():
    level_0 = _random_sparse_map(16, 16, density=0.5)
    pyramid = build_pyramid(level_0, DsoMean())

    for level in pyramid:
        assert level.is_frozen
        with pytest.raises(FrozenDepthMapError):
            level.insert((0, 0), InverseDepth(value=1.0, variance=0.0))

    level_0.insert((0, 0), InverseDepth(value=1.5, variance=0.0))
    assert pyramid.level(0).get((0, 0)) != level_0.get((0, 0))


def test_strategies_diverge_on_discontinuity():
    level_0 = InverseDepthMap.empty(2, 2)
    for pixel, value in zip([(0, 0), (0, 1), (1, 0), (1, 1)], [1.0, 1.01, 0.99, 50.0]):
        level_0.insert(pixel, InverseDepth(value=value, variance=1e-4))

    dso = build_pyramid(level_0, DsoMean()).coarsest.get((0, 0))
    stat = build_pyramid(level_0, StatisticallySimilar()).coarsest.get((0, 0))

    assert dso.value == pytest.approx(13.25)
    assert stat.value == pytest.approx(1.0, abs=1e-6)


def test_parallel_frames_match_sequential_builds():
    level_0_maps = [_random_sparse_map(32, 40, seed=seed, density=0.2) for seed in range(5)]
    strategy = StatisticallySimilar()

    pyramids = build_pyramids(level_0_maps, strategy, max_workers=3)

    assert len(pyramids) == len(level_0_maps)
    for level_0, pyramid in zip(level_0_maps, pyramids):
        assert pyramid.is_identical_to(build_pyramid(level_0, strategy))


def test_pyramids_of_different_maps_differ():
    first = build_pyramid(_random_sparse_map(16, 16, seed=0), DsoMean())
    second = build_pyramid(_random_sparse_map(16, 16, seed=1), DsoMean())

    assert first != second
    assert first != build_pyramid(_random_sparse_map(16, 16, seed=0), DsoMean(), max_levels=2)


@pytest.mark.parametrize('strategy', STRATEGIES)
def test_huge_inverse_depths_survive_the_pyramid(strategy):
    level_0 = InverseDepthMap.from_arrays(np.full((4, 4), 1e308), np.full((4, 4), 1e-4))
    pyramid = build_pyramid(level_0, strategy)

    assert pyramid.coarsest.get((0, 0)).value == pytest.approx(1e308)
