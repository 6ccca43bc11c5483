import numpy as np
import pytest

from dvo.cam import BackProjectionResult, Camera, CameraIntrinsics, ProjectionResult
from dvo.datasets.tum_rgbd import INTRINSICS_ICL_NUIM
from dvo.transforms import SE3_from_translation_and_quaternion


def _get_test_setup() -> CameraIntrinsics:
    return CameraIntrinsics(fx=320.0, fy=320.0, cx=320.0, cy=240.0, screen_h=480, screen_w=640)


def _rotated_camera(intrinsics: CameraIntrinsics) -> Camera:
    angle = np.deg2rad(10.0)
    quaternion = (0.0, np.sin(angle / 2), 0.0, np.cos(angle / 2))   # around y
    return Camera.from_intrinsics(intrinsics, SE3_from_translation_and_quaternion((0.1, 0.0, -1.0), quaternion))


def test_project_known_point():
    camera = Camera.from_intrinsics(_get_test_setup())
    projected = camera.project(np.array([0.5, -0.2, 4.0]))

    assert isinstance(projected, ProjectionResult.Success)
    assert projected.row == pytest.approx(224.0)
    assert projected.col == pytest.approx(360.0)
    assert projected.pixel == (224, 360)
    assert projected.inverse_depth == pytest.approx(0.25)


@pytest.mark.parametrize('point_in_world', [
    np.array([0.3, 0.1, 3.0]),
    np.array([-0.8, 0.5, 2.0]),
    np.array([0.0, 0.0, 10.0]),
])
def test_back_project_of_projection_is_identity(point_in_world):
    camera = _rotated_camera(_get_test_setup())
    projected = camera.project(point_in_world)
    assert isinstance(projected, ProjectionResult.Success)

    back_projected = camera.back_project(projected.sub_pixel, projected.inverse_depth)
    assert isinstance(back_projected, BackProjectionResult.Success)
    assert np.allclose(back_projected.point_in_world, point_in_world)


def test_round_trip_with_flipped_axis_and_skew():
    intrinsics = CameraIntrinsics(fx=481.2, fy=-480.0, cx=319.5, cy=239.5, screen_h=480, screen_w=640, skew=2.0)
    camera = Camera.from_intrinsics(intrinsics)
    point = np.array([0.2, 0.3, 2.5])

    projected = camera.project(point)
    assert isinstance(projected, ProjectionResult.Success)
    assert projected.row < intrinsics.cy   # y axis is flipped

    back_projected = camera.back_project(projected.sub_pixel, projected.inverse_depth)
    assert np.allclose(back_projected.point_in_world, point)


def test_projection_failures():
    camera = Camera.from_intrinsics(_get_test_setup())

    assert isinstance(camera.project(np.array([0.0, 0.0, -1.0])), ProjectionResult.Failure)
    assert isinstance(camera.project(np.array([0.0, 0.0, 0.0])), ProjectionResult.Failure)
    assert isinstance(camera.project(np.array([10.0, 0.0, 1.0])), ProjectionResult.Failure)


@pytest.mark.parametrize('sub_pixel,inverse_depth', [
    ((10.0, 10.0), 0.0),
    ((10.0, 10.0), -0.5),
    ((10.0, 10.0), np.nan),
    ((-1.0, 10.0), 0.5),
    ((10.0, 640.0), 0.5),
])
def test_back_projection_failures(sub_pixel, inverse_depth):
    camera = Camera.from_intrinsics(_get_test_setup())
    result = camera.back_project(sub_pixel, inverse_depth)
    assert isinstance(result, BackProjectionResult.Failure)
    assert len(result.reason) > 0


def test_intrinsics_at_lower_resolution():
    intrinsics = _get_test_setup()
    level_1 = intrinsics.at_level(1)

    assert level_1.fx == 160.0
    assert level_1.cx == pytest.approx(159.75)
    assert (level_1.screen_h, level_1.screen_w) == (240, 320)
    assert intrinsics.at_level(0) == intrinsics
    assert [k.screen_w for k in intrinsics.multi_res(4)] == [640, 320, 160, 80]

    assert np.allclose(level_1.get_matrix(), [[160.0, 0.0, 159.75], [0.0, 160.0, 119.75], [0.0, 0.0, 1.0]])


def test_projection_moves_with_pixel_centers():
    camera = _rotated_camera(_get_test_setup())
    point = np.array([0.3, 0.1, 3.0])

    fine = camera.project(point)
    coarse = camera.at_level(1).project(point)

    assert coarse.row == pytest.approx((fine.row + 0.5) / 2 - 0.5)
    assert coarse.col == pytest.approx((fine.col + 0.5) / 2 - 0.5)
    assert coarse.depth == pytest.approx(fine.depth)


def test_multi_res_cameras_share_pose():
    camera = _rotated_camera(INTRINSICS_ICL_NUIM)
    cameras = camera.multi_res(3)

    assert len(cameras) == 3
    assert all(np.array_equal(c.cam_in_world, camera.cam_in_world) for c in cameras)
    assert cameras[2].intrinsics.screen_h == 120
