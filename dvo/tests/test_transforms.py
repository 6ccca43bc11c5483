import numpy as np

from dvo.transforms import SE3_from_translation_and_quaternion, SE3_inverse, SE3_to_translation_and_quaternion, \
    dehomogenize, homogenize, img_coords_2d_to_px_2d, px_2d_to_img_coords_2d


def test_identity_quaternion():
    pose = SE3_from_translation_and_quaternion((1.0, 2.0, 3.0), (0.0, 0.0, 0.0, 1.0))
    expected = np.eye(4)
    expected[:3, 3] = [1.0, 2.0, 3.0]
    assert np.allclose(pose, expected)


def test_SE3_inverse():
    pose = SE3_from_translation_and_quaternion((0.3, -1.0, 2.0), (0.1, 0.2, 0.3, 0.9273618495495703))
    assert np.allclose(SE3_inverse(pose) @ pose, np.eye(4))
    assert np.allclose(pose @ SE3_inverse(pose), np.eye(4))


def test_translation_and_quaternion_round_trip():
    pose = SE3_from_translation_and_quaternion((0.3, -1.0, 2.0), (0.1, 0.2, 0.3, 0.9273618495495703))
    t, q = SE3_to_translation_and_quaternion(pose)
    assert np.allclose(SE3_from_translation_and_quaternion(t, q), pose)


def test_px_to_img_coords_round_trip():
    px = np.array([
        [0, 0],
        [479, 639],
        [240.5, 320.25],
    ], dtype=np.float64)
    params = dict(fx=500.0, fy=-480.0, cx=319.5, cy=239.5, skew=1.5)

    img_coords = px_2d_to_img_coords_2d(px, **params)
    assert np.allclose(img_coords_2d_to_px_2d(img_coords, **params), px)


def test_px_to_img_coords_flips_axes():
    px = np.array([[240.0, 330.0]])
    img_coords = px_2d_to_img_coords_2d(px, fx=10.0, fy=10.0, cx=320.0, cy=240.0)
    assert np.allclose(img_coords, [[1.0, 0.0]])


def test_homogenize():
    x = np.array([[3.0, 1.0, 4.0]])
    assert np.allclose(homogenize(x), [[3.0, 1.0, 4.0, 1.0]])
    assert np.allclose(dehomogenize(homogenize(x)), x)
