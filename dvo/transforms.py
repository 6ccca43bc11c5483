import numpy as np
from scipy.spatial.transform import Rotation

from dvo.types import CamCoords3dHomog, CameraRotationSO3, ImgCoords2d, PxCoords2d, QuaternionXYZW, TransformSE3, \
    Vector3d


def px_2d_to_img_coords_2d(
    xs: PxCoords2d,
    fx: float,
    fy: float,
    cx: float,
    cy: float,
    skew: float = 0.0,
) -> ImgCoords2d:
    # notice xy flip
    ys = (xs[:, 0].astype(np.float64) - cy) / fy
    xs = (xs[:, 1].astype(np.float64) - cx - skew * ys) / fx
    return np.column_stack([xs, ys])


def img_coords_2d_to_px_2d(
    xs: ImgCoords2d,
    fx: float,
    fy: float,
    cx: float,
    cy: float,
    skew: float = 0.0,
) -> PxCoords2d:
    cols = fx * xs[:, 0] + skew * xs[:, 1] + cx
    rows = fy * xs[:, 1] + cy
    return np.column_stack([rows, cols])


def img_coords_2d_to_cam_coords_3d_homo(xs: ImgCoords2d) -> CamCoords3dHomog:
    # Warning! We assume no undistortion
    return homogenize(xs)


def SO3_inverse(R: CameraRotationSO3) -> CameraRotationSO3:
    """Inverts the rotation."""
    return R.T


def SE3_inverse(T: TransformSE3) -> TransformSE3:
    """Returns the inverse of the transformation."""
    tf = np.eye(4, dtype=np.float64)
    R_inv = SO3_inverse(T[:3, :3])
    t = T[:3, 3]
    tf[0:3, 0:3] = R_inv
    tf[0:3, 3] = - R_inv @ t
    return tf


def SE3_from_translation_and_quaternion(translation: Vector3d, quaternion: QuaternionXYZW) -> TransformSE3:
    """ Quaternion in scalar-last order, as written in TUM trajectory files. """
    pose = np.eye(4, dtype=np.float64)
    pose[:3, :3] = Rotation.from_quat(np.asarray(quaternion, dtype=np.float64)).as_matrix()
    pose[:3, 3] = np.asarray(translation, dtype=np.float64)
    return pose


def SE3_to_translation_and_quaternion(T: TransformSE3):
    return T[:3, 3].copy(), Rotation.from_matrix(T[:3, :3]).as_quat()


def homogenize(x):
    """ e.g. (3, 1, 4) -> (3, 1, 4, 1) """
    return np.concatenate([x, np.ones(x.shape[:-1] + (1,))], axis=-1)


def dehomogenize(x):
    """ e.g. (3, 1, 4, 1)  -> (3, 1, 4) """
    return x[..., :-1]
