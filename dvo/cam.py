""" Pinhole camera: pixel + inverse depth <-> 3d point in world.

Projection problems (point behind the camera, outside of the image) are
returned as Failure results and never raised: callers have to check them
before trusting a point. A failed back projection is never a point at depth zero.
"""
from typing import List, Optional, Union

import attr
import numpy as np

from dvo.transforms import SE3_inverse, dehomogenize, homogenize, img_coords_2d_to_cam_coords_3d_homo, \
    img_coords_2d_to_px_2d, px_2d_to_img_coords_2d
from dvo.types import CameraPoseSE3, Vector3d
from utils.custom_types import Pixel, SubPixel


@attr.frozen
class CameraIntrinsics:
    fx: float
    fy: float
    cx: float
    cy: float
    screen_h: int   # traditionally not contained in intrinsics
    screen_w: int
    skew: float = 0.0

    def at_next_level(self) -> 'CameraIntrinsics':
        """ Intrinsics of the half resolution image. Pixel centers move: the center
        of pixel 0 at the finer level is at -0.25 of the coarser one. """
        return CameraIntrinsics(
            fx=0.5 * self.fx,
            fy=0.5 * self.fy,
            cx=0.5 * (self.cx + 0.5) - 0.5,
            cy=0.5 * (self.cy + 0.5) - 0.5,
            screen_h=self.screen_h // 2,
            screen_w=self.screen_w // 2,
            skew=0.5 * self.skew,
        )

    def at_level(self, level: int) -> 'CameraIntrinsics':
        assert level >= 0, f'{level=}'
        intrinsics = self
        for _ in range(level):
            intrinsics = intrinsics.at_next_level()
        return intrinsics

    def multi_res(self, nb_levels: int) -> List['CameraIntrinsics']:
        return [self.at_level(level) for level in range(nb_levels)]

    def get_matrix(self):
        return np.array([
            [self.fx, self.skew, self.cx],
            [0.0, self.fy, self.cy],
            [0.0, 0.0, 1.0],
        ], dtype=np.float64)

    def contains(self, sub_pixel: SubPixel) -> bool:
        row, col = sub_pixel
        return 0.0 <= row <= self.screen_h - 1 and 0.0 <= col <= self.screen_w - 1


class ProjectionResult:
    @attr.frozen
    class Failure:
        reason: str

    @attr.frozen
    class Success:
        row: float
        col: float
        depth: float   # along the optical axis of the camera

        @property
        def sub_pixel(self) -> SubPixel:
            return self.row, self.col

        @property
        def pixel(self) -> Pixel:
            return int(round(self.row)), int(round(self.col))

        @property
        def inverse_depth(self) -> float:
            return 1.0 / self.depth


class BackProjectionResult:
    @attr.frozen
    class Failure:
        reason: str

    @attr.frozen
    class Success:
        point_in_world: Vector3d = attr.ib(eq=attr.cmp_using(eq=np.array_equal))


ProjectionResultType = Union[ProjectionResult.Success, ProjectionResult.Failure]
BackProjectionResultType = Union[BackProjectionResult.Success, BackProjectionResult.Failure]


@attr.frozen
class Camera:
    intrinsics: CameraIntrinsics
    cam_in_world: CameraPoseSE3 = attr.ib(
        factory=lambda: np.eye(4, dtype=np.float64),
        eq=attr.cmp_using(eq=np.array_equal)
    )

    @classmethod
    def from_intrinsics(cls, intrinsics: CameraIntrinsics, cam_in_world: Optional[CameraPoseSE3] = None):
        if cam_in_world is None:
            return cls(intrinsics=intrinsics)
        return cls(intrinsics=intrinsics, cam_in_world=np.asarray(cam_in_world, dtype=np.float64))

    def at_level(self, level: int) -> 'Camera':
        return Camera(intrinsics=self.intrinsics.at_level(level), cam_in_world=self.cam_in_world)

    def multi_res(self, nb_levels: int) -> List['Camera']:
        return [self.at_level(level) for level in range(nb_levels)]

    def world_to_cam(self, point_in_world: Vector3d) -> Vector3d:
        world_in_cam = SE3_inverse(self.cam_in_world)
        return dehomogenize(world_in_cam @ homogenize(np.asarray(point_in_world, dtype=np.float64)))

    def cam_to_world(self, point_in_cam: Vector3d) -> Vector3d:
        return dehomogenize(self.cam_in_world @ homogenize(np.asarray(point_in_cam, dtype=np.float64)))

    def project(self, point_in_world: Vector3d) -> ProjectionResultType:
        point_in_cam = self.world_to_cam(point_in_world)
        depth = float(point_in_cam[2])

        if not np.all(np.isfinite(point_in_cam)):
            return ProjectionResult.Failure(reason=f'non-finite point {point_in_cam}')
        if depth <= 0.0:
            return ProjectionResult.Failure(reason=f'point behind the camera, {depth=}')

        K = self.intrinsics
        img_coords = (point_in_cam[:2] / depth)[np.newaxis, :]
        (row, col), = img_coords_2d_to_px_2d(img_coords, K.fx, K.fy, K.cx, K.cy, K.skew)

        if not K.contains((row, col)):
            return ProjectionResult.Failure(reason=f'projected outside of the image at ({row:.2f}, {col:.2f})')

        return ProjectionResult.Success(row=float(row), col=float(col), depth=depth)

    def back_project(self, sub_pixel: SubPixel, inverse_depth: float) -> BackProjectionResultType:
        if not np.isfinite(inverse_depth) or inverse_depth <= 0.0:
            return BackProjectionResult.Failure(reason=f'cannot back project {inverse_depth=}')

        K = self.intrinsics
        if not K.contains(sub_pixel):
            return BackProjectionResult.Failure(reason=f'pixel {sub_pixel} outside of the image')

        px = np.array([sub_pixel], dtype=np.float64)
        img_coords = px_2d_to_img_coords_2d(px, K.fx, K.fy, K.cx, K.cy, K.skew)
        point_in_cam = img_coords_2d_to_cam_coords_3d_homo(img_coords)[0] / inverse_depth

        return BackProjectionResult.Success(point_in_world=self.cam_to_world(point_in_cam))
