""" TUM RGB-D and ICL-NUIM style datasets.

Text files: comments start with '#', fields are separated by spaces.
 - associations.txt: depth_timestamp depth_path color_timestamp color_path
 - groundtruth.txt: timestamp tx ty tz qx qy qz qw

Watch out for the ground truth alignment: the first frame has no preceding
relative pose, so a sequence of N frames comes with only N - 1 pose records,
and record 0 belongs to frame 1. GroundTruthTrajectory.pose_for_frame does
the +1 offset, do not index the records with frame numbers directly.
"""
import logging
import os
from typing import Callable, List, Optional, TypeVar

import attr
import cv2
import numpy as np

from dvo.cam import CameraIntrinsics
from dvo.errors import DatasetParsingError
from dvo.transforms import SE3_from_translation_and_quaternion, SE3_to_translation_and_quaternion
from dvo.types import CameraPoseSE3
from utils.custom_types import DepthImageArray, DirPath, FilePath, GrayImageArray

logger = logging.getLogger(__name__)

# 16 bit depth values are scaled for better precision: 5000 in the png is 1 meter.
DEPTH_SCALE = 5000.0

# Source: https://vision.in.tum.de/data/datasets/rgbd-dataset/file_formats
INTRINSICS_FR1 = CameraIntrinsics(fx=517.3, fy=516.5, cx=318.6, cy=255.3, screen_h=480, screen_w=640)
INTRINSICS_FR2 = CameraIntrinsics(fx=520.9, fy=521.0, cx=325.1, cy=249.7, screen_h=480, screen_w=640)
INTRINSICS_FR3 = CameraIntrinsics(fx=535.4, fy=539.2, cx=320.1, cy=247.6, screen_h=480, screen_w=640)
# ICL-NUIM has its y axis flipped, hence the negative fy
INTRINSICS_ICL_NUIM = CameraIntrinsics(fx=481.20, fy=-480.00, cx=319.5, cy=239.5, screen_h=480, screen_w=640)

_INTRINSICS_BY_CAMERA_ID = {
    'fr1': INTRINSICS_FR1,
    'fr2': INTRINSICS_FR2,
    'fr3': INTRINSICS_FR3,
    'icl': INTRINSICS_ICL_NUIM,
}


def intrinsics_for(camera_id: str) -> CameraIntrinsics:
    if camera_id not in _INTRINSICS_BY_CAMERA_ID:
        raise ValueError(f'Unknown camera id: {camera_id}, pick one of {sorted(_INTRINSICS_BY_CAMERA_ID)}')
    return _INTRINSICS_BY_CAMERA_ID[camera_id]


@attr.frozen
class Association:
    depth_timestamp: float
    depth_file_path: FilePath
    color_timestamp: float
    color_file_path: FilePath


@attr.frozen
class TumFrame:
    timestamp: float
    pose: CameraPoseSE3 = attr.ib(eq=attr.cmp_using(eq=np.array_equal))

    def to_line(self) -> str:
        t, q = SE3_to_translation_and_quaternion(self.pose)
        return ' '.join(str(x) for x in [self.timestamp, *t.tolist(), *q.tolist()])


T = TypeVar('T')


def _parse_lines(file_content: str, line_parser: Callable[[List[str]], T], what: str) -> List[T]:
    parsed = []
    for line_no, line in enumerate(file_content.splitlines(), start=1):
        stripped = line.strip()
        if len(stripped) == 0 or stripped.startswith('#'):
            continue
        try:
            parsed.append(line_parser(stripped.split()))
        except (ValueError, IndexError) as e:
            raise DatasetParsingError(line_no, line, what) from e
    return parsed


def _parse_association(fields: List[str]) -> Association:
    depth_timestamp, depth_file_path, color_timestamp, color_file_path = fields
    return Association(
        depth_timestamp=float(depth_timestamp),
        depth_file_path=depth_file_path,
        color_timestamp=float(color_timestamp),
        color_file_path=color_file_path,
    )


def _parse_groundtruth_frame(fields: List[str]) -> TumFrame:
    timestamp, tx, ty, tz, qx, qy, qz, qw = (float(x) for x in fields)
    if not np.isclose(np.linalg.norm([qx, qy, qz, qw]), 1.0, atol=1e-3):
        raise ValueError('rotation quaternion is not normalized')
    return TumFrame(
        timestamp=timestamp,
        pose=SE3_from_translation_and_quaternion((tx, ty, tz), (qx, qy, qz, qw)),
    )


def parse_associations(file_content: str) -> List[Association]:
    return _parse_lines(file_content, _parse_association, 'association')


def parse_groundtruth(file_content: str) -> List[TumFrame]:
    return _parse_lines(file_content, _parse_groundtruth_frame, 'ground truth pose')


@attr.define
class GroundTruthTrajectory:
    records: List[TumFrame]

    @classmethod
    def from_file(cls, file_path: FilePath) -> 'GroundTruthTrajectory':
        with open(file_path, 'r') as f:
            return cls(records=parse_groundtruth(f.read()))

    @staticmethod
    def record_index_for_frame(frame_no: int) -> Optional[int]:
        """ Record 0 is the pose of frame 1, frame 0 has no record. """
        return frame_no - 1 if frame_no >= 1 else None

    def pose_for_frame(self, frame_no: int) -> Optional[CameraPoseSE3]:
        record_idx = self.record_index_for_frame(frame_no)
        if record_idx is None or record_idx >= len(self.records):
            return None
        return self.records[record_idx].pose

    def __len__(self) -> int:
        return len(self.records)


def read_gray_image(file_path: FilePath) -> GrayImageArray:
    img = cv2.imread(file_path, cv2.IMREAD_GRAYSCALE)
    if img is None:
        raise FileNotFoundError(f'cannot read image {file_path}')
    return img


def read_depth_image(file_path: FilePath) -> DepthImageArray:
    """ 16 bit png, read as is (no stripping to 8 bits). """
    depth = cv2.imread(file_path, cv2.IMREAD_ANYDEPTH)
    if depth is None:
        raise FileNotFoundError(f'cannot read depth image {file_path}')
    if depth.dtype != np.uint16:
        raise ValueError(f'expected a 16 bit depth image, {file_path} is {depth.dtype}')
    return depth


@attr.define
class TumRgbdDataset:
    dataset_path: DirPath
    associations: List[Association]

    @classmethod
    def from_dataset_path(cls, dataset_path: DirPath, associations_file: str = 'associations.txt'):
        with open(os.path.join(dataset_path, associations_file), 'r') as f:
            associations = parse_associations(f.read())
        logger.info('Loaded %d associations from %s', len(associations), dataset_path)
        return cls(dataset_path=dataset_path, associations=associations)

    def get_gray_image(self, frame_no: int) -> GrayImageArray:
        return read_gray_image(os.path.join(self.dataset_path, self.associations[frame_no].color_file_path))

    def get_depth_image(self, frame_no: int) -> DepthImageArray:
        return read_depth_image(os.path.join(self.dataset_path, self.associations[frame_no].depth_file_path))

    def __len__(self) -> int:
        return len(self.associations)


def icl_image_paths(dataset_path: DirPath, frame_no: int):
    """ ICL-NUIM folders exported as icl-rgb/<n>.png and icl-depth/<n>.png. """
    return (
        os.path.join(dataset_path, 'icl-rgb', f'{frame_no}.png'),
        os.path.join(dataset_path, 'icl-depth', f'{frame_no}.png'),
    )
