""" Reproject the inverse depth of a keyframe into another frame, at a lower resolution.

Candidates of frame 1 are seeded from ground truth depth, fused with the
statistically similar strategy, then moved with ground truth poses into frame
600 where the photometric error is measured.

    python ex_02_reprojection_error.py /path/to/icl trajectory-gt.txt
"""
import argparse
import logging

from dvo.cam import Camera
from dvo.candidates import candidates_to_depth_map, select_candidates_with_depth
from dvo.config import DepthPyramidConfig
from dvo.datasets.tum_rgbd import INTRINSICS_ICL_NUIM, GroundTruthTrajectory, icl_image_paths, read_depth_image, \
    read_gray_image
from dvo.multires import build_pyramid, mean_pyramid
from dvo.reprojection import photometric_reprojection_error, reproject_depth_map
from dvo.strategies import StatisticallySimilar

logger = logging.getLogger(__name__)


if __name__ == '__main__':
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument('dataset_path', help='folder containing icl-rgb/ and icl-depth/')
    parser.add_argument('trajectory_path', help='ground truth trajectory, TUM format')
    parser.add_argument('--from-frame', type=int, default=1)
    parser.add_argument('--to-frame', type=int, default=600)
    parser.add_argument('--level', type=int, default=2)
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)
    config = DepthPyramidConfig.from_defaults()

    trajectory = GroundTruthTrajectory.from_file(args.trajectory_path)
    logger.info('nb poses: %d', len(trajectory))

    from_img_path, from_depth_path = icl_image_paths(args.dataset_path, args.from_frame)
    to_img_path, _ = icl_image_paths(args.dataset_path, args.to_frame)
    img_from = read_gray_image(from_img_path)
    img_to = read_gray_image(to_img_path)

    candidates = select_candidates_with_depth(img_from, read_depth_image(from_depth_path), config)
    pyramid = build_pyramid(
        candidates_to_depth_map(candidates, *img_from.shape),
        StatisticallySimilar(k=config.outlier_threshold_k),
        max_levels=args.level + 1
    )
    depth_map = pyramid.coarsest

    pose_from = trajectory.pose_for_frame(args.from_frame)
    pose_to = trajectory.pose_for_frame(args.to_frame)
    if pose_from is None or pose_to is None:
        raise SystemExit(f'no ground truth pose for frames {args.from_frame} and {args.to_frame}')

    cam_from = Camera.from_intrinsics(INTRINSICS_ICL_NUIM, pose_from).at_level(depth_map.level)
    cam_to = Camera.from_intrinsics(INTRINSICS_ICL_NUIM, pose_to).at_level(depth_map.level)

    reprojected = reproject_depth_map(depth_map, cam_from, cam_to)
    error = photometric_reprojection_error(
        depth_map,
        mean_pyramid(depth_map.level + 1, img_from)[-1],
        mean_pyramid(depth_map.level + 1, img_to)[-1],
        cam_from,
        cam_to,
    )

    print(f'level {depth_map.level}: {depth_map.nb_known} known cells, {reprojected.nb_known} reprojected')
    print(f'reprojection error: {error}')
