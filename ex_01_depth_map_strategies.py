""" Compare aggregation strategies of inverse depth pyramids on ICL-NUIM frames.

For each frame, candidates are seeded with ground truth depth, a pyramid is
built with each strategy, and its coarsest level is compared to the ground
truth depth at that resolution: ratio of available values and rmse.

    python ex_01_depth_map_strategies.py /path/to/icl --nb-frames 40
"""
import argparse
import logging

import pandas as pd

from dvo.config import DepthPyramidConfig
from dvo.datasets.tum_rgbd import icl_image_paths, read_depth_image, read_gray_image
from dvo.running import StrategyResultRecorder, run_strategy_evaluation
from dvo.strategies import DsoMean, StatisticallySimilar


def _icl_frames(dataset_path: str, nb_frames: int):
    for frame_no in range(nb_frames):
        img_path, depth_path = icl_image_paths(dataset_path, frame_no)
        yield read_gray_image(img_path), read_depth_image(depth_path)


if __name__ == '__main__':
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument('dataset_path', help='folder containing icl-rgb/ and icl-depth/')
    parser.add_argument('--nb-frames', type=int, default=40)
    parser.add_argument('--k', type=float, default=2.0, help='outlier threshold of the statistical strategy')
    parser.add_argument('--verbose', action='store_true')
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)

    config = DepthPyramidConfig(outlier_threshold_k=args.k)
    summary = run_strategy_evaluation(
        frames=_icl_frames(args.dataset_path, args.nb_frames),
        strategies=[DsoMean(), StatisticallySimilar(k=config.outlier_threshold_k)],
        config=config,
        result_recorder=StrategyResultRecorder(),
    )

    pd.set_option('display.width', 1000)
    print(summary.round(4))
