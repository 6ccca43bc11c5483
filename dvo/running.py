import logging
from typing import Iterable, List, Sequence, Tuple

import attr
import pandas as pd
import tqdm

from dvo.candidates import select_candidates_with_depth
from dvo.config import DepthPyramidConfig
from dvo.evaluation import StrategyEvaluation, evaluate_strategy_on
from dvo.strategies import AggregationStrategy
from utils.custom_types import DepthImageArray, GrayImageArray

logger = logging.getLogger(__name__)


@attr.define
class StrategyResultRecorder:
    frame_nos: List[int] = attr.Factory(list)
    strategy_names: List[str] = attr.Factory(list)
    evaluations: List[StrategyEvaluation] = attr.Factory(list)
    skipped_frame_nos: List[int] = attr.Factory(list)

    def record(self, frame_no: int, strategy_name: str, evaluation: StrategyEvaluation):
        self.frame_nos.append(frame_no)
        self.strategy_names.append(strategy_name)
        self.evaluations.append(evaluation)

    def record_skipped(self, frame_no: int):
        self.skipped_frame_nos.append(frame_no)

    def to_df(self) -> pd.DataFrame:
        return pd.DataFrame({
            'frame_no': self.frame_nos,
            'strategy': self.strategy_names,
            'ratio': [e.ratio for e in self.evaluations],
            'rmse': [e.rmse_or_none for e in self.evaluations],
        })

    def emit_summary(self) -> pd.DataFrame:
        """ Per strategy: mean ratio of available values, and rmse averaged with ratio as weight. """
        df = self.to_df()
        df['weighted_rmse'] = df.ratio * df.rmse.fillna(0.0)

        grouped = df.groupby('strategy', sort=True)
        summary = pd.DataFrame({
            'nb_frames': grouped.frame_no.count(),
            'ratio': grouped.ratio.mean(),
            'rmse': grouped.weighted_rmse.sum() / grouped.ratio.sum(),
        })
        return summary


def run_strategy_evaluation(
    frames: Iterable[Tuple[GrayImageArray, DepthImageArray]],
    strategies: Sequence[AggregationStrategy],
    config: DepthPyramidConfig,
    result_recorder: StrategyResultRecorder,
) -> pd.DataFrame:
    """ Every frame is a (grayscale image, depth map) pair. Frames without candidates are skipped. """

    for frame_no, (img, depth_map) in tqdm.tqdm(enumerate(frames)):
        candidates = select_candidates_with_depth(img, depth_map, config)

        if len(candidates) == 0:
            logger.info('Frame %d has no candidates, skipping it', frame_no)
            result_recorder.record_skipped(frame_no)
            continue

        for strategy in strategies:
            evaluation = evaluate_strategy_on(depth_map, candidates, strategy, config)
            result_recorder.record(frame_no, strategy.name, evaluation)

    return result_recorder.emit_summary()
