import attr

from dvo.inverse_depth import InsertionPolicy


@attr.define
class DepthPyramidConfig:
    """ Knobs of candidate selection and depth pyramid construction. """
    # candidates
    nb_levels: int = attr.ib(default=6, validator=attr.validators.ge(1))
    candidates_diff_threshold: float = attr.ib(default=7.0, validator=attr.validators.ge(0.0))
    gradient_threshold: float = attr.ib(default=7.0, validator=attr.validators.gt(0.0))
    border_margin: int = attr.ib(default=1, validator=attr.validators.ge(1))   # centered gradients undefined on the border

    # seeding candidates without a depth prior, DSO style: unit inverse depth, huge uncertainty
    default_inverse_depth: float = attr.ib(default=1.0, validator=attr.validators.ge(0.0))
    default_variance: float = attr.ib(default=1e4, validator=attr.validators.ge(0.0))

    # seeding candidates from depth maps
    depth_scale: float = attr.ib(default=5000.0, validator=attr.validators.gt(0.0))   # 5000 in the png is 1 meter
    idepth_variance: float = attr.ib(default=0.0001, validator=attr.validators.ge(0.0))

    # pyramid
    max_pyramid_levels: int = attr.ib(default=5, validator=attr.validators.ge(1))
    min_level_size: int = attr.ib(default=1, validator=attr.validators.ge(1))
    outlier_threshold_k: float = attr.ib(default=2.0, validator=attr.validators.gt(0.0))
    insertion_policy: InsertionPolicy = InsertionPolicy.REJECT

    @classmethod
    def from_defaults(cls) -> 'DepthPyramidConfig':
        return cls()
