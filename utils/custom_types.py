from typing import TypeAlias, Tuple

import numpy as np

DirPath = str
FilePath = str

Array: TypeAlias = np.ndarray

# images
GrayImageArray = Array['H,W', np.uint8]
DepthImageArray = Array['H,W', np.uint16]   # 16 bit png, scaled by the dataset depth scale
FloatImageArray = Array['H,W', np.float32]
MaskArray = Array['H,W', bool]

Pixel = Tuple[int, int]    # down, right, non-negative
SubPixel = Tuple[float, float]   # down, right, may be fractional
