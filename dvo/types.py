from typing import Tuple

import numpy as np
from utils.custom_types import Array


Vector3d = Array['3', np.float64]
TransformSE3 = Array['4,4', np.float64]
CameraPoseSE3 = Array['4,4', np.float64]     # pose of camera in world, maps cam coords to world coords
CameraRotationSO3 = Array['3,3', np.float64]
QuaternionXYZW = Tuple[float, float, float, float]

WorldCoords3D = Array['N,3', np.float64]
CamCoords3d = Array['N,3', np.float64]        # x goes right, y down, z out, looking out of cam, origin is optical center
CamCoords3dHomog = Array['N,3', np.float64]   # X/Z Y/Z 1
ImgCoords2d = Array['N,2', np.float64]        # x goes right, y down, homogenous without z
PxCoords2d = Array['N,2', np.float64]         # row goes down, col goes right, may be fractional
                                              # please notice that cv pixel coordinates are swapped

# stack of the four children of every 2x2 block, last axis ordered
# (2r, 2c), (2r, 2c + 1), (2r + 1, 2c), (2r + 1, 2c + 1)
BlockStack = Array['H,W,4', np.float64]
InverseDepthArray = Array['H,W', np.float64]   # NaN where unknown

"""
WorldCoords3D
    -[inv(CameraPoseSE3) * point coords]->
        CamCoords3d
            -[/Z] ->
                CamCoords3dHomog
                    -[drop third dim]->
                        ImgCoords2d
                            -[*focal, +skew, +center (intrinsics), flip (!)]
                                -> PxCoords2d
"""
