"""Finite-element field interpolation at reference and physical points."""
from pyfeinterp.core import *  # noqa: F401,F403
from pyfeinterp.core import __all__ as _core_all
from pyfeinterp.fem.space import LagrangeSpace, global_vector_from_point_fn
from pyfeinterp.fem.transform import LocatorParameters
from pyfeinterp.interpolation import (
    BufferUpdate, InterpolationBuffer, BoundInterpolationBuffer,
    SpatialIndex, SpatiallyIndexed, InterpolationReport,
)

__version__ = "0.1.0"

__all__ = list(_core_all) + [
    'LagrangeSpace', 'global_vector_from_point_fn', 'LocatorParameters',
    'BufferUpdate', 'InterpolationBuffer', 'BoundInterpolationBuffer',
    'SpatialIndex', 'SpatiallyIndexed', 'InterpolationReport',
]
