from .buffer import BufferUpdate, InterpolationBuffer, BoundInterpolationBuffer
from .spatial import SpatialIndex, SpatiallyIndexed, InterpolationReport

__all__ = ['BufferUpdate', 'InterpolationBuffer', 'BoundInterpolationBuffer',
           'SpatialIndex', 'SpatiallyIndexed', 'InterpolationReport']
