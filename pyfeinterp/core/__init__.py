from .mesh import Mesh
from .topology import Node, Element
from .exceptions import (
    PyFEInterpError, DimensionMismatchError, InvalidElementId, InvalidReferencePoint,
    JacobianSingularError, InverseMappingError, PointLocationError, EmptyMeshError,
    StaleBufferError, BatchInterpolationError,
)
__all__=['Mesh','Node','Element',
         'PyFEInterpError','DimensionMismatchError','InvalidElementId','InvalidReferencePoint',
         'JacobianSingularError','InverseMappingError','PointLocationError','EmptyMeshError',
         'StaleBufferError','BatchInterpolationError']
