"""
Core triangulation and Voronoi construction functionality.
"""

from .errors import (
    VoronoiError, OutOfDomainError, TooCloseError, InsufficientSeedsError, InvalidSeedError
)
from .geometry import Domain
from .seeds import SeedSet, SeedDistribution, generate_seeds
from .delaunay import DelaunayMesh, DelaunayTriangulator
from .voronoi import RawCell, Ray, VoronoiExtractor
from .clipping import BoundaryClipper, VoronoiCell
from .controller import (
    ChangeEvent, ChangeKind, ConstructionController, ConstructionResult, ConstructionState
)

__all__ = ['VoronoiError', 'OutOfDomainError', 'TooCloseError', 'InsufficientSeedsError',
           'InvalidSeedError', 'Domain', 'SeedSet', 'SeedDistribution', 'generate_seeds',
           'DelaunayMesh', 'DelaunayTriangulator', 'RawCell', 'Ray', 'VoronoiExtractor',
           'BoundaryClipper', 'VoronoiCell', 'ChangeEvent', 'ChangeKind',
           'ConstructionController', 'ConstructionResult', 'ConstructionState']
