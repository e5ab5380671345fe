from morphevo.mutation.edge import MutateEdge, MutateEdgeParams
from morphevo.mutation.expr import MutateExpr, MutateExprParams, RandomExprParams
from morphevo.mutation.morphology import (
    MutateMorphology,
    MutateMorphologyParams,
    RandomMorphologyParams,
)
from morphevo.mutation.node import MutateNode, MutateNodeParams
from morphevo.mutation.params import MutateFieldParams

__all__ = [
    "MutateEdge",
    "MutateEdgeParams",
    "MutateExpr",
    "MutateExprParams",
    "MutateFieldParams",
    "MutateMorphology",
    "MutateMorphologyParams",
    "MutateNode",
    "MutateNodeParams",
    "RandomExprParams",
    "RandomMorphologyParams",
]
