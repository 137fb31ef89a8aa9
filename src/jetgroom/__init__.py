"""Public package exports for the jet clustering and grooming engine."""

from .clustering import JetClusterer
from .grooming import (
    BottomUpSoftDrop,
    Groomer,
    Pruner,
    RecursiveSoftDrop,
    SoftDrop,
    Trimmer,
    make_groomer,
)
from .models import (
    BottomUpSoftDropParameters,
    ClusteringResult,
    EventInput,
    FourVector,
    Jet,
    JetAlgorithm,
    JetDefinition,
    JetSelection,
    MergeHistory,
    PruningParameters,
    RecursiveSoftDropParameters,
    SoftDropParameters,
    TrimmingParameters,
)
from .pipeline import GroomingVariant, JetObservables, JetProcessor, ObservableTable
from .presets import (
    jet_definition_from_name,
    make_antikt10,
    make_bottom_up_definition,
    make_tight_bottom_up_definition,
    make_trimming_subjets,
)
from .substructure import compute_substructure, d2, nsubjettiness, tau32

__all__ = [
    "FourVector",
    "MergeHistory",
    "Jet",
    "ClusteringResult",
    "JetAlgorithm",
    "JetDefinition",
    "TrimmingParameters",
    "PruningParameters",
    "SoftDropParameters",
    "RecursiveSoftDropParameters",
    "BottomUpSoftDropParameters",
    "JetSelection",
    "EventInput",
    "JetClusterer",
    "Groomer",
    "Trimmer",
    "Pruner",
    "SoftDrop",
    "RecursiveSoftDrop",
    "BottomUpSoftDrop",
    "make_groomer",
    "d2",
    "nsubjettiness",
    "tau32",
    "compute_substructure",
    "JetProcessor",
    "GroomingVariant",
    "JetObservables",
    "ObservableTable",
    "make_antikt10",
    "make_trimming_subjets",
    "make_bottom_up_definition",
    "make_tight_bottom_up_definition",
    "jet_definition_from_name",
]
