"""End-to-end chaos testing sequence."""

from chaos_harness.experiments.definitions import (
    DEFAULT_SEQUENCE,
    FailureMode,
    SequenceDefinition,
    load_sequence,
    sequence_from_dict,
)
from chaos_harness.experiments.runner import ChaosTestingSequence, run_sequence

__all__ = [
    "DEFAULT_SEQUENCE",
    "FailureMode",
    "SequenceDefinition",
    "load_sequence",
    "sequence_from_dict",
    "ChaosTestingSequence",
    "run_sequence",
]
