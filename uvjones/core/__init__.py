"""
Visibility Pipeline Components.

Blocks flow through:
1. Phase rotation to a target phase centre
2. Calibration application (Jones matrices)
3. Time/frequency averaging with flag and weight propagation
"""

from uvjones.core.block import (
    BlockContext,
    VisibilityBlock,
    FlagWeightBlock,
    check_shapes,
)
from uvjones.core.selection import VisSelection
from uvjones.core.stats import BlockStats
from uvjones.core.phase import phase_rotate, block_uvws
from uvjones.core.calibrate import JonesSolutions, apply_calibration
from uvjones.core.averaging import (
    BinAccumulator,
    average_block,
    assert_flag_weight_consistent,
)
from uvjones.core.processor import VisibilityPipeline, ProcessedBlock

__all__ = [
    "BlockContext",
    "VisibilityBlock",
    "FlagWeightBlock",
    "check_shapes",
    "BlockStats",
    "VisSelection",
    "phase_rotate",
    "block_uvws",
    "JonesSolutions",
    "apply_calibration",
    "BinAccumulator",
    "average_block",
    "assert_flag_weight_consistent",
    "VisibilityPipeline",
    "ProcessedBlock",
]
