from models.errors import (
    AutoStartError,
    ClipboardUnavailable,
    DecodeFailure,
    EncodeFailure,
    OptimizerError,
    WriteFailure,
)
from models.events import Event, OptimizationComplete, OptimizationStart
from models.optimization import (
    OptimizationCandidate,
    OptimizedResult,
    Outcome,
    PipelineState,
    RawImage,
    SessionState,
)
from models.snapshot import ClipboardSnapshot

__all__ = [
    "AutoStartError",
    "ClipboardSnapshot",
    "ClipboardUnavailable",
    "DecodeFailure",
    "EncodeFailure",
    "Event",
    "OptimizationCandidate",
    "OptimizationComplete",
    "OptimizationStart",
    "OptimizedResult",
    "OptimizerError",
    "Outcome",
    "PipelineState",
    "RawImage",
    "SessionState",
    "WriteFailure",
]
