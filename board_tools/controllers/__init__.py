"""Controllers for the two board operations."""

from .common import OperationResult, UserInputError
from .sorting import SortingController, SortReport, align_items
from .stitch import PreparedSource, Rejection, SourceFile, StitchController, StitchReport

__all__ = [
    "OperationResult",
    "PreparedSource",
    "Rejection",
    "SortReport",
    "SortingController",
    "SourceFile",
    "StitchController",
    "StitchReport",
    "UserInputError",
    "align_items",
]
