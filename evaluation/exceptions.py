"""
Precondition violations raised by the evaluation engine.

Both derive from ``ValueError`` so callers that already guard volume
processing with ``except ValueError`` keep working.
"""


class ShapeMismatchError(ValueError):
    """Ground truth and reconstruction volumes differ in dimensions."""

    def __init__(self, gt_shape, rec_shape) -> None:
        self.gt_shape = tuple(gt_shape)
        self.rec_shape = tuple(rec_shape)
        super().__init__(
            f"Ground truth shape {self.gt_shape} does not match reconstruction shape {self.rec_shape}"
        )


class BackgroundLabelError(ValueError):
    """Background handling was requested but no background label is usable."""
