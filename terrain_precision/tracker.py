"""
tracker.py — Current View Approximation
=========================================

Owns the ViewApproximation of the current frame.  A view update builds a
complete new snapshot and then swaps the reference, so readers always see
either the previous or the new snapshot and never a partial one.
"""

import numpy as np

from .approximation import ViewApproximation
from .constants import DEFAULT_ANCHOR_LOD
from .logging_config import get_logger

logger = get_logger(__name__)


class ViewTracker:
    """Recomputes the view approximation whenever the view moves."""

    def __init__(self, model, anchor_lod=DEFAULT_ANCHOR_LOD):
        self.model = model
        self.anchor_lod = anchor_lod
        self._snapshot = None
        self.updates = 0

    @property
    def snapshot(self):
        """Latest ViewApproximation, None before the first update."""
        return self._snapshot

    def update(self, view_position):
        """
        Publish the approximation for `view_position`.

        Returns:
            The current ViewApproximation (unchanged if the view did not move)
        """
        current = self._snapshot
        view_position = np.asarray(view_position, dtype=np.float64)
        if current is not None and np.array_equal(np.asarray(current.view_position), view_position):
            return current

        snapshot = ViewApproximation.compute(self.model, view_position, self.anchor_lod)
        self._snapshot = snapshot
        self.updates += 1
        logger.debug(f"Published view approximation #{self.updates}")
        return snapshot
