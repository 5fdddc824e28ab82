"""Door state layer.

This package is the single source of truth for the believed door
position. Locally issued commands and device ``state`` events are both
reconciled here, and nowhere else.
"""

from pyespgarage.state.engine import DoorStateEngine, PositionListener
from pyespgarage.state.policy import Reconciliation, reconcile, reported_position

__all__ = [
    "DoorStateEngine",
    "PositionListener",
    "Reconciliation",
    "reconcile",
    "reported_position",
]
