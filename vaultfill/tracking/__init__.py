"""Event subscribers that learn from fills and record ambiguities."""

from vaultfill.tracking.ambiguity import AmbiguityTracker
from vaultfill.tracking.learning import LearningTracker

__all__ = ["AmbiguityTracker", "LearningTracker"]
