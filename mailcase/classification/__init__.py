"""Case classification: pure scorer, apply/review service and the batch reclassifier."""

from mailcase.classification.reclassifier import Reclassifier
from mailcase.classification.scorer import ClassificationScorer, ScoringConfig
from mailcase.classification.service import ClassificationService

__all__ = ["ClassificationScorer", "ClassificationService", "Reclassifier", "ScoringConfig"]
