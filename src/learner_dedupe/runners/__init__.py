from learner_dedupe.runners.local import ReconciliationDriver
from learner_dedupe.runners.parallel import ParallelCohortRunner

__all__ = ["ReconciliationDriver", "ParallelCohortRunner"]
