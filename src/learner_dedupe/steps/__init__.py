from learner_dedupe.steps.cleanup import normalize, tokenize
from learner_dedupe.steps.deterministic import CohortMatcher
from learner_dedupe.steps.migrator import RelationshipMigrator
from learner_dedupe.steps.planner import MergePlanner, resolve_overrides
from learner_dedupe.steps.similarity import NameSimilarityScorer, similarity

__all__ = [
    "normalize",
    "tokenize",
    "CohortMatcher",
    "RelationshipMigrator",
    "MergePlanner",
    "resolve_overrides",
    "NameSimilarityScorer",
    "similarity",
]
