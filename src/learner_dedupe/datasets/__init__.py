from learner_dedupe.datasets.profiles import SCHOOL_COLLECTIONS, SCHOOL_SCHEMA_SQL
from learner_dedupe.datasets.reference import (
    SchoolDataset,
    SchoolDatasetGenerator,
    to_memory_store,
    write_sqlite,
)

__all__ = [
    "SCHOOL_COLLECTIONS",
    "SCHOOL_SCHEMA_SQL",
    "SchoolDataset",
    "SchoolDatasetGenerator",
    "to_memory_store",
    "write_sqlite",
]
