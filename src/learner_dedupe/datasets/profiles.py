from __future__ import annotations

# Tables every school database carries; dependent tables reference learners(id).
SCHOOL_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS learners (
    id TEXT PRIMARY KEY,
    admission_number TEXT NOT NULL,
    first_name TEXT NOT NULL,
    last_name TEXT NOT NULL,
    cohort_key TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_learners_cohort ON learners (cohort_key);

CREATE TABLE IF NOT EXISTS summative_results (
    id TEXT PRIMARY KEY,
    learner_id TEXT NOT NULL REFERENCES learners (id),
    learning_area TEXT NOT NULL,
    score REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS attendance (
    id TEXT PRIMARY KEY,
    learner_id TEXT NOT NULL REFERENCES learners (id),
    day TEXT NOT NULL,
    status TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS formative_assessments (
    id TEXT PRIMARY KEY,
    learner_id TEXT NOT NULL REFERENCES learners (id),
    learning_area TEXT NOT NULL,
    rating TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS class_enrollments (
    id TEXT PRIMARY KEY,
    learner_id TEXT NOT NULL REFERENCES learners (id),
    class_name TEXT NOT NULL
);
"""

SCHOOL_COLLECTIONS = {
    "summative_results": ("learning_area", "score"),
    "attendance": ("day", "status"),
    "formative_assessments": ("learning_area", "rating"),
    "class_enrollments": ("class_name",),
}

LEARNING_AREAS = [
    "Mathematics",
    "English",
    "Kiswahili",
    "Environmental Activities",
    "Creative Activities",
    "Religious Education",
]
