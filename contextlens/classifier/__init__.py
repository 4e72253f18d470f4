from contextlens.classifier.classifier import EventClassifier
from contextlens.classifier.commitments import extract_commitments, resolve_deadline
from contextlens.classifier.entities import extract_entities
from contextlens.classifier.skills import dedupe_skills

__all__ = [
    "EventClassifier",
    "dedupe_skills",
    "extract_commitments",
    "extract_entities",
    "resolve_deadline",
]
