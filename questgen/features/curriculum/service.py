"""
Curriculum catalog (read side).

The curriculum is edited elsewhere; here it is only loaded, seeded with the
default classes when missing or unreadable, and used to pick the sample-paper
context handed to the content generator.
"""

import json
import logging
from typing import List, Optional

from pydantic import ValidationError as PydanticValidationError

from questgen.core.store import KeyValueStore, JsonCollection, CURRICULUM_KEY, dump_record
from questgen.models.curriculum import Chapter, ClassConfig, SubjectConfig


logger = logging.getLogger(__name__)

DEFAULT_SAMPLE_CONTEXT = (
    "General Instructions:\n"
    "1. All questions are compulsory.\n"
    "2. The question paper consists of 4 sections: A, B, C and D.\n"
    "3. Section A contains MCQ questions of 1 mark each.\n"
    "4. Section B contains VSA questions of 2 marks each.\n"
    "5. Section C contains SA questions of 3 marks each."
)

DEFAULT_CURRICULUM: List[ClassConfig] = [
    ClassConfig(id="c9", name="Class 9", subjects=[
        SubjectConfig(id="c9s1", name="Mathematics", chapters=[
            Chapter(id="c9s1ch1", name="Number Systems"),
            Chapter(id="c9s1ch2", name="Polynomials"),
        ]),
        SubjectConfig(id="c9s2", name="Science", chapters=[
            Chapter(id="c9s2ch1", name="Matter in Our Surroundings"),
        ]),
    ]),
    ClassConfig(id="c10", name="Class 10", subjects=[
        SubjectConfig(id="c10s1", name="Mathematics", chapters=[
            Chapter(id="c10s1ch1", name="Real Numbers"),
            Chapter(id="c10s1ch2", name="Polynomials"),
        ]),
        SubjectConfig(id="c10s2", name="Science", chapters=[
            Chapter(id="c10s2ch1", name="Chemical Reactions"),
        ]),
    ]),
    ClassConfig(id="c11", name="Class 11"),
    ClassConfig(id="c12", name="Class 12"),
]


def _seed(collection: JsonCollection) -> List[ClassConfig]:
    collection.write([dump_record(cls) for cls in DEFAULT_CURRICULUM])
    return list(DEFAULT_CURRICULUM)


def load_curriculum(store: KeyValueStore) -> List[ClassConfig]:
    """Load the stored curriculum, seeding the default when absent or corrupt."""
    collection = JsonCollection(store, CURRICULUM_KEY)
    raw = store.get(CURRICULUM_KEY)
    if raw is None:
        return _seed(collection)

    try:
        items = json.loads(raw)
        if not isinstance(items, list):
            raise ValueError("curriculum is not an array")
        # an empty stored list is a deliberately empty curriculum
        return [ClassConfig.model_validate(item) for item in items]
    except (ValueError, PydanticValidationError):
        logger.warning("[curriculum] stored curriculum is corrupt, reseeding default")
        return _seed(collection)


def find_subject(
    curriculum: List[ClassConfig],
    class_level: str,
    subject: str,
) -> Optional[SubjectConfig]:
    for cls in curriculum:
        if cls.name != class_level:
            continue
        for subj in cls.subjects:
            if subj.name == subject:
                return subj
    return None


def resolve_context(
    curriculum: List[ClassConfig],
    class_level: str,
    subject: str,
    fallback: Optional[str] = None,
) -> str:
    """Subject sample-paper context if configured, otherwise the global one."""
    subj = find_subject(curriculum, class_level, subject)
    if subj and subj.sample_paper_context:
        return subj.sample_paper_context
    return fallback or DEFAULT_SAMPLE_CONTEXT
