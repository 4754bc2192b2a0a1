"""
questgen/features/papers/service.py

Paper generation flow and history archive.

Handles:
- Gated generation (entitlement check -> generator -> usage increment -> archive)
- Archive CRUD over the papers collection
- Loading archived papers with legacy header fallbacks
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from pydantic import ValidationError as PydanticValidationError

from questgen.core.errors import (
    ContentGenerationError,
    DataCorruptionError,
    NotFoundError,
    ValidationError,
)
from questgen.core.store import (
    KeyValueStore,
    JsonCollection,
    PAPERS_KEY,
    parse_records,
    dump_record,
)
from questgen.features.entitlements.service import EntitlementDecision, can_generate
from questgen.features.papers.generator import ContentGenerator
from questgen.features.usage.service import record_generation
from questgen.features.users.service import UserRepository
from questgen.models.paper import BlueprintItem, GeneratedQuestion, PaperHeader, SavedPaper
from questgen.models.user import User, UserRef


logger = logging.getLogger(__name__)

GENERATION_FAILED_MESSAGE = "Failed to generate paper. Please try again."


def _normalize_now(now: Optional[datetime]) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now


def total_marks(questions: Sequence[GeneratedQuestion]) -> float:
    total = sum(q.marks or 0 for q in questions)
    return int(total) if float(total).is_integer() else total


def owned_by(paper: SavedPaper, ref: UserRef) -> bool:
    """Id-first ownership; papers saved without an account id fall back to email."""
    if ref.user_id and paper.user_id == ref.user_id:
        return True
    if not paper.user_email or not ref.email:
        return False
    if ref.user_id and paper.user_id and "@" not in paper.user_id:
        return False
    return paper.user_email.strip().lower() == ref.email.strip().lower()


@dataclass
class LoadedPaper:
    """An archived paper ready for the editor."""
    paper: SavedPaper
    header: PaperHeader
    questions: List[GeneratedQuestion]
    blueprint: List[BlueprintItem] = field(default_factory=list)


class PaperArchive:
    """Papers collection over the key-value store, newest first."""

    def __init__(self, store: KeyValueStore):
        self.store = store
        self._collection = JsonCollection(store, PAPERS_KEY)

    def list(self) -> List[SavedPaper]:
        return [paper for _, paper in parse_records(SavedPaper, self._collection.read(), PAPERS_KEY)]

    def list_for(self, user: User) -> List[SavedPaper]:
        """Admins see every paper, teachers their own."""
        papers = self.list()
        if user.is_admin:
            return papers
        return [paper for paper in papers if owned_by(paper, user.ref)]

    def get(self, paper_id: str) -> Optional[SavedPaper]:
        for paper in self.list():
            if paper.id == paper_id:
                return paper
        return None

    def save(
        self,
        user: User,
        questions: List[GeneratedQuestion],
        header: PaperHeader,
        blueprint: Optional[List[BlueprintItem]] = None,
        class_level: Optional[str] = None,
        subject: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Optional[SavedPaper]:
        """Prepend a paper to the archive. Empty papers are not saved (returns None)."""
        if not questions:
            logger.info("[papers] refusing to archive empty paper", extra={"user_ref": user.ref.describe()})
            return None

        created_at = _normalize_now(now)
        with self._collection.mutate() as items:
            taken = {item.get("id") for item in items if isinstance(item, dict)}
            base_id = f"paper_{int(created_at.timestamp() * 1000)}"
            paper_id = base_id
            suffix = 1
            while paper_id in taken:
                paper_id = f"{base_id}_{suffix}"
                suffix += 1

            paper = SavedPaper(
                id=paper_id,
                user_id=user.id or user.email,
                user_name=user.name,
                user_email=user.email,
                created_at=created_at,
                header=dump_record(header),
                questions=list(questions),
                blueprint=list(blueprint or []),
                class_level=class_level,
                subject=subject,
            )
            items.insert(0, dump_record(paper))

        logger.info(
            "[papers] archived",
            extra={"paper_id": paper.id, "user_ref": user.ref.describe(), "questions": len(questions)},
        )
        return paper

    def delete(self, paper_id: str) -> bool:
        """Remove a paper. Returns False when no paper had that id."""
        with self._collection.mutate() as items:
            kept = [item for item in items if not (isinstance(item, dict) and item.get("id") == paper_id)]
            removed = len(kept) != len(items)
            items[:] = kept
        if removed:
            logger.info("[papers] deleted", extra={"paper_id": paper_id})
        return removed

    def load(self, paper_id: str, user: User) -> LoadedPaper:
        """
        Open an archived paper for user.

        Raises:
            NotFoundError: no such paper, or it belongs to another teacher
            DataCorruptionError: the stored paper has no questions or is malformed
        """
        raw = next(
            (item for item in self._collection.read() if isinstance(item, dict) and item.get("id") == paper_id),
            None,
        )
        if raw is None:
            raise NotFoundError(f"Paper {paper_id} not found")

        questions = raw.get("questions")
        if not isinstance(questions, list) or not questions:
            logger.error("[papers] stored paper has no questions", extra={"paper_id": paper_id})
            raise DataCorruptionError("This saved paper appears to be empty or corrupted.")
        try:
            paper = SavedPaper.model_validate(raw)
        except PydanticValidationError as exc:
            logger.error(
                "[papers] stored paper failed validation",
                extra={"paper_id": paper_id, "errors": exc.error_count()},
            )
            raise DataCorruptionError("This saved paper appears to be empty or corrupted.") from exc

        if not user.is_admin and not owned_by(paper, user.ref):
            raise NotFoundError(f"Paper {paper_id} not found")

        try:
            header = safe_header(paper, user)
        except PydanticValidationError as exc:
            logger.error(
                "[papers] stored paper header is unreadable",
                extra={"paper_id": paper_id, "errors": exc.error_count()},
            )
            raise DataCorruptionError("This saved paper appears to be empty or corrupted.") from exc

        return LoadedPaper(
            paper=paper,
            header=header,
            questions=[q.model_copy(deep=True) for q in paper.questions],
            blueprint=list(paper.blueprint or []),
        )


def safe_header(paper: SavedPaper, user: Optional[User] = None) -> PaperHeader:
    """Complete a stored header; older papers may carry a partial one or none."""
    stored: Dict[str, Any] = paper.header or {}
    defaults = PaperHeader()

    def pick(key: str, *fallbacks: Any) -> Any:
        value = stored.get(key)
        if value is not None:
            return value
        for fallback in fallbacks:
            if fallback is not None:
                return fallback
        return getattr(defaults, _snake(key))

    header = PaperHeader(
        school_name=pick("schoolName", user.school_name if user and user.school_name else None),
        location=stored.get("location"),
        exam_name=pick("examName"),
        class_level=pick("classLevel", paper.class_level),
        subject=pick("subject", paper.subject),
        time_allowed=pick("timeAllowed"),
        max_marks=pick("maxMarks"),
        general_instructions=pick("generalInstructions"),
    )
    if not header.max_marks:
        header = header.model_copy(update={"max_marks": total_marks(paper.questions)})
    return header


def _snake(camel: str) -> str:
    return "".join(f"_{c.lower()}" if c.isupper() else c for c in camel)


class GenerationStatus(str, Enum):
    GENERATED = "generated"
    DENIED = "denied"
    FAILED = "failed"


@dataclass
class GenerationOutcome:
    status: GenerationStatus
    user: User
    decision: Optional[EntitlementDecision] = None
    questions: List[GeneratedQuestion] = field(default_factory=list)
    header: Optional[PaperHeader] = None
    paper: Optional[SavedPaper] = None
    message: Optional[str] = None


def attach_uploaded_images(
    questions: List[GeneratedQuestion],
    blueprint: List[BlueprintItem],
) -> List[GeneratedQuestion]:
    """Questions generated from a blueprint row with an uploaded image show that image."""
    images = {item.id: item.user_uploaded_image for item in blueprint if item.user_uploaded_image}
    return [
        q.model_copy(update={"image_url": images[q.blueprint_id]}) if q.blueprint_id in images else q
        for q in questions
    ]


def generate_paper(
    user: User,
    blueprint: List[BlueprintItem],
    class_level: str,
    subject: str,
    *,
    context: str,
    generator: ContentGenerator,
    users: UserRepository,
    archive: PaperArchive,
    header: Optional[PaperHeader] = None,
    now: Optional[datetime] = None,
) -> GenerationOutcome:
    """
    Generate, count and archive one paper.

    Usage is only incremented after the generator returned questions; a
    denied or failed attempt leaves the user and archive untouched.

    Raises:
        ValidationError: blueprint is empty
    """
    if not blueprint:
        raise ValidationError("Blueprint is empty")

    current = _normalize_now(now)
    decision = can_generate(user, current)
    if not decision.allowed:
        return GenerationOutcome(
            status=GenerationStatus.DENIED,
            user=user,
            decision=decision,
            message=decision.message,
        )

    try:
        questions = generator.generate(blueprint, class_level, subject, context)
        if not questions:
            raise ContentGenerationError("No questions generated")
    except Exception as exc:
        # any collaborator failure is one retryable outcome; nothing was counted or saved
        code = exc.code if isinstance(exc, ContentGenerationError) else "generator_crashed"
        logger.error(
            "[papers] generation failed",
            exc_info=not isinstance(exc, ContentGenerationError),
            extra={"user_ref": user.ref.describe(), "error_code": code, "error_message": str(exc)},
        )
        return GenerationOutcome(
            status=GenerationStatus.FAILED,
            user=user,
            decision=decision,
            message=GENERATION_FAILED_MESSAGE,
        )

    questions = attach_uploaded_images(list(questions), blueprint)
    base_header = header or PaperHeader(
        school_name=user.school_name or PaperHeader().school_name,
        class_level=class_level,
        subject=subject,
    )
    paper_header = base_header.model_copy(update={"max_marks": total_marks(questions)})

    updated_user = record_generation(users, user)
    paper = archive.save(
        updated_user,
        questions,
        paper_header,
        blueprint=blueprint,
        class_level=class_level,
        subject=subject,
        now=current,
    )
    return GenerationOutcome(
        status=GenerationStatus.GENERATED,
        user=updated_user,
        decision=decision,
        questions=questions,
        header=paper_header,
        paper=paper,
    )
