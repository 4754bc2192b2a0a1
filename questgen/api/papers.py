"""
Paper API routes.

- POST   /v1/papers/generate: gated generation (201 | 403 denied | 502 failed)
- GET    /v1/papers: caller's archive (admins see all)
- GET    /v1/papers/{paper_id}: open an archived paper
- DELETE /v1/papers/{paper_id}
"""
from datetime import datetime
from typing import Any, Dict

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from questgen.api.dependencies import (
    get_archive,
    get_content_generator,
    get_current_user,
    get_now,
    get_store,
    get_users,
)
from questgen.api.schemas import GenerateRequest, decision_payload, public_user
from questgen.core.errors import NotFoundError
from questgen.core.store import KeyValueStore, dump_record
from questgen.features.curriculum.service import load_curriculum, resolve_context
from questgen.features.entitlements.service import can_download_or_edit
from questgen.features.papers.generator import ContentGenerator
from questgen.features.papers.service import (
    GenerationStatus,
    PaperArchive,
    generate_paper,
    owned_by,
)
from questgen.features.users.service import UserRepository
from questgen.models.user import User


router = APIRouter(prefix="/v1/papers", tags=["papers"])


@router.post("/generate")
def generate(
    body: GenerateRequest,
    user: User = Depends(get_current_user),
    users: UserRepository = Depends(get_users),
    archive: PaperArchive = Depends(get_archive),
    store: KeyValueStore = Depends(get_store),
    generator: ContentGenerator = Depends(get_content_generator),
    now: datetime = Depends(get_now),
):
    curriculum = load_curriculum(store)
    outcome = generate_paper(
        user,
        body.blueprint,
        body.class_level,
        body.subject,
        context=resolve_context(curriculum, body.class_level, body.subject),
        generator=generator,
        users=users,
        archive=archive,
        header=body.header,
        now=now,
    )

    if outcome.status == GenerationStatus.DENIED:
        return JSONResponse(
            status_code=403,
            content={
                "status": outcome.status.value,
                "message": outcome.message,
                "decision": decision_payload(outcome.decision),
            },
        )
    if outcome.status == GenerationStatus.FAILED:
        return JSONResponse(
            status_code=502,
            content={"status": outcome.status.value, "message": outcome.message, "retryable": True},
        )

    return JSONResponse(
        status_code=201,
        content={
            "status": outcome.status.value,
            "paper": dump_record(outcome.paper) if outcome.paper else None,
            "header": dump_record(outcome.header),
            "questions": [dump_record(q) for q in outcome.questions],
            "user": public_user(outcome.user),
        },
    )


@router.get("")
def list_papers(
    user: User = Depends(get_current_user),
    archive: PaperArchive = Depends(get_archive),
) -> Dict[str, Any]:
    papers = archive.list_for(user)
    return {"total": len(papers), "papers": [dump_record(p) for p in papers]}


@router.get("/{paper_id}")
def open_paper(
    paper_id: str,
    user: User = Depends(get_current_user),
    archive: PaperArchive = Depends(get_archive),
) -> Dict[str, Any]:
    """
    Errors:
        404: unknown paper or another teacher's
        422: stored paper is empty or corrupted
    """
    loaded = archive.load(paper_id, user)
    return {
        "paper": dump_record(loaded.paper),
        "header": dump_record(loaded.header),
        "questions": [dump_record(q) for q in loaded.questions],
        "blueprint": [dump_record(item) for item in loaded.blueprint],
        "download_or_edit": decision_payload(can_download_or_edit(user, loaded_from_archive=True)),
    }


@router.delete("/{paper_id}")
def delete_paper(
    paper_id: str,
    user: User = Depends(get_current_user),
    archive: PaperArchive = Depends(get_archive),
) -> Dict[str, Any]:
    paper = archive.get(paper_id)
    if paper is None or not (user.is_admin or owned_by(paper, user.ref)):
        raise NotFoundError(f"Paper {paper_id} not found")
    archive.delete(paper_id)
    return {"deleted": True, "id": paper_id}
