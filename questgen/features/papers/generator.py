"""
Content generator: blueprint -> question list.

GroqContentGenerator asks the Groq chat completions API for a JSON array of
questions. Every failure mode (transport error, unparseable output, empty
list) surfaces as ContentGenerationError so the caller can treat it as one
retryable failure.
"""

import json
import logging
import re
from typing import Any, Dict, List, Optional, Protocol
from uuid import uuid4

import groq
from pydantic import ValidationError as PydanticValidationError

from questgen.core.errors import ContentGenerationError
from questgen.models.paper import BlueprintItem, GeneratedQuestion


logger = logging.getLogger(__name__)


class ContentGenerator(Protocol):
    def generate(
        self,
        blueprint: List[BlueprintItem],
        class_level: str,
        subject: str,
        context: str,
    ) -> List[GeneratedQuestion]:
        ...


SYSTEM_PROMPT = (
    "You are an expert school examination paper setter. "
    "Output only what is asked, as strict JSON."
)

PAPER_PROMPT = """Create an examination paper for {class_level}, subject {subject}.

Follow this sample paper / instruction context for style and difficulty:
---
{context}
---

BLUEPRINT (generate exactly `count` questions for every row):
{rows}

OUTPUT FORMAT: respond with ONLY a JSON array, no markdown, no explanation.
Each element:
{{
  "blueprintId": "<id of the blueprint row>",
  "type": "<question type exactly as given in the row>",
  "marks": <marks per question>,
  "questionText": "<complete question>",
  "options": ["<A>", "<B>", "<C>", "<D>"],
  "answerKey": "<answer or marking scheme for the teacher>",
  "section": "<Section A|B|C|D>"
}}
Include "options" only for Multiple Choice and Assertion-Reason questions.
"""


def build_prompt(blueprint: List[BlueprintItem], class_level: str, subject: str, context: str) -> str:
    rows = "\n".join(
        json.dumps(
            {
                "id": item.id,
                "chapter": item.chapter,
                "topic": item.topic,
                "type": item.type.value,
                "count": item.count,
                "marks": item.marks_per_question,
            }
        )
        for item in blueprint
    )
    return PAPER_PROMPT.format(class_level=class_level, subject=subject, context=context, rows=rows)


def extract_json_array(raw: str) -> List[Any]:
    """Pull the first JSON array out of a model reply (tolerates code fences)."""
    text = re.sub(r"^```(?:json)?\s*", "", raw.strip(), flags=re.MULTILINE)
    text = re.sub(r"```\s*$", "", text, flags=re.MULTILINE)
    start = text.find("[")
    end = text.rfind("]") + 1
    if start == -1 or end <= start:
        raise ValueError("no JSON array in response")
    data = json.loads(text[start:end])
    if not isinstance(data, list):
        raise ValueError("response is not a JSON array")
    return data


def parse_questions(data: List[Any], blueprint: List[BlueprintItem]) -> List[GeneratedQuestion]:
    """Validate raw question dicts, filling ids and marks from the blueprint."""
    by_id: Dict[str, BlueprintItem] = {item.id: item for item in blueprint}
    questions: List[GeneratedQuestion] = []
    for raw in data:
        if not isinstance(raw, dict):
            continue
        item = by_id.get(str(raw.get("blueprintId") or ""))
        raw = dict(raw)
        raw.setdefault("id", f"q_{uuid4().hex[:12]}")
        if item is not None:
            raw.setdefault("type", item.type.value)
            raw.setdefault("marks", item.marks_per_question)
        try:
            questions.append(GeneratedQuestion.model_validate(raw))
        except PydanticValidationError as exc:
            logger.warning(
                "[generator] dropping malformed question",
                extra={"errors": exc.error_count()},
            )
    return questions


class GroqContentGenerator:
    """Question generation through the Groq chat completions API."""

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "llama-3.1-8b-instant",
        temperature: float = 0.4,
        max_tokens: int = 4096,
        client: Optional[Any] = None,
    ):
        self.api_key = api_key
        self._client = client
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens

    def _get_client(self):
        # built on first use so an unconfigured key only fails actual generation
        if self._client is None:
            if not self.api_key:
                raise ContentGenerationError("GROQ_API_KEY is not set", code="generator_not_configured")
            self._client = groq.Groq(api_key=self.api_key)
        return self._client

    def generate(
        self,
        blueprint: List[BlueprintItem],
        class_level: str,
        subject: str,
        context: str,
    ) -> List[GeneratedQuestion]:
        client = self._get_client()
        prompt = build_prompt(blueprint, class_level, subject, context)
        logger.info(
            "[generator] requesting paper",
            extra={"class_level": class_level, "subject": subject, "rows": len(blueprint), "model": self.model},
        )
        try:
            response = client.chat.completions.create(
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                model=self.model,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
            raw = response.choices[0].message.content or ""
            questions = parse_questions(extract_json_array(raw), blueprint)
        except groq.GroqError as exc:
            raise ContentGenerationError(f"Generator request failed: {exc}") from exc
        except (ValueError, IndexError, AttributeError) as exc:
            raise ContentGenerationError(f"Generator returned unreadable output: {exc}") from exc

        if not questions:
            raise ContentGenerationError("No questions generated")
        return questions
