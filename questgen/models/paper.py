"""
questgen/models/paper.py

Blueprint, generated question and archived paper models.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class QuestionType(str, Enum):
    MCQ = "Multiple Choice Question"
    ASSERTION_REASON = "Assertion-Reason"
    VSA = "Very Short Answer"
    SA = "Short Answer"
    LA = "Long Answer"
    NUMERICAL = "Numerical"
    CASE_STUDY = "Case Study Based"
    PARAGRAPH = "Paragraph Based"
    DIAGRAM = "Diagram/Drawing"


_camel = ConfigDict(populate_by_name=True, alias_generator=to_camel)


class BlueprintItem(BaseModel):
    """One row of the paper blueprint: N questions of a type on a topic."""
    model_config = _camel

    id: str
    chapter: str
    topic: str = ""
    type: QuestionType
    count: int = Field(default=1, ge=1)
    marks_per_question: Union[int, float] = 1
    generate_image: bool = False
    user_uploaded_image: Optional[str] = None  # data URI


class GeneratedQuestion(BaseModel):
    model_config = _camel

    id: str
    blueprint_id: Optional[str] = None
    type: QuestionType
    marks: Union[int, float] = 0
    question_text: str
    options: Optional[List[str]] = None
    answer_key: Optional[str] = None
    image_url: Optional[str] = None
    section: Optional[str] = None


class PaperHeader(BaseModel):
    model_config = _camel

    school_name: str = "YOUR SCHOOL NAME"
    location: Optional[str] = None
    exam_name: str = "EXAMINATION"
    class_level: str = "9"
    subject: str = ""
    time_allowed: str = "3 Hours"
    max_marks: Union[int, float] = 0
    general_instructions: str = "All questions are compulsory."


class SavedPaper(BaseModel):
    """
    Archived paper.

    header is kept raw: papers saved by older builds carry partial headers
    that are completed when the paper is loaded.
    """
    model_config = _camel

    id: str
    user_id: str
    user_name: str = ""
    user_email: str = ""
    created_at: datetime
    header: Optional[Dict[str, Any]] = None
    questions: List[GeneratedQuestion]
    blueprint: Optional[List[BlueprintItem]] = None
    class_level: Optional[str] = None
    subject: Optional[str] = None
