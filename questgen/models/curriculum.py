"""
questgen/models/curriculum.py

Classes, subjects and chapters offered in the blueprint builder.
"""

from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


_camel = ConfigDict(populate_by_name=True, alias_generator=to_camel)


class Chapter(BaseModel):
    model_config = _camel

    id: str
    name: str


class SubjectConfig(BaseModel):
    model_config = _camel

    id: str
    name: str
    chapters: List[Chapter] = Field(default_factory=list)
    # subject-specific instructions / sample paper text for the generator
    sample_paper_context: Optional[str] = None


class ClassConfig(BaseModel):
    model_config = _camel

    id: str
    name: str
    subjects: List[SubjectConfig] = Field(default_factory=list)
