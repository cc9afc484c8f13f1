"""
Loan Origination API - Internal Data Transfer Objects

Plain dataclasses passed between routers and services. Request bodies are
normalised into these once, at the boundary.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


@dataclass
class AssetFile:
    """An uploaded file, already read from the request."""
    filename: str
    content: bytes
    content_type: Optional[str] = None


@dataclass
class ClientIntake:
    """Normalised client creation payload (multipart or JSON)."""
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    grandfather_name: Optional[str] = None
    gender: Optional[str] = None
    national_id_no: Optional[str] = None
    branch: Optional[str] = None
    created_by: Optional[str] = None
    civil_status: Optional[str] = None
    household_members_count: Optional[int] = None
    phone: Optional[str] = None
    date_of_birth: Optional[datetime] = None
    woreda: Optional[str] = None
    kebele: Optional[str] = None
    house_no: Optional[str] = None
    spouse: Optional[Dict[str, Any]] = None
    geolocation: Optional[List[List[float]]] = None
    national_id_card: Optional[AssetFile] = None
    picture: Optional[AssetFile] = None


@dataclass
class ClonedForm:
    """Result of cloning a template's question/section graph."""
    questions: List[Any] = field(default_factory=list)  # QuestionDB
    sections: List[Any] = field(default_factory=list)  # SectionDB

    @property
    def question_count(self) -> int:
        def count(questions):
            return sum(1 + count(q.sub_questions) for q in questions)

        return count(self.questions) + sum(count(s.questions) for s in self.sections)
