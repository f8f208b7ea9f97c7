"""Core domain models for candidates and job postings.

These are the validated inputs of the scoring engine and the records served
by profile providers:
- CandidateProfile: a job seeker with skills, experience, education and activity
- JobPosting: an open role with requirements, compensation and culture data
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from talentmatch.utils.timestamps import ensure_utc, utc_now


class ExperienceLevel(str, Enum):
    """Seniority levels, declared in ascending order."""

    ENTRY = "entry"
    MID = "mid"
    SENIOR = "senior"
    EXECUTIVE = "executive"

    @property
    def rank(self) -> int:
        """Ordinal position (entry=0 ... executive=3)."""
        return _LEVEL_ORDER.index(self)


_LEVEL_ORDER = list(ExperienceLevel)


def _strip_required(v: str) -> str:
    if not v or not v.strip():
        raise ValueError("Field cannot be empty or whitespace-only")
    return v.strip()


def _strip_optional(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    stripped = v.strip()
    return stripped or None


def _clean_terms(values: List[str]) -> List[str]:
    """Strip entries, drop blanks and case-insensitive duplicates, keep order."""
    seen = set()
    cleaned = []
    for value in values:
        stripped = value.strip()
        key = stripped.lower()
        if stripped and key not in seen:
            seen.add(key)
            cleaned.append(stripped)
    return cleaned


class CandidateSkill(BaseModel):
    """A skill held by a candidate."""

    name: str = Field(..., description="Skill name, e.g. 'React'")
    proficiency: Optional[int] = Field(None, ge=1, le=5, description="Self-rated 1-5")
    years: Optional[float] = Field(None, ge=0, description="Years using the skill")

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        return _strip_required(v)


class EducationEntry(BaseModel):
    """A degree held by a candidate."""

    degree: str = Field(..., description="Degree name, e.g. 'Bachelor of Science'")
    field: Optional[str] = Field(None, description="Field of study")
    institution: Optional[str] = Field(None, description="School or university")

    @field_validator("degree")
    @classmethod
    def strip_degree(cls, v: str) -> str:
        return _strip_required(v)

    @field_validator("field", "institution")
    @classmethod
    def strip_optional(cls, v: Optional[str]) -> Optional[str]:
        return _strip_optional(v)


class CandidateProfile(BaseModel):
    """A candidate as seen by the matching engine.

    Skills may be given as plain strings; they are promoted to CandidateSkill
    entries with unknown proficiency.
    """

    id: str = Field(..., description="Stable candidate identifier")
    headline: Optional[str] = Field(None, description="One-line professional headline")
    summary: Optional[str] = Field(None, description="Free-text profile summary")
    skills: List[CandidateSkill] = Field(default_factory=list)
    experience_level: Optional[ExperienceLevel] = Field(None)
    years_experience: float = Field(0, ge=0, description="Total years of professional experience")
    location: Optional[str] = Field(None, description="Current location")
    remote: bool = Field(False, description="Prefers remote work")
    willing_to_relocate: bool = Field(False)
    education: List[EducationEntry] = Field(default_factory=list)
    is_active: bool = Field(True, description="Currently looking for work")
    profile_complete: bool = Field(False)
    last_login_at: Optional[datetime] = Field(None)
    created_at: datetime = Field(default_factory=utc_now)
    salary_expectation: Optional[float] = Field(None, ge=0)
    work_values: List[str] = Field(default_factory=list, description="e.g. 'autonomy', 'mentorship'")

    @field_validator("id")
    @classmethod
    def strip_id(cls, v: str) -> str:
        return _strip_required(v)

    @field_validator("headline", "summary", "location")
    @classmethod
    def strip_text(cls, v: Optional[str]) -> Optional[str]:
        return _strip_optional(v)

    @field_validator("skills", mode="before")
    @classmethod
    def promote_plain_skills(cls, v):
        """Allow ``["Python", {"name": "SQL", "proficiency": 4}]``."""
        if v is None:
            return []
        return [{"name": item} if isinstance(item, str) else item for item in v]

    @field_validator("work_values")
    @classmethod
    def clean_values(cls, v: List[str]) -> List[str]:
        return _clean_terms(v)

    @field_validator("last_login_at", "created_at")
    @classmethod
    def to_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)

    @property
    def skill_names(self) -> List[str]:
        return [skill.name for skill in self.skills]

    @property
    def last_seen_at(self) -> datetime:
        """Most recent sign of life: last login, falling back to creation time."""
        return self.last_login_at or self.created_at


class JobPosting(BaseModel):
    """An open role as seen by the matching engine."""

    id: str = Field(..., description="Stable job identifier")
    title: str = Field(..., description="Job title")
    company: Optional[str] = Field(None)
    description: str = Field("", description="Full job description text")
    required_skills: List[str] = Field(default_factory=list)
    preferred_skills: List[str] = Field(default_factory=list)
    experience_level: Optional[ExperienceLevel] = Field(None)
    location: Optional[str] = Field(None)
    remote: bool = Field(False)
    required_education: Optional[str] = Field(None, description="e.g. 'Bachelor', 'Computer Science'")
    preferred_education: Optional[str] = Field(None)
    salary_min: Optional[float] = Field(None, ge=0)
    salary_max: Optional[float] = Field(None, ge=0)
    company_values: List[str] = Field(default_factory=list)
    applicant_count: Optional[int] = Field(None, ge=0)
    posted_at: Optional[datetime] = Field(None)

    @field_validator("id", "title")
    @classmethod
    def strip_required(cls, v: str) -> str:
        return _strip_required(v)

    @field_validator("company", "location", "required_education", "preferred_education")
    @classmethod
    def strip_text(cls, v: Optional[str]) -> Optional[str]:
        return _strip_optional(v)

    @field_validator("required_skills", "preferred_skills", "company_values")
    @classmethod
    def clean_lists(cls, v: List[str]) -> List[str]:
        return _clean_terms(v)

    @field_validator("posted_at")
    @classmethod
    def to_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)

    @model_validator(mode="after")
    def validate_salary_range(self):
        """Reject inverted salary ranges."""
        if (
            self.salary_min is not None
            and self.salary_max is not None
            and self.salary_min > self.salary_max
        ):
            raise ValueError(
                f"salary_min ({self.salary_min}) cannot exceed salary_max ({self.salary_max})"
            )
        return self
