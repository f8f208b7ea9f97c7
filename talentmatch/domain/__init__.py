"""Domain models for candidates and job postings."""

from .models import CandidateProfile, CandidateSkill, EducationEntry, ExperienceLevel, JobPosting

__all__ = [
    "CandidateProfile",
    "CandidateSkill",
    "EducationEntry",
    "ExperienceLevel",
    "JobPosting",
]
