"""Candidate/job matching engine with a batch job scheduler."""

__version__ = "0.1.0"
