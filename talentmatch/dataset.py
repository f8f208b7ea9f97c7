"""Loading candidate/job datasets for the CLI.

A dataset is a YAML or JSON document with two lists:

    candidates:
      - id: c-1
        skills: [Python, SQL]
    jobs:
      - id: j-1
        title: Data Engineer
        required_skills: [Python]
"""

import json
from pathlib import Path
from typing import List, Tuple

import yaml
from pydantic import ValidationError

from talentmatch.config.exceptions import ConfigurationError
from talentmatch.domain.models import CandidateProfile, JobPosting


def load_dataset(path: Path) -> Tuple[List[CandidateProfile], List[JobPosting]]:
    """
    Read and validate a dataset file.

    Args:
        path: .yaml/.yml or .json file

    Returns:
        Tuple of (candidates, jobs)

    Raises:
        ConfigurationError: If the file is missing, unparsable or invalid
    """
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(
            f"Dataset file not found: {path}",
            suggestions=["Check the --dataset path"],
        )

    try:
        with open(path, "r") as f:
            if path.suffix.lower() == ".json":
                raw = json.load(f)
            else:
                raw = yaml.safe_load(f)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigurationError(
            f"Failed to parse dataset: {e}",
            suggestions=["Datasets are YAML or JSON documents"],
            source=path,
        ) from e
    except OSError as e:
        raise ConfigurationError(f"Failed to read dataset: {e}", source=path) from e

    if not isinstance(raw, dict):
        raise ConfigurationError(
            "Dataset root must be a mapping with 'candidates' and 'jobs' lists",
            source=path,
        )

    errors = []
    candidates = _validate_items(CandidateProfile, raw.get("candidates") or [], "candidates", errors)
    jobs = _validate_items(JobPosting, raw.get("jobs") or [], "jobs", errors)

    if errors:
        raise ConfigurationError(
            "Dataset validation failed",
            errors=errors,
            suggestions=["Every candidate and job needs an 'id'; jobs also need a 'title'"],
            source=path,
        )

    return candidates, jobs


def _validate_items(model, items, section: str, errors: List[str]) -> list:
    if not isinstance(items, list):
        errors.append(f"'{section}' must be a list")
        return []

    valid = []
    for index, item in enumerate(items):
        try:
            valid.append(model.model_validate(item))
        except ValidationError as e:
            for error in e.errors():
                field_path = " -> ".join(str(loc) for loc in error["loc"])
                errors.append(f"{section}[{index}] {field_path}: {error['msg']}")
    return valid
