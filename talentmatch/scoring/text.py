"""Text helpers for scoring: skill normalization, fuzzy skill matching,
years-of-experience extraction and term tokenizing.
"""

import re
from difflib import SequenceMatcher
from typing import Iterable, List, Optional, Set, Tuple

FUZZY_MATCH_THRESHOLD = 0.85

# Canonical skill -> common spellings
SKILL_ALIASES = {
    "javascript": ["js", "es6", "ecmascript"],
    "typescript": ["ts"],
    "python": ["py", "python3"],
    "golang": ["go"],
    "c++": ["cpp"],
    "c#": ["csharp", "c sharp"],
    "node": ["nodejs", "node.js"],
    "react": ["reactjs", "react.js"],
    "vue": ["vuejs", "vue.js"],
    "angular": ["angularjs"],
    "postgresql": ["postgres", "psql"],
    "mongodb": ["mongo"],
    "kubernetes": ["k8s"],
    "aws": ["amazon web services"],
    "gcp": ["google cloud", "google cloud platform"],
    "azure": ["microsoft azure"],
    "machine learning": ["ml"],
    "artificial intelligence": ["ai"],
    "natural language processing": ["nlp"],
    "ci/cd": ["cicd", "continuous integration"],
}

_ALIAS_TO_CANONICAL = {
    alias: canonical for canonical, aliases in SKILL_ALIASES.items() for alias in aliases
}

STOP_WORDS = frozenset({
    "a", "an", "and", "are", "as", "at", "be", "by", "for", "from", "in", "is",
    "it", "of", "on", "or", "our", "that", "the", "this", "to", "we", "with",
    "you", "your", "will", "who", "have", "has", "years", "year", "experience",
    "work", "team", "role", "looking", "strong",
})

# "5+ years", "3-5 years", "at least 4 yrs"
_RANGE_PATTERN = re.compile(r"(\d+(?:\.\d+)?)\s*(?:-|to|–)\s*(\d+(?:\.\d+)?)\s*\+?\s*(?:years?|yrs?)")
_MIN_PATTERNS = [
    re.compile(r"(\d+(?:\.\d+)?)\s*\+\s*(?:years?|yrs?)"),
    re.compile(r"(?:at least|minimum(?: of)?|min\.?)\s*(\d+(?:\.\d+)?)\s*(?:years?|yrs?)"),
    re.compile(r"(\d+(?:\.\d+)?)\s*(?:years?|yrs?)\s+(?:of\s+)?(?:professional\s+)?experience"),
]

_TOKEN_PATTERN = re.compile(r"[a-z0-9][a-z0-9+#.]*")


def normalize_skill(name: str) -> str:
    """Lowercase and collapse whitespace: ' Machine  Learning ' -> 'machine learning'."""
    return re.sub(r"\s+", " ", name.strip().lower())


def canonical_skill(name: str) -> str:
    """Map a known alias to its canonical skill name ('js' -> 'javascript')."""
    normalized = normalize_skill(name)
    return _ALIAS_TO_CANONICAL.get(normalized, normalized)


def exact_skill_matches(candidate_skills: Iterable[str], job_skills: Iterable[str]) -> List[str]:
    """Job skills present verbatim (case-insensitive) in the candidate's skills."""
    have = {normalize_skill(skill) for skill in candidate_skills}
    return [skill for skill in job_skills if normalize_skill(skill) in have]


def substring_skill_matches(candidate_skills: Iterable[str], job_skills: Iterable[str]) -> List[str]:
    """Job skills contained in, or containing, any candidate skill."""
    have = [normalize_skill(skill) for skill in candidate_skills]
    matched = []
    for job_skill in job_skills:
        wanted = normalize_skill(job_skill)
        if any(wanted in skill or skill in wanted for skill in have if skill):
            matched.append(job_skill)
    return matched


def is_semantic_match(candidate_skill: str, job_skill: str) -> bool:
    """Whether two skill names refer to the same thing.

    Tries, in order: alias canonicalization, substring containment either
    way, then a SequenceMatcher ratio for typos and minor variations.
    """
    left = canonical_skill(candidate_skill)
    right = canonical_skill(job_skill)
    if not left or not right:
        return False
    if left == right:
        return True
    # Containment on very short names ("r", "go") produces false positives
    if min(len(left), len(right)) >= 3 and (left in right or right in left):
        return True
    return SequenceMatcher(None, left, right).ratio() >= FUZZY_MATCH_THRESHOLD


def semantic_skill_matches(candidate_skills: Iterable[str], job_skills: Iterable[str]) -> List[str]:
    """Job skills with at least one semantically matching candidate skill."""
    have = list(candidate_skills)
    return [
        job_skill
        for job_skill in job_skills
        if any(is_semantic_match(skill, job_skill) for skill in have)
    ]


def extract_years_requirement(text: Optional[str]) -> Tuple[Optional[float], Optional[float]]:
    """
    Extract (minimum, ideal) years of experience from a job description.

    A range such as "3-5 years" gives min 3 and ideal 4 (the midpoint). An
    open bound such as "5+ years" or "at least 5 years" gives min 5 and
    ideal 5.

    Returns:
        (None, None) when the text states no requirement
    """
    if not text:
        return None, None

    lowered = text.lower()

    match = _RANGE_PATTERN.search(lowered)
    if match:
        low, high = sorted((float(match.group(1)), float(match.group(2))))
        return low, (low + high) / 2

    for pattern in _MIN_PATTERNS:
        match = pattern.search(lowered)
        if match:
            years = float(match.group(1))
            return years, years

    return None, None


def tokenize(*texts: Optional[str]) -> Set[str]:
    """Content terms of the given texts, lowercased, stop words removed."""
    terms: Set[str] = set()
    for text in texts:
        if not text:
            continue
        for token in _TOKEN_PATTERN.findall(text.lower()):
            token = token.rstrip(".")
            if len(token) > 1 and token not in STOP_WORDS:
                terms.add(token)
    return terms
