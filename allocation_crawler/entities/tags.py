"""
Keyword tag classifier

A job gets a tag when its lowercased title + department contains any of
that tag's keywords as a substring.
"""

from typing import Callable

TagClassifier = Callable[[str, str], frozenset[str]]

TAG_KEYWORDS: dict[str, tuple[str, ...]] = {
    "quant": (
        "quant", "quantitative", "trading", "risk", "alpha", "signal",
        "portfolio", "derivatives", "options", "futures", "hft",
        "low latency", "market making", "execution", "pricing",
        "stochastic", "statistical", "backtesting", "factor",
        "systematic", "algo", "algorithmic",
    ),
    "ml": (
        "machine learning", "ml", "deep learning", "neural",
        "nlp", "natural language", "computer vision", "cv",
        "data scientist", "data science", "ai ",
    ),
    "engineering": (
        "engineer", "developer", "software", "swe", "devops",
        "infrastructure", "platform", "backend", "back-end",
        "fullstack", "full-stack",
    ),
    "frontend": (
        "frontend", "front-end", "react", "ui", "ux",
    ),
    "research": (
        "research", "researcher",
    ),
    "analyst": (
        "analyst", "analysis", "analytics",
    ),
    "data": (
        "data engineer", "data pipeline", "etl", "spark", "airflow",
    ),
    "intern": (
        "intern", "internship",
    ),
    "senior": (
        "senior", "staff", "principal", "lead", "director",
    ),
    "junior": (
        "junior", "associate", "entry level", "new grad",
    ),
    "systems": (
        "c++", "rust", "fpga", "embedded", "systems",
        "kdb", "q language", "low latency",
    ),
}


def extract_tags(title: str, department: str) -> frozenset[str]:
    """Return the set of tags matching a job's title and department"""
    combined = f"{title or ''} {department or ''}".lower()
    return frozenset(
        tag
        for tag, keywords in TAG_KEYWORDS.items()
        if any(keyword in combined for keyword in keywords)
    )
