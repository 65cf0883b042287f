"""Keyword-based category assignment for external listings."""

import re
from typing import Optional

DEFAULT_CATEGORY = "Other"

# Checked in order; the first category with a matching keyword wins, so the
# more specific categories come before the broad ones they overlap with.
CATEGORY_KEYWORDS: dict[str, list[str]] = {
    "Mobile Development": ["mobile", "android", "ios", "flutter", "react native", "app development"],
    "Web Development": [
        "web", "frontend", "front-end", "front end", "html", "css",
        "javascript", "react", "angular", "vue", "node",
    ],
    "Data Science": ["data science", "data analyst", "analytics", "data engineer", "big data"],
    "Machine Learning": [
        "machine learning", "ml", "ai", "artificial intelligence", "deep learning", "nlp",
    ],
    "Software Development": [
        "software", "developer", "engineer", "programming", "backend", "full stack",
    ],
    "Graphic Design": ["graphic design", "photoshop", "illustrator", "visual design"],
    "UI/UX Design": ["ui", "ux", "design", "figma", "sketch", "user interface", "user experience"],
    "Digital Marketing": ["marketing", "digital marketing", "seo", "social media", "content marketing"],
    "Business Development": ["business development", "sales", "bd", "client relations"],
    "Finance": ["finance", "accounting", "financial", "investment", "banking"],
    "Human Resources": ["hr", "human resources", "recruitment", "talent"],
    "Content Writing": ["content", "writing", "copywriting", "blog", "editorial"],
    "Research": ["research", "r&d", "researcher"],
}

# Keywords this short only count as whole words ("ai" must not match "email")
_WHOLE_WORD_MAX_LEN = 3


def _compile(keyword: str) -> re.Pattern:
    escaped = re.escape(keyword)
    if len(keyword) <= _WHOLE_WORD_MAX_LEN:
        return re.compile(rf"(?<![a-z0-9]){escaped}(?![a-z0-9])")
    return re.compile(escaped)


class Categorizer:
    """Assign a category to a listing from its title and description.

    Example:
        categorizer = Categorizer()
        categorizer.categorize("Frontend Intern", "Build UIs in React")
        # "Web Development"
    """

    def __init__(
        self,
        table: Optional[dict[str, list[str]]] = None,
        default: str = DEFAULT_CATEGORY,
    ):
        self.default = default
        self._patterns = [
            (category, [_compile(k.lower()) for k in keywords])
            for category, keywords in (table or CATEGORY_KEYWORDS).items()
        ]

    def categorize(self, title: Optional[str], description: Optional[str] = None) -> str:
        text = f"{title or ''} {description or ''}".lower()
        for category, patterns in self._patterns:
            if any(p.search(text) for p in patterns):
                return category
        return self.default
