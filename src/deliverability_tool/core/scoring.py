"""Deliverability scoring.

Category scores come from the analyzers' get_score(); this module only
sums them, grades them and turns them into recommendations.
"""

from dataclasses import dataclass, field
from typing import Any

from ..analyzers.protocol import CheckCategory
from ..constants import (
    MAX_AUTHENTICATION_SCORE,
    MAX_BLACKLIST_SCORE,
    MAX_CONTENT_SCORE,
    MAX_HEADER_SCORE,
    MAX_SPAM_SCORE,
)

# Scored categories and their maxima, in display order; sums to 10
CATEGORY_MAX_SCORES: dict[CheckCategory, float] = {
    CheckCategory.AUTHENTICATION: MAX_AUTHENTICATION_SCORE,
    CheckCategory.BLACKLIST: MAX_BLACKLIST_SCORE,
    CheckCategory.CONTENT: MAX_CONTENT_SCORE,
    CheckCategory.SPAM: MAX_SPAM_SCORE,
    CheckCategory.HEADERS: MAX_HEADER_SCORE,
}

CATEGORY_LABELS: dict[CheckCategory, str] = {
    CheckCategory.AUTHENTICATION: "Authentication",
    CheckCategory.BLACKLIST: "Blacklists",
    CheckCategory.CONTENT: "Content Quality",
    CheckCategory.SPAM: "Spam Filters",
    CheckCategory.HEADERS: "Email Structure",
}

_GRADE_THRESHOLDS = (
    (97.0, "A+"),
    (93.0, "A"),
    (85.0, "B"),
    (75.0, "C"),
    (65.0, "D"),
    (50.0, "E"),
)

_RATING_THRESHOLDS = (
    (90.0, "Excellent"),
    (70.0, "Good"),
    (50.0, "Fair"),
    (30.0, "Poor"),
)


def score_to_grade(percentage: float) -> str:
    """Letter grade for a 0-100 score."""
    for threshold, grade in _GRADE_THRESHOLDS:
        if percentage >= threshold:
            return grade
    return "F"


def score_to_rating(percentage: float) -> str:
    for threshold, rating in _RATING_THRESHOLDS:
        if percentage >= threshold:
            return rating
    return "Critical"


def category_status(score: float, max_score: float) -> str:
    """Pass at 80% of the maximum, Warn at 50%, Fail below."""
    percentage = score / max_score * 100.0 if max_score else 0.0
    if percentage >= 80.0:
        return "Pass"
    if percentage >= 50.0:
        return "Warn"
    return "Fail"


@dataclass
class CategoryScore:
    """Score breakdown for one category."""

    category: CheckCategory
    score: float
    max_score: float
    skipped: bool = False

    @property
    def label(self) -> str:
        return CATEGORY_LABELS[self.category]

    @property
    def percentage(self) -> float:
        if not self.max_score:
            return 0.0
        return round(self.score / self.max_score * 100.0, 1)

    @property
    def grade(self) -> str:
        return score_to_grade(self.percentage)

    @property
    def status(self) -> str:
        return category_status(self.score, self.max_score)

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category.value,
            "label": self.label,
            "score": self.score,
            "max_score": self.max_score,
            "percentage": self.percentage,
            "grade": self.grade,
            "status": self.status,
            "skipped": self.skipped,
        }


@dataclass
class ScoreSummary:
    """Overall score, grade and per-category breakdown."""

    categories: dict[CheckCategory, CategoryScore] = field(default_factory=dict)
    overall_score: float = 0.0
    grade: str = "F"
    rating: str = "Critical"
    recommendations: list[str] = field(default_factory=list)

    def score_of(self, category: CheckCategory) -> float:
        entry = self.categories.get(category)
        return entry.score if entry else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "overall_score": self.overall_score,
            "grade": self.grade,
            "rating": self.rating,
            "categories": {
                category.value: entry.to_dict() for category, entry in self.categories.items()
            },
            "recommendations": self.recommendations,
        }


def calculate_summary(
    scores: dict[CheckCategory, float], skipped: set[CheckCategory] | None = None
) -> ScoreSummary:
    """
    Fold category scores into the overall 0-100 score.

    Args:
        scores: Category -> score on that category's own scale. Missing
            categories count as 0.
        skipped: Categories none of whose analyzers ran

    Returns:
        ScoreSummary with grade, rating and recommendations

    Example:
        >>> summary = calculate_summary({CheckCategory.AUTHENTICATION: 3.0, ...})
        >>> summary.grade
        'A+'
    """
    skipped = skipped or set()
    summary = ScoreSummary()

    for category, max_score in CATEGORY_MAX_SCORES.items():
        value = min(max(scores.get(category, 0.0), 0.0), max_score)
        summary.categories[category] = CategoryScore(
            category=category,
            score=round(value, 3),
            max_score=max_score,
            skipped=category in skipped,
        )

    total = sum(entry.score for entry in summary.categories.values())
    summary.overall_score = round(min(max(total * 10.0, 0.0), 100.0), 1)
    summary.grade = score_to_grade(summary.overall_score)
    summary.rating = score_to_rating(summary.overall_score)
    summary.recommendations = generate_recommendations(summary)
    return summary


def generate_recommendations(summary: ScoreSummary) -> list[str]:
    """Actionable recommendations from category thresholds."""
    recommendations: list[str] = []

    auth = summary.score_of(CheckCategory.AUTHENTICATION)
    if auth < 2.0:
        recommendations.append(
            "Improve email authentication by configuring SPF, DKIM, and DMARC records"
        )
    elif auth < MAX_AUTHENTICATION_SCORE:
        recommendations.append(
            "Fine-tune your email authentication setup for optimal deliverability"
        )

    spam = summary.score_of(CheckCategory.SPAM)
    if spam < 1.0:
        recommendations.append(
            "Reduce spam triggers by reviewing email content and avoiding spam-like patterns"
        )
    elif spam < 1.5:
        recommendations.append("Monitor spam score and address any flagged content issues")

    blacklist = summary.score_of(CheckCategory.BLACKLIST)
    if blacklist < 1.0:
        recommendations.append(
            "Your IP is listed on blacklists - take immediate action to delist "
            "and improve sender reputation"
        )
    elif blacklist < MAX_BLACKLIST_SCORE:
        recommendations.append("Monitor your IP reputation and ensure clean sending practices")

    content = summary.score_of(CheckCategory.CONTENT)
    if content < 1.0:
        recommendations.append(
            "Improve email content quality: fix broken links, add alt text to images, "
            "and ensure proper HTML structure"
        )
    elif content < 1.5:
        recommendations.append(
            "Enhance email content by optimizing images and ensuring text/HTML consistency"
        )

    headers = summary.score_of(CheckCategory.HEADERS)
    if headers < 0.5:
        recommendations.append(
            "Fix email structure by adding required headers (From, Date, Message-ID)"
        )
    elif headers < MAX_HEADER_SCORE:
        recommendations.append(
            "Improve email headers by ensuring all recommended fields are present"
        )

    if summary.rating == "Excellent":
        recommendations.append(
            "Your email has excellent deliverability - maintain current practices"
        )
    elif summary.rating == "Critical":
        recommendations.append(
            "Critical issues detected - emails will likely be rejected or marked as spam"
        )

    return recommendations
