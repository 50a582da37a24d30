"""
Chart series derived from a normalized Analysis.

Functions:
    keyword_chart(analysis)    - top 10 keywords      -> [{name, count}]
    theme_chart(analysis)      - top 8 themes         -> [{name, count}]
    filter_pie(analysis)       - pre-filter breakdown -> [{name, value}]
    sentiment_pie(analysis)    - sentiment split      -> [{name, value}]
    build_charts(analysis)     - all of the above keyed by chart name
"""

from typing import Any, Dict, List

from socialsense.models.analysis import Analysis

KEYWORD_LIMIT = 10
THEME_LIMIT = 8


def keyword_chart(analysis: Analysis, limit: int = KEYWORD_LIMIT) -> List[Dict[str, Any]]:
    return [{"name": k.word, "count": k.count} for k in analysis.keywords[:limit]]


def theme_chart(analysis: Analysis, limit: int = THEME_LIMIT) -> List[Dict[str, Any]]:
    return [{"name": t.theme, "count": t.count} for t in analysis.themes[:limit]]


def filter_pie(analysis: Analysis) -> List[Dict[str, Any]]:
    stats = analysis.filter_stats
    slices = [
        {"name": "Analyzed", "value": stats.after_hard_filters},
        {"name": "Emoji Only", "value": stats.emoji_only},
        {"name": "Spam/Promo", "value": stats.spam_promo},
        {"name": "Duplicates", "value": stats.duplicates},
    ]
    return [s for s in slices if s["value"] > 0]


def sentiment_pie(analysis: Analysis) -> List[Dict[str, Any]]:
    scores = analysis.sentiment_scores
    slices = [
        {"name": "Positive", "value": scores.positive},
        {"name": "Neutral", "value": scores.neutral},
        {"name": "Negative", "value": scores.negative},
    ]
    return [s for s in slices if s["value"] > 0]


def build_charts(analysis: Analysis) -> Dict[str, List[Dict[str, Any]]]:
    return {
        "keywords": keyword_chart(analysis),
        "themes": theme_chart(analysis),
        "filters": filter_pie(analysis),
        "sentiment": sentiment_pie(analysis),
    }
