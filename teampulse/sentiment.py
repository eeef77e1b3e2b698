"""
Sentiment aggregation for the TeamPulse service.

Everything here is a pure function of its arguments: counts go in, weighted
scores, classification bands and trends come out. Empty or single-point input
produces defined zero/stable results rather than errors.
"""

import datetime as dt
from collections import defaultdict
from collections.abc import Iterable, Sequence

from .models import (
    Sentiment,
    SentimentClassification,
    SentimentCounts,
    SentimentDataPoint,
    SentimentStats,
    TrendResult,
    TrendRow,
)

SENTIMENT_WEIGHTS: dict[Sentiment, int] = {
    Sentiment.HAPPY: 3,
    Sentiment.NEUTRAL: 2,
    Sentiment.SAD: 1,
}

# (threshold, label, color), highest threshold first
CLASSIFICATION_BANDS: tuple[tuple[float, str, str], ...] = (
    (2.7, "Excellent", "emerald"),
    (2.3, "Good", "green"),
    (2.0, "Moderate", "blue"),
    (1.7, "Neutral", "yellow"),
    (1.3, "Needs Attention", "orange"),
)
CRITICAL_LABEL = "Critical"
CRITICAL_COLOR = "red"

# Changes smaller than this (in percent) are reported as stable
STABLE_THRESHOLD_PERCENT = 2


def _weighted_sum(counts: SentimentCounts) -> int:
    return (
        counts.happy * SENTIMENT_WEIGHTS[Sentiment.HAPPY]
        + counts.neutral * SENTIMENT_WEIGHTS[Sentiment.NEUTRAL]
        + counts.sad * SENTIMENT_WEIGHTS[Sentiment.SAD]
    )


def _combine(points: Iterable[SentimentCounts]) -> SentimentCounts:
    """Sum the counts of several points into one."""
    happy = neutral = sad = 0
    for point in points:
        happy += point.happy
        neutral += point.neutral
        sad += point.sad
    return SentimentCounts(happy=happy, neutral=neutral, sad=sad)


def weighted_average(counts: SentimentCounts) -> float:
    """
    Compute the weighted average score of a set of counts.

    Args:
        counts: Number of happy, neutral and sad responses

    Returns:
        A score in [1, 3], or 0 when there are no responses
    """
    total = counts.total
    if total == 0:
        return 0
    return _weighted_sum(counts) / total


def classify(score: float) -> SentimentClassification:
    """Map a weighted average score onto its classification band."""
    for threshold, label, color in CLASSIFICATION_BANDS:
        if score >= threshold:
            return SentimentClassification(label=label, color=color, score=score)
    return SentimentClassification(
        label=CRITICAL_LABEL, color=CRITICAL_COLOR, score=score
    )


def count_sentiments(sentiments: Iterable[Sentiment]) -> SentimentCounts:
    """Count how many of each sentiment value appear."""
    tally = dict.fromkeys(Sentiment, 0)
    for sentiment in sentiments:
        tally[sentiment] += 1
    return SentimentCounts(
        happy=tally[Sentiment.HAPPY],
        neutral=tally[Sentiment.NEUTRAL],
        sad=tally[Sentiment.SAD],
    )


def aggregate_trend(points: Sequence[SentimentDataPoint]) -> TrendResult:
    """
    Compare the earlier and later halves of a series of data points.

    Points are sorted by date first, so the input order does not matter. With
    an odd number of points the middle one belongs to the later half. Each
    half's counts are summed before averaging.

    Args:
        points: Data points in any order

    Returns:
        The trend direction and the percentage change rounded to one decimal
    """
    if len(points) < 2:
        return TrendResult(sentiment_trend="stable", weekly_change=0)

    ordered = sorted(points, key=lambda point: point.date)
    middle = len(ordered) // 2
    first_avg = weighted_average(_combine(ordered[:middle]))
    second_avg = weighted_average(_combine(ordered[middle:]))

    change = second_avg - first_avg
    change_percent = (change / first_avg) * 100 if first_avg > 0 else 0

    if abs(change_percent) < STABLE_THRESHOLD_PERCENT:
        trend = "stable"
    elif change_percent > 0:
        trend = "up"
    else:
        trend = "down"

    return TrendResult(sentiment_trend=trend, weekly_change=round(change_percent, 1))


def summarize(
    points: Sequence[SentimentDataPoint],
    team_count: int | None = None,
    active_member_total: int | None = None,
) -> SentimentStats:
    """
    Build dashboard statistics for a set of data points.

    Args:
        points: Data points to aggregate, in any order
        team_count: Number of teams, passed through unchanged
        active_member_total: Number of active members, passed through unchanged

    Returns:
        Overall average, classification and trend for the whole set
    """
    total_teams = team_count or 0

    if not points:
        return SentimentStats(
            total_data_points=0,
            avg_sentiment=0,
            total_responses=0,
            total_teams=total_teams,
            active_members=0,
            sentiment_trend="stable",
            weekly_change=0,
            sentiment_data=classify(0),
        )

    combined = _combine(points)
    avg_sentiment = weighted_average(combined)
    trend = aggregate_trend(points)

    return SentimentStats(
        total_data_points=len(points),
        avg_sentiment=avg_sentiment,
        total_responses=combined.total,
        total_teams=total_teams,
        active_members=active_member_total or 0,
        sentiment_trend=trend.sentiment_trend,
        weekly_change=trend.weekly_change,
        sentiment_data=classify(avg_sentiment),
    )


def team_trend_rows(points: Iterable[SentimentDataPoint]) -> list[TrendRow]:
    """
    Group data points into one row per date with an average score per team.

    Points without a team name are grouped under their team id. Points from
    the same team on the same date are combined before averaging.
    """
    by_date: defaultdict[dt.date, defaultdict[str, list[SentimentDataPoint]]] = (
        defaultdict(lambda: defaultdict(list))
    )
    for point in points:
        team_key = point.team_name or point.team_id or "unknown"
        by_date[point.date][team_key].append(point)

    rows = []
    for day in sorted(by_date):
        scores = {
            team: weighted_average(_combine(team_points))
            for team, team_points in by_date[day].items()
        }
        rows.append(TrendRow(date=day, scores=scores))
    return rows
