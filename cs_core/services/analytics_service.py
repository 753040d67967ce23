"""
Customer-service analytics over a reporting period

compute_analytics() is a pure function of the sessions it is given; the same
sessions always produce the same report. Times are in minutes.
"""
import math
from collections import Counter, OrderedDict
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from cs_core.core.config import EngineConfig
from cs_core.models.cs_session import (
    CSChannel,
    CSSession,
    CSSessionStatus,
    CSTier,
    CustomerSentiment,
    EscalationReason,
    IssueCategory,
    SENTIMENT_SCORES,
)

CHANNEL_ORDER = (CSChannel.CHAT, CSChannel.VOICE, CSChannel.EMAIL, CSChannel.SMS)
TOP_ISSUES_LIMIT = 10
TOP_RESOLUTIONS_LIMIT = 3


def _round1(value: float) -> float:
    """Round half up to one decimal"""
    return math.floor(value * 10 + 0.5) / 10


def _percent(part: int, whole: int) -> int:
    return int(math.floor(part / whole * 100 + 0.5)) if whole else 0


def _minutes(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / 60


def _avg_resolution_minutes(sessions: List[CSSession]) -> float:
    durations = [_minutes(s.created_at, s.resolved_at) for s in sessions if s.resolved_at]
    return _round1(sum(durations) / len(durations)) if durations else 0


def _value(enum_or_str) -> Optional[str]:
    return getattr(enum_or_str, "value", enum_or_str)


def _by_tier(sessions: List[CSSession]) -> List[Dict[str, Any]]:
    report = []
    for tier in CSTier:
        tier_sessions = [s for s in sessions if s.current_tier == tier]
        resolved = [s for s in tier_sessions if s.status == CSSessionStatus.RESOLVED]
        report.append({
            "tier": tier.value,
            "sessions": len(tier_sessions),
            "resolved": len(resolved),
            "resolutionRate": _percent(len(resolved), len(tier_sessions)),
            "avgTime": _avg_resolution_minutes(resolved),
        })
    return report


def _by_channel(sessions: List[CSSession]) -> List[Dict[str, Any]]:
    report = []
    for channel in CHANNEL_ORDER:
        channel_sessions = [s for s in sessions if s.channel == channel]
        if not channel_sessions:
            continue
        resolved = [s for s in channel_sessions if s.status == CSSessionStatus.RESOLVED]
        report.append({
            "channel": channel.value,
            "sessions": len(channel_sessions),
            "resolved": len(resolved),
            "avgTime": _avg_resolution_minutes(resolved),
        })
    return report


def _by_category(sessions: List[CSSession]) -> List[Dict[str, Any]]:
    report = []
    for category in IssueCategory:
        category_sessions = [s for s in sessions if s.issue_category == category]
        if not category_sessions:
            continue
        resolved = [s for s in category_sessions if s.resolved_at]
        resolution_counts = Counter(_value(s.resolution_type) for s in resolved if s.resolution_type)
        report.append({
            "category": category.value,
            "count": len(category_sessions),
            "avgResolutionTime": _avg_resolution_minutes(resolved),
            "topResolutions": [r for r, _ in resolution_counts.most_common(TOP_RESOLUTIONS_LIMIT)],
        })
    return report


def _escalations(sessions: List[CSSession]) -> Dict[str, Any]:
    by_reason = OrderedDict((reason.value, 0) for reason in EscalationReason)
    total = 0
    time_sum = 0.0

    for session in sessions:
        for event in session.escalation_history or []:
            reason = event.get("reason")
            if reason not in by_reason:
                continue
            by_reason[reason] += 1
            total += 1
            time_sum += _minutes(session.created_at, datetime.fromisoformat(event["timestamp"]))

    return {
        "total": total,
        "byReason": dict(by_reason),
        "avgEscalationTime": _round1(time_sum / total) if total else 0,
        "escalationRate": _percent(total, len(sessions)),
    }


def _sentiment(sessions: List[CSSession], config: EngineConfig) -> Dict[str, Any]:
    distribution = OrderedDict((sentiment.value, 0) for sentiment in CustomerSentiment)
    irate_incidents = 0
    improved = 0
    comparable = 0
    positive = 0

    for session in sessions:
        final = _value(session.customer_sentiment)
        if final in distribution:
            distribution[final] += 1
            if SENTIMENT_SCORES[CustomerSentiment(final)] >= config.high_sentiment_threshold:
                positive += 1

        history = session.sentiment_history or []
        if any(h.get("sentiment") == CustomerSentiment.IRATE.value for h in history):
            irate_incidents += 1
        if len(history) >= 2:
            comparable += 1
            if history[-1]["score"] > history[0]["score"]:
                improved += 1

    return {
        "distribution": dict(distribution),
        "irateIncidents": irate_incidents,
        "sentimentImprovement": _percent(improved, comparable),
        "positiveSessions": positive,
    }


def _top_issues(sessions: List[CSSession]) -> List[Dict[str, Any]]:
    counts: "OrderedDict[str, Dict[str, float]]" = OrderedDict()
    for session in sessions:
        issue = _value(session.issue_category) or "General inquiry"
        data = counts.setdefault(issue, {"count": 0, "totalTime": 0.0, "resolvedCount": 0})
        data["count"] += 1
        if session.resolved_at:
            data["totalTime"] += _minutes(session.created_at, session.resolved_at)
            data["resolvedCount"] += 1

    issues = [
        {
            "issue": issue.replace("_", " ").title(),
            "count": data["count"],
            "avgResolutionTime": _round1(data["totalTime"] / data["resolvedCount"]) if data["resolvedCount"] else 0,
        }
        for issue, data in counts.items()
    ]
    issues.sort(key=lambda i: i["count"], reverse=True)
    return issues[:TOP_ISSUES_LIMIT]


def compute_analytics(
    sessions: Iterable[CSSession],
    start_date: datetime,
    end_date: datetime,
    config: EngineConfig,
) -> Dict[str, Any]:
    sessions = list(sessions)
    total = len(sessions)
    resolved = [s for s in sessions if s.status == CSSessionStatus.RESOLVED]
    satisfaction = [s.customer_satisfaction for s in sessions if s.customer_satisfaction is not None]
    message_total = sum(len(s.messages) for s in sessions)

    return {
        "period": {"start": start_date.isoformat(), "end": end_date.isoformat()},
        "overview": {
            "totalSessions": total,
            "resolvedSessions": len(resolved),
            "resolutionRate": _percent(len(resolved), total),
            "avgResolutionTime": _avg_resolution_minutes(sessions),
            "avgMessagesPerSession": _round1(message_total / total) if total else 0,
            "customerSatisfactionAvg": _round1(sum(satisfaction) / len(satisfaction)) if satisfaction else 0,
        },
        "byTier": _by_tier(sessions),
        "byChannel": _by_channel(sessions),
        "byCategory": _by_category(sessions),
        "escalations": _escalations(sessions),
        "sentiment": _sentiment(sessions, config),
        "topIssues": _top_issues(sessions),
    }


def get_analytics(
    db: Session,
    company_id,
    start_date: datetime,
    end_date: datetime,
    config: EngineConfig,
) -> Dict[str, Any]:
    """Report for sessions of one company created within [start_date, end_date]"""
    sessions = db.query(CSSession).filter(
        CSSession.company_id == company_id,
        CSSession.created_at >= start_date,
        CSSession.created_at <= end_date
    ).order_by(CSSession.created_at, CSSession.id).all()
    return compute_analytics(sessions, start_date, end_date, config)
