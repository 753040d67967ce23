"""
Keyword-based sentiment and issue-category analysis of customer messages
"""
from dataclasses import dataclass, field
from typing import List, Optional, Tuple
import re

from cs_core.models.cs_session import CustomerSentiment, IssueCategory, SENTIMENT_SCORES


# Checked in order; first list with a substring hit decides the sentiment
SENTIMENT_KEYWORDS: List[Tuple[CustomerSentiment, List[str]]] = [
    (CustomerSentiment.IRATE, ["angry", "furious", "ridiculous", "unacceptable", "lawsuit", "lawyer", "bbb", "attorney"]),
    (CustomerSentiment.ANGRY, ["upset", "frustrated", "annoyed", "terrible", "horrible", "worst"]),
    (CustomerSentiment.FRUSTRATED, ["disappointed", "unhappy", "not happy", "problem", "issue"]),
    (CustomerSentiment.SATISFIED, ["thank", "great", "appreciate", "helpful", "excellent"]),
]

# Checked in order, independently of sentiment
CATEGORY_KEYWORDS: List[Tuple[IssueCategory, List[str]]] = [
    (IssueCategory.REFUND, ["refund", "money back"]),
    (IssueCategory.SHIPPING, ["shipping", "delivery", "track"]),
    (IssueCategory.CANCELLATION, ["cancel", "subscription"]),
    (IssueCategory.BILLING, ["charge", "bill", "payment"]),
    (IssueCategory.PRODUCT_QUALITY, ["quality", "broken", "defect"]),
]

STOP_WORDS = frozenset([
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
    "is", "are", "was", "were", "i", "you", "my", "your",
])

_TOKEN_STRIP = re.compile(r"^[^\w]+|[^\w]+$")


@dataclass
class MessageAnalysis:
    """Result of analyzing one customer message"""
    sentiment: CustomerSentiment
    category: Optional[IssueCategory] = None
    trigger: Optional[str] = None
    keywords: List[str] = field(default_factory=list)

    @property
    def score(self) -> float:
        return get_sentiment_score(self.sentiment)


def get_sentiment_score(sentiment: CustomerSentiment) -> float:
    """Numeric score, 0.0 for IRATE up to 1.0 for HAPPY"""
    return SENTIMENT_SCORES[sentiment]


def detect_sentiment(message: str) -> Tuple[CustomerSentiment, Optional[str]]:
    """Return (sentiment, trigger keyword); trigger is None for positive or neutral text"""
    lower_message = message.lower()
    for sentiment, keywords in SENTIMENT_KEYWORDS:
        for keyword in keywords:
            if keyword in lower_message:
                trigger = keyword if sentiment != CustomerSentiment.SATISFIED else None
                return sentiment, trigger
    return CustomerSentiment.NEUTRAL, None


def detect_category(message: str) -> Optional[IssueCategory]:
    lower_message = message.lower()
    for category, keywords in CATEGORY_KEYWORDS:
        if any(keyword in lower_message for keyword in keywords):
            return category
    return None


def extract_keywords(message: str) -> List[str]:
    """
    Lower-case tokens longer than two characters that are not stop words,
    followed by two-word phrases built from adjacent kept tokens so that
    phrases such as "legal action" or "post online" can be matched.
    """
    tokens = [_TOKEN_STRIP.sub("", word) for word in message.lower().split()]
    kept = [token if len(token) > 2 and token not in STOP_WORDS else None for token in tokens]

    keywords = [token for token in kept if token]
    for first, second in zip(kept, kept[1:]):
        if first and second:
            keywords.append(f"{first} {second}")
    return keywords


def analyze_message(message: str) -> MessageAnalysis:
    """Classify a customer message. Pure: depends only on the text and the keyword tables."""
    sentiment, trigger = detect_sentiment(message)
    return MessageAnalysis(
        sentiment=sentiment,
        category=detect_category(message),
        trigger=trigger,
        keywords=extract_keywords(message),
    )
