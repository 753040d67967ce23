"""
Customer context snapshot and per-company tier configuration

The snapshot is built once when a session starts and stored on the session as
plain JSON, so everything here is converted to str/float/int.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from cs_core.core.config import EngineConfig
from cs_core.models.cs_config import CSConfig
from cs_core.models.cs_session import (
    CSSession,
    CSSessionStatus,
    CSTier,
    IssueCategory,
    ResolutionType,
)
from cs_core.models.customer import Customer, Order, Subscription, Transaction
from cs_core.services.prompts import DEFAULT_TIER_LIMITS, TierLimits

GOLD_LTV_THRESHOLD = 5000
SILVER_LTV_THRESHOLD = 1000

# CSConfig JSON key -> TierLimits field
TIER_LIMIT_KEYS = {
    "maxDiscountPercent": "max_discount_percent",
    "maxRefundAmount": "max_refund_amount",
    "maxWaiveAmount": "max_waive_amount",
    "maxGoodwillCredit": "max_goodwill_credit",
}


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _money(value) -> float:
    return float(value) if value is not None else 0.0


def get_available_actions(tier: CSTier) -> List[Dict[str, Any]]:
    """Actions the given tier may take; refunds need approval at AI_MANAGER"""
    tier = CSTier(tier)
    actions = [
        {"id": "view_order", "name": "View Order Details", "description": "Access order information",
         "tier": tier.value, "requiresApproval": False},
        {"id": "track_package", "name": "Track Package", "description": "Get shipping status",
         "tier": tier.value, "requiresApproval": False},
        {"id": "send_email", "name": "Send Email", "description": "Send confirmation email",
         "tier": tier.value, "requiresApproval": False},
    ]

    if tier in (CSTier.AI_MANAGER, CSTier.HUMAN_AGENT):
        actions.extend([
            {"id": "process_refund", "name": "Process Refund", "description": "Issue refund to customer",
             "tier": tier.value, "requiresApproval": tier == CSTier.AI_MANAGER},
            {"id": "apply_credit", "name": "Apply Credit", "description": "Add store credit",
             "tier": tier.value, "requiresApproval": False},
            {"id": "modify_subscription", "name": "Modify Subscription", "description": "Change subscription plan",
             "tier": tier.value, "requiresApproval": False},
        ])

    return actions


def _loyalty_tier(lifetime_value: float, is_vip: bool) -> str:
    if is_vip:
        return "VIP"
    if lifetime_value > GOLD_LTV_THRESHOLD:
        return "Gold"
    if lifetime_value > SILVER_LTV_THRESHOLD:
        return "Silver"
    return "Standard"


def build_customer_context(
    db: Session,
    company_id,
    customer_id,
    config: EngineConfig,
    starting_tier: CSTier = CSTier.AI_REP,
) -> Dict[str, Any]:
    """
    Snapshot of who the customer is and how they have been served before.

    An unknown customer yields a default "Customer" profile rather than an error.
    """
    customer = db.query(Customer).filter(
        Customer.id == customer_id,
        Customer.company_id == company_id
    ).first()

    previous_escalations = db.query(CSSession).filter(
        CSSession.customer_id == customer_id,
        CSSession.company_id == company_id,
        CSSession.status == CSSessionStatus.ESCALATED
    ).count()

    lifetime_value = _money(
        db.query(func.sum(Transaction.amount)).filter(
            Transaction.customer_id == customer_id,
            Transaction.status == "COMPLETED"
        ).scalar()
    )
    is_vip = lifetime_value > config.vip_lifetime_value_threshold

    created_at = customer.created_at if customer else datetime.utcnow()
    tenure_months = max((datetime.utcnow() - created_at).days // 30, 0)

    if customer:
        name = customer.display_name or "Customer"
    else:
        name = "Customer"

    customer_context = {
        "id": str(customer_id),
        "name": name,
        "email": customer.email if customer else "unknown@example.com",
        "phone": customer.phone if customer else None,
        "tier": _loyalty_tier(lifetime_value, is_vip),
        "lifetimeValue": lifetime_value,
        "tenureMonths": tenure_months,
        "isVIP": is_vip,
        "previousEscalations": previous_escalations,
    }

    order_history = []
    if customer:
        orders = db.query(Order).filter(
            Order.customer_id == customer.id
        ).order_by(Order.created_at.desc()).limit(10).all()
        order_history = [
            {
                "id": str(order.id),
                "date": _iso(order.created_at),
                "total": _money(order.total),
                "status": order.status,
                "deliveryStatus": order.fulfillment_status,
            }
            for order in orders
        ]

    recent_sessions = db.query(CSSession).filter(
        CSSession.customer_id == customer_id,
        CSSession.company_id == company_id,
        CSSession.resolved_at.isnot(None)
    ).order_by(CSSession.resolved_at.desc()).limit(5).all()
    recent_history = [
        {
            "id": str(s.id),
            "date": _iso(s.resolved_at or s.created_at),
            "channel": s.channel.value,
            "issueCategory": (s.issue_category or IssueCategory.GENERAL_INQUIRY).value,
            "resolution": (s.resolution_type or ResolutionType.UNRESOLVED).value,
            "satisfaction": s.customer_satisfaction,
            "handledBy": s.current_tier.value,
        }
        for s in recent_sessions
    ]

    active_subscription = None
    if customer:
        subscription = db.query(Subscription).filter(
            Subscription.customer_id == customer.id,
            Subscription.status == "ACTIVE"
        ).first()
        if subscription:
            active_subscription = {
                "id": str(subscription.id),
                "plan": subscription.plan_name or "Standard",
                "status": subscription.status.lower(),
                "nextBillingDate": _iso(subscription.current_period_end),
                "monthlyAmount": _money(subscription.plan_amount),
                "startDate": _iso(subscription.created_at),
            }

    return {
        "customer": customer_context,
        "recentHistory": recent_history,
        "orderHistory": order_history,
        "activeSubscription": active_subscription,
        "availableActions": get_available_actions(starting_tier),
    }


def _get_cs_config(db: Session, company_id) -> Optional[CSConfig]:
    return db.query(CSConfig).filter(CSConfig.company_id == company_id).first()


def determine_starting_tier(db: Session, company_id, channel) -> CSTier:
    """Per-channel starting tier from company config, AI_REP by default"""
    cs_config = _get_cs_config(db, company_id)
    channel_key = getattr(channel, "value", channel)
    if cs_config and cs_config.channel_configs:
        starting_tier = (cs_config.channel_configs.get(channel_key) or {}).get("startingTier")
        if starting_tier:
            return CSTier(starting_tier)
    return CSTier.AI_REP


def get_tier_limits(db: Session, company_id, tier: CSTier) -> TierLimits:
    """Tier authority limits; missing or zero values fall back to the defaults"""
    defaults = DEFAULT_TIER_LIMITS[tier]
    cs_config = _get_cs_config(db, company_id)
    if not cs_config:
        return defaults

    raw = (cs_config.ai_manager_config if tier == CSTier.AI_MANAGER else cs_config.ai_rep_config) or {}
    return TierLimits(**{
        field_name: raw.get(key) or getattr(defaults, field_name)
        for key, field_name in TIER_LIMIT_KEYS.items()
    })
