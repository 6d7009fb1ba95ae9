from typing import Dict, FrozenSet

ORDER_STATUSES: FrozenSet[str] = frozenset(
    {"pending", "in_progress", "completed", "cancelled"}
)

# Cascade trigger lifecycle: pending -> converted | abandoned (terminal)
TRIGGER_PENDING = "pending"
TRIGGER_CONVERTED = "converted"
TRIGGER_ABANDONED = "abandoned"
TRIGGER_STATUSES: FrozenSet[str] = frozenset(
    {TRIGGER_PENDING, TRIGGER_CONVERTED, TRIGGER_ABANDONED}
)
# Statuses covered by the (customer, triggered service) uniqueness guarantee
LIVE_TRIGGER_STATUSES: FrozenSet[str] = frozenset({TRIGGER_PENDING, TRIGGER_CONVERTED})

CUSTOMER_TYPES: FrozenSet[str] = frozenset({"individual", "business", "dealer"})

JOURNEY_STAGES: FrozenSet[str] = frozenset(
    {"discovery", "consideration", "purchase", "post_purchase"}
)
PURCHASE_INTENT_STAGES: FrozenSet[str] = frozenset({"consideration", "purchase"})

VEHICLE_CONDITIONS: FrozenSet[str] = frozenset({"excellent", "good", "fair", "poor"})
VEHICLE_ISSUE_CONDITIONS: FrozenSet[str] = frozenset({"fair", "poor"})

URGENCY_LEVELS: FrozenSet[str] = frozenset({"standard", "expedited", "emergency"})

SERVICE_CATEGORIES: FrozenSet[str] = frozenset(
    {
        "financial",
        "legal",
        "inspection",
        "transport",
        "logistics",
        "administrative",
        "maintenance",
        "parts",
        "purchase",
        "sales",
        "business",
        "support",
    }
)

# Days reported for customers with no order history
NO_ORDER_HISTORY_DAYS: int = 999

ORDER_NUMBER_PREFIX: str = "SCE"

# Cache keys and TTLs
CUSTOMER_PROFILE_KEY = "customer_profile:{customer_id}"
TRIGGERED_SERVICE_KEY = "triggered_service:{customer_id}:{service_id}"
TRIGGERED_SERVICE_TTL: int = 3600
PRICING_TABLES_KEY = "pricing:tables"

NOTIFICATION_KEYS: Dict[str, str] = {
    "customer": "notifications:customer:{customer_id}",
    "admin": "notifications:admin",
}
