"""Plan, state and pass-label classification.

Everything here is a pure, total function over free text exported by the
booking platform. Unrecognised input maps to an explicit fallback variant.
"""

from enum import Enum

from studio_analytics.analytics.rounding import round2


class Category(str, Enum):
    """Subscription category."""

    MEMBER = "MEMBER"
    SKY3 = "SKY3"
    TV_EQUIVALENT = "TV_EQUIVALENT"
    UNKNOWN = "UNKNOWN"


class BillingCadence(str, Enum):
    """How often a subscription bills."""

    ANNUAL = "annual"
    PERIODIC = "periodic"


class SubscriptionState(str, Enum):
    """Subscription state vocabulary of the booking platform export."""

    VALID_NOW = "Valid Now"
    PENDING_CANCEL = "Pending Cancel"
    PAUSED = "Paused"
    PAST_DUE = "Past Due"
    IN_TRIAL = "In Trial"
    CANCELED = "Canceled"
    INVALID = "Invalid"
    UNKNOWN = "Unknown"

    @classmethod
    def from_raw(cls, raw: str | None) -> "SubscriptionState":
        """Case- and whitespace-insensitive lookup with UNKNOWN fallback."""
        cleaned = " ".join((raw or "").split()).lower()
        if cleaned == "cancelled":
            cleaned = "canceled"
        for state in cls:
            if state.value.lower() == cleaned:
                return state
        return cls.UNKNOWN

    @property
    def is_active_like(self) -> bool:
        return self in ACTIVE_LIKE_STATES

    @property
    def is_at_risk(self) -> bool:
        return self in AT_RISK_STATES


ACTIVE_LIKE_STATES = frozenset(
    {
        SubscriptionState.VALID_NOW,
        SubscriptionState.PENDING_CANCEL,
        SubscriptionState.PAUSED,
        SubscriptionState.PAST_DUE,
        SubscriptionState.IN_TRIAL,
    }
)

AT_RISK_STATES = frozenset(
    {
        SubscriptionState.PAST_DUE,
        SubscriptionState.INVALID,
        SubscriptionState.PENDING_CANCEL,
    }
)


class VisitType(str, Enum):
    """Visit classification derived from the pass label."""

    DROP_IN = "drop_in"
    INTRO_WEEK = "intro_week"
    CLASS_PACK = "class_pack"
    GUEST = "guest"
    SUBSCRIPTION = "subscription"
    REMOTE = "remote"
    OTHER = "other"


# Categories whose subscribers attend in person
IN_STUDIO_CATEGORIES = frozenset({Category.MEMBER, Category.SKY3})

# Categories reported in trend and churn tables
TRACKED_CATEGORIES = (Category.MEMBER, Category.SKY3, Category.TV_EQUIVALENT)

MEMBER_PLANS = (
    "SKY UNLIMITED",
    "SKY UNLIMITED ANNUAL",
    "10MEMBER",
    "SKY UNLIMITED - NEW",
    "ALL ACCESS MONTHLY",
    "ALL ACCESS YEARLY",
    "BACK TO SCHOOL SPECIAL",
    "MONTHLY MEMBERSHIP SPECIAL",
    "NEW MEMBER FALL SPECIAL",
    "NEW MEMBER SUMMER SPECIAL",
    "SECRET MEMBERSHIP",
    "SKY TING IN PERSON MEMBERSHIP",
    "SKY VIRGIN MEMBERSHIP",
    "TING FAM",
)

TV_PLANS = (
    "SKY TING TV",
    "SKY TING TV NEW",
    "SKY TING TV ANNUAL",
    "10SKYTING",
    "SUNLIFE X SKY TING",
    "FRIENDS OF SKY TING TV",
    "COME BACK SKY TING TV",
    "FOUNDING MEMBER ANNUAL SKY TING TV",
    "LIMITED EDITION SKY TING TV",
    "NEW SUBSCRIBER SPECIAL",
    "SKY TING TV - UNLIMITED MONTHLY",
    "SKY TING TV (VIRGIN)",
    "SKY TING TV ON DEMAND",
    "SKY TING TV UNLIMITED YEARLY",
    "WE LOVE LA - SKY TING TV",
    "RETREAT TING",
    "SKY WEEK TV",
)

SKY3_PLANS = (
    "SKY3",
    "SKY3 NEW",
    "SKY3 - ARCHIVED",
    "SKY3 VIRGIN",
    "WELCOME SKY3",
    "SKYHIGH3",
    "SKY5",
    "SKY5 NEW",
)

_PLAN_LOOKUP: dict[str, Category] = {
    **{plan: Category.MEMBER for plan in MEMBER_PLANS},
    **{plan: Category.TV_EQUIVALENT for plan in TV_PLANS},
    **{plan: Category.SKY3 for plan in SKY3_PLANS},
}

_ANNUAL_KEYWORDS = ("ANNUAL", "YEARLY")
_REMOTE_KEYWORDS = ("LIVESTREAM", "LIVE STREAM", "REPLAY", "ON DEMAND", "VIDEO", "SKY TING TV", "VIRTUAL")
_GUEST_KEYWORDS = ("GUEST", "COMMUNITY DAY")
_PACK_KEYWORDS = ("PACK", "CLASS CARD")
_DROP_IN_KEYWORDS = (
    "DROP-IN",
    "DROP IN",
    "DROPIN",
    "SINGLE CLASS",
    "WELLHUB",
    "TRIAL",
    "FIRST",
    "POKER CHIP",
)


def _normalize(text: str | None) -> str:
    return " ".join((text or "").split()).upper()


def category_for_plan(plan_name: str | None) -> Category:
    """Map a plan name to its category; exact list match first, then keywords."""
    upper = _normalize(plan_name)
    if not upper:
        return Category.UNKNOWN

    exact = _PLAN_LOOKUP.get(upper)
    if exact is not None:
        return exact

    if "SKY3" in upper or "SKY5" in upper or "SKYHIGH" in upper:
        return Category.SKY3
    if "SKY TING TV" in upper or "SKYTING TV" in upper:
        return Category.TV_EQUIVALENT
    if any(word in upper for word in ("UNLIMITED", "MEMBER", "ALL ACCESS", "TING FAM")):
        return Category.MEMBER

    return Category.UNKNOWN


def is_annual_plan(plan_name: str | None) -> bool:
    upper = _normalize(plan_name)
    return any(word in upper for word in _ANNUAL_KEYWORDS)


def classify(plan_name: str | None) -> tuple[Category, bool]:
    """Classify a plan name into ``(category, is_annual)``."""
    return category_for_plan(plan_name), is_annual_plan(plan_name)


def monthly_rate(price: float, is_annual: bool) -> float:
    """Monthly-equivalent rate: annual prices are spread over twelve months."""
    return round2(price / 12) if is_annual else price


def classify_visit(pass_label: str | None) -> VisitType:
    """Classify a visit by the pass it was booked with."""
    upper = _normalize(pass_label)
    if not upper:
        return VisitType.OTHER

    if any(word in upper for word in _REMOTE_KEYWORDS):
        return VisitType.REMOTE
    if "INTRO" in upper:
        return VisitType.INTRO_WEEK
    if any(word in upper for word in _GUEST_KEYWORDS):
        return VisitType.GUEST
    if any(word in upper for word in _PACK_KEYWORDS):
        return VisitType.CLASS_PACK
    if any(word in upper for word in _DROP_IN_KEYWORDS):
        return VisitType.DROP_IN
    if category_for_plan(upper) is not Category.UNKNOWN:
        return VisitType.SUBSCRIPTION

    return VisitType.OTHER
