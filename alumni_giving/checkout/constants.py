from __future__ import annotations

from decimal import Decimal
from enum import Enum


class DonationType(str, Enum):
    ONE_TIME = "one-time"
    RECURRING = "recurring"


class Frequency(str, Enum):
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    ANNUALLY = "annually"


class Category(str, Enum):
    ALL = "all"
    ALUMNI_SUPPORT = "alumni-support"
    SCHOLARSHIPS = "scholarships"
    PROGRAMS = "programs"


class PaymentMethod(str, Enum):
    CARD = "card"
    PAYPAL = "paypal"
    LIBERIA_MOBILE_MONEY = "liberia_mobile_money"
    ORANGE_MONEY = "orange_money"


PRESET_AMOUNTS = (Decimal("25"), Decimal("50"), Decimal("100"), Decimal("250"), Decimal("500"))

MIN_AMOUNT = Decimal("1")
MAX_ONE_TIME_AMOUNT = Decimal("10000")
MAX_RECURRING_AMOUNT = Decimal("5000")

DEFAULT_CURRENCY = "USD"

# Days added to today to estimate the next recurring charge.
NEXT_CHARGE_DAYS = 30

NETWORK_ERROR = "Network error. Please check your connection and try again."
INVALID_AMOUNT = "Please enter a valid donation amount."
PAYMENT_FAILED = "Payment failed. Please try again or use a different payment method."
SESSION_EXPIRED = "Your payment session has expired. Please start over."
CONFIGURATION_ERROR = "Payment system is not properly configured. Please contact support."
UNEXPECTED_ERROR = "An unexpected error occurred during payment processing"
PAYMENT_CANCELLED = "Payment was cancelled. Please try again if you wish to complete your donation."

SUCCESS_MESSAGES = {
    DonationType.ONE_TIME: "Thank you for your generous donation!",
    DonationType.RECURRING: "Thank you for setting up a recurring donation!",
}

CATEGORY_NAMES = {
    Category.ALL: "General Support",
    Category.ALUMNI_SUPPORT: "Fellow Alumni in Need",
    Category.SCHOLARSHIPS: "Scholarships",
    Category.PROGRAMS: "Alumni Programs",
}

CATEGORY_DESCRIPTIONS = {
    Category.ALL: "Support all areas where help is needed most",
    Category.ALUMNI_SUPPORT: "Help fellow alumni facing financial hardship",
    Category.SCHOLARSHIPS: "Fund scholarships for deserving students",
    Category.PROGRAMS: "Support alumni events and programs",
}

FREQUENCY_NAMES = {
    Frequency.MONTHLY: "Monthly",
    Frequency.QUARTERLY: "Quarterly",
    Frequency.ANNUALLY: "Annually",
}


class AnalyticsEvent(str, Enum):
    AMOUNT_SELECTED = "amount_selected"
    TYPE_CHANGED = "donation_type_changed"
    CATEGORY_SELECTED = "category_selected"
    PAYMENT_METHOD_SELECTED = "payment_method_selected"
    DONATION_SUBMITTED = "donation_submitted"
    DONATION_SUCCESS = "donation_success"
    DONATION_ERROR = "donation_error"
    DONATION_CANCELLED = "donation_cancelled"
    PAYMENT_INITIATED = "payment_initiated"
    PAYMENT_SUCCESS = "payment_success"
    PAYMENT_ERROR = "payment_error"


def category_name(category: str) -> str:
    try:
        return CATEGORY_NAMES[Category(category)]
    except ValueError:
        return "Alumni Platform"
