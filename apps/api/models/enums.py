"""Closed value sets shared by models and services."""

from enum import Enum


class UserRole(str, Enum):
    FAN = "fan"
    DJ = "dj"
    ADMIN = "admin"


class ContentType(str, Enum):
    TRACK = "track"
    ZIP = "zip"


class ContentStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class AccessSource(str, Enum):
    PURCHASE = "purchase"
    SUBSCRIPTION = "subscription"


class SubscriptionPlan(str, Enum):
    BASIC = "basic"
    PRO = "pro"
    SUPER = "super"


class ReferralStatus(str, Enum):
    PENDING = "pending"
    VERIFIED = "verified"


class PointsReason(str, Enum):
    SIGNUP_BONUS = "signup_bonus"
    PURCHASE_REWARD = "purchase_reward"
    REFERRAL_MILESTONE = "referral_milestone"
    FOLLOW_REWARD = "follow_reward"
    REVIEW_REWARD = "review_reward"
    REDEMPTION = "redemption"


class SuspiciousActivityType(str, Enum):
    CONCURRENT_DOWNLOAD_LIMIT_EXCEEDED = "concurrent_download_limit_exceeded"
    RAPID_DOWNLOAD_PATTERN = "rapid_download_pattern"
    MULTIPLE_IP_ACCESS = "multiple_ip_access"
