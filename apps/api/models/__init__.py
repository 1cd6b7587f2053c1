"""Models package."""

from .user import User
from .content import Track, AlbumPack
from .purchase import Purchase
from .subscription import DJSubscription
from .download_token import DownloadToken
from .referral import ReferralCode, Referral
from .points import PointsHistoryEntry
from .monetization import MonetizationSettings, EarningsEntry
from .audit_log import AuditLogEntry
