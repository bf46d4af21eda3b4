from .db import db
from .user import User, Role, user_roles
from .audit_log import AuditLog
from .session import Session
from .login_attempt import LoginAttempt
from .rate_limit_bucket import RateLimitBucket
from .consultation import Consultation
from .time_slot import TimeSlot
from .booking import Booking
from .payment import Payment, BankTransfer
from .coupon import Coupon, CouponRedemption
from .feedback import ConsultationFeedback
from .resource import ConsultationResource
from .notification import BookingNotification
