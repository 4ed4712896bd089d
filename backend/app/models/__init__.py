from app.models.user import User
from app.models.auth import AuthCredential, AuthLoginAttempt, AuthSession
from app.models.subscription import UserSubscription
from app.models.coupon import Coupon, CouponRedemption
from app.models.store import Store
from app.models.audit_log import AuditLog
