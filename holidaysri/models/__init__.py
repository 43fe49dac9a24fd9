from holidaysri.models.user import User
from holidaysri.models.token_transaction import TokenTransaction
from holidaysri.models.advertisement import Advertisement
from holidaysri.models.membership import Membership
from holidaysri.models.commercial_partner import CommercialPartner
from holidaysri.models.promo_code import PromoCode
from holidaysri.models.notification import Notification
from holidaysri.models.earning import Earning
from holidaysri.models.claim_request import ClaimRequest
from holidaysri.models.audit_log import AuditLog
from holidaysri.models.failed_job import FailedJob

__all__ = [
    "User",
    "TokenTransaction",
    "Advertisement",
    "Membership",
    "CommercialPartner",
    "PromoCode",
    "Notification",
    "Earning",
    "ClaimRequest",
    "AuditLog",
    "FailedJob",
]
