"""
OTP verifier for delivery confirmation
"""

import logging
import secrets
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from deliverylink.config import settings
from deliverylink.models.order import OtpCode
from deliverylink.utils.error_handler import InvalidCodeError, CodeExpiredError

logger = logging.getLogger(__name__)

CODE_LENGTH = 6


def generate_code() -> str:
    """Uniform random 6-digit code, leading zeros allowed"""
    return f"{secrets.randbelow(10 ** CODE_LENGTH):0{CODE_LENGTH}d}"


class OtpVerifier:
    """Issues and consumes single-use delivery codes"""

    def __init__(self, db: Session, ttl_minutes: Optional[int] = None):
        self.db = db
        self.ttl = timedelta(minutes=ttl_minutes if ttl_minutes is not None else settings.OTP_TTL_MINUTES)

    def issue(self, order_id: int) -> OtpCode:
        """Store a fresh code; earlier codes for the order stay but go stale"""
        otp = OtpCode(
            order_id=order_id,
            code=generate_code(),
            expires_at=datetime.utcnow() + self.ttl,
        )
        self.db.add(otp)
        self.db.flush()

        logger.info(f"Issued delivery OTP for order {order_id}, expires at {otp.expires_at.isoformat()}")
        return otp

    def verify(self, order_id: int, code: str) -> OtpCode:
        """Consume the most recent row matching the code, or raise"""
        otp = (
            self.db.query(OtpCode)
            .filter(OtpCode.order_id == order_id, OtpCode.code == code)
            .order_by(OtpCode.id.desc())
            .with_for_update()
            .first()
        )

        if not otp:
            logger.warning(f"Invalid OTP submitted for order {order_id}")
            raise InvalidCodeError("Invalid OTP code")

        if datetime.utcnow() > otp.expires_at:
            logger.warning(f"Expired OTP submitted for order {order_id}")
            raise CodeExpiredError("OTP has expired. Please request a new one.")

        self.db.delete(otp)
        self.db.flush()
        return otp

    def purge_expired(self) -> int:
        """Delete expired, unconsumed codes"""
        deleted = (
            self.db.query(OtpCode)
            .filter(OtpCode.expires_at < datetime.utcnow())
            .delete(synchronize_session=False)
        )
        logger.info(f"Purged {deleted} expired OTP codes")
        return deleted
