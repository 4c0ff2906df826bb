"""
Unit tests for delivery OTP issuing and verification
"""

import re
import pytest
from datetime import datetime, timedelta

from deliverylink.models.order import OtpCode
from deliverylink.services.otp_verifier import OtpVerifier, generate_code
from deliverylink.utils.error_handler import InvalidCodeError, CodeExpiredError


class TestOtpVerifier:
    """Test cases for single-use delivery codes"""

    def test_generated_codes_are_six_digits(self):
        for _ in range(200):
            assert re.match(r"^\d{6}$", generate_code())

    def test_issue_sets_ten_minute_expiry(self, db, place_order):
        order = place_order()
        before = datetime.utcnow()

        otp = OtpVerifier(db).issue(order.id)
        db.commit()

        assert otp.order_id == order.id
        assert re.match(r"^\d{6}$", otp.code)
        assert before + timedelta(minutes=9) < otp.expires_at <= datetime.utcnow() + timedelta(minutes=10)

    def test_verify_consumes_code(self, db, place_order):
        order = place_order()
        verifier = OtpVerifier(db)
        otp = verifier.issue(order.id)
        db.commit()

        verifier.verify(order.id, otp.code)
        db.commit()

        assert db.query(OtpCode).filter(OtpCode.order_id == order.id).count() == 0

    def test_code_is_single_use(self, db, place_order):
        order = place_order()
        verifier = OtpVerifier(db)
        code = verifier.issue(order.id).code
        db.commit()

        verifier.verify(order.id, code)
        db.commit()

        with pytest.raises(InvalidCodeError):
            verifier.verify(order.id, code)

    def test_wrong_code_is_rejected(self, db, place_order):
        order = place_order()
        verifier = OtpVerifier(db)
        code = verifier.issue(order.id).code
        db.commit()

        wrong = "000000" if code != "000000" else "111111"
        with pytest.raises(InvalidCodeError):
            verifier.verify(order.id, wrong)

    def test_code_for_another_order_is_rejected(self, db, place_order):
        first = place_order()
        second = place_order()
        verifier = OtpVerifier(db)
        code = verifier.issue(first.id).code
        db.commit()

        with pytest.raises(InvalidCodeError):
            verifier.verify(second.id, code)

    def test_expired_code_is_rejected_even_when_digits_match(self, db, place_order):
        order = place_order()
        verifier = OtpVerifier(db)
        otp = verifier.issue(order.id)
        otp.expires_at = datetime.utcnow() - timedelta(seconds=1)
        db.commit()

        with pytest.raises(CodeExpiredError):
            verifier.verify(order.id, otp.code)

    def test_resend_keeps_older_codes(self, db, place_order):
        order = place_order()
        verifier = OtpVerifier(db)
        first = verifier.issue(order.id).code
        second = verifier.issue(order.id).code
        db.commit()

        assert db.query(OtpCode).filter(OtpCode.order_id == order.id).count() == 2
        verifier.verify(order.id, first)
        verifier.verify(order.id, second)

    def test_purge_expired_removes_only_stale_rows(self, db, place_order):
        order = place_order()
        verifier = OtpVerifier(db)
        stale = verifier.issue(order.id)
        stale.expires_at = datetime.utcnow() - timedelta(minutes=1)
        fresh = verifier.issue(order.id)
        db.commit()

        assert verifier.purge_expired() == 1
        db.commit()

        remaining = db.query(OtpCode).all()
        assert [row.id for row in remaining] == [fresh.id]

    def test_custom_ttl(self, db, place_order):
        order = place_order()
        otp = OtpVerifier(db, ttl_minutes=1).issue(order.id)
        assert otp.expires_at <= datetime.utcnow() + timedelta(minutes=1)
