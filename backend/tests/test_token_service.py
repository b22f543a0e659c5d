"""
Access / refresh token handling.
"""

from datetime import timedelta

import pytest

from stockmaster.errors import AuthenticationError
from stockmaster.models import RefreshToken
from stockmaster.services import token_service
from stockmaster.time_utils import utcnow


class TestAccessTokens:

    def test_round_trip_claims(self, staff):
        token, _ = token_service.generate_access_token(staff)
        claims = token_service.decode_token(token, token_service.ACCESS)

        assert claims["sub"] == str(staff.id)
        assert claims["role"] == "staff"
        assert claims["type"] == "access"

    def test_expired(self, app, staff):
        issued = utcnow() - timedelta(minutes=app.config["JWT_ACCESS_EXPIRES_MINUTES"] + 1)
        token, _ = token_service.generate_access_token(staff, now=issued)

        with pytest.raises(AuthenticationError, match="expired"):
            token_service.decode_token(token, token_service.ACCESS)

    def test_tampered(self, staff):
        token, _ = token_service.generate_access_token(staff)
        with pytest.raises(AuthenticationError):
            token_service.decode_token(token + "x", token_service.ACCESS)

    def test_refresh_token_not_accepted_as_access(self, staff):
        refresh, _jti, _ = token_service.generate_refresh_token(staff)
        with pytest.raises(AuthenticationError):
            token_service.decode_token(refresh, token_service.ACCESS)


class TestRefreshTokens:

    def test_pair_persists_hash_only(self, db_session, staff):
        pair = token_service.issue_token_pair(staff, device="pytest")
        db_session.commit()

        record = RefreshToken.query.filter_by(user_id=staff.id).one()
        assert record.token_hash == token_service.hash_token(pair.refresh_token)
        assert record.token_hash != pair.refresh_token
        assert record.device == "pytest"

    def test_verify_and_revoke(self, db_session, staff):
        pair = token_service.issue_token_pair(staff)
        db_session.commit()

        user, _record = token_service.verify_refresh_token(pair.refresh_token)
        assert user.id == staff.id

        assert token_service.revoke_refresh_token(pair.refresh_token, user_id=staff.id)
        db_session.commit()

        with pytest.raises(AuthenticationError):
            token_service.verify_refresh_token(pair.refresh_token)

    def test_revoke_all(self, db_session, staff):
        first = token_service.issue_token_pair(staff)
        token_service.issue_token_pair(staff)
        db_session.commit()

        assert token_service.revoke_all_for_user(staff.id) == 2
        db_session.commit()

        with pytest.raises(AuthenticationError):
            token_service.verify_refresh_token(first.refresh_token)

    def test_inactive_user_cannot_refresh(self, db_session, staff):
        pair = token_service.issue_token_pair(staff)
        staff.is_active = False
        db_session.commit()

        with pytest.raises(AuthenticationError):
            token_service.verify_refresh_token(pair.refresh_token)

    def test_prune_expired(self, db_session, staff):
        pair = token_service.issue_token_pair(staff)
        db_session.commit()
        token_service.revoke_refresh_token(pair.refresh_token)
        db_session.commit()

        assert token_service.prune_expired(staff.id) == 1
        db_session.commit()
        assert RefreshToken.query.count() == 0
