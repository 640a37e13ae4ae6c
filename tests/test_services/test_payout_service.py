"""
PayoutService业务逻辑测试
"""

import pytest
from decimal import Decimal
from datetime import datetime, timedelta
from unittest.mock import AsyncMock

from bookproof.core.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidInputError,
    InvalidStateTransitionError,
    NotFoundError
)
from bookproof.models.affiliate import (
    AffiliateCommission,
    AffiliatePayout,
    PayoutAction,
    PayoutMethod,
    PayoutProcessRequest,
    PayoutRequestCreate,
    PayoutStatus
)
from bookproof.models.database.affiliate_db import (
    AffiliateCommissionDB,
    AffiliatePayoutDB,
    AffiliateProfileDB
)
from bookproof.repositories.affiliate_repository import AffiliateRepository
from bookproof.services.payout_service import (
    PayoutService,
    mask_payment_details,
    next_payout_status,
    select_commissions_for_payout
)

BASE_TIME = datetime(2024, 5, 1, 9, 0, 0)


def approved_commission(commission_id, amount, approved_days_ago):
    return AffiliateCommissionDB(
        commission_id=commission_id,
        affiliate_profile_id="aff_1",
        credit_purchase_id=f"purchase_{commission_id}",
        referred_author_id="author_1",
        purchase_amount=Decimal("100.00"),
        commission_amount=Decimal(amount),
        commission_rate=Decimal("20"),
        status="APPROVED",
        approved_at=BASE_TIME - timedelta(days=approved_days_ago),
        created_at=BASE_TIME - timedelta(days=approved_days_ago + 30)
    )


class TestPayoutHelpers:

    @pytest.mark.parametrize("details,expected", [
        ("affiliate@example.com", "****.com"),
        ("  GB29NWBK60161331926819 ", "****6819"),
        ("1234", "****"),
        ("x", "****"),
    ])
    def test_mask_payment_details(self, details, expected):
        assert mask_payment_details(details) == expected

    @pytest.mark.parametrize("current,action,expected", [
        (PayoutStatus.REQUESTED, PayoutAction.APPROVE, PayoutStatus.APPROVED),
        (PayoutStatus.REQUESTED, PayoutAction.REJECT, PayoutStatus.REJECTED),
        (PayoutStatus.APPROVED, PayoutAction.COMPLETE, PayoutStatus.COMPLETED),
        (PayoutStatus.APPROVED, PayoutAction.REJECT, PayoutStatus.REJECTED),
    ])
    def test_allowed_transitions(self, current, action, expected):
        assert next_payout_status(current, action) == expected

    @pytest.mark.parametrize("current,action", [
        (PayoutStatus.REQUESTED, PayoutAction.COMPLETE),
        (PayoutStatus.APPROVED, PayoutAction.APPROVE),
        (PayoutStatus.COMPLETED, PayoutAction.REJECT),
        (PayoutStatus.REJECTED, PayoutAction.APPROVE),
    ])
    def test_disallowed_transitions(self, current, action):
        with pytest.raises(InvalidStateTransitionError):
            next_payout_status(current, action)

    def test_select_commissions_oldest_approval_first(self):
        commissions = [
            AffiliateCommission.model_validate(approved_commission("new", "40.00", 1)),
            AffiliateCommission.model_validate(approved_commission("old", "30.00", 10)),
            AffiliateCommission.model_validate(approved_commission("mid", "25.00", 5)),
        ]

        selected = select_commissions_for_payout(commissions, Decimal("50.00"))

        assert [c.commission_id for c in selected] == ["old", "mid"]

    def test_select_commissions_not_covered(self):
        commissions = [AffiliateCommission.model_validate(approved_commission("c1", "30.00", 1))]

        with pytest.raises(InvalidInputError):
            select_commissions_for_payout(commissions, Decimal("30.01"))


@pytest.mark.asyncio
class TestPayoutService:
    """PayoutService业务逻辑测试类"""

    @pytest.fixture
    def mock_affiliate_repo(self):
        repo = AsyncMock(spec=AffiliateRepository)
        repo.commission_to_model.side_effect = AffiliateCommission.model_validate
        repo.payout_to_model.side_effect = AffiliatePayout.model_validate
        return repo

    @pytest.fixture
    def payout_service(self, mock_affiliate_repo, mock_cache):
        service = PayoutService(mock_affiliate_repo)
        service.cache = mock_cache
        return service

    @pytest.fixture
    def profile(self):
        return AffiliateProfileDB(affiliate_profile_id="aff_1", user_id="user_aff", is_approved=True, is_active=True)

    @pytest.fixture
    def payout_request(self):
        return PayoutRequestCreate(
            amount=Decimal("60.00"),
            payment_method=PayoutMethod.PAYPAL,
            payment_details="affiliate@example.com"
        )

    def payout_db(self, status, amount="60.00"):
        return AffiliatePayoutDB(
            payout_id="payout_1",
            affiliate_profile_id="aff_1",
            amount=Decimal(amount),
            payment_method="PAYPAL",
            payment_details="****.com",
            status=status,
            requested_at=BASE_TIME
        )

    async def test_request_payout_masks_details(
        self, payout_service, mock_affiliate_repo, profile, payout_request, now
    ):
        """测试提现申请保存脱敏后的支付信息"""
        mock_affiliate_repo.get_profile.return_value = profile
        mock_affiliate_repo.get_approved_total.return_value = Decimal("75.00")
        mock_affiliate_repo.count_open_payouts.return_value = 0

        async def create_payout(**kwargs):
            return AffiliatePayoutDB(payout_id="payout_1", status="REQUESTED", **kwargs)
        mock_affiliate_repo.create_payout.side_effect = create_payout

        result = await payout_service.request_payout("aff_1", payout_request, now=now)

        assert result.status == PayoutStatus.REQUESTED
        assert result.payment_details == "****.com"
        assert result.requested_at == now
        assert mock_affiliate_repo.create_payout.call_args.kwargs["payment_method"] == "PAYPAL"

    async def test_request_payout_missing_profile(self, payout_service, mock_affiliate_repo, payout_request):
        mock_affiliate_repo.get_profile.return_value = None

        with pytest.raises(NotFoundError):
            await payout_service.request_payout("aff_1", payout_request)

    async def test_request_payout_unapproved_affiliate(
        self, payout_service, mock_affiliate_repo, profile, payout_request
    ):
        profile.is_approved = False
        mock_affiliate_repo.get_profile.return_value = profile

        with pytest.raises(ForbiddenError):
            await payout_service.request_payout("aff_1", payout_request)

    async def test_request_payout_below_minimum(self, payout_service, mock_affiliate_repo, profile, payout_request):
        mock_affiliate_repo.get_profile.return_value = profile
        payout_request.amount = Decimal("49.99")

        with pytest.raises(InvalidInputError):
            await payout_service.request_payout("aff_1", payout_request)
        mock_affiliate_repo.get_approved_total.assert_not_called()

    async def test_request_payout_exceeds_approved_total(
        self, payout_service, mock_affiliate_repo, profile, payout_request
    ):
        mock_affiliate_repo.get_profile.return_value = profile
        mock_affiliate_repo.get_approved_total.return_value = Decimal("55.00")

        with pytest.raises(InvalidInputError) as exc_info:
            await payout_service.request_payout("aff_1", payout_request)
        assert exc_info.value.details == {"approved_total": "55.00"}

    async def test_request_payout_with_open_request(
        self, payout_service, mock_affiliate_repo, profile, payout_request
    ):
        """测试已有处理中的提现时不能再次申请"""
        mock_affiliate_repo.get_profile.return_value = profile
        mock_affiliate_repo.get_approved_total.return_value = Decimal("500.00")
        mock_affiliate_repo.count_open_payouts.return_value = 1

        with pytest.raises(ConflictError):
            await payout_service.request_payout("aff_1", payout_request)
        mock_affiliate_repo.create_payout.assert_not_called()

    async def test_complete_payout_marks_commissions_paid(
        self, payout_service, mock_affiliate_repo, mock_cache, now
    ):
        """测试完成打款时按解冻先后把佣金标记为已支付"""
        db_payout = self.payout_db("APPROVED")
        mock_affiliate_repo.get_payout.return_value = db_payout
        commissions = [
            approved_commission("c_new", "40.00", 1),
            approved_commission("c_old", "35.00", 20),
            approved_commission("c_mid", "30.00", 10),
        ]
        mock_affiliate_repo.list_approved_commissions.return_value = commissions

        result = await payout_service.process_payout(
            "payout_1",
            PayoutProcessRequest(action=PayoutAction.COMPLETE, transaction_id="txn_99"),
            admin_id="admin_1",
            now=now
        )

        assert result.status == PayoutStatus.COMPLETED
        assert result.paid_at == now
        assert result.transaction_id == "txn_99"
        assert result.processed_by == "admin_1"
        statuses = {c.commission_id: c.status for c in commissions}
        assert statuses == {"c_old": "PAID", "c_mid": "PAID", "c_new": "APPROVED"}
        mock_affiliate_repo.get_payout.assert_called_once_with("payout_1", for_update=True)
        mock_cache.delete.assert_called_once_with("commission:earnings:aff_1")

    async def test_reject_requires_reason(self, payout_service, mock_affiliate_repo):
        mock_affiliate_repo.get_payout.return_value = self.payout_db("REQUESTED")

        with pytest.raises(InvalidInputError):
            await payout_service.process_payout(
                "payout_1", PayoutProcessRequest(action=PayoutAction.REJECT), admin_id="admin_1"
            )
        mock_affiliate_repo.save_payout.assert_not_called()

    async def test_reject_payout(self, payout_service, mock_affiliate_repo, now):
        mock_affiliate_repo.get_payout.return_value = self.payout_db("REQUESTED")

        result = await payout_service.process_payout(
            "payout_1",
            PayoutProcessRequest(action=PayoutAction.REJECT, rejection_reason="Details do not match"),
            admin_id="admin_1",
            now=now
        )

        assert result.status == PayoutStatus.REJECTED
        assert result.rejection_reason == "Details do not match"
        mock_affiliate_repo.list_approved_commissions.assert_not_called()

    async def test_approve_already_approved_payout(self, payout_service, mock_affiliate_repo):
        mock_affiliate_repo.get_payout.return_value = self.payout_db("APPROVED")

        with pytest.raises(InvalidStateTransitionError):
            await payout_service.process_payout(
                "payout_1", PayoutProcessRequest(action=PayoutAction.APPROVE), admin_id="admin_1"
            )
        mock_affiliate_repo.save_payout.assert_not_called()

    async def test_process_missing_payout(self, payout_service, mock_affiliate_repo):
        mock_affiliate_repo.get_payout.return_value = None

        with pytest.raises(NotFoundError):
            await payout_service.process_payout(
                "payout_x", PayoutProcessRequest(action=PayoutAction.APPROVE), admin_id="admin_1"
            )
