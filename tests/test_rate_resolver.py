"""Tests for commission rate resolution and application."""

from decimal import Decimal
from uuid import uuid4

import pytest

from commission_ledger.calculators.rate_resolver import (
    RateNotFoundError,
    RateResolver,
    ResolvedRate,
    compute_commission,
    validate_rate_terms,
)
from commission_ledger.errors import NotFoundError, ValidationError


def _rate(
    commission_type="percentage",
    value="0.10",
    min_amount=None,
    max_amount=None,
) -> ResolvedRate:
    return ResolvedRate(
        commission_rate_id=uuid4(),
        category_id="electronics",
        commission_type=commission_type,
        commission_value=Decimal(value),
        min_amount=None if min_amount is None else Decimal(min_amount),
        max_amount=None if max_amount is None else Decimal(max_amount),
    )


class TestComputeCommission:
    """Test the commission formula."""

    def test_percentage_clamped_to_max(self):
        """10% of 10000 bounded by [5, 500] is 500."""
        rate = _rate(value="0.10", min_amount="5", max_amount="500")

        assert compute_commission(rate, Decimal("10000")) == Decimal("500.00")

    def test_percentage_clamped_to_min(self):
        """Small orders are raised to the minimum."""
        rate = _rate(value="0.10", min_amount="5", max_amount="500")

        assert compute_commission(rate, Decimal("20")) == Decimal("5.00")

    def test_percentage_within_bounds(self):
        """Test unclamped percentage."""
        rate = _rate(value="0.10", min_amount="5", max_amount="500")

        assert compute_commission(rate, Decimal("250.00")) == Decimal("25.00")

    def test_fixed_ignores_order_amount(self):
        """Test fixed commission is the same for any order."""
        rate = _rate(commission_type="fixed", value="7.50")

        assert compute_commission(rate, Decimal("10")) == Decimal("7.50")
        assert compute_commission(rate, Decimal("99999")) == Decimal("7.50")

    def test_fixed_is_clamped_too(self):
        """Bounds apply to fixed rates as well."""
        rate = _rate(commission_type="fixed", value="2.00", min_amount="5", max_amount="50")

        assert compute_commission(rate, Decimal("100")) == Decimal("5.00")

    def test_single_bound_does_not_clamp(self):
        """Clamping needs both bounds."""
        rate = _rate(value="0.10", max_amount="500")

        assert compute_commission(rate, Decimal("10000")) == Decimal("1000.00")

    def test_rounds_half_up_to_cents(self):
        """Test rounding to cents."""
        rate = _rate(value="0.125")

        assert compute_commission(rate, Decimal("0.20")) == Decimal("0.03")
        assert compute_commission(rate, Decimal("10.01")) == Decimal("1.25")

    def test_negative_order_amount_rejected(self):
        """Test that negative amounts fail validation."""
        with pytest.raises(ValidationError):
            compute_commission(_rate(), Decimal("-1"))

    def test_apply_is_deterministic(self):
        """Applying the same rate twice yields the same amount."""
        rate = _rate(value="0.0735", min_amount="1", max_amount="300")

        first = RateResolver.apply(rate, Decimal("1234.56"))
        second = RateResolver.apply(rate, Decimal("1234.56"))

        assert first == second == Decimal("90.74")


class TestValidateRateTerms:
    """Test write-time rate validation."""

    def test_valid_terms(self):
        validate_rate_terms("percentage", Decimal("0.10"), Decimal("5"), Decimal("500"))
        validate_rate_terms("fixed", Decimal("12.00"), None, None)

    def test_min_not_below_max_rejected(self):
        """min_amount must be strictly below max_amount."""
        with pytest.raises(ValidationError):
            validate_rate_terms("percentage", Decimal("0.10"), Decimal("500"), Decimal("500"))
        with pytest.raises(ValidationError):
            validate_rate_terms("percentage", Decimal("0.10"), Decimal("600"), Decimal("500"))

    def test_percentage_above_one_rejected(self):
        """Percentages are fractions."""
        with pytest.raises(ValidationError):
            validate_rate_terms("percentage", Decimal("10"), None, None)

    def test_unknown_type_rejected(self):
        with pytest.raises(ValidationError):
            validate_rate_terms("tiered", Decimal("0.10"), None, None)

    def test_negative_values_rejected(self):
        with pytest.raises(ValidationError):
            validate_rate_terms("fixed", Decimal("-1"), None, None)
        with pytest.raises(ValidationError):
            validate_rate_terms("fixed", Decimal("1"), Decimal("-5"), None)


class TestRateResolver:
    """Test active-rate lookup by category."""

    @pytest.mark.asyncio
    async def test_resolve_active_rate(self, session, make_rate):
        """Test resolving the active rate for a category."""
        await make_rate(category_id="books", is_active=False, commission_value="0.20")
        active = await make_rate(category_id="books", commission_value="0.05")

        resolved = await RateResolver(session).resolve("books")

        assert resolved.commission_rate_id == active.commission_rate_id
        assert resolved.commission_value == Decimal("0.05")

    @pytest.mark.asyncio
    async def test_resolve_not_found(self, session, make_rate):
        """Test error when the category has no active rate."""
        await make_rate(category_id="toys", is_active=False)

        with pytest.raises(RateNotFoundError) as exc_info:
            await RateResolver(session).resolve("toys")

        assert exc_info.value.category_id == "toys"
        assert isinstance(exc_info.value, NotFoundError)

    @pytest.mark.asyncio
    async def test_resolve_uses_cache(self, session, make_rate, cache):
        """A cached rate is served without hitting the database."""
        rate = await make_rate(category_id="garden", commission_value="0.08")
        resolver = RateResolver(session, cache)

        await resolver.resolve("garden")
        assert await cache.get("rate:category:garden") is not None

        rate.commission_value = Decimal("0.50")
        await session.flush()

        cached = await resolver.resolve("garden")
        assert cached.commission_value == Decimal("0.08")

        await resolver.invalidate("garden")
        fresh = await resolver.resolve("garden")
        assert fresh.commission_value == Decimal("0.50")

    def test_cache_payload_is_json_friendly(self):
        """Resolved rates survive the cache encoding."""
        rate = _rate(value="0.10", min_amount="5", max_amount="500")

        payload = rate.to_cache()

        assert all(isinstance(v, (str, type(None))) for v in payload.values())
        assert ResolvedRate.from_cache(payload) == rate
