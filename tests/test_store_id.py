"""
Store ID validation tests.

A tenant id is exactly 8 ASCII digits. Anything else is rejected before it can
become a query filter.
"""

import dataclasses

import pytest

from orderdesk.core.errors import InvalidTenantId
from orderdesk.tenancy.context import StoreContext, StoreResolutionSource, validate_store_id


class TestValidateStoreId:
    """validate_store_id accepts 8 ASCII digits and nothing else."""

    @pytest.mark.parametrize("store_id", ["10234567", "00000000", "99999999"])
    def test_accepts_eight_digits(self, store_id):
        assert validate_store_id(store_id) == store_id

    def test_is_idempotent(self):
        assert validate_store_id(validate_store_id("10234567")) == "10234567"

    @pytest.mark.parametrize(
        "store_id",
        [
            "1234567",       # 7 digits
            "123456789",     # 9 digits
            "1234567a",
            "",
            " 10234567",
            "10234567 ",
            "10234567\n",
            "1023-4567",
            "١٢٣٤٥٦٧٨",      # Arabic-Indic digits
            "１２３４５６７８",  # full-width digits
        ],
    )
    def test_rejects_malformed_strings(self, store_id):
        with pytest.raises(InvalidTenantId):
            validate_store_id(store_id)

    @pytest.mark.parametrize("store_id", [None, 10234567, 10234567.0, b"10234567"])
    def test_rejects_non_strings(self, store_id):
        with pytest.raises(InvalidTenantId, match="Invalid store_id in session"):
            validate_store_id(store_id)

    def test_error_maps_to_bad_request(self):
        with pytest.raises(InvalidTenantId) as exc_info:
            validate_store_id("abc")
        assert exc_info.value.status_code == 400
        assert exc_info.value.code == "INVALID_TENANT_ID"


class TestStoreContext:
    """StoreContext can only be built around a valid tenant id."""

    def test_accepts_valid_store_id(self):
        ctx = StoreContext(store_id="10234567", store_slug="acme-shop", source=StoreResolutionSource.URL_SLUG)
        assert ctx.store_id == "10234567"
        assert ctx.source == StoreResolutionSource.URL_SLUG

    def test_rejects_invalid_store_id(self):
        with pytest.raises(InvalidTenantId):
            StoreContext(store_id="1023456")

    def test_is_immutable(self):
        ctx = StoreContext(store_id="10234567")
        with pytest.raises(dataclasses.FrozenInstanceError):
            ctx.store_id = "20000001"
