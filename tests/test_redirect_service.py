"""Unit tests for the redirect service layer with mocked collaborators."""

from unittest.mock import AsyncMock, MagicMock, Mock

import pytest

from conftest import SAMPLE_TABLE, ScriptedRandom, make_settings
from redirector.enums import RedirectOutcome
from redirector.exceptions import ClientInputError, MappingDataError, UnknownKeyError
from redirector.mapping_cache import parse_table
from redirector.redirect_service import RedirectDecision, RedirectService
from redirector.selection import SelectionResult

# ============================================================================
# TEST FIXTURES AND UTILITIES
# ============================================================================


@pytest.fixture
def mock_cache() -> AsyncMock:
    cache = AsyncMock()
    cache.get_rows = AsyncMock(return_value=parse_table(SAMPLE_TABLE))
    return cache


@pytest.fixture
def redirect_service(mock_cache) -> RedirectService:
    ctx = Mock()
    ctx.mapping_cache = mock_cache
    ctx.rng = ScriptedRandom([0.0])
    ctx.logger = MagicMock()
    ctx.settings = make_settings()
    return RedirectService.from_context(ctx)


# ============================================================================
# SERVICE CLASS TESTS
# ============================================================================


class TestRedirectService:
    @pytest.mark.asyncio
    async def test_direct_mode_skips_cache(self, redirect_service, mock_cache):
        decision = await redirect_service.resolve_redirect({"domain": "example.com", "slug": "foo"})
        assert decision == RedirectDecision(
            location="https://example.com/foo/?", outcome=RedirectOutcome.DIRECT
        )
        mock_cache.get_rows.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_rotated_decision_carries_selection(self, redirect_service, mock_cache):
        decision = await redirect_service.resolve_redirect({"rid": "5"})
        assert decision.outcome is RedirectOutcome.ROTATED
        assert decision.redirect_id == "5"
        assert decision.selection == SelectionResult(
            chosen_group="shoes|boots|sandals|heels",
            chosen_index=1,
            keywords=("shoes", "boots", "sandals"),
        )
        mock_cache.get_rows.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_max_keywords_setting_is_honoured(self, redirect_service):
        redirect_service._settings = make_settings(MAX_KEYWORDS=1)
        decision = await redirect_service.resolve_redirect({"rid": "5"})
        assert decision.selection.keywords == ("shoes",)
        assert "forceKeyB" not in decision.location

    @pytest.mark.asyncio
    async def test_fallback_decision(self, redirect_service, mock_cache):
        mock_cache.get_rows.return_value = parse_table(
            [["redirect_id", "fallback_url"], ["x", "https://fallback.example.com"]]
        )
        decision = await redirect_service.resolve_redirect({"rid": "1", "utm": "a"})
        assert decision.outcome is RedirectOutcome.FALLBACK
        assert decision.location == "https://fallback.example.com"
        assert decision.selection is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "params, error",
        [
            ({"domain": "example.com"}, ClientInputError),
            ({"rid": "6"}, UnknownKeyError),
            ({"rid": "7"}, MappingDataError),
        ],
    )
    async def test_classified_errors_propagate(self, redirect_service, params, error):
        with pytest.raises(error):
            await redirect_service.resolve_redirect(params)

    @pytest.mark.asyncio
    async def test_unexpected_errors_propagate(self, redirect_service, mock_cache):
        mock_cache.get_rows.side_effect = RuntimeError("boom")
        with pytest.raises(RuntimeError, match="boom"):
            await redirect_service.resolve_redirect({"rid": "5"})
