"""Tests for LLMDecisionOracle with a mocked chat-completions client."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from aegis.exceptions import OracleError
from aegis.models import DecisionContext, MarketSnapshot, PositionSide, TradeAction
from aegis.oracle.llm_oracle import PROVIDER_ENDPOINTS, LLMDecisionOracle, build_prompt


def _response(content: str | None) -> SimpleNamespace:
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))]
    )


def _context(
    market: MarketSnapshot, provider: str = "gemini", credential: str = "key"
) -> DecisionContext:
    return DecisionContext(
        provider=provider,
        provider_credential=credential,
        symbol="BTCUSDT",
        leverage=10,
        market=market,
        current_position_side=PositionSide.NONE,
    )


@pytest.fixture
def oracle() -> LLMDecisionOracle:
    return LLMDecisionOracle(model_overrides={"openai": "gpt-4o"})


@pytest.fixture
def mock_client(oracle: LLMDecisionOracle, monkeypatch: pytest.MonkeyPatch) -> MagicMock:
    client = MagicMock()
    client.chat.completions.create = AsyncMock(
        return_value=_response('{"action": "long", "confidence": 80, "reason": "Uptrend"}')
    )
    monkeypatch.setattr(oracle, "_client", MagicMock(return_value=client))
    return client


@pytest.mark.asyncio
async def test_decide_parses_response(
    oracle: LLMDecisionOracle, mock_client: MagicMock, market_snapshot: MarketSnapshot
) -> None:
    decision = await oracle.decide(_context(market_snapshot))

    assert decision.action is TradeAction.LONG
    assert decision.confidence == 80
    assert decision.provider == "gemini"

    kwargs = mock_client.chat.completions.create.await_args.kwargs
    assert kwargs["model"] == PROVIDER_ENDPOINTS["gemini"].default_model
    assert kwargs["response_format"] == {"type": "json_object"}
    assert "BTCUSDT" in kwargs["messages"][1]["content"]


@pytest.mark.asyncio
async def test_model_override_used(
    oracle: LLMDecisionOracle, mock_client: MagicMock, market_snapshot: MarketSnapshot
) -> None:
    await oracle.decide(_context(market_snapshot, provider="openai"))

    assert mock_client.chat.completions.create.await_args.kwargs["model"] == "gpt-4o"


@pytest.mark.asyncio
async def test_missing_credential_raises_without_calling(
    oracle: LLMDecisionOracle, mock_client: MagicMock, market_snapshot: MarketSnapshot
) -> None:
    with pytest.raises(OracleError, match="No API key"):
        await oracle.decide(_context(market_snapshot, credential=""))

    mock_client.chat.completions.create.assert_not_awaited()


@pytest.mark.asyncio
async def test_unknown_provider_raises(
    oracle: LLMDecisionOracle, market_snapshot: MarketSnapshot
) -> None:
    with pytest.raises(OracleError, match="Unknown oracle provider"):
        await oracle.decide(_context(market_snapshot, provider="claude"))


@pytest.mark.asyncio
async def test_sdk_error_becomes_oracle_error(
    oracle: LLMDecisionOracle, mock_client: MagicMock, market_snapshot: MarketSnapshot
) -> None:
    mock_client.chat.completions.create.side_effect = openai.APIConnectionError(
        request=httpx.Request("POST", "https://api.example.com/chat/completions")
    )

    with pytest.raises(OracleError, match="request failed"):
        await oracle.decide(_context(market_snapshot))


@pytest.mark.asyncio
async def test_empty_message_raises(
    oracle: LLMDecisionOracle, mock_client: MagicMock, market_snapshot: MarketSnapshot
) -> None:
    mock_client.chat.completions.create.return_value = _response(None)

    with pytest.raises(OracleError, match="empty"):
        await oracle.decide(_context(market_snapshot))


@pytest.mark.asyncio
async def test_invalid_content_raises(
    oracle: LLMDecisionOracle, mock_client: MagicMock, market_snapshot: MarketSnapshot
) -> None:
    mock_client.chat.completions.create.return_value = _response('{"action": "HODL"}')

    with pytest.raises(OracleError):
        await oracle.decide(_context(market_snapshot))


def test_prompt_quotes_recent_history(market_snapshot: MarketSnapshot) -> None:
    prompt = build_prompt(_context(market_snapshot))

    assert "Current price: 50000" in prompt
    assert "Current position: NONE" in prompt
    assert str(market_snapshot.history[-1].price) in prompt


def test_clients_cached_per_provider_and_key() -> None:
    oracle = LLMDecisionOracle()

    first = oracle._client("deepseek", "k1")
    assert oracle._client("deepseek", "k1") is first
    assert oracle._client("deepseek", "k2") is not first
