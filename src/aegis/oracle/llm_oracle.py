"""LLM-backed decision oracle.

Talks to OpenAI, DeepSeek or Gemini through their OpenAI-compatible chat
completion endpoints using the ``openai`` async SDK. The provider and its
API key come from the DecisionContext of each cycle, so switching provider
in the settings takes effect on the next decision cycle.
"""

from __future__ import annotations

from dataclasses import dataclass

import openai
from openai import AsyncOpenAI

from aegis.exceptions import OracleError
from aegis.logging import get_logger
from aegis.models import Decision, DecisionContext
from aegis.oracle.base import DecisionOracle
from aegis.oracle.parser import parse_decision

logger = get_logger(__name__)

# Price points quoted to the model; the full 50-point window is too noisy.
_PROMPT_HISTORY_POINTS = 20


@dataclass(frozen=True)
class ProviderEndpoint:
    base_url: str | None
    default_model: str


PROVIDER_ENDPOINTS: dict[str, ProviderEndpoint] = {
    "openai": ProviderEndpoint(base_url=None, default_model="gpt-4o-mini"),
    "deepseek": ProviderEndpoint(
        base_url="https://api.deepseek.com", default_model="deepseek-chat"
    ),
    "gemini": ProviderEndpoint(
        base_url="https://generativelanguage.googleapis.com/v1beta/openai/",
        default_model="gemini-2.0-flash",
    ),
}

SYSTEM_PROMPT = (
    "You are a disciplined crypto futures trading assistant. "
    "Respond ONLY with a JSON object of the form "
    '{"action": "LONG" | "SHORT" | "CLOSE" | "WAIT", '
    '"confidence": <integer 0-100>, "reason": "<one or two sentences>"}. '
    "Use WAIT when there is no clear edge. Use CLOSE only when a position is open."
)


def build_prompt(context: DecisionContext) -> str:
    """Render the market context as the user message."""
    market = context.market
    recent = market.history[-_PROMPT_HISTORY_POINTS:]
    history = ", ".join(str(p.price) for p in recent) or "n/a"
    return (
        f"Symbol: {context.symbol}\n"
        f"Leverage: {context.leverage}x\n"
        f"Current price: {market.price}\n"
        f"24h change: {market.change_24h}%\n"
        f"Recent prices (oldest first): {history}\n"
        f"Current position: {context.current_position_side.value}\n"
        "Decide the next action."
    )


class LLMDecisionOracle(DecisionOracle):
    """Decision oracle calling a chat-completions LLM.

    Args:
        model_overrides: Optional provider -> model name mapping.
        timeout: Per-request timeout in seconds passed to the SDK.
    """

    def __init__(
        self,
        model_overrides: dict[str, str] | None = None,
        timeout: float = 20.0,
    ) -> None:
        self._model_overrides = model_overrides or {}
        self._timeout = timeout
        self._clients: dict[tuple[str, str], AsyncOpenAI] = {}

    def _client(self, provider: str, api_key: str) -> AsyncOpenAI:
        key = (provider, api_key)
        client = self._clients.get(key)
        if client is None:
            endpoint = PROVIDER_ENDPOINTS[provider]
            client = AsyncOpenAI(
                api_key=api_key,
                base_url=endpoint.base_url,
                timeout=self._timeout,
                max_retries=0,
            )
            self._clients[key] = client
        return client

    async def decide(self, context: DecisionContext) -> Decision:
        provider = context.provider
        if provider not in PROVIDER_ENDPOINTS:
            raise OracleError(f"Unknown oracle provider: {provider}")
        if not context.provider_credential:
            raise OracleError(f"No API key configured for provider {provider}")

        model = self._model_overrides.get(provider) or PROVIDER_ENDPOINTS[provider].default_model
        client = self._client(provider, context.provider_credential)

        logger.debug("oracle_request", provider=provider, model=model, symbol=context.symbol)
        try:
            response = await client.chat.completions.create(
                model=model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": build_prompt(context)},
                ],
                temperature=0.2,
                response_format={"type": "json_object"},
            )
        except openai.OpenAIError as e:
            raise OracleError(f"{provider} request failed: {e}") from e

        if not response.choices:
            raise OracleError(f"{provider} returned no choices")
        content = response.choices[0].message.content
        if not content:
            raise OracleError(f"{provider} returned an empty message")

        decision = parse_decision(content, provider=provider)
        logger.info(
            "oracle_decision",
            provider=provider,
            action=decision.action.value,
            confidence=decision.confidence,
        )
        return decision

    async def close(self) -> None:
        for client in self._clients.values():
            await client.close()
        self._clients.clear()
