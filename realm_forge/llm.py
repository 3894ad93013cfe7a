"""LLM client: HTTP connection to a text-generation backend.

The Oracle is given an LLM callable matching the protocol:

    async def __call__(self, stage: str, prompt: str) -> str: ...

`stage` identifies which oracle call is being made (e.g. "decision",
"combat", "genesis"). Implementations may use it for logging or routing.

Two implementations are provided:

    HttpLLM    : real HTTP client, supports OpenAI-compatible chat backends
                 and KoboldCpp. Selected by provider_format.
    OfflineLLM : no network. Answers every stage with a fixed, valid reply,
                 so worlds can be created and advanced without a model
                 (every epoch is a quiet one).

Production code builds an HttpLLM from config and hands it to the Oracle.
Tests use StubLLM (defined in conftest.py) instead.
"""

from __future__ import annotations

import json
import logging
from typing import Literal, Protocol

import httpx

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocol: every LLM implementation must match this signature
# ---------------------------------------------------------------------------

class LLM(Protocol):
    async def __call__(self, stage: str, prompt: str) -> str: ...


# ---------------------------------------------------------------------------
# HttpLLM: connects to a real backend
# ---------------------------------------------------------------------------

ProviderFormat = Literal["openai", "koboldcpp"]

SYSTEM_PROMPT = (
    "You are the oracle of a turn-based world simulation. "
    "When asked for JSON, output JSON only."
)


class HttpLLM:
    """Async HTTP client for text-generation backends.

    Supported formats:
      "openai"    : POST {base}/v1/chat/completions  {"model", "messages"}
                     Response: {"choices": [{"message": {"content": "..."}}]}
      "koboldcpp" : POST {base}/api/v1/generate      {"prompt": ...}
                     Response: {"results": [{"text": "..."}]}

    Args:
        provider_url:    Base URL, e.g. "https://api.openai.com/v1".
        api_key:         Bearer token, or empty string if not required.
        provider_format: Wire format to use. Defaults to "openai".
        model:           Model identifier, used only by the openai format.
        timeout:         HTTP timeout in seconds. Defaults to 120.
    """

    def __init__(
        self,
        provider_url: str,
        api_key: str = "",
        provider_format: ProviderFormat = "openai",
        model: str = "",
        timeout: float = 120.0,
    ) -> None:
        self._base_url = provider_url.rstrip("/")
        self._api_key = api_key
        self._format = provider_format
        self._model = model
        self._timeout = timeout

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _build_request(self, prompt: str) -> tuple[str, dict]:
        """Return (url, body) for the configured format."""
        if self._format == "koboldcpp":
            return f"{self._base_url}/api/v1/generate", {"prompt": prompt}

        if "/chat/completions" in self._base_url:
            url = self._base_url
        elif self._base_url.endswith("/v1"):
            url = f"{self._base_url}/chat/completions"
        else:
            url = f"{self._base_url}/v1/chat/completions"
        body: dict = {
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
        }
        if self._model:
            body["model"] = self._model
        return url, body

    def _parse_response(self, data: dict) -> str:
        """Extract the completion text from the response body."""
        if self._format == "koboldcpp":
            results = data.get("results")
            if not results or "text" not in results[0]:
                raise LLMError("Unexpected response format from KoboldCpp backend")
            return results[0]["text"]

        choices = data.get("choices")
        if not choices or not isinstance(choices[0].get("message"), dict):
            raise LLMError("Unexpected response format from OpenAI-compatible backend")
        return choices[0]["message"].get("content") or ""

    async def __call__(self, stage: str, prompt: str) -> str:
        url, body = self._build_request(prompt)
        logger.debug("llm call stage=%s url=%s prompt_len=%d", stage, url, len(prompt))

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(url, json=body, headers=self._headers())
                resp.raise_for_status()
        except httpx.ConnectError as e:
            raise LLMError(f"Cannot connect to LLM backend at {self._base_url}") from e
        except httpx.HTTPStatusError as e:
            raise LLMError(
                f"LLM backend returned HTTP {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.TimeoutException as e:
            raise LLMError(f"LLM backend timed out after {self._timeout}s") from e
        except httpx.HTTPError as e:
            raise LLMError(f"LLM transport error: {e}") from e

        try:
            data = resp.json()
        except ValueError as e:
            raise LLMError("LLM backend returned a non-JSON body") from e
        if not isinstance(data, dict):
            raise LLMError("LLM backend returned an unexpected JSON body")
        try:
            text = self._parse_response(data)
        except (AttributeError, KeyError, TypeError) as e:
            raise LLMError("Unexpected response format from LLM backend") from e
        logger.debug("llm response stage=%s len=%d", stage, len(text))
        return text


# ---------------------------------------------------------------------------
# OfflineLLM: fixed replies; useful without a running model
# ---------------------------------------------------------------------------

OFFLINE_WORLD = {
    "world_name": "The Hollow Marches",
    "factions": [
        {"id": "fac_crown", "name": "The Ashen Crown", "archetype": "order",
         "ideology": "Order through iron law", "leader_npc_id": "npc_regent",
         "resources": {"gold": 120, "grain": 80, "iron": 40},
         "military": {"troops": 60, "quality": 1.2}},
        {"id": "fac_guild", "name": "Saltway Guild", "archetype": "commerce",
         "ideology": "Every road is a ledger", "leader_npc_id": "npc_factor",
         "resources": {"gold": 200, "grain": 40, "iron": 20},
         "military": {"troops": 30, "quality": 0.9}},
        {"id": "fac_wild", "name": "Thornbound", "archetype": "nature",
         "ideology": "The forest remembers", "leader_npc_id": "npc_warden",
         "resources": {"gold": 40, "grain": 120, "iron": 10},
         "military": {"troops": 45, "quality": 1.0}},
    ],
    "locations": [
        {"id": "loc_vesper", "name": "Vesper Hold", "type": "capital", "x": 5, "y": 4,
         "faction_id": "fac_crown", "population": 2400, "defense": 70,
         "prosperity": 55, "unrest": 15},
        {"id": "loc_brine", "name": "Brinegate", "type": "town", "x": 15, "y": 9,
         "faction_id": "fac_guild", "population": 1600, "defense": 40,
         "prosperity": 65, "unrest": 10},
        {"id": "loc_moss", "name": "Mossfall", "type": "outpost", "x": 20, "y": 3,
         "faction_id": "fac_wild", "population": 600, "defense": 35,
         "prosperity": 40, "unrest": 20},
    ],
    "npcs": [
        {"id": "npc_regent", "name": "Regent Maelis", "role": "Faction Leader",
         "faction_id": "fac_crown", "location_id": "loc_vesper",
         "goals": [{"id": "g1", "text": "Hold the capital", "priority": 1}]},
        {"id": "npc_factor", "name": "Factor Osk", "role": "Guild Leader",
         "faction_id": "fac_guild", "location_id": "loc_brine",
         "goals": [{"id": "g1", "text": "Corner the grain trade", "priority": 1}]},
        {"id": "npc_warden", "name": "Warden Ilsa", "role": "Circle Leader",
         "faction_id": "fac_wild", "location_id": "loc_moss",
         "goals": [{"id": "g1", "text": "Keep the loggers out", "priority": 1}]},
        {"id": "npc_scribe", "name": "Scribe Tolly", "role": "Archivist",
         "faction_id": "fac_crown", "location_id": "loc_vesper"},
        {"id": "npc_runner", "name": "Runner Pell", "role": "Courier",
         "faction_id": "fac_guild", "location_id": "loc_brine"},
        {"id": "npc_scout", "name": "Scout Fen", "role": "Scout",
         "faction_id": "fac_wild", "location_id": "loc_moss"},
    ],
    "commodities": [
        {"id": "grain", "base_price": 10, "current_price": 10, "supply": 120,
         "demand": 100, "volatility": 1.5},
    ],
    "initial_event": "Three banners rise over the Hollow Marches.",
}

OFFLINE_REPLIES: dict[str, str] = {
    "genesis": json.dumps(OFFLINE_WORLD),
    "decision": json.dumps({"action": None, "args": {}}),
    "history": "The day passed without remark.",
    "world_event": json.dumps({}),
    "tool_evolution": json.dumps({}),
    "tool_execution": json.dumps({"summary": "Nothing came of it.", "calls": []}),
    "combat": json.dumps({}),
}


class OfflineLLM:
    """Answers every stage with a fixed reply. No network calls.

    Lets you create and advance a world end-to-end without a running model:
    managers always wait, world events and tool evolution never fire, combat
    is always inconclusive.
    """

    async def __call__(self, stage: str, prompt: str) -> str:
        logger.debug("OfflineLLM stage=%s prompt_len=%d", stage, len(prompt))
        return OFFLINE_REPLIES.get(stage, "{}")


# ---------------------------------------------------------------------------
# LLMError: raised by HttpLLM for all connection and protocol failures
# ---------------------------------------------------------------------------

class LLMError(RuntimeError):
    """Raised when the LLM backend cannot be reached or returns an error."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    @property
    def rate_limited(self) -> bool:
        return self.status_code == 429
