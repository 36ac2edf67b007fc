from __future__ import annotations
import json
import logging
import re
import httpx
from typing import Any, Dict, List, Optional, Tuple
from .settings import settings

logger = logging.getLogger(__name__)

AI_STUDIO_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
VERTEX_URL = (
	"https://{region}-aiplatform.googleapis.com/v1/projects/{project}/locations/{region}"
	"/publishers/google/models/{model}:generateContent"
)


class GeminiError(RuntimeError):
	"""Raised when Gemini (and any configured fallback) cannot produce a usable reply."""


def extract_json_object(text: str) -> Any:
	"""Parse a JSON value out of model output, tolerating markdown fences and chatter."""
	if not isinstance(text, str):
		raise ValueError(f"Expected model text, got {type(text).__name__}")
	candidates = [text]
	fenced = re.search(r"```(?:json)?\s*([\s\S]*?)\s*```", text)
	if fenced:
		candidates.append(fenced.group(1))
	start, end = text.find("{"), text.rfind("}")
	if 0 <= start < end:
		candidates.append(text[start : end + 1])
	for candidate in candidates:
		try:
			return json.loads(candidate)
		except ValueError:
			continue
	raise ValueError("Model did not return valid JSON")


def resolve_endpoint(model: str) -> Tuple[str, bool]:
	"""Return the generateContent URL for the configured provider and whether the key goes in the query."""
	if settings.gemini_provider == "vertex":
		# Vertex AI Express: API key travels in the x-goog-api-key header
		url = VERTEX_URL.format(
			region=settings.vertex_region,
			project=settings.vertex_project or "placeholder-project",
			model=model,
		)
		return url, False
	return AI_STUDIO_URL.format(model=model), True


class OpenRouterFallback:
	"""Chat-completions client used only after the Gemini call has failed."""

	def __init__(self, api_key: str, *, timeout: float, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
		self.model = settings.openrouter_model
		self.url = settings.openrouter_base_url
		headers = {
			"Authorization": f"Bearer {api_key}",
			"Content-Type": "application/json",
			"HTTP-Referer": settings.openrouter_referer,
			"X-Title": settings.openrouter_title,
		}
		self._headers = {k: v for k, v in headers.items() if v}
		self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

	async def complete(self, prompt: str, *, as_json: bool = False) -> str:
		body: Dict[str, Any] = {
			"model": self.model,
			"messages": [{"role": "user", "content": prompt}],
		}
		if as_json:
			body["response_format"] = {"type": "json_object"}
		r = await self._client.post(self.url, headers=self._headers, json=body)
		r.raise_for_status()
		content = r.json()["choices"][0]["message"]["content"]
		if not isinstance(content, str) or not content.strip():
			raise ValueError("OpenRouter reply contained no text")
		return content

	async def aclose(self) -> None:
		await self._client.aclose()


class GeminiClient:
	def __init__(
		self,
		api_key: Optional[str] = None,
		*,
		base_url: Optional[str] = None,
		model: Optional[str] = None,
		transport: Optional[httpx.AsyncBaseTransport] = None,
	) -> None:
		self.api_key = api_key or settings.gemini_api_key
		if not self.api_key:
			raise ValueError("GEMINI_API_KEY is not configured")
		self.model = model or settings.gemini_model
		self.provider = settings.gemini_provider
		url, self._auth_in_query = resolve_endpoint(self.model)
		self.base_url = base_url or url
		timeout = settings.gemini_timeout_seconds
		self._client = httpx.AsyncClient(timeout=timeout, transport=transport)
		self._fallback: Optional[OpenRouterFallback] = None
		if settings.openrouter_api_key:
			self._fallback = OpenRouterFallback(settings.openrouter_api_key, timeout=timeout, transport=transport)

	async def generate(
		self,
		prompt: str,
		*,
		response_schema: Optional[Dict[str, Any]] = None,
	) -> str:
		"""Single-turn text generation; with a schema Gemini is asked for JSON matching it."""
		payload: Dict[str, Any] = {"contents": [{"parts": [{"text": prompt}]}]}
		if response_schema is not None:
			payload["generationConfig"] = {
				"responseMimeType": "application/json",
				"responseSchema": response_schema,
			}
		try:
			return await self._call(payload)
		except GeminiError as primary:
			if self._fallback is None:
				raise
			logger.warning("Gemini failed (%s); retrying once via OpenRouter", primary)
			try:
				return await self._fallback.complete(prompt, as_json=response_schema is not None)
			except (httpx.HTTPError, KeyError, IndexError, TypeError, ValueError) as e:
				raise GeminiError(f"Gemini failed ({primary}); OpenRouter fallback also failed: {e}") from e

	async def generate_with_search(self, prompt: str) -> str:
		"""Generation grounded with Google Search. No fallback: OpenRouter has no search tool."""
		payload: Dict[str, Any] = {
			"contents": [{"parts": [{"text": prompt}]}],
			"tools": [{"google_search": {}}],
		}
		return await self._call(payload)

	async def _call(self, payload: Dict[str, Any]) -> str:
		params: Dict[str, Any] = {}
		headers: Dict[str, str] = {}
		if self._auth_in_query:
			params["key"] = self.api_key
		else:
			headers["x-goog-api-key"] = self.api_key
		try:
			r = await self._client.post(self.base_url, params=params, headers=headers, json=payload)
			r.raise_for_status()
		except httpx.HTTPStatusError as e:
			raise GeminiError(f"Gemini returned HTTP {e.response.status_code}") from e
		except httpx.RequestError as e:
			raise GeminiError(f"Gemini request failed: {e!r}") from e
		try:
			return self._response_text(r.json())
		except (AttributeError, KeyError, IndexError, TypeError, ValueError) as e:
			raise GeminiError(f"Unexpected Gemini response: {r.text[:200]}") from e

	@staticmethod
	def _response_text(data: Dict[str, Any]) -> str:
		# Grounded responses may split the answer across several parts
		parts: List[Dict[str, Any]] = data["candidates"][0]["content"]["parts"]
		text = "".join(p.get("text", "") for p in parts)
		if not text:
			raise ValueError("Gemini response contained no text")
		return text

	async def aclose(self) -> None:
		await self._client.aclose()
		if self._fallback is not None:
			await self._fallback.aclose()


async def get_gemini_client():
	client = GeminiClient()
	try:
		yield client
	finally:
		await client.aclose()
