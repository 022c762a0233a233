"""LiteLLM client wrapper with retry, backoff, and API key validation.

All embedding and generation calls route through this module.
LiteLLM's built-in retry is used (num_retries, exponential backoff).
"""

from __future__ import annotations

import os
from collections.abc import Iterator

import litellm

# Disable LiteLLM verbose logging unless explicitly enabled
litellm.suppress_debug_info = True
litellm.set_verbose = False  # type: ignore[assignment]


# ------------------------------------------------------------------
# Provider → env var mapping for API key validation
# ------------------------------------------------------------------

_PROVIDER_ENV: dict[str, str | None] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "azure": "AZURE_API_KEY",
    "cohere": "COHERE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "groq": "GROQ_API_KEY",
    "together_ai": "TOGETHERAI_API_KEY",
    "voyage": "VOYAGE_API_KEY",
    "ollama": None,  # Local, no key required
    "ollama_chat": None,
}


def provider_of(model: str) -> str:
    """Return the provider prefix of a ``provider/model`` string (default openai)."""
    return model.split("/")[0].lower() if "/" in model else "openai"


def api_key_env(model: str) -> str | None:
    """Environment variable holding the key for *model*'s provider.

    None means no key is required (local or unlisted providers).
    """
    provider = provider_of(model)
    return _PROVIDER_ENV.get(provider)


def validate_api_key(model: str) -> None:
    """Check that the required API key env var is set for *model*.

    Raises:
        EnvironmentError: If the required key is missing from environment.
    """
    provider = provider_of(model)
    env_var = api_key_env(model)

    if env_var is None:
        return

    if not os.getenv(env_var):
        raise EnvironmentError(
            f"API key not found for provider '{provider}'. "
            f"Set the {env_var} environment variable."
        )


def stream_complete(
    model: str,
    messages: list[dict],
    max_tokens: int = 1024,
    temperature: float = 0.0,
    timeout: float | None = None,
    num_retries: int = 3,
) -> Iterator[str]:
    """Call litellm.completion(stream=True) and yield text deltas as they arrive.

    *timeout* bounds the whole request, streaming included.
    """
    response = litellm.completion(
        model=model,
        messages=messages,
        max_tokens=max_tokens,
        temperature=temperature,
        timeout=timeout,
        num_retries=num_retries,
        stream=True,
    )
    for part in response:
        delta = part.choices[0].delta.content if part.choices else None
        if delta:
            yield delta


def embed_batch(model: str, texts: list[str], num_retries: int = 3) -> list[list[float]]:
    """Call litellm.embedding() for *texts* in one request.

    The vectors are returned in input order (LiteLLM reports an ``index``
    per item; it is used when present). No padding or truncation happens
    here; callers check the count.
    """
    response = litellm.embedding(
        model=model,
        input=texts,
        num_retries=num_retries,
    )
    items = list(response.data)
    if items and all(_field(item, "index") is not None for item in items):
        items.sort(key=lambda item: _field(item, "index"))
    return [list(_field(item, "embedding")) for item in items]


def count_tokens(model: str, text: str) -> int:
    """Count tokens in *text* for *model* using LiteLLM's provider-aware counter.

    Falls back to a 4-characters-per-token approximation if the model is not
    supported by litellm.token_counter().
    """
    try:
        return litellm.token_counter(model=model, text=text)
    except Exception:
        return max(1, len(text) // 4)


def _field(item: object, name: str) -> object:
    """Read *name* from an embedding item that may be a dict or an object."""
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name, None)
