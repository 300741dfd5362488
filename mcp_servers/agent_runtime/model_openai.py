from __future__ import annotations

import logging
import os
from collections.abc import Callable
from typing import Any

from openai import OpenAI

from .collaborators import ModelRequest, ModelResponse
from .config import RuntimeConfig

_logger = logging.getLogger("mcp.agent_runtime.model")


class OpenAIModelClient:
    """ModelClient on the OpenAI chat completions API.

    With `use_own_credentials` the user's key (MCP_AGENT_OWN_MODEL_KEY) is used
    instead of the shared one (OPENAI_API_KEY, picked up by the SDK).
    """

    def __init__(
        self,
        config: RuntimeConfig,
        *,
        own_api_key: str | None = None,
        client_factory: Callable[..., Any] = OpenAI,
    ) -> None:
        self.config = config
        self.own_api_key = own_api_key if own_api_key is not None else os.environ.get("MCP_AGENT_OWN_MODEL_KEY")
        self._factory = client_factory
        self._clients: dict[bool, Any] = {}

    def _client(self, use_own: bool) -> Any:
        client = self._clients.get(use_own)
        if client is None:
            if use_own:
                if not self.own_api_key:
                    raise RuntimeError("Own model key requested but MCP_AGENT_OWN_MODEL_KEY is not set")
                client = self._factory(api_key=self.own_api_key)
            else:
                client = self._factory()
            self._clients[use_own] = client
        return client

    def generate(self, request: ModelRequest, use_own_credentials: bool = False) -> ModelResponse:
        messages = []
        if request.system_prompt:
            messages.append({"role": "system", "content": request.system_prompt})
        messages.append({"role": "user", "content": request.prompt})

        kwargs: dict[str, Any] = {
            "model": self.config.model_name,
            "messages": messages,
            "max_tokens": request.max_tokens,
        }
        if request.temperature is not None:
            kwargs["temperature"] = request.temperature

        _logger.info("Model call: model=%s prompt_chars=%d", self.config.model_name, len(request.prompt))
        response = self._client(use_own_credentials).chat.completions.create(**kwargs)
        content = response.choices[0].message.content or ""
        return ModelResponse(content=content)
