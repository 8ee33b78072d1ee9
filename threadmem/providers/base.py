from abc import ABC, abstractmethod
from typing import List, Dict, Any, Optional
import httpx
from threadmem.core.config import settings
from threadmem.core.logger import Logger

class BaseProvider(ABC):
    def __init__(self, name: str, api_key_env_name: str):
        self.name = name
        self.api_key_env_name = api_key_env_name
        self.logger = Logger(f"Provider:{name}")
        self.default_model: Optional[str] = None

    def get_api_key(self) -> str:
        # Pydantic settings are case-insensitive
        return str(getattr(settings, self.api_key_env_name, "") or "")

    def is_configured(self) -> bool:
        return bool(self.get_api_key())

    @abstractmethod
    async def call(
        self,
        prompt: str,
        model: str,
        history: List[Dict[str, str]] = None,
        context_prefix: str = "",
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        json_mode: bool = False,
    ) -> Dict[str, Any]:
        """
        Call the AI provider.
        Returns: {"thinking": str, "content": str}
        """
        pass


class OpenAICompatibleProvider(BaseProvider):
    """Provider speaking the OpenAI chat-completions wire format."""

    base_url: str = ""
    timeout: float = 60.0

    def build_messages(self, prompt: str, history: List[Dict[str, str]], context_prefix: str) -> List[Dict[str, str]]:
        messages = []
        if context_prefix:
            messages.append({"role": "system", "content": context_prefix})
        messages.extend(history or [])
        messages.append({"role": "user", "content": prompt})
        return messages

    async def call(
        self,
        prompt: str,
        model: str,
        history: List[Dict[str, str]] = None,
        context_prefix: str = "",
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        json_mode: bool = False,
    ) -> Dict[str, Any]:
        api_key = self.get_api_key()
        if not api_key:
            raise ValueError(f"{self.api_key_env_name} is not set")

        payload: Dict[str, Any] = {
            "model": model or self.default_model,
            "messages": self.build_messages(prompt, history, context_prefix),
        }
        if temperature is not None:
            payload["temperature"] = temperature
        if max_tokens:
            payload["max_tokens"] = max_tokens
        if json_mode:
            payload["response_format"] = {"type": "json_object"}

        headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json"
        }

        async with httpx.AsyncClient() as client:
            try:
                response = await client.post(self.base_url, json=payload, headers=headers, timeout=self.timeout)
                response.raise_for_status()
                data = response.json()
                content = data['choices'][0]['message']['content'] or ""
                return {"thinking": "", "content": content}
            except Exception as e:
                self.logger.error(f"{self.name} API call failed: {e}")
                raise
