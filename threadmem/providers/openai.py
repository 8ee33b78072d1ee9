from threadmem.core.config import settings
from threadmem.providers.base import OpenAICompatibleProvider

class OpenAIProvider(OpenAICompatibleProvider):
    base_url = "https://api.openai.com/v1/chat/completions"

    def __init__(self):
        super().__init__("openai", "OPENAI_API_KEY")
        self.default_model = "gpt-4o-mini"

    def get_api_key(self) -> str:
        # AI_API_KEY doubles as the OpenAI key
        return str(settings.get_ai_key("openai") or "")
