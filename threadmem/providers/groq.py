from threadmem.providers.base import OpenAICompatibleProvider

class GroqProvider(OpenAICompatibleProvider):
    base_url = "https://api.groq.com/openai/v1/chat/completions"
    timeout = 90.0

    def __init__(self):
        super().__init__("groq", "GROQ_API_KEY")
        self.default_model = "llama-3.3-70b-versatile"
