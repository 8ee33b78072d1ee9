"""
Extraction Prompts

Default instruction template for the extraction oracle and the
formatting of a single user/assistant exchange.
"""

# ═══════════════════════════════════════════════════════════════════════════════
# System Prompt
# ═══════════════════════════════════════════════════════════════════════════════

DEFAULT_EXTRACTION_PROMPT = """You are a precise summarization assistant. Read the conversation exchange and extract durable, structured information.

Extract the following:
1. SUMMARY: One or two sentences describing the exchange
2. KEY_POINTS: The most important points raised
3. FACTS: Stable facts as subject -> value pairs (strings, numbers, booleans or small objects)
4. DECISIONS: Choices that were made
5. TODOS: Tasks that still need to be done
6. GOALS: What the user is trying to achieve
7. CONSTRAINTS: Limits, requirements and restrictions
8. GLOSSARY: Terms and their definitions

Only include information stated in the exchange. Omit a section when there is nothing to report.

Return the result as valid JSON with this shape:
{
  "summary": "...",
  "key_points": ["..."],
  "facts": {"subject": "value"},
  "decisions": ["..."],
  "todos": ["..."],
  "goals": ["..."],
  "constraints": ["..."],
  "glossary": {"term": "definition"}
}"""


# ═══════════════════════════════════════════════════════════════════════════════
# Exchange Formatting
# ═══════════════════════════════════════════════════════════════════════════════

def format_exchange(user_text: str, assistant_text: str) -> str:
    """Render one message pair as the oracle's user input."""
    return f"User: {user_text}\n\nAssistant: {assistant_text}"
