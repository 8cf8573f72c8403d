"""UX-writing review of a label, judged against the node it sits in."""

import logging

from vision import DEFAULT_BASE_URL, DEFAULT_TIMEOUT, ChatCompletionError, chat_completion

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4"
MAX_TOKENS = 500
TEMPERATURE = 0.7
NO_REPLY = "(no response)"

SYSTEM_PROMPT = (
    "You are a UX writing expert. Based on the user's design context and text, "
    "judge whether the text is appropriate and suggest improvements."
)


class UXWritingError(ChatCompletionError):
    pass


def build_prompt(context: str, label: str) -> str:
    return f"""
[Figma context]
{context}

[Text]
"{label}"

Is this text appropriate from a UX writing perspective?
Check whether the wording fits its role (button, header, etc.) and suggest improvements if there are any.
"""


def evaluate_label(context: str, label: str, credential: str, model: str = DEFAULT_MODEL,
                   base_url: str = DEFAULT_BASE_URL, timeout: float = DEFAULT_TIMEOUT) -> str:
    """``context`` is the node's simplified YAML."""
    body = {
        "model": model,
        "messages": [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": build_prompt(context, label)},
        ],
        "temperature": TEMPERATURE,
        "max_tokens": MAX_TOKENS,
    }
    logger.info("Evaluating label %r", label)
    reply = chat_completion(body, credential, base_url=base_url, timeout=timeout, error=UXWritingError)
    return reply or NO_REPLY
