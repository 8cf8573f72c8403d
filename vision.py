"""Image description via an OpenAI-compatible vision model."""

import logging

import requests

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-4o"
DEFAULT_TIMEOUT = 30.0
MAX_TOKENS = 256

PROMPT = """
Look at the image and answer with exactly one of the following.

1. If it looks like a UI component (button, input field, checkbox, toggle, card, tab, dropdown, stepper, picker, etc.), state the name of the component clearly (e.g. button, input field, card, stepper).
2. If it is not a UI component but reads as an icon, summarize in one line what the icon means.
3. If it is neither but is a meaningful image (illustration, photo, etc.), summarize its content in one line.
4. If it is neither a UI component nor a meaningful image (plain background, decoration, pattern, etc.), answer "No analysis result".

Answer with only one of the options above.
"""


class ChatCompletionError(Exception):
    """A chat-completions request failed or returned no text."""


class AnnotationError(ChatCompletionError):
    """The vision model could not describe an image."""


def chat_completion(body: dict, credential: str, base_url: str = DEFAULT_BASE_URL,
                    timeout: float = DEFAULT_TIMEOUT, error=ChatCompletionError) -> str:
    """POST ``body`` to ``{base_url}/chat/completions`` and return the first
    choice's text. Failures are raised as ``error``."""
    headers = {
        "Authorization": f"Bearer {credential}",
        "Content-Type": "application/json",
    }
    try:
        res = requests.post(f"{base_url.rstrip('/')}/chat/completions",
                            headers=headers, json=body, timeout=timeout)
    except requests.Timeout as e:
        raise error(f"Chat API timed out after {timeout}s") from e
    except requests.RequestException as e:
        raise error(f"Chat API request failed: {e}") from e

    if not res.ok:
        logger.error("Chat API error %s: %s", res.status_code, res.text)
        raise error(f"Chat API call failed ({res.status_code}): {res.text}")

    try:
        content = res.json()["choices"][0]["message"]["content"]
    except (ValueError, KeyError, IndexError, TypeError) as e:
        raise error("Chat API returned a malformed response") from e
    if not isinstance(content, str):
        raise error("Chat API returned no text content")
    return content.strip()


def annotate_image(image_url: str, credential: str, model: str = DEFAULT_MODEL,
                   base_url: str = DEFAULT_BASE_URL, timeout: float = DEFAULT_TIMEOUT) -> str:
    body = {
        "model": model,
        "messages": [
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": PROMPT},
                    {"type": "image_url", "image_url": {"url": image_url}},
                ],
            }
        ],
        "max_tokens": MAX_TOKENS,
    }
    logger.debug("Vision request for %s", image_url)
    return chat_completion(body, credential, base_url=base_url, timeout=timeout, error=AnnotationError)
