"""Tests for ux_writing.evaluate_label with requests mocked out."""

from unittest.mock import MagicMock, patch

import pytest
import requests

from ux_writing import MAX_TOKENS, NO_REPLY, SYSTEM_PROMPT, TEMPERATURE, UXWritingError, evaluate_label

CONTEXT = "metadata:\n  name: Checkout\nnodes:\n  id: '1:2'\n  text: Submit\n"


def _response(status=200, payload=None):
    res = MagicMock()
    res.status_code = status
    res.ok = status < 400
    res.text = "model overloaded"
    res.json.return_value = payload
    return res


@pytest.fixture
def mock_post():
    with patch("vision.requests.post") as post:
        yield post


def test_request_body(mock_post):
    mock_post.return_value = _response(200, {"choices": [{"message": {"content": " Use 'Place order'. "}}]})

    assert evaluate_label(CONTEXT, "Submit", "sk-test") == "Use 'Place order'."

    args, kwargs = mock_post.call_args
    assert args[0] == "https://api.openai.com/v1/chat/completions"
    assert kwargs["headers"]["Authorization"] == "Bearer sk-test"
    body = kwargs["json"]
    assert body["model"] == "gpt-4"
    assert body["temperature"] == TEMPERATURE
    assert body["max_tokens"] == MAX_TOKENS
    system, user = body["messages"]
    assert system == {"role": "system", "content": SYSTEM_PROMPT}
    assert user["role"] == "user"
    assert CONTEXT in user["content"]
    assert '"Submit"' in user["content"]


def test_empty_reply(mock_post):
    mock_post.return_value = _response(200, {"choices": [{"message": {"content": "   "}}]})
    assert evaluate_label(CONTEXT, "OK", "sk-test") == NO_REPLY


def test_error_status(mock_post):
    mock_post.return_value = _response(503)
    with pytest.raises(UXWritingError, match="model overloaded"):
        evaluate_label(CONTEXT, "OK", "sk-test")


def test_timeout(mock_post):
    mock_post.side_effect = requests.Timeout()
    with pytest.raises(UXWritingError, match="timed out"):
        evaluate_label(CONTEXT, "OK", "sk-test", timeout=5)


def test_custom_model(mock_post):
    mock_post.return_value = _response(200, {"choices": [{"message": {"content": "Fine"}}]})
    evaluate_label(CONTEXT, "OK", "sk-test", model="gpt-4o-mini", base_url="http://localhost:8000/v1")
    assert mock_post.call_args.args[0] == "http://localhost:8000/v1/chat/completions"
    assert mock_post.call_args.kwargs["json"]["model"] == "gpt-4o-mini"
