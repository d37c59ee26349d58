from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from errors import NETWORK_ERROR, REMOTE_SERVICE_FAILURE, VoiceServiceError
from intent_classifier import SYSTEM_PROMPT, DashscopeIntentClassifier


def _response(content: str, status: int = 200) -> dict:
    return {
        "status_code": status,
        "message": "",
        "output": {"choices": [{"message": {"role": "assistant", "content": content}}]},
    }


@patch("intent_classifier.dashscope")
def test_classify_returns_parsed_json(mock_ds: MagicMock) -> None:
    mock_ds.Generation.call.return_value = _response(
        '```json\n{"intent": "take_assessment", "action": "/dashboard", "confidence": 88}\n```'
    )

    result = DashscopeIntentClassifier(api_key="k").classify("take the operating systems test")

    assert result == {"intent": "take_assessment", "action": "/dashboard", "confidence": 88}
    kwargs = mock_ds.Generation.call.call_args.kwargs
    assert kwargs["messages"][0] == {"role": "system", "content": SYSTEM_PROMPT}
    assert "take the operating systems test" in kwargs["messages"][1]["content"]
    assert kwargs["temperature"] == 0.1


@patch("intent_classifier.dashscope")
def test_non_200_status(mock_ds: MagicMock) -> None:
    mock_ds.Generation.call.return_value = _response("", status=500)

    with pytest.raises(VoiceServiceError) as excinfo:
        DashscopeIntentClassifier(api_key="k").classify("x")
    assert excinfo.value.code == REMOTE_SERVICE_FAILURE


@patch("intent_classifier.dashscope")
def test_unparseable_reply(mock_ds: MagicMock) -> None:
    mock_ds.Generation.call.return_value = _response("I think you want the dashboard")

    with pytest.raises(VoiceServiceError) as excinfo:
        DashscopeIntentClassifier(api_key="k").classify("x")
    assert excinfo.value.code == REMOTE_SERVICE_FAILURE


@patch("intent_classifier.dashscope")
def test_transport_error(mock_ds: MagicMock) -> None:
    mock_ds.Generation.call.side_effect = TimeoutError("request timeout")

    with pytest.raises(VoiceServiceError) as excinfo:
        DashscopeIntentClassifier(api_key="k").classify("x")
    assert excinfo.value.code == NETWORK_ERROR


def test_prompt_lists_navigation_targets() -> None:
    assert '"settings" -> "/dashboard/settings"' in SYSTEM_PROMPT
    assert "ACTION_EVENT:next_question" in SYSTEM_PROMPT
    assert '"unknown"' in SYSTEM_PROMPT
