"""Chat-completion client and response parsing."""

import json
from unittest.mock import MagicMock

import pytest
import requests

from thrive import llm
from thrive.errors import LLMError
from thrive.llm import OpenAIClient, PredictionConfig, extract_json


def reply(content: str, status: int = 200) -> MagicMock:
    response = MagicMock(status_code=status)
    response.json.return_value = {"choices": [{"message": {"content": content}}]}
    return response


@pytest.fixture
def post(monkeypatch) -> MagicMock:
    mock = MagicMock()
    monkeypatch.setattr(llm.requests, "post", mock)
    return mock


def test_extract_json_finds_embedded_array() -> None:
    content = 'Here you go:\n[{"employee": "Ana", "score": 40}]\nThanks!'

    assert extract_json(content, kind="array") == [{"employee": "Ana", "score": 40}]


def test_extract_json_falls_back_to_whole_text() -> None:
    assert extract_json("42") == 42
    with pytest.raises(LLMError):
        extract_json("no json here")


def test_complete_sends_chat_request(post) -> None:
    post.return_value = reply("hi")
    client = OpenAIClient("sk-test", model="gpt-test", endpoint="https://example.test/chat")

    assert client.complete("system", "prompt", temperature=0.3, max_tokens=10) == "hi"

    args, kwargs = post.call_args
    assert args == ("https://example.test/chat",)
    assert kwargs["headers"]["Authorization"] == "Bearer sk-test"
    assert kwargs["json"]["model"] == "gpt-test"
    assert kwargs["json"]["messages"][1] == {"role": "user", "content": "prompt"}
    assert kwargs["json"]["max_tokens"] == 10


def test_complete_surfaces_api_error_message(post) -> None:
    error = MagicMock(status_code=401)
    error.json.return_value = {"error": {"message": "Incorrect API key provided"}}
    post.return_value = error

    with pytest.raises(LLMError, match="Incorrect API key"):
        OpenAIClient("bad").complete("s", "p", 0.5, 10)


def test_complete_wraps_network_errors(post) -> None:
    post.side_effect = requests.ConnectionError("down")

    with pytest.raises(LLMError, match="Could not reach"):
        OpenAIClient("sk").complete("s", "p", 0.5, 10)


def test_generate_retention_predictions(post) -> None:
    rows = [{"employee": "Ana", "score": 35, "risk": "high", "reason": "pay", "recommendation": "raise"}]
    post.return_value = reply("```json\n" + json.dumps(rows) + "\n```")

    result = OpenAIClient("sk").generate_retention_predictions(
        PredictionConfig(time_frame="6m", department="Sales", include_factors={"compensation": True, "growth": False})
    )

    assert result == rows
    prompt = post.call_args.kwargs["json"]["messages"][1]["content"]
    assert "next 6 months" in prompt
    assert "Sales department" in prompt
    assert "compensation" in prompt and "growth" not in prompt


def test_generate_retention_predictions_degrades_to_empty(post) -> None:
    assert OpenAIClient("").generate_retention_predictions(PredictionConfig()) == []
    post.assert_not_called()

    post.return_value = reply("sorry, I can't")
    assert OpenAIClient("sk").generate_retention_predictions(PredictionConfig()) == []


def test_analyze_employee_feedback(post) -> None:
    post.return_value = reply('{"sentiment": "negative", "keyIssues": ["workload"], "recommendations": ["hire"]}')

    result = OpenAIClient("sk").analyze_employee_feedback("Too much overtime")

    assert result == {"sentiment": "negative", "keyIssues": ["workload"], "recommendations": ["hire"]}


def test_analyze_employee_feedback_fallbacks(post) -> None:
    assert OpenAIClient("sk").analyze_employee_feedback("   ")["sentiment"] == "Unknown"
    post.assert_not_called()

    post.side_effect = requests.Timeout("slow")
    assert OpenAIClient("sk").analyze_employee_feedback("fine")["sentiment"] == "Error analyzing feedback"


@pytest.mark.parametrize(
    "payload, issues, recommendations",
    [
        ('{"sentiment": "neutral", "keyIssues": null, "recommendations": null}', [], []),
        ('{"sentiment": "neutral", "keyIssues": "workload", "recommendations": "hire"}', ["workload"], ["hire"]),
        ('{"sentiment": "neutral", "keyIssues": 3}', [], []),
    ],
)
def test_analyze_employee_feedback_coerces_malformed_lists(post, payload, issues, recommendations) -> None:
    post.return_value = reply(payload)

    result = OpenAIClient("sk").analyze_employee_feedback("Too much overtime")

    assert result["keyIssues"] == issues
    assert result["recommendations"] == recommendations


def test_analyze_employee_data_merges_defaults(post) -> None:
    post.return_value = reply('{"summary": "Stable team", "retentionRate": 88}')
    rows = [{"name": f"E{i}"} for i in range(15)]

    result = OpenAIClient("sk").analyze_employee_data(rows)

    assert result["summary"] == "Stable team"
    assert result["retentionRate"] == 88
    assert result["riskEmployees"] == []
    prompt = post.call_args.kwargs["json"]["messages"][1]["content"]
    assert '"E9"' in prompt and '"E10"' not in prompt


def test_analyze_employee_data_errors(post) -> None:
    with pytest.raises(LLMError):
        OpenAIClient("").analyze_employee_data([])

    post.return_value = reply("not json")
    assert OpenAIClient("sk").analyze_employee_data([]) == llm.empty_analysis()

    post.return_value = MagicMock(status_code=500, json=MagicMock(return_value={}))
    with pytest.raises(LLMError):
        OpenAIClient("sk").analyze_employee_data([])


def test_analyze_employee_data_coerces_null_sections(post) -> None:
    post.return_value = reply('{"summary": "ok", "riskEmployees": null, "keyFactors": "pay"}')

    result = OpenAIClient("sk").analyze_employee_data([])

    assert result["riskEmployees"] == []
    assert result["keyFactors"] == ["pay"]
    assert result["departmentInsights"] == []
