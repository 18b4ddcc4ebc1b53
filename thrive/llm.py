"""Narrative retention insights from a chat-completion API.

Completions are free text; the first JSON array/object found in the reply is
parsed and anything unparseable falls back to an empty or default structure.
"""

import json
import logging
import re
from dataclasses import dataclass, field

import requests

from thrive.config import DEFAULT_OPENAI_MODEL, OPENAI_API_ENDPOINT
from thrive.errors import LLMError

logger = logging.getLogger(__name__)

TIME_FRAMES = {
    "1m": "next month",
    "3m": "next 3 months",
    "6m": "next 6 months",
    "1y": "next year",
}

_ARRAY_RE = re.compile(r"\[[\s\S]*\]")
_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


def empty_analysis() -> dict:
    return {
        "summary": "Analysis result could not be properly parsed. Please try again.",
        "riskEmployees": [],
        "retentionRate": 0,
        "keyFactors": [],
        "departmentInsights": [],
    }


@dataclass
class PredictionConfig:
    time_frame: str = "3m"
    department: str | None = None
    include_factors: dict[str, bool] = field(
        default_factory=lambda: {"compensation": True, "workload": True, "engagement": True, "growth": True}
    )


def as_list(value) -> list:
    if isinstance(value, list):
        return value
    if isinstance(value, str) and value.strip():
        return [value]
    return []


def extract_json(content: str, kind: str = "object"):
    pattern = _ARRAY_RE if kind == "array" else _OBJECT_RE
    match = pattern.search(content or "")
    candidates = [match.group(0)] if match else []
    candidates.append(content or "")
    for text in candidates:
        try:
            return json.loads(text)
        except ValueError:
            continue
    raise LLMError("Failed to parse AI response")


class OpenAIClient:
    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_OPENAI_MODEL,
        endpoint: str = OPENAI_API_ENDPOINT,
        timeout: int = 60,
    ):
        self.api_key = api_key
        self.model = model
        self.endpoint = endpoint
        self.timeout = timeout

    def complete(self, system: str, prompt: str, temperature: float, max_tokens: int) -> str:
        try:
            r = requests.post(
                self.endpoint,
                headers={"Content-Type": "application/json", "Authorization": f"Bearer {self.api_key}"},
                json={
                    "model": self.model,
                    "messages": [
                        {"role": "system", "content": system},
                        {"role": "user", "content": prompt},
                    ],
                    "temperature": temperature,
                    "max_tokens": max_tokens,
                },
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise LLMError(f"Could not reach the AI service: {exc}") from exc

        if r.status_code != 200:
            try:
                message = r.json().get("error", {}).get("message")
            except ValueError:
                message = None
            raise LLMError(message or f"AI service returned {r.status_code}")

        try:
            return r.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError) as exc:
            raise LLMError("Unexpected response from the AI service") from exc

    # ---------------------------
    # Retention predictions
    # ---------------------------
    def generate_retention_predictions(self, config: PredictionConfig) -> list[dict]:
        if not self.api_key:
            logger.warning("OpenAI API key is required for retention predictions")
            return []

        factors = ", ".join(k for k, v in config.include_factors.items() if v)
        department = (
            f"Only include employees from the {config.department} department." if config.department else ""
        )
        prompt = f"""
Generate retention risk predictions for 5 employees, considering these factors: {factors}.
Focus on predictions for the {TIME_FRAMES.get(config.time_frame, TIME_FRAMES['3m'])}.
{department}

For each employee, provide:
1. A realistic employee name
2. A retention score (0-100, where lower means higher risk)
3. A risk level (low, medium, or high) based on the score
4. A specific reason for the risk based on the factors
5. A personalized recommendation for improving retention

Format the response as a JSON array of objects with properties: employee, score, risk, reason, and recommendation.
"""
        try:
            content = self.complete(
                "You are an AI specialized in HR analytics and employee retention. "
                "Provide realistic and actionable insights.",
                prompt,
                temperature=0.7,
                max_tokens=1500,
            )
            result = extract_json(content, kind="array")
        except LLMError:
            logger.exception("Error generating predictions")
            return []
        return result if isinstance(result, list) else []

    # ---------------------------
    # Feedback analysis
    # ---------------------------
    def analyze_employee_feedback(self, feedback: str) -> dict:
        if not self.api_key or not (feedback or "").strip():
            return {"sentiment": "Unknown", "keyIssues": [], "recommendations": []}

        prompt = f"""
Analyze the following employee feedback and provide:
1. Overall sentiment (positive, neutral, or negative)
2. Key issues or concerns identified (as a list)
3. Recommended actions for management (as a list)

Format the response as JSON with properties: sentiment, keyIssues (array), and recommendations (array).

Feedback: "{feedback}"
"""
        try:
            content = self.complete(
                "You are an HR analytics specialist focused on understanding employee sentiment "
                "and providing actionable insights.",
                prompt,
                temperature=0.5,
                max_tokens=800,
            )
            result = extract_json(content, kind="object")
        except LLMError:
            logger.exception("Error analyzing feedback")
            return {"sentiment": "Error analyzing feedback", "keyIssues": [], "recommendations": []}
        if not isinstance(result, dict):
            return {"sentiment": "Unknown", "keyIssues": [], "recommendations": []}
        return {
            "sentiment": str(result.get("sentiment") or "Unknown"),
            "keyIssues": as_list(result.get("keyIssues")),
            "recommendations": as_list(result.get("recommendations")),
        }

    # ---------------------------
    # Dataset analysis
    # ---------------------------
    def analyze_employee_data(self, rows: list[dict]) -> dict:
        if not self.api_key:
            raise LLMError("OpenAI API key is required")

        sample = json.dumps(rows[:10], default=str)
        prompt = f"""
Analyze the following employee data and provide:
1. A brief summary of the overall retention risk
2. Identification of employees at risk with reasons and recommendations
3. Key risk factors affecting retention
4. Department-specific insights and recommendations
5. An estimated retention rate

Format the response as JSON with the following structure:
{{
  "summary": "Brief overview of the data and key insights",
  "riskEmployees": [
    {{"name": "Employee Name", "risk": "high|medium|low", "reason": "...", "recommendation": "..."}}
  ],
  "retentionRate": 85,
  "keyFactors": ["Compensation", "Work-life balance"],
  "departmentInsights": [
    {{"department": "Department name", "riskLevel": "high|medium|low", "recommendations": "..."}}
  ]
}}

Sample data: {sample}
"""
        content = self.complete(
            "You are an HR analytics expert specialized in employee retention analysis.",
            prompt,
            temperature=0.7,
            max_tokens=2000,
        )
        try:
            result = extract_json(content, kind="object")
        except LLMError:
            logger.warning("Failed to parse AI response, returning empty analysis")
            return empty_analysis()
        if not isinstance(result, dict):
            return empty_analysis()
        analysis = {**empty_analysis(), **result}
        for key in ("riskEmployees", "keyFactors", "departmentInsights"):
            analysis[key] = as_list(analysis[key])
        return analysis
