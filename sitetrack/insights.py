"""
sitetrack/insights.py

Budget insights: a short, model-written summary of a project's spending.

One request/response pair, validated on both sides with pydantic, sent to an
OpenAI-compatible chat-completions endpoint (OpenRouter by default).
"""

from __future__ import annotations

import json
import random
import time
from typing import List, Literal

import requests
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError

from .errors import InsightsUnavailableError
from .logger import get_logger
from .models import TRANSACTION_TYPES, Project, Transaction, to_decimal

logger = get_logger(__name__)

TransactionType = Literal["expense", "income", "payout_advance", "payout_settlement", "salary_settlement"]

SYSTEM_PROMPT = (
    "You are a financial analyst providing budget insights for construction project managers. "
    'Reply with a JSON object of the form {"summary": "..."}.'
)


class InsightTransaction(BaseModel):
    id: str
    project_id: str
    type: TransactionType
    amount: float
    category: str
    timestamp: str


class BudgetInsightsInput(BaseModel):
    project_id: str = Field(description="The ID of the project to analyze.")
    transactions: List[InsightTransaction] = Field(default_factory=list)
    budget_limit: float = Field(description="The budget limit for the project.")

    @classmethod
    def from_project(cls, project: Project, transactions: list[Transaction]) -> "BudgetInsightsInput":
        return cls(
            project_id=str(project.id),
            budget_limit=float(to_decimal(project.budget_limit)),
            transactions=[
                InsightTransaction(
                    id=str(t.id),
                    project_id=str(project.id),
                    type=t.type,
                    amount=float(to_decimal(t.amount)),
                    category=t.category or "",
                    timestamp=t.timestamp.isoformat() if t.timestamp else "",
                )
                for t in transactions
                if t.type in TRANSACTION_TYPES
            ],
        )


class BudgetInsightsOutput(BaseModel):
    summary: str = Field(min_length=1)


def build_prompt(data: BudgetInsightsInput) -> str:
    lines = [
        f"Analyze the following transactions for project with ID: {data.project_id}. "
        f"The project has a budget limit of {data.budget_limit}.",
        "Transactions:",
    ]
    for t in data.transactions:
        lines.append(
            f"- ID: {t.id}, Type: {t.type}, Amount: {t.amount}, Category: {t.category}, Timestamp: {t.timestamp}"
        )
    if not data.transactions:
        lines.append("- (none)")
    lines.append(
        "Provide a concise summary of the budget insights, including potential overruns "
        "and key spending areas. Focus on financial risks."
    )
    return "\n".join(lines)


def parse_reply(content: str) -> BudgetInsightsOutput:
    """Accept either a JSON object with a summary or plain text."""
    text = (content or "").strip()
    if text.startswith("```"):
        text = text.strip("`")
        if text.lower().startswith("json"):
            text = text[4:]
        text = text.strip()

    try:
        data = json.loads(text)
    except ValueError:
        data = None

    if isinstance(data, dict) and "summary" in data:
        return BudgetInsightsOutput.model_validate(data)
    return BudgetInsightsOutput(summary=text)


class BudgetInsightsClient:
    """Client for the budget insights chat-completion call."""

    def __init__(
        self,
        api_key: str | None,
        *,
        api_url: str,
        model: str,
        timeout: float = 30,
        max_retries: int = 3,
        base_delay: float = 1,
    ):
        self.api_key = api_key
        self.api_url = api_url
        self.model = model
        self.timeout = timeout
        self.max_retries = max(1, int(max_retries))
        self.base_delay = base_delay

    @classmethod
    def from_config(cls, config) -> "BudgetInsightsClient":
        return cls(
            config.get("LLM_API_KEY"),
            api_url=config.get("LLM_API_URL"),
            model=config.get("LLM_MODEL"),
            timeout=config.get("LLM_TIMEOUT", 30),
            max_retries=config.get("LLM_MAX_RETRIES", 3),
            base_delay=config.get("LLM_BASE_DELAY", 1),
        )

    def _post(self, payload: dict) -> str:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        last_error = None
        for attempt in range(self.max_retries):
            try:
                response = requests.post(self.api_url, headers=headers, json=payload, timeout=self.timeout)

                if response.status_code >= 500:
                    raise requests.HTTPError(f"API error {response.status_code}", response=response)

                if response.status_code != 200:
                    # Client errors are not retried
                    logger.error("Insights API error %s: %s", response.status_code, response.text[:500])
                    raise InsightsUnavailableError(f"Insights API returned {response.status_code}.")

                data = response.json()
                try:
                    return data["choices"][0]["message"]["content"]
                except (KeyError, IndexError, TypeError) as e:
                    logger.error("Unexpected insights API response structure: %s", e)
                    raise InsightsUnavailableError("Insights API returned an invalid response.") from e

            except (requests.RequestException, ValueError) as e:
                last_error = e
                logger.warning("Insights attempt %d failed: %s", attempt + 1, e)
                if attempt < self.max_retries - 1:
                    delay = self.base_delay * 2 ** attempt + random.uniform(0, self.base_delay)
                    logger.info("Retrying in %.2f seconds...", delay)
                    time.sleep(delay)

        logger.error("Insights request failed after %d attempts: %s", self.max_retries, last_error)
        raise InsightsUnavailableError("Budget insights are temporarily unavailable.")

    def get_budget_insights(self, data: BudgetInsightsInput) -> BudgetInsightsOutput:
        if not self.api_key:
            raise InsightsUnavailableError("Budget insights are not configured.")

        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_prompt(data)},
            ],
            "temperature": 0.2,
        }

        content = self._post(payload)
        try:
            output = parse_reply(content)
        except PydanticValidationError as e:
            logger.error("Insights reply failed validation: %s", e)
            raise InsightsUnavailableError("Budget insights returned an empty summary.") from e

        logger.info("Budget insights generated for project %s", data.project_id)
        return output
