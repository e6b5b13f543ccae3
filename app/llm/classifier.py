import json

from loguru import logger
from openai import AsyncOpenAI
from pydantic import ValidationError

from app.llm.prompts import build_classifier_prompt
from app.models.intents import ClassificationRequest, Intent

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"


def strip_code_fences(raw: str) -> str:
    if raw.startswith("```"):
        lines = raw.split("\n")
        lines = [l for l in lines if not l.startswith("```")]
        raw = "\n".join(lines)
    return raw.strip()


class IntentClassifier:
    """Bridge to the external intent classifier.

    Every failure mode (transport error, empty body, bad JSON, unknown intent
    or payload shape) collapses to the ``OTHER`` intent. Calls are never retried.
    """

    def __init__(self, api_key: str, model: str, client: AsyncOpenAI | None = None):
        self.client = client or AsyncOpenAI(base_url=OPENROUTER_BASE_URL, api_key=api_key)
        self.model = model

    async def classify(self, request: ClassificationRequest) -> Intent:
        messages = [
            {
                "role": "system",
                "content": build_classifier_prompt(
                    request.expense_categories, request.income_categories
                ),
            }
        ]
        if request.monthly_income is not None:
            profile = f"Ingreso mensual declarado: {request.monthly_income}"
            if request.savings_goal is not None:
                profile += f"\nMeta de ahorro mensual: {request.savings_goal}"
            messages.append({"role": "system", "content": profile})
        messages.append({"role": "user", "content": request.message})

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=0.1,
                max_tokens=500,
            )
            raw = (response.choices[0].message.content or "").strip()
            logger.debug("Classifier raw response: {}", raw)
            if not raw:
                logger.warning("Classifier returned an empty response")
                return Intent.fallback()

            return Intent.model_validate(json.loads(strip_code_fences(raw)))

        except json.JSONDecodeError as e:
            logger.error("Failed to parse classifier response as JSON: {}", e)
        except ValidationError as e:
            logger.error("Classifier response has an unexpected shape: {}", e)
        except Exception as e:
            logger.error("Classifier request failed: {}", e)
        return Intent.fallback()
