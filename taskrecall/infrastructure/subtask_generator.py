# taskrecall/infrastructure/subtask_generator.py

import json
import logging
import re
from typing import List, Optional

import openai
from openai import OpenAI

from taskrecall.domain.errors import (
    InvalidInput,
    ProviderMalformedResponse,
    ProviderUnavailable,
)
from taskrecall.domain.interfaces import SubtaskGeneratorPort


logger = logging.getLogger(__name__)

DEFAULT_CHAT_MODEL = "gpt-4o-mini"
MAX_SUBTASKS = 7

SYSTEM_PROMPT = (
    "You are a helpful assistant that breaks down big tasks into simple, clear "
    "subtasks. Given a main task title, return a list of 5 to 7 clear, short "
    "subtasks needed to complete it. The subtasks should be practical and "
    "written in plain language. Return them as a plain JSON array. Do not "
    "include any extra text or explanations.\n\n"
    'Main task: "Plan a wedding"\n'
    "Example output:\n"
    "[\n"
    '  "Book wedding venue",\n'
    '  "Hire photographer",\n'
    '  "Send invitations",\n'
    '  "Arrange catering",\n'
    '  "Plan wedding ceremony",\n'
    '  "Choose wedding dress",\n'
    '  "Plan honeymoon"\n'
    "]\n"
    "Now generate subtasks for this task:\n"
    '"{title}"'
)

_CODE_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def parse_subtask_list(content: Optional[str]) -> List[str]:
    """
    Parse the model reply into a list of subtask titles.
    Markdown code fences around the array are tolerated.
    """
    if not content or not content.strip():
        raise ProviderMalformedResponse("Subtask reply is empty.")

    cleaned = _CODE_FENCE.sub("", content.strip())
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError as error:
        raise ProviderMalformedResponse(f"Subtask reply is not JSON: {error}") from error

    if not isinstance(parsed, list):
        raise ProviderMalformedResponse("Subtask reply is not a JSON array.")

    titles = [str(item).strip() for item in parsed if isinstance(item, (str, int, float))]
    return [t for t in titles if t][:MAX_SUBTASKS]


class OpenAISubtaskGenerator(SubtaskGeneratorPort):
    """Breaks a task title into short imperative steps with a chat model."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model_name: str = DEFAULT_CHAT_MODEL,
        timeout: float = 30.0,
        base_url: Optional[str] = None,
        client: Optional[OpenAI] = None,
    ):
        self._model_name = model_name
        self._client = client or OpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            max_retries=0,
        )

    def generate(self, task_title: str) -> List[str]:
        if task_title is None or not task_title.strip():
            raise InvalidInput("Task title is required.")
        title = task_title.strip()

        try:
            response = self._client.chat.completions.create(
                model=self._model_name,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT.format(title=title)},
                    {"role": "user", "content": title},
                ],
                temperature=1,
                max_completion_tokens=2048,
            )
        except (openai.APIConnectionError, openai.APIStatusError) as error:
            logger.warning("Subtask generation failed: %s", error)
            raise ProviderUnavailable(f"Subtask provider unavailable: {error}") from error

        try:
            content = response.choices[0].message.content
        except (AttributeError, IndexError) as error:
            raise ProviderMalformedResponse("Subtask reply has no choices.") from error

        subtasks = parse_subtask_list(content)
        logger.debug("Generated %d subtasks for '%s'", len(subtasks), title)
        return subtasks
