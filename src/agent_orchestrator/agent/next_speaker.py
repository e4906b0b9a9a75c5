"""
Next-speaker check: should the model keep talking without new user input?
"""

from typing import Literal, Protocol

import structlog
from pydantic import BaseModel, ValidationError

from ..llm.base import (
    Content,
    ContentGenerator,
    GenerateContentConfig,
    GenerateContentRequest,
)
from ..models import DEFAULT_FLASH_MODEL
from .cancellation import CancelSignal
from .chat import Chat

logger = structlog.get_logger()

CHECK_PROMPT = """Analyze *only* the content and structure of your immediately preceding response (your last turn in the conversation history). Based *strictly* on that response, determine who should logically speak next: the 'user' or the 'model' (you).

**Decision Rules (apply in order):**
1.  **Model Continues:** If your last response explicitly states an immediate next action *you* intend to take (e.g., "Next, I will...", "Now I'll process...", "Moving on to analyze...", indicates an intended tool call that didn't execute), OR if the response seems clearly incomplete (cut off mid-thought without a natural conclusion), then the **'model'** should speak next.
2.  **Question to User:** If your last response ends with a direct question specifically addressed *to the user*, then the **'user'** should speak next.
3.  **Waiting for User:** If your last response completed a thought, statement, or task *and* does not meet the criteria for Rule 1 (Model Continues) or Rule 2 (Question to User), it implies a pause expecting user input or reaction. In this case, the **'user'** should speak next.

**Output Format:**
Respond *only* in JSON format according to the following schema. Do not include any text outside the JSON structure.

```json
{
  "type": "object",
  "properties": {
    "reasoning": {
        "type": "string",
        "description": "Brief explanation justifying the 'next_speaker' choice based *strictly* on the applicable rule and the content/structure of the preceding turn."
    },
    "next_speaker": {
      "type": "string",
      "enum": ["user", "model"],
      "description": "Who should speak next based *only* on the preceding turn and the decision rules."
    }
  },
  "required": ["reasoning", "next_speaker"]
}
```"""


class NextSpeakerResponse(BaseModel):
    reasoning: str
    next_speaker: Literal["user", "model"]


class NextSpeakerChecker(Protocol):
    async def __call__(
        self,
        chat: Chat,
        client: ContentGenerator,
        signal: CancelSignal,
        prompt_id: str,
    ) -> NextSpeakerResponse | None: ...


async def check_next_speaker(
    chat: Chat,
    client: ContentGenerator,
    signal: CancelSignal,
    prompt_id: str,
    model: str = DEFAULT_FLASH_MODEL,
) -> NextSpeakerResponse | None:
    """Decide who speaks next after the model's last turn.

    Returns None when no decision can be made.
    """
    curated_history = chat.get_history(curated=True)
    if not curated_history:
        return None

    comprehensive_history = chat.get_history()
    last_comprehensive = comprehensive_history[-1] if comprehensive_history else None

    # A tool result was just delivered; the model must react to it
    if last_comprehensive and last_comprehensive.role == "user" and last_comprehensive.has_function_response:
        return NextSpeakerResponse(
            reasoning="The last message was a function response, so the model should speak next.",
            next_speaker="model",
        )

    if last_comprehensive and last_comprehensive.role == "model" and not last_comprehensive.parts:
        return NextSpeakerResponse(
            reasoning="The last message was an empty model response, so the model should speak next.",
            next_speaker="model",
        )

    if curated_history[-1].role != "model":
        return None

    if signal.aborted:
        return None

    request = GenerateContentRequest(
        model=model,
        contents=[*curated_history, Content.user_text(CHECK_PROMPT)],
        config=GenerateContentConfig(
            temperature=0,
            response_mime_type="application/json",
            response_schema=NextSpeakerResponse.model_json_schema(),
        ),
    )
    try:
        response = await client.generate(request, prompt_id)
        text = (response.text or "").strip()
        if text.startswith("```"):
            text = text.strip("`").removeprefix("json").strip()
        return NextSpeakerResponse.model_validate_json(text)
    except ValidationError as e:
        logger.warning("Next speaker check returned malformed JSON", prompt_id=prompt_id, error=str(e))
        return None
    except Exception as e:
        logger.warning("Failed to check next speaker", prompt_id=prompt_id, error=str(e))
        return None
