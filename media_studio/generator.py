import base64
import json
from typing import Any, List, Optional, Sequence, Type

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI
from pydantic import BaseModel

from .config import Settings
from .errors import AIUnavailable, SafetyRefusal
from .log import get_logger


logger = get_logger("generator")


class GenerativeClient:
    """
    Adapter for the external generative-AI collaborator.

    One request/response operation: text plus an optional image and an
    optional output schema in, text out. The collaborator is treated as
    unreliable; callers decide how to degrade when it fails.
    """

    def __init__(self, llm: Any) -> None:
        self.llm = llm

    @classmethod
    def from_settings(cls, settings: Settings) -> Optional["GenerativeClient"]:
        # Without an API key there is no collaborator; consumers fall back to
        # their deterministic paths.
        if not settings.openai_api_key:
            logger.warning("OPENAI_API_KEY not set; AI-assisted features will use fallbacks")
            return None
        llm = ChatOpenAI(
            model=settings.model_name,
            temperature=settings.temperature,
            api_key=settings.openai_api_key,
            timeout=settings.request_timeout,
            max_retries=settings.max_retries,
        )
        return cls(llm)

    async def generate(
        self,
        prompt: str,
        *,
        system: Optional[str] = None,
        history: Sequence[Any] = (),
        image: Optional[bytes] = None,
        schema: Optional[Type[BaseModel]] = None,
    ) -> str:
        """
        Send one request and return the raw answer text.

        `history` items need `role` ("user" or "assistant") and `content`.
        Raises AIUnavailable on transport failures or empty answers and
        SafetyRefusal when the model declines.
        """
        messages: List[BaseMessage] = []
        if system:
            messages.append(SystemMessage(content=system))
        for item in history:
            if item.role == "assistant":
                messages.append(AIMessage(content=item.content))
            else:
                messages.append(HumanMessage(content=item.content))

        if schema is not None:
            prompt = (
                f"{prompt}\n\nReturn ONLY a valid JSON object matching this JSON schema, "
                "with no surrounding commentary:\n"
                f"{json.dumps(schema.model_json_schema(by_alias=True))}"
            )
        messages.append(build_human_message(prompt, image))

        runnable = self.llm.bind(response_format={"type": "json_object"}) if schema is not None else self.llm
        try:
            response = await runnable.ainvoke(messages)
        except Exception as exc:
            raise AIUnavailable(f"Generative call failed: {exc}") from exc

        _raise_on_refusal(response)

        text = response.content if isinstance(getattr(response, "content", None), str) else ""
        if not text.strip():
            raise AIUnavailable("Generative call returned an empty answer")
        return text


def build_human_message(text: str, image: Optional[bytes] = None) -> HumanMessage:
    if image is None:
        return HumanMessage(content=text)

    encoded = base64.b64encode(image).decode("ascii")
    return HumanMessage(
        content=[
            {"type": "image_url", "image_url": {"url": f"data:image/png;base64,{encoded}"}},
            {"type": "text", "text": text},
        ]
    )


def _raise_on_refusal(response: Any) -> None:
    refusal = (getattr(response, "additional_kwargs", None) or {}).get("refusal")
    finish_reason = (getattr(response, "response_metadata", None) or {}).get("finish_reason")
    if refusal or finish_reason == "content_filter":
        raise SafetyRefusal(refusal or "BRAND_PROTECTION_TRIPPED")
