"""Gemini model factory for the Doro pipeline stages."""

import google.generativeai as genai

from doro_platform.app.config import get_settings

JSON_MIME_TYPE = "application/json"


def build_generation_config(
    temperature: float,
    max_output_tokens: int | None = None,
    json_mode: bool = False,
) -> dict:
    config: dict = {"temperature": temperature}
    if max_output_tokens:
        config["max_output_tokens"] = max_output_tokens
    if json_mode:
        config["response_mime_type"] = JSON_MIME_TYPE
    return config


def get_model(
    model_name: str | None = None,
    temperature: float = 0.7,
    max_output_tokens: int | None = None,
    json_mode: bool = False,
    system_instruction: str | None = None,
):
    """Return a ``GenerativeModel`` configured for one stage call.

    The stages ask for JSON mode only; shape enforcement happens afterwards
    in the pydantic contracts, field by field, so no response schema is sent.
    """
    settings = get_settings()
    genai.configure(api_key=settings.gemini_api_key)

    return genai.GenerativeModel(
        model_name=model_name or settings.gemini_model,
        generation_config=build_generation_config(temperature, max_output_tokens, json_mode),
        system_instruction=system_instruction,
    )
