"""Models listing endpoint - OpenAI compatible."""

import logging

from ...core.registry import get_settings
from ...types import ModelCard

logger = logging.getLogger("falproxy")

MODEL_CREATED_AT = 1700000000
DEFAULT_OWNER = "fal-ai"


def model_owner(model_id: str) -> str:
    """Owner is the provider prefix of ``provider/model`` ids."""
    owner, separator, _ = model_id.partition("/")
    if separator and owner:
        return owner
    return DEFAULT_OWNER


def build_model_card(model_id: str) -> ModelCard:
    return {
        "id": model_id,
        "object": "model",
        "created": MODEL_CREATED_AT,
        "owned_by": model_owner(model_id),
    }


async def list_models() -> dict:
    """List supported fal models in OpenAI API format.

    GET /v1/models

    Returns:
        A dictionary containing the list of available models.
    """
    logger.info("Received models list request")
    settings = get_settings()
    return {
        "object": "list",
        "data": [build_model_card(model_id) for model_id in settings.models],
    }
