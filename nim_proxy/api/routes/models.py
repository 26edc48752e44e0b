"""Models listing endpoint - OpenAI compatible."""

import logging

from fastapi import Request

logger = logging.getLogger("nim-proxy")


async def list_models(request: Request) -> dict:
    """List the public model names in OpenAI API format.

    GET /v1/models
    """
    logger.info("Received models list request")
    models = request.app.state.router.models
    return {
        "object": "list",
        "data": models.model_cards(),
    }
