"""Configuration endpoints."""

import json
from typing import Any

from fastapi import APIRouter

from meshforge.config import print_settings_json

router = APIRouter()


@router.get("")
def get_config() -> dict[str, Any]:
    """Get effective configuration with secrets masked.

    Returns:
        Current configuration as JSON.
    """
    data: dict[str, Any] = json.loads(print_settings_json())
    return data
