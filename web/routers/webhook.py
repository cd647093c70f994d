"""Compiler status webhook.

The compile workflow reports progress with a bearer token:
- 500 when no webhook token is configured
- 401 when the Authorization header is missing or wrong
- 400 when build_id or status is missing
- 404 when the build does not exist
- 200 otherwise, whether or not the update was applied
"""

import hmac
import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, Header, HTTPException
from pydantic import ValidationError
from sqlalchemy.orm import Session

from meshforge.builds.schema import WebhookPayload
from meshforge.builds.service import BuildNotFoundError, handle_webhook
from meshforge.context import RuntimeContext
from web.deps import get_context, get_db

logger = logging.getLogger(__name__)

router = APIRouter()


def _check_token(context: RuntimeContext, authorization: str | None) -> None:
    expected = context.settings.webhook_token
    if expected is None:
        raise HTTPException(
            status_code=500,
            detail={
                "code": "webhook_not_configured",
                "message": "Webhook token is not configured",
            },
        )
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=401,
            detail={
                "code": "unauthorized",
                "message": "Missing or invalid Authorization header",
            },
        )
    token = authorization[len("Bearer ") :]
    if not hmac.compare_digest(token, expected.get_secret_value()):
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Invalid token"},
        )


@router.post("/github-webhook")
def github_webhook(
    body: dict[str, Any] = Body(...),
    authorization: str | None = Header(None),
    db: Session = Depends(get_db),
    context: RuntimeContext = Depends(get_context),
) -> dict[str, Any]:
    """Apply a build status report from the compile workflow.

    Returns:
        Build id, resulting status and whether the update was applied.
    """
    _check_token(context, authorization)

    try:
        payload = WebhookPayload.model_validate(body)
    except ValidationError as e:
        raise HTTPException(
            status_code=400,
            detail={
                "code": "invalid_payload",
                "message": "Missing or invalid build_id or status",
                "errors": e.errors(include_url=False, include_context=False),
            },
        ) from e

    try:
        build, applied = handle_webhook(db, payload)
    except BuildNotFoundError as e:
        raise HTTPException(
            status_code=404, detail={"code": e.code, "message": str(e)}
        ) from e

    if not applied:
        logger.info("Webhook for build %d ignored as stale or repeated", build.id)
    return {"build_id": build.id, "status": build.status, "applied": applied}
