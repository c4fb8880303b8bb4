"""Functions router — the endpoint the voice provider calls mid-call for live store data."""

import asyncio
import json
import logging
from typing import Optional, Union

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.config import settings
from app.database import get_db
from app.errors import DownstreamFailure, GatewayError, MalformedRequest
from app.middleware.auth import require_webhook_secret
from app.middleware.rate_limit import limiter
from app.schemas.functions import AckResponse, FunctionsStatusResponse, ResultsEnvelope
from app.services.catalog import registry
from app.services.envelope import FunctionInvocation, Ignorable, extract_assistant_id, parse_envelope
from app.services.function_registry import FunctionResult
from app.services.storefront_client import StorefrontClient, get_storefront_client
from app.services.tenant_service import resolve_by_assistant

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/functions", tags=["functions"])


def error_response(exc: GatewayError) -> JSONResponse:
    """Render any gateway error in the provider's results envelope."""
    return JSONResponse(
        status_code=exc.status_code,
        content=ResultsEnvelope(results=[exc.to_entry()]).model_dump(),
    )


def result_response(result: FunctionResult, call_id: Optional[str] = None) -> JSONResponse:
    return JSONResponse(
        status_code=result.status_code,
        content=ResultsEnvelope(results=[result.to_entry(call_id)]).model_dump(),
    )


async def _read_json(request: Request):
    raw = await request.body()
    if not raw.strip():
        raise MalformedRequest("Empty request body")
    try:
        return json.loads(raw)
    except ValueError:
        raise MalformedRequest("Request body is not valid JSON")


@router.get("", response_model=FunctionsStatusResponse)
def functions_status():
    """Static availability descriptor for operational checks."""
    return FunctionsStatusResponse(
        status="healthy",
        endpoint="/functions",
        functions=registry.names(),
    )


@router.post("", dependencies=[Depends(require_webhook_secret)])
@limiter.limit(settings.FUNCTIONS_RATE_LIMIT)
async def call_function(
    request: Request,
    db: Session = Depends(get_db),
    client: StorefrontClient = Depends(get_storefront_client),
):
    """Run one function call from the voice assistant against the caller's store.

    Tenant lookup and dispatch share one deadline, so a slow database or a
    slow store both end in an answer the assistant can speak.
    """
    body = await _read_json(request)
    envelope = parse_envelope(body)

    assistant_id = extract_assistant_id(body, request.headers)
    if not assistant_id:
        raise MalformedRequest("No assistant id found in request")

    try:
        return await asyncio.wait_for(
            _dispatch(db, client, envelope, assistant_id),
            timeout=registry.deadline,
        )
    except asyncio.TimeoutError:
        logger.error(
            "Request for assistant %s exceeded the %.1fs deadline", assistant_id, registry.deadline,
        )
        return error_response(DownstreamFailure("The store took too long to respond"))
    except GatewayError:
        raise
    except Exception:
        logger.exception("Function call failed for assistant %s", assistant_id)
        return error_response(GatewayError("Function execution failed"))


async def _dispatch(
    db: Session,
    client: StorefrontClient,
    envelope: Union[FunctionInvocation, Ignorable],
    assistant_id: str,
):
    # Blocking database work stays off the event loop
    credential = await asyncio.to_thread(resolve_by_assistant, db, assistant_id)

    if isinstance(envelope, Ignorable):
        logger.debug("Acknowledged %s for assistant %s", envelope.kind, assistant_id)
        return AckResponse(reason=envelope.kind)

    logger.info(
        "Dispatching %s for %s (assistant %s)", envelope.name, credential.shop, assistant_id,
    )
    result = await registry.execute(envelope, credential, client)
    return result_response(result, envelope.call_id)
