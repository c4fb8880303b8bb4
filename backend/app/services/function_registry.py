"""Function registry — named handlers the voice assistant can call mid-conversation.

Each function declares a JSON-schema parameter shape (published on
``GET /functions`` and used when provisioning the assistant) and an async
handler ``(parameters, credential, client) -> dict``. ``execute`` never raises
for function-level problems; it returns a ``FunctionResult`` the router can
put straight into the provider's results envelope.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from app.config import settings
from app.errors import DownstreamFailure, GatewayError, UnknownFunction
from app.services.envelope import FunctionInvocation
from app.services.storefront_client import StorefrontClient
from app.services.tenant_service import TenantCredential

logger = logging.getLogger(__name__)

Handler = Callable[[dict[str, Any], TenantCredential, StorefrontClient], Awaitable[dict[str, Any]]]


@dataclass(frozen=True)
class FunctionSpec:
    name: str
    description: str
    parameters: dict[str, Any]
    handler: Handler

    def describe(self) -> dict[str, Any]:
        return {"name": self.name, "description": self.description, "parameters": self.parameters}


@dataclass(frozen=True)
class FunctionError:
    code: str
    message: str
    details: Optional[dict[str, Any]] = None


@dataclass(frozen=True)
class FunctionResult:
    ok: bool
    data: Optional[dict[str, Any]] = None
    error: Optional[FunctionError] = None
    status_code: int = 200

    @classmethod
    def success(cls, data: dict[str, Any]) -> "FunctionResult":
        return cls(ok=True, data=data)

    @classmethod
    def failure(cls, exc: GatewayError) -> "FunctionResult":
        return cls(
            ok=False,
            error=FunctionError(code=exc.code, message=exc.message, details=exc.details),
            status_code=exc.status_code,
        )

    def to_entry(self, call_id: Optional[str] = None) -> dict[str, Any]:
        """One entry of the provider's ``results`` array."""
        if self.ok:
            entry = dict(self.data or {})
        else:
            entry = {"error": self.error.message, "code": self.error.code}
            if self.error.details:
                entry["details"] = self.error.details
        if call_id:
            entry["toolCallId"] = call_id
        return entry


class FunctionRegistry:
    def __init__(self, deadline: Optional[float] = None):
        self._functions: dict[str, FunctionSpec] = {}
        self._deadline = deadline

    @property
    def deadline(self) -> float:
        return self._deadline if self._deadline is not None else settings.FUNCTION_DEADLINE_SECONDS

    def register(self, spec: FunctionSpec) -> None:
        if spec.name in self._functions:
            raise ValueError(f"Function already registered: {spec.name}")
        self._functions[spec.name] = spec

    def function(self, name: str, description: str, parameters: dict[str, Any]):
        """Decorator registering an async handler under ``name``."""

        def decorator(handler: Handler) -> Handler:
            self.register(FunctionSpec(name, description, parameters, handler))
            return handler

        return decorator

    def get(self, name: str) -> Optional[FunctionSpec]:
        return self._functions.get(name)

    def names(self) -> list[str]:
        return list(self._functions)

    def describe(self) -> list[dict[str, Any]]:
        return [spec.describe() for spec in self._functions.values()]

    async def execute(
        self,
        invocation: FunctionInvocation,
        credential: TenantCredential,
        client: StorefrontClient,
    ) -> FunctionResult:
        spec = self.get(invocation.name)
        if spec is None:
            logger.warning("Unknown function %r requested for %s", invocation.name, credential.shop)
            return FunctionResult.failure(UnknownFunction(f"Unknown function: {invocation.name}"))

        try:
            data = await asyncio.wait_for(
                spec.handler(invocation.parameters, credential, client),
                timeout=self.deadline,
            )
        except asyncio.TimeoutError:
            logger.error(
                "%s for %s exceeded the %.1fs deadline", invocation.name, credential.shop, self.deadline,
            )
            return FunctionResult.failure(DownstreamFailure("The store took too long to respond"))
        except DownstreamFailure as exc:
            logger.error(
                "%s for %s failed downstream (status=%s): %s",
                invocation.name, credential.shop, exc.status, exc.message,
            )
            return FunctionResult.failure(exc)
        except GatewayError as exc:
            logger.info("%s for %s rejected: %s", invocation.name, credential.shop, exc.message)
            return FunctionResult.failure(exc)

        logger.info("%s for %s succeeded", invocation.name, credential.shop)
        return FunctionResult.success(data)
