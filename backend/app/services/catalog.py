"""Catalog functions — the live store lookups exposed to the voice assistant."""

from typing import Any, Optional

from app.config import settings
from app.errors import DownstreamFailure, ValidationError
from app.services.function_registry import FunctionRegistry
from app.services.storefront_client import StorefrontClient
from app.services.tenant_service import TenantCredential

registry = FunctionRegistry()

PRODUCTS_QUERY = """
query products($first: Int!, $query: String, $variants: Int!) {
  products(first: $first, query: $query) {
    edges {
      node {
        id
        title
        handle
        description
        availableForSale
        priceRangeV2 {
          minVariantPrice {
            amount
            currencyCode
          }
        }
        variants(first: $variants) {
          edges {
            node {
              id
              title
              availableForSale
              price
            }
          }
        }
      }
    }
  }
}
"""

ORDER_QUERY = """
query orderStatus($query: String!) {
  orders(first: 1, query: $query) {
    edges {
      node {
        name
        createdAt
        cancelledAt
        displayFinancialStatus
        displayFulfillmentStatus
        totalPriceSet {
          shopMoney {
            amount
            currencyCode
          }
        }
      }
    }
  }
}
"""

DESCRIPTION_CHARS = 200


# ─────────────────────────────────────────────────────────────────────────────
# Parameter validation
# ─────────────────────────────────────────────────────────────────────────────

def _limit(params: dict[str, Any]) -> int:
    raw = params.get("limit")
    if raw is None or raw == "":
        return settings.DEFAULT_PRODUCT_LIMIT
    if isinstance(raw, bool):
        raise ValidationError("limit must be a whole number", {"limit": raw})
    try:
        limit = int(raw)
    except (TypeError, ValueError, OverflowError):
        raise ValidationError("limit must be a whole number", {"limit": raw})
    if isinstance(raw, float) and raw != limit:
        raise ValidationError("limit must be a whole number", {"limit": raw})
    if limit < 1:
        raise ValidationError("limit must be at least 1", {"limit": raw})
    return min(limit, settings.MAX_PRODUCT_LIMIT)


def _required_text(params: dict[str, Any], key: str, message: str) -> str:
    value = params.get(key)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        value = str(value)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(message, {"missing": key})
    return value.strip()


# ─────────────────────────────────────────────────────────────────────────────
# Response shaping
# ─────────────────────────────────────────────────────────────────────────────

def _edges(connection: Optional[dict]) -> list[dict]:
    if not connection:
        return []
    return [edge["node"] for edge in connection.get("edges", []) if edge.get("node")]


def format_product(node: dict[str, Any]) -> dict[str, Any]:
    """Flatten a product node into what the assistant reads aloud."""
    price = ((node.get("priceRangeV2") or {}).get("minVariantPrice")) or {}
    currency = price.get("currencyCode")
    description = (node.get("description") or "").strip()
    if len(description) > DESCRIPTION_CHARS:
        description = description[:DESCRIPTION_CHARS].rstrip() + "…"

    return {
        "title": node.get("title"),
        "handle": node.get("handle"),
        "description": description,
        "price": price.get("amount"),
        "currency": currency,
        "available": bool(node.get("availableForSale")),
        "variants": [
            {
                "title": v.get("title"),
                "price": v.get("price"),
                "currency": currency,
                "available": bool(v.get("availableForSale")),
            }
            for v in _edges(node.get("variants"))
        ],
    }


async def _fetch_products(
    client: StorefrontClient,
    credential: TenantCredential,
    limit: int,
    query: Optional[str] = None,
) -> list[dict[str, Any]]:
    data = await client.query(
        credential.shop,
        credential.access_token,
        PRODUCTS_QUERY,
        {"first": limit, "query": query, "variants": settings.VARIANTS_PER_PRODUCT},
    )
    if "products" not in data:
        raise DownstreamFailure("Store API response had no products")
    return [format_product(node) for node in _edges(data["products"])]


# ─────────────────────────────────────────────────────────────────────────────
# Functions
# ─────────────────────────────────────────────────────────────────────────────

@registry.function(
    name="get_products",
    description="List products from the store catalog with prices and availability",
    parameters={
        "type": "object",
        "properties": {
            "limit": {"type": "integer", "minimum": 1, "default": 5},
        },
    },
)
async def get_products(params: dict[str, Any], credential: TenantCredential, client: StorefrontClient) -> dict:
    products = await _fetch_products(client, credential, _limit(params))
    return {"products": products, "count": len(products)}


@registry.function(
    name="search_products",
    description="Search the store catalog by keyword",
    parameters={
        "type": "object",
        "properties": {
            "query": {"type": "string", "description": "Keyword, product name or type"},
            "limit": {"type": "integer", "minimum": 1, "default": 5},
        },
        "required": ["query"],
    },
)
async def search_products(params: dict[str, Any], credential: TenantCredential, client: StorefrontClient) -> dict:
    query = _required_text(params, "query", "Search query is required")
    limit = _limit(params)
    products = await _fetch_products(client, credential, limit, query)
    return {"products": products, "count": len(products), "query": query}


@registry.function(
    name="check_order_status",
    description="Look up an order by its order number (e.g. #1001)",
    parameters={
        "type": "object",
        "properties": {
            "order_number": {"type": "string", "description": "Order number as shown on the receipt"},
        },
        "required": ["order_number"],
    },
)
async def check_order_status(params: dict[str, Any], credential: TenantCredential, client: StorefrontClient) -> dict:
    if "order_number" not in params and "orderId" in params:
        params = {**params, "order_number": params["orderId"]}
    number = _required_text(params, "order_number", "Order number is required").lstrip("#").strip()
    if not number:
        raise ValidationError("Order number is required", {"missing": "order_number"})

    data = await client.query(
        credential.shop,
        credential.access_token,
        ORDER_QUERY,
        {"query": f"name:#{number}"},
    )
    orders = _edges(data.get("orders"))
    if not orders:
        return {"order": None, "message": f"No order found with number #{number}"}

    order = orders[0]
    total = ((order.get("totalPriceSet") or {}).get("shopMoney")) or {}
    return {
        "order": {
            "name": order.get("name"),
            "created_at": order.get("createdAt"),
            "cancelled": order.get("cancelledAt") is not None,
            "financial_status": order.get("displayFinancialStatus"),
            "fulfillment_status": order.get("displayFulfillmentStatus"),
            "total": total.get("amount"),
            "currency": total.get("currencyCode"),
        }
    }
