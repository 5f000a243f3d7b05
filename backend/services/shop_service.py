from __future__ import annotations

from typing import Any, Callable

from observability.logger import log_event


class ToolError(Exception):
    """A tool call could not be executed with the given arguments."""


class ShopService:
    """Demo back office for the auto shop: parts stock, prices, and service bookings."""

    _INVENTORY: dict[str, int] = {
        "brake pads": 24,
        "oil filter": 40,
        "wiper blades": 0,
        "battery": 6,
        "spark plugs": 60,
    }

    _PRICES: dict[str, float] = {
        "brake pads": 89.0,
        "oil filter": 12.5,
        "wiper blades": 24.0,
        "battery": 149.0,
        "spark plugs": 9.0,
    }

    def __init__(self) -> None:
        self._bookings: list[dict[str, str]] = []

    @property
    def bookings(self) -> list[dict[str, str]]:
        return list(self._bookings)

    def check_inventory(self, part: str) -> dict[str, object]:
        key = _normalize(part)
        if key not in self._INVENTORY:
            return {"part": part, "stocked": False}
        return {"part": key, "stocked": True, "quantity": self._INVENTORY[key]}

    def check_price(self, part: str) -> dict[str, object]:
        key = _normalize(part)
        if key not in self._PRICES:
            raise ToolError(f"no price for part: {part}")
        return {"part": key, "price_usd": self._PRICES[key]}

    def book_service(self, date: str, time: str, name: str) -> dict[str, object]:
        booking = {"date": date, "time": time, "name": name}
        self._bookings.append(booking)
        return {"status": "confirmed", "booking": booking}


class ToolRegistry:
    """
    Maps tool names the model may request to shop operations.

    Execution is synchronous. Failures come back as an error result so the
    model can apologize instead of the interaction going silent.
    """

    def __init__(self, shop: ShopService | None = None) -> None:
        self._shop = shop or ShopService()
        self._tools: dict[str, Callable[..., dict[str, object]]] = {
            "check_inventory": self._shop.check_inventory,
            "check_price": self._shop.check_price,
            "book_service": self._shop.book_service,
        }

    def names(self) -> tuple[str, ...]:
        return tuple(self._tools)

    def execute(self, tool: str, args: dict[str, Any]) -> dict[str, object]:
        fn = self._tools.get(tool)
        if fn is None:
            return {"error": "unknown_tool", "tool": tool}

        try:
            result = fn(**args)
        except (ToolError, TypeError) as exc:
            result = {"error": str(exc), "type": type(exc).__name__}

        log_event({
            "event_type": "TOOL_EXECUTED",
            "tool": tool,
            "ok": "error" not in result,
        })
        return result


def _normalize(part: str) -> str:
    return " ".join(part.lower().split())
