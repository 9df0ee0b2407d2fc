"""
trustoracle.pricing — Route pricing table for x402-protected endpoints.

Provides:
- format_usd_price: normalize a price to the canonical "$0.001" form
- RouteRule: one paid route (method, path pattern, price, network, description)
- RouteTable: compiled rules with structural matching
- build_route_pricing: the oracle's own paid routes

Path patterns use ``:name`` placeholders, each matching exactly one
non-empty path segment:

    >>> table = RouteTable.compile({"GET /score/:agentId": {"price": "0.001"}})
    >>> table.match("get", "/score/42").price
    '$0.001'
    >>> table.match("GET", "/score/42/extra") is None
    True
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Iterator, Mapping, Optional

from trustoracle.errors import ConfigError


DEFAULT_NETWORK = "base"
USDC_DECIMALS = 6

_PLACEHOLDER = re.compile(r"^:([A-Za-z0-9_]+)$")
_METHOD = re.compile(r"^[A-Za-z]+$")


def format_usd_price(value: Any) -> str:
    """Normalize a USD price to "$<amount>" with 2..6 decimal places.

    Raises ConfigError for negative, non-finite or non-numeric values and for
    amounts finer than USDC precision.
    """
    if isinstance(value, bool):
        raise ConfigError(f"Invalid price: {value!r}")
    raw = str(value).strip()
    if raw.startswith("$"):
        raw = raw[1:].strip()
    try:
        amount = Decimal(raw)
    except InvalidOperation:
        raise ConfigError(f"Invalid price: {value!r}") from None
    if not amount.is_finite() or amount < 0:
        raise ConfigError(f"Invalid price: {value!r}")
    if amount == 0:
        amount = Decimal(0)

    exponent = amount.normalize().as_tuple().exponent
    places = max(2, -exponent) if isinstance(exponent, int) else 2
    if places > USDC_DECIMALS:
        raise ConfigError(f"Price {value!r} exceeds {USDC_DECIMALS} decimal places")
    return f"${amount:.{places}f}"


@dataclass(frozen=True)
class RouteRule:
    """A paid route.

    ``segments`` holds the compiled pattern: literal segments as-is and
    placeholders as None.
    """
    method: str
    path_pattern: str
    price: str
    network: str = DEFAULT_NETWORK
    description: str = ""
    segments: tuple[Optional[str], ...] = field(default=(), repr=False)

    @property
    def key(self) -> str:
        return f"{self.method} {self.path_pattern}"

    @property
    def glob(self) -> str:
        """Pattern with placeholders replaced by ``*`` (x402 path syntax)."""
        return "/" + "/".join(s if s is not None else "*" for s in self.segments)

    def matches(self, method: str, path: str) -> bool:
        if method.upper() != self.method:
            return False
        parts = path.split("/")[1:] if path.startswith("/") else None
        if parts is None or len(parts) != len(self.segments):
            return False
        for expected, actual in zip(self.segments, parts):
            if expected is None:
                if not actual:
                    return False
            elif expected != actual:
                return False
        return True

    def overlaps(self, other: "RouteRule") -> bool:
        """True if some request path could match both rules."""
        if self.method != other.method or len(self.segments) != len(other.segments):
            return False
        return all(
            a is None or b is None or a == b
            for a, b in zip(self.segments, other.segments)
        )

    def to_dict(self) -> dict:
        return {
            "route": self.key,
            "price": self.price,
            "network": self.network,
            "description": self.description,
        }


def _compile_path(key: str, path: str) -> tuple[Optional[str], ...]:
    if not path.startswith("/"):
        raise ConfigError(f"Route {key!r}: path must start with '/'")
    segments: list[Optional[str]] = []
    for part in path.split("/")[1:]:
        if not part:
            raise ConfigError(f"Route {key!r}: empty path segment")
        if part.startswith(":"):
            if not _PLACEHOLDER.match(part):
                raise ConfigError(f"Route {key!r}: malformed placeholder {part!r}")
            segments.append(None)
        else:
            segments.append(part)
    return tuple(segments)


def parse_route_key(key: str) -> tuple[str, str]:
    """Split "GET /score/:agentId" into ("GET", "/score/:agentId")."""
    method, _, path = str(key or "").strip().partition(" ")
    path = path.strip()
    if not method or not path or not _METHOD.match(method):
        raise ConfigError(f"Malformed route key: {key!r}")
    return method.upper(), path


class RouteTable:
    """Compiled, read-only set of paid routes."""

    def __init__(self, rules: Optional[list[RouteRule]] = None):
        self._rules: tuple[RouteRule, ...] = tuple(rules or ())

    @classmethod
    def compile(cls, raw: Mapping[str, Mapping[str, Any]]) -> "RouteTable":
        """Compile a {"METHOD /path": {price, network, description}} mapping.

        Raises ConfigError on malformed keys, paths, prices or overlapping
        patterns.
        """
        rules: list[RouteRule] = []
        for key, config in (raw or {}).items():
            method, path = parse_route_key(key)
            config = config or {}
            if "price" not in config:
                raise ConfigError(f"Route {key!r}: missing price")
            rule = RouteRule(
                method=method,
                path_pattern=path,
                price=format_usd_price(config["price"]),
                network=config.get("network") or DEFAULT_NETWORK,
                description=config.get("description") or "",
                segments=_compile_path(key, path),
            )
            for existing in rules:
                if existing.overlaps(rule):
                    raise ConfigError(
                        f"Route {rule.key!r} overlaps with {existing.key!r}"
                    )
            rules.append(rule)
        return cls(rules)

    @property
    def rules(self) -> tuple[RouteRule, ...]:
        return self._rules

    def match(self, method: str, path: str) -> Optional[RouteRule]:
        for rule in self._rules:
            if rule.matches(method, path):
                return rule
        return None

    def get(self, key: str) -> Optional[RouteRule]:
        for rule in self._rules:
            if rule.key == key:
                return rule
        return None

    def __iter__(self) -> Iterator[RouteRule]:
        return iter(self._rules)

    def __len__(self) -> int:
        return len(self._rules)

    def to_list(self) -> list[dict]:
        return [r.to_dict() for r in self._rules]


# ─── Oracle routes ─────────────────────────────────────────────────

SCORE_ROUTE = "GET /score/:agentId"
REPORT_ROUTE = "GET /report/:agentId"


def build_route_pricing(settings) -> dict[str, dict]:
    """Raw pricing config for the oracle's paid routes."""
    return {
        SCORE_ROUTE: {
            "price": settings.x402_score_price_usdc,
            "network": settings.x402_network,
            "description": "Agent trust score query",
        },
        REPORT_ROUTE: {
            "price": settings.x402_report_price_usdc,
            "network": settings.x402_network,
            "description": "Detailed agent trust report",
        },
    }
