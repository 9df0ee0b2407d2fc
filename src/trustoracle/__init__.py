"""trustoracle — ERC-8004 agent trust oracle behind x402 payments."""

__version__ = "0.1.0"

from trustoracle.errors import (
    ConfigError, FacilitatorConfigError, LedgerReadError,
    MissingPayeeAddress, RecordNotFound, TrustOracleError,
)
from trustoracle.pricing import RouteRule, RouteTable, build_route_pricing, format_usd_price
from trustoracle.risk import (
    ConfidenceBand, FeedbackRecord, RiskAssessment, ScoringConfig,
    Trend, Verdict, VerdictThresholds,
    assess, confidence_band, verdict,
)
from trustoracle.x402 import GatewayMode, GatewayState, PaymentTag, select_gateway
from trustoracle.access import AccessDecision, AccessTier, RequestContext, resolve_access
