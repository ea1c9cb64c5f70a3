"""Model selection: which backend model a request should run on."""

from __future__ import annotations

from .config import SelectorConfig
from .domain import AnalysisRequest, AnalysisType


class ModelSelector:
    """Picks a model tier from analysis type, depth and request size.

    Security and architecture always run on the high-performance tier.
    Code quality and performance only do so for expert depth, many rules,
    or long code; otherwise they use the cheaper default tier.
    """

    def __init__(self, config: SelectorConfig | None = None):
        self.config = config or SelectorConfig()

    def select_model(self, request: AnalysisRequest) -> str:
        if request.type in (AnalysisType.SECURITY, AnalysisType.ARCHITECTURE):
            return self.config.high_performance_model
        if request.requires_high_performance_model(
            rule_threshold=self.config.rule_threshold,
            code_length_threshold=self.config.code_length_threshold,
        ):
            return self.config.high_performance_model
        return self.config.default_model

    def fallback_chain(self) -> dict[str, str | None]:
        cfg = self.config
        return {
            cfg.high_performance_model: cfg.default_model,
            "gpt-4o": cfg.economy_model,
            cfg.default_model: cfg.economy_model,
            cfg.economy_model: None,  # last resort
        }

    def get_fallback_model(self, model: str) -> str | None:
        """Next model down the chain, None when ``model`` is the cheapest."""
        chain = self.fallback_chain()
        if model in chain:
            return chain[model]
        return self.config.default_model

    def estimate_token_count(self, request: AnalysisRequest) -> int:
        # ~4 characters per token for source code
        code_tokens = request.code_length // 4
        overhead = self.config.prompt_overhead.get(request.depth.value, 800)
        return code_tokens + overhead

    def estimate_cost(self, request: AnalysisRequest, model: str) -> float:
        """Estimated USD cost of running ``request`` on ``model``."""
        unit_cost = self.config.model_costs.get(model, self.config.default_unit_cost)
        return self.estimate_token_count(request) / 1000 * unit_cost
