"""
SLA Application Interfaces
==========================

Abstractions the escalation engine depends on (Dependency Inversion).
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

from ticketflow.sla.domain import SLAConfig, TatCalculator


class IEscalationRuleRepository(ABC):
    """Interface for escalation rule data access."""

    @abstractmethod
    async def find(self, domain: str, scope: Optional[str], level: int) -> Optional[Any]:
        """Active rule for (domain, scope, level); domain-wide rule as fallback."""


class ISLAConfigProvider(ABC):
    """Interface for SLA configuration access."""

    @abstractmethod
    def get_config(self) -> SLAConfig:
        """Get current SLA configuration."""

    def calculator(self) -> TatCalculator:
        """TAT calculator for the current calendar."""
        config = self.get_config()
        return TatCalculator(config.calendar(), config.acknowledgement_ratio)


class StaticSLAConfigProvider(ISLAConfigProvider):
    """Fixed configuration (scripts and tests)."""

    def __init__(self, config: Optional[SLAConfig] = None):
        self._config = config or SLAConfig()

    def get_config(self) -> SLAConfig:
        return self._config
