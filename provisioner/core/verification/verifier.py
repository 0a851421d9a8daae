"""
Verifier — post-install checks on observable host state.

Runs the product's checks (service active, binary version parses,
port listening, command succeeds) independently of how the product
was installed. A failed check is reported, never raised, and never
triggers a rollback.
"""

from __future__ import annotations

import logging

from provisioner.adapters.base import Adapter
from provisioner.adapters.registry import AdapterRegistry
from provisioner.core.models import CheckResult, PlatformFacts
from provisioner.core.planning.builder import PlanOptions, product_checks

logger = logging.getLogger(__name__)


class Verifier:
    """Evaluates a product's checks through a host adapter."""

    def __init__(self, adapter: Adapter, options: PlanOptions | None = None):
        self.adapter = adapter
        self.options = options or PlanOptions()

    def verify(self, product: str, facts: PlatformFacts) -> list[CheckResult]:
        results = []
        for check in product_checks(product, facts, self.options):
            result = self.adapter.evaluate(check)
            if result.passed:
                logger.info("✓ %s: %s", result.name, result.detail)
            else:
                logger.warning("✗ %s: %s", result.name, result.detail)
            results.append(result)
        return results


def verify(
    product: str,
    facts: PlatformFacts,
    adapter: Adapter | None = None,
    options: PlanOptions | None = None,
) -> list[CheckResult]:
    """Verify ``product`` on the local host (or through ``adapter``)."""
    if adapter is None:
        adapter = AdapterRegistry().adapter_for(facts)
    return Verifier(adapter, options).verify(product, facts)
