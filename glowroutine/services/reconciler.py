"""
glowroutine/services/reconciler.py
──────────────────────────────────
Keeps product shelf state in line with routine steps: a product is
active while at least one step links to it, and moves to the shelf
once none do.

Product state is derived, best-effort data. A failing ProductService
call is logged and never undoes the step change that triggered it.
"""

import logging
from typing import Optional

from glowroutine.services.repository import StepRepository
from glowroutine.stores.base import ProductService

logger = logging.getLogger(__name__)


class ProductLinkReconciler:
    def __init__(self, products: ProductService, repository: StepRepository) -> None:
        self._products = products
        self._repository = repository

    async def step_linked(self, product_id: Optional[str]) -> None:
        """A step now references ``product_id``."""
        if not product_id:
            return
        try:
            await self._products.activate(product_id)
        except Exception as exc:
            logger.warning("Could not activate product %s: %s", product_id, exc, exc_info=True)

    async def step_unlinked(self, product_id: Optional[str]) -> None:
        """A step stopped referencing ``product_id`` (unlinked or deleted)."""
        if not product_id or self._repository.references(product_id):
            return
        try:
            await self._products.deactivate_if_unused(product_id)
        except Exception as exc:
            logger.warning("Could not shelve product %s: %s", product_id, exc, exc_info=True)

    async def link_changed(self, previous_id: Optional[str], new_id: Optional[str]) -> None:
        await self.step_linked(new_id)
        if previous_id and previous_id != new_id:
            await self.step_unlinked(previous_id)
