"""
Product Hierarchy Resolver

Products form a forest through parent pointers. Variants are rolled up to
their family root, and each family gets one effective supplier:

1. the root's own supplier link, if it has one
2. otherwise the supplier linked to the most family members
   (ties go to the lowest supplier id)

One resolver is built per report; its memo is never shared between reports.
"""

import logging
from collections import defaultdict
from typing import Dict, List, Optional, Mapping

from sales_engine.identity import sort_key
from sales_engine.lookups import Product

logger = logging.getLogger(__name__)


class ProductHierarchy:
    """
    Family root and effective supplier resolution for one report computation.

    Args:
        products: Product id -> Product
        supplier_links: Product id -> supplier id (first link per product)
        supplier_names: Supplier id -> supplier name
        prefer_direct_link: Resolve a product's own link before its family's
    """

    def __init__(
        self,
        products: Mapping[str, Product],
        supplier_links: Mapping[str, str],
        supplier_names: Optional[Mapping[str, str]] = None,
        prefer_direct_link: bool = False
    ):
        self._parents = {pid: p.parent_id for pid, p in products.items()}
        self._links = supplier_links
        self._supplier_names = supplier_names or {}
        self._prefer_direct_link = prefer_direct_link

        self._root_memo: Dict[str, str] = {}
        self.cycles_detected = 0

        self._family_suppliers = self._resolve_family_suppliers()

    # =========================================================================
    # ROOT RESOLUTION
    # =========================================================================

    def get_root(self, product_id: str) -> str:
        """
        Walk parent pointers up to the family root.

        The walk stops at a product without a parent, at a parent that is not
        a known product, or when a node repeats. In a cycle the root is the
        lowest id among the cycle members. Every node on the walk is memoised.

        Args:
            product_id: Product id (unknown ids are their own root)

        Returns:
            Root product id
        """
        if product_id in self._root_memo:
            return self._root_memo[product_id]

        path: List[str] = []
        position: Dict[str, int] = {}
        node = product_id

        while True:
            if node in self._root_memo:
                root = self._root_memo[node]
                break

            if node in position:
                cycle = path[position[node]:]
                root = min(cycle, key=sort_key)
                self.cycles_detected += 1
                logger.debug(f"Parent cycle {cycle} resolved to root {root}")
                break

            position[node] = len(path)
            path.append(node)

            parent = self._parents.get(node)
            if not parent or parent not in self._parents:
                root = node
                break
            node = parent

        for visited in path:
            self._root_memo[visited] = root
        return root

    # =========================================================================
    # SUPPLIER INFERENCE
    # =========================================================================

    def _resolve_family_suppliers(self) -> Dict[str, str]:
        votes: Dict[str, Dict[str, int]] = defaultdict(lambda: defaultdict(int))
        for product_id, supplier_id in self._links.items():
            votes[self.get_root(product_id)][supplier_id] += 1

        winners = {}
        for root, tally in votes.items():
            direct = self._links.get(root)
            if direct:
                winners[root] = direct
                continue
            # Highest count, then lowest supplier id
            winners[root] = min(tally.items(), key=lambda item: (-item[1], sort_key(item[0])))[0]

        logger.debug(f"Resolved suppliers for {len(winners)} product families")
        return winners

    def get_effective_supplier_id(self, product_id: str) -> Optional[str]:
        """
        Supplier attributed to a product through its family.

        Returns:
            Supplier id, or None when neither the product nor its family has a
            supplier link (the product is unattributable, not an error)
        """
        if not product_id:
            return None

        if self._prefer_direct_link:
            direct = self._links.get(product_id)
            if direct:
                return direct

        supplier_id = self._family_suppliers.get(self.get_root(product_id))
        if supplier_id:
            return supplier_id
        return self._links.get(product_id)

    def get_effective_supplier_name(self, product_id: str) -> Optional[str]:
        """Uppercased name of the effective supplier, None if unknown"""
        supplier_id = self.get_effective_supplier_id(product_id)
        if not supplier_id:
            return None
        return self._supplier_names.get(supplier_id) or None

    def family_members(self) -> Dict[str, List[str]]:
        """Root id -> sorted member ids, for diagnostics"""
        families: Dict[str, List[str]] = defaultdict(list)
        for product_id in self._parents:
            families[self.get_root(product_id)].append(product_id)
        return {root: sorted(members, key=sort_key) for root, members in families.items()}
