"""
Division Classifier

Assigns each product to a business division. Rules are evaluated in order
and the first match wins:

0. (invoice lines only) an internal customer sends the sale to the
   internal-customer division
1. brand keywords (against brand name or product name), division by division
2. section keywords, division by division
3. supplier-name keywords (effective supplier of the product's family)
4. hard-coded name/section heuristics
5. the default division

All names are compared uppercased. Brand, section and supplier names are
already uppercased by the lookup builder; only product names are uppercased here.
"""

import logging
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from sales_engine.config import ReportConfig
from sales_engine.hierarchy import ProductHierarchy
from sales_engine.lookups import Product

logger = logging.getLogger(__name__)

# (rule name, predicate, division)
Rule = Tuple[str, Callable[[Product], bool], str]


def _contains_any(text: str, keywords: List[str]) -> bool:
    return bool(text) and any(keyword in text for keyword in keywords)


def is_internal_customer(name: str, keywords: Iterable[str]) -> bool:
    upper = (name or "").upper()
    return any(keyword in upper for keyword in keywords)


class DivisionClassifier:
    """
    First-match-wins rule cascade built from a ReportConfig.

    Args:
        config: Business rules
        hierarchy: Resolver used for the supplier-name rules
        products: Product index, for classify_id()
    """

    def __init__(
        self,
        config: ReportConfig,
        hierarchy: Optional[ProductHierarchy] = None,
        products: Optional[Mapping[str, Product]] = None
    ):
        self.config = config
        self.hierarchy = hierarchy
        self.products = products or {}
        self.default_division = config.default_division
        self.rules = self._build_rules()
        self._cache: Dict[str, str] = {}
        logger.debug(f"Built {len(self.rules)} division rules")

    def _build_rules(self) -> List[Rule]:
        rules: List[Rule] = []

        for rule in self.config.division_rules:
            def brand_match(product, keywords=rule.brands):
                return (_contains_any(product.brand_name, keywords)
                        or _contains_any(product.name.upper(), keywords))
            rules.append((f"brand:{rule.division}", brand_match, rule.division))

        for rule in self.config.division_rules:
            def section_match(product, keywords=rule.sections):
                return _contains_any(product.section_name, keywords)
            rules.append((f"section:{rule.division}", section_match, rule.division))

        for keyword, division in self.config.supplier_rules:
            def supplier_match(product, keyword=keyword):
                return keyword in self._supplier_name(product)
            rules.append((f"supplier:{keyword}", supplier_match, division))

        for heuristic in self.config.heuristics:
            if heuristic.attribute == "section":
                def heuristic_match(product, keywords=heuristic.keywords):
                    return _contains_any(product.section_name, keywords)
            else:
                def heuristic_match(product, keywords=heuristic.keywords):
                    return _contains_any(product.name.upper(), keywords)
            rules.append((f"heuristic:{heuristic.attribute}", heuristic_match, heuristic.division))

        return rules

    def _supplier_name(self, product: Product) -> str:
        if self.hierarchy is None:
            return ""
        return self.hierarchy.get_effective_supplier_name(product.id) or ""

    def classify(self, product: Optional[Product]) -> str:
        """
        Division for a product.

        Args:
            product: Product, or None for a product missing from the index

        Returns:
            Division name (the default division when nothing matches)
        """
        if product is None:
            return self.default_division

        cacheable = self.products.get(product.id) is product
        if cacheable and product.id in self._cache:
            return self._cache[product.id]

        division = self.default_division
        for _name, predicate, result in self.rules:
            if predicate(product):
                division = result
                break

        if cacheable:
            self._cache[product.id] = division
        return division

    def classify_id(self, product_id: str) -> str:
        return self.classify(self.products.get(product_id))

    def classify_transaction(self, product_id: str, customer_name: str = "") -> str:
        """
        Division for an invoice line.

        Sales to internal customers (walk-in, employee, office use...) go to the
        internal-customer division before any product rule is consulted.

        Args:
            product_id: Product id of the line
            customer_name: Display name of the invoice's customer, if known

        Returns:
            Division name
        """
        internal = self.config.internal_customer_division
        if internal and is_internal_customer(customer_name, self.config.internal_customer_keywords):
            return internal
        return self.classify_id(product_id)
