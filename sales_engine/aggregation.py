"""
Aggregation Engine

One pass over invoice lines, then one pass over return lines, filling every
accumulator the report needs at the same time.

Invoice lines always count toward their division's outflow. Only lines in the
requested scope feed the trend, product, supplier, salesman and customer
totals, and the supplier/salesman/customer totals additionally require a
resolvable effective supplier. Lines whose header is missing (orphans) or
whose product id cannot be resolved are skipped before anything is counted.

Invoice lines sold to an internal customer are booked to the internal-customer
division instead of their product's division.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any, Iterable

from sales_engine.config import OVERVIEW
from sales_engine.date_filters import get_dates_in_range, normalize_date, within_range
from sales_engine.divisions import DivisionClassifier
from sales_engine.hierarchy import ProductHierarchy
from sales_engine.identity import resolve_id
from sales_engine.lookups import Lookups, first_present, to_number

logger = logging.getLogger(__name__)

UNKNOWN_SALESMAN = "Unknown Salesman"

INVOICE_REF_KEYS = ["invoice_id", "invoice_no", "id"]
RETURN_REF_KEYS = ["return_number", "return_no", "return_id", "id"]


@dataclass
class InvoiceHeader:
    id: str
    day: Optional[str]
    salesman_id: str
    customer_code: str


@dataclass
class DivisionTally:
    outflow: float = 0
    inflow: float = 0


@dataclass
class Accumulators:
    """Everything collected during the line passes"""

    scope: str
    date_from: Optional[str] = None
    date_to: Optional[str] = None

    divisions: Dict[str, DivisionTally] = field(default_factory=dict)
    trend: Dict[str, Dict[str, float]] = field(default_factory=dict)

    total_outflow: float = 0
    total_inflow: float = 0
    stock_in_scope: float = 0

    product_sales: Dict[str, float] = field(default_factory=lambda: defaultdict(float))
    supplier_sales: Dict[str, float] = field(default_factory=lambda: defaultdict(float))
    salesman_sales: Dict[str, float] = field(default_factory=lambda: defaultdict(float))
    customer_sales: Dict[str, float] = field(default_factory=lambda: defaultdict(float))
    supplier_salesmen: Dict[str, Dict[str, float]] = field(
        default_factory=lambda: defaultdict(lambda: defaultdict(float))
    )

    counters: Dict[str, int] = field(default_factory=lambda: {
        'invoice_lines_used': 0,
        'orphan_invoice_lines': 0,
        'undated_invoice_lines': 0,
        'out_of_window_invoice_lines': 0,
        'unmapped_invoice_lines': 0,
        'unresolved_invoice_lines': 0,
        'return_lines_used': 0,
        'orphan_return_lines': 0,
        'undated_return_lines': 0,
        'out_of_window_return_lines': 0,
        'unresolved_return_lines': 0,
    })
    unmapped_products: List[str] = field(default_factory=list)

    def in_scope(self, division: str) -> bool:
        if not self.scope or self.scope == OVERVIEW:
            return True
        return division == self.scope

    def trend_point(self, day: str) -> Dict[str, float]:
        if day not in self.trend:
            self.trend[day] = {'outflow': 0, 'inflow': 0}
        return self.trend[day]

    def division(self, name: str) -> DivisionTally:
        if name not in self.divisions:
            self.divisions[name] = DivisionTally()
        return self.divisions[name]


# =============================================================================
# HEADER INDEXES
# =============================================================================

def build_invoice_index(invoices: Iterable[Dict[str, Any]]) -> Dict[str, InvoiceHeader]:
    """
    Index invoice headers by id.

    Returns:
        Dictionary of invoice id to InvoiceHeader
    """
    index = {}
    for record in invoices:
        if not isinstance(record, dict):
            continue
        invoice_id = resolve_id(first_present(record, "invoice_id", "id"), INVOICE_REF_KEYS)
        if not invoice_id:
            continue
        index[invoice_id] = InvoiceHeader(
            id=invoice_id,
            day=normalize_date(first_present(record, "invoice_date", "date")),
            salesman_id=resolve_id(record.get("salesman_id"), ["id", "salesman_id"]),
            customer_code=resolve_id(record.get("customer_code"), ["customer_code", "code"]),
        )
    return index


def build_return_index(returns: Iterable[Dict[str, Any]]) -> Dict[str, Optional[str]]:
    """
    Index return headers by both return_number and surrogate id.

    Return lines may reference a header either way.

    Returns:
        Dictionary of header reference to its day key (None if undated)
    """
    index = {}
    for record in returns:
        if not isinstance(record, dict):
            continue
        day = normalize_date(first_present(record, "return_date", "date"))
        for key in ("return_number", "id"):
            ref = resolve_id(record.get(key), RETURN_REF_KEYS)
            if ref:
                index[ref] = day
    return index


# =============================================================================
# LINE PASSES
# =============================================================================

def _product_label(lookups: Lookups, product_id: str) -> str:
    product = lookups.products.get(product_id)
    if product and product.name:
        return product.name
    return f"Product {product_id}"


def _process_invoice_lines(
    acc: Accumulators,
    lines: Iterable[Dict[str, Any]],
    headers: Dict[str, InvoiceHeader],
    lookups: Lookups,
    hierarchy: ProductHierarchy,
    classifier: DivisionClassifier,
    sample_limit: int
) -> None:
    counters = acc.counters

    for line in lines:
        if not isinstance(line, dict):
            counters['orphan_invoice_lines'] += 1
            continue

        invoice_id = resolve_id(first_present(line, "invoice_no", "invoice_id"), INVOICE_REF_KEYS)
        header = headers.get(invoice_id) if invoice_id else None
        if header is None:
            counters['orphan_invoice_lines'] += 1
            continue
        if not header.day:
            counters['undated_invoice_lines'] += 1
            continue
        if not within_range(header.day, acc.date_from, acc.date_to):
            counters['out_of_window_invoice_lines'] += 1
            continue

        product_id = resolve_id(line.get("product_id"), ["product_id"])
        if not product_id:
            counters['unresolved_invoice_lines'] += 1
            continue

        qty = to_number(line.get("quantity"))
        amount = to_number(line.get("total_amount")) - to_number(line.get("discount_amount"))
        customer = lookups.customers.get(header.customer_code)

        division = classifier.classify_transaction(product_id, customer or "")
        acc.division(division).outflow += qty
        counters['invoice_lines_used'] += 1

        if not acc.in_scope(division):
            continue

        acc.total_outflow += qty
        acc.trend_point(header.day)['outflow'] += qty

        product_label = _product_label(lookups, product_id)
        acc.product_sales[product_label] += amount

        supplier = hierarchy.get_effective_supplier_name(product_id)
        if supplier is None:
            counters['unmapped_invoice_lines'] += 1
            if product_label not in acc.unmapped_products and len(acc.unmapped_products) < sample_limit:
                acc.unmapped_products.append(product_label)
            continue

        salesman = lookups.salesmen.get(header.salesman_id) or UNKNOWN_SALESMAN
        customer = customer or f"Customer {header.customer_code}"

        acc.supplier_sales[supplier] += amount
        acc.salesman_sales[salesman] += amount
        acc.customer_sales[customer] += amount
        acc.supplier_salesmen[supplier][salesman] += amount


def _process_return_lines(
    acc: Accumulators,
    lines: Iterable[Dict[str, Any]],
    headers: Dict[str, Optional[str]],
    classifier: DivisionClassifier
) -> None:
    counters = acc.counters

    for line in lines:
        if not isinstance(line, dict):
            counters['orphan_return_lines'] += 1
            continue

        ref = resolve_id(first_present(line, "return_no", "return_number"), RETURN_REF_KEYS)
        if not ref or ref not in headers:
            counters['orphan_return_lines'] += 1
            continue

        day = headers[ref]
        if not day:
            counters['undated_return_lines'] += 1
            continue
        if not within_range(day, acc.date_from, acc.date_to):
            counters['out_of_window_return_lines'] += 1
            continue

        product_id = resolve_id(line.get("product_id"), ["product_id"])
        if not product_id:
            counters['unresolved_return_lines'] += 1
            continue

        qty = to_number(line.get("quantity"))

        # Return headers carry no customer, so returns are classified by product only
        division = classifier.classify_id(product_id)
        acc.division(division).inflow += qty
        counters['return_lines_used'] += 1

        if not acc.in_scope(division):
            continue

        acc.total_inflow += qty
        acc.trend_point(day)['inflow'] += qty


def aggregate(
    snapshot: Dict[str, List[Dict[str, Any]]],
    lookups: Lookups,
    hierarchy: ProductHierarchy,
    classifier: DivisionClassifier,
    scope: str = OVERVIEW,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    divisions: Optional[List[str]] = None,
    sample_limit: int = 10
) -> Accumulators:
    """
    Run the invoice-line and return-line passes.

    Args:
        snapshot: Collection key -> raw records
        lookups: Reference indexes
        hierarchy: Family/supplier resolver for this report
        classifier: Division classifier for this report
        scope: A division name, or "Overview" for everything
        date_from: Optional inclusive lower bound (YYYY-MM-DD)
        date_to: Optional inclusive upper bound (YYYY-MM-DD)
        divisions: Divisions to pre-seed (keeps their order in the output)
        sample_limit: Max unmapped product names to keep

    Returns:
        Accumulators instance
    """
    logger.info(f"Aggregating lines for scope '{scope or OVERVIEW}'...")

    acc = Accumulators(scope=scope or OVERVIEW, date_from=date_from, date_to=date_to)
    for name in divisions or []:
        acc.division(name)

    if date_from and date_to:
        for day in get_dates_in_range(date_from, date_to):
            acc.trend_point(day)

    invoice_headers = build_invoice_index(snapshot.get("invoices", []))
    _process_invoice_lines(
        acc,
        snapshot.get("invoice_lines", []),
        invoice_headers,
        lookups,
        hierarchy,
        classifier,
        sample_limit
    )

    return_headers = build_return_index(snapshot.get("returns", []))
    _process_return_lines(acc, snapshot.get("return_lines", []), return_headers, classifier)

    for product in lookups.products.values():
        if acc.in_scope(classifier.classify(product)):
            acc.stock_in_scope += product.stock

    counters = acc.counters
    logger.info(
        f"Used {counters['invoice_lines_used']} invoice lines "
        f"({counters['orphan_invoice_lines']} orphaned, {counters['unmapped_invoice_lines']} unmapped) "
        f"and {counters['return_lines_used']} return lines ({counters['orphan_return_lines']} orphaned)"
    )

    return acc
