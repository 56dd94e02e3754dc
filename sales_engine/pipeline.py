"""
Report Pipeline

build_report() is the single entry point: fetch every collection in
parallel, build the lookup indexes and the product hierarchy, aggregate the
line items, and assemble the report.

Everything is rebuilt from scratch on each call; nothing is cached between
reports.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Dict, List, Optional, Any

from sales_engine.aggregation import aggregate
from sales_engine.api_client import DataProviderClient
from sales_engine.config import OVERVIEW, ReportConfig
from sales_engine.date_filters import between_filter, normalize_bound
from sales_engine.divisions import DivisionClassifier
from sales_engine.hierarchy import ProductHierarchy
from sales_engine.lookups import build_lookups
from sales_engine.report import assemble_report

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CollectionSpec:
    """How to fetch one upstream collection"""

    name: str
    fields: str
    paged: bool = True
    date_field: Optional[str] = None


COLLECTIONS = {
    "invoices": CollectionSpec(
        "sales_invoice",
        "invoice_id,invoice_date,total_amount,salesman_id,customer_code",
        date_field="invoice_date",
    ),
    "invoice_lines": CollectionSpec(
        "sales_invoice_details",
        "invoice_no,product_id,total_amount,quantity,discount_amount",
    ),
    "returns": CollectionSpec(
        "sales_return",
        "id,return_number,return_date",
        date_field="return_date",
    ),
    "return_lines": CollectionSpec(
        "sales_return_details",
        "return_no,product_id,quantity,total_amount,unit_price",
    ),
    "products": CollectionSpec(
        "products",
        "product_id,parent_id,product_name,product_brand,product_section,stock,inventory,quantity",
    ),
    "product_suppliers": CollectionSpec("product_per_supplier", "product_id,supplier_id"),
    "suppliers": CollectionSpec("suppliers", "id,supplier_name", paged=False),
    "brands": CollectionSpec("brand", "brand_id,brand_name", paged=False),
    "sections": CollectionSpec("sections", "section_id,section_name", paged=False),
    "salesmen": CollectionSpec("salesman", "id,salesman_name", paged=False),
    "customers": CollectionSpec("customer", "customer_code,store_name,customer_name"),
}


def _fetch_collection(
    client: DataProviderClient,
    spec: CollectionSpec,
    date_from: Optional[str],
    date_to: Optional[str]
) -> List[Dict[str, Any]]:
    filters = between_filter(spec.date_field, date_from, date_to) if spec.date_field else {}
    if spec.paged:
        return client.fetch_all_pages(spec.name, spec.fields, filters)
    return client.fetch_all(spec.name, spec.fields, filters)


def fetch_snapshot(
    client: DataProviderClient,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    max_workers: Optional[int] = None
) -> Dict[str, List[Dict[str, Any]]]:
    """
    Fetch every collection concurrently and wait for all of them.

    The first fatal error is re-raised at once: fetches that have not started
    are cancelled and running ones are abandoned. No partial snapshot is returned.

    Args:
        client: Data provider client
        date_from: Normalized lower bound for header filters
        date_to: Normalized upper bound for header filters
        max_workers: Thread pool size (defaults to the client settings)

    Returns:
        Collection key -> list of raw records

    Raises:
        DataProviderError: If any collection cannot be fetched
    """
    workers = max_workers or client.settings.max_workers
    logger.info(f"Fetching {len(COLLECTIONS)} collections with {workers} workers...")

    snapshot = {}
    executor = ThreadPoolExecutor(max_workers=workers)
    futures = {
        executor.submit(_fetch_collection, client, spec, date_from, date_to): key
        for key, spec in COLLECTIONS.items()
    }

    try:
        for future in as_completed(futures):
            snapshot[futures[future]] = future.result()
    except Exception:
        # Do not wait for sibling fetches still paging; their results are discarded
        executor.shutdown(wait=False, cancel_futures=True)
        raise

    executor.shutdown(wait=True)

    # Fixed key order regardless of completion order
    return {key: snapshot[key] for key in COLLECTIONS}


def compute_report(
    snapshot: Dict[str, List[Dict[str, Any]]],
    scope: str = OVERVIEW,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    config: Optional[ReportConfig] = None,
    include_diagnostics: bool = False,
    diagnostics_extra: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    """
    Build the report from an already-fetched snapshot.

    Pure function of its inputs: the same snapshot always yields the same report.

    Args:
        snapshot: Collection key -> raw records (missing keys count as empty)
        scope: Division name or "Overview"
        date_from: Optional inclusive lower bound (date or datetime string)
        date_to: Optional inclusive upper bound (date or datetime string)
        config: Business rules (defaults to ReportConfig.default())
        include_diagnostics: Attach the diagnostics block

    Returns:
        Report dictionary

    Raises:
        ValueError: If a date bound is given but cannot be parsed
    """
    config = config or ReportConfig.default()
    scope = scope or OVERVIEW
    date_from = normalize_bound(date_from, "date_from")
    date_to = normalize_bound(date_to, "date_to")

    lookups = build_lookups(snapshot)
    hierarchy = ProductHierarchy(
        lookups.products,
        lookups.supplier_links,
        lookups.suppliers,
        prefer_direct_link=config.prefer_direct_link
    )
    classifier = DivisionClassifier(config, hierarchy, lookups.products)

    acc = aggregate(
        snapshot,
        lookups,
        hierarchy,
        classifier,
        scope=scope,
        date_from=date_from,
        date_to=date_to,
        divisions=config.divisions,
        sample_limit=config.unmapped_samples
    )

    extra = {
        'droppedProducts': lookups.dropped_products,
        'parentCycles': hierarchy.cycles_detected,
    }
    if diagnostics_extra:
        extra.update(diagnostics_extra)

    return assemble_report(
        acc,
        config,
        include_diagnostics=include_diagnostics,
        row_counts={key: len(snapshot.get(key, [])) for key in COLLECTIONS},
        diagnostics_extra=extra
    )


def build_report(
    scope: str = OVERVIEW,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    client: Optional[DataProviderClient] = None,
    config: Optional[ReportConfig] = None,
    include_diagnostics: bool = False
) -> Dict[str, Any]:
    """
    Fetch all collections and compute the manager dashboard report.

    Args:
        scope: Division name or "Overview"
        date_from: Optional start of the window (YYYY-MM-DD or ISO datetime)
        date_to: Optional end of the window (inclusive)
        client: Data provider client (defaults to one built from the environment)
        config: Business rules (defaults to ReportConfig.from_env())
        include_diagnostics: Attach the diagnostics block

    Returns:
        Report dictionary

    Raises:
        DataProviderError: If any upstream fetch fails; no partial report is returned
        ValueError: If a date bound is given but cannot be parsed
    """
    date_from = normalize_bound(date_from, "date_from")
    date_to = normalize_bound(date_to, "date_to")

    client = client or DataProviderClient()
    config = config or ReportConfig.from_env()

    snapshot = fetch_snapshot(client, date_from, date_to)

    return compute_report(
        snapshot,
        scope=scope,
        date_from=date_from,
        date_to=date_to,
        config=config,
        include_diagnostics=include_diagnostics,
        diagnostics_extra={'providerUrl': client.base_url + "/", 'hasToken': client.has_token}
    )
