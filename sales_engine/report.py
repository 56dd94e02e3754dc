"""
Report Assembler

Turns the accumulators into the final report: velocity and return-rate
status, the trend series, ranked supplier/salesman lists, the supplier
breakdown, the division table and the Pareto lists.
"""

import logging
from typing import Dict, List, Any, Iterable, Optional, Tuple

from sales_engine.aggregation import Accumulators
from sales_engine.config import ReportConfig
from sales_engine.divisions import is_internal_customer

logger = logging.getLogger(__name__)


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================

def _clean(value: float):
    """Round money/quantity noise away and keep integral values as ints"""
    value = round(value, 2)
    return int(value) if float(value).is_integer() else value


def rank(totals: Dict[str, float], limit: Optional[int] = None) -> List[Dict[str, Any]]:
    """
    Sort name -> value totals descending (ties by name) and truncate.

    Returns:
        List of {'name', 'value'} dictionaries
    """
    ordered = sorted(totals.items(), key=lambda item: (-item[1], item[0]))
    if limit is not None:
        ordered = ordered[:limit]
    return [{'name': name, 'value': _clean(value)} for name, value in ordered]


def status_for(value: float, thresholds: Iterable[Tuple[float, str]], floor: str) -> str:
    """First label whose (exclusive) lower bound the value exceeds"""
    for bound, label in thresholds:
        if value > bound:
            return label
    return floor


# =============================================================================
# REPORT SECTIONS
# =============================================================================

def velocity_rate(outflow: float, stock: float) -> float:
    """Outflow as a percentage of outflow plus on-hand stock, 2 decimals"""
    moved = outflow + stock
    if moved <= 0:
        return 0
    return round(outflow / moved * 100, 2)


def return_rate(inflow: float, outflow: float) -> float:
    if outflow <= 0:
        return 0
    return inflow / outflow * 100


def build_trend(acc: Accumulators) -> List[Dict[str, Any]]:
    return [
        {'date': day, 'outflow': _clean(point['outflow']), 'inflow': _clean(point['inflow'])}
        for day, point in sorted(acc.trend.items())
    ]


def build_supplier_breakdown(acc: Accumulators) -> List[Dict[str, Any]]:
    """
    Every supplier, descending by total, with its salesmen descending by amount.
    """
    breakdown = []
    for entry in rank(acc.supplier_sales):
        supplier = entry['name']
        total = acc.supplier_sales[supplier]

        salesmen = []
        for salesman in rank(acc.supplier_salesmen.get(supplier, {})):
            percent = round(salesman['value'] / total * 100, 2) if total else 0
            salesmen.append({
                'name': salesman['name'],
                'amount': salesman['value'],
                'percent': _clean(percent),
            })

        breakdown.append({
            'name': supplier,
            'totalSales': entry['value'],
            'salesmen': salesmen,
        })
    return breakdown


def build_division_breakdown(acc: Accumulators, config: ReportConfig) -> List[Dict[str, Any]]:
    rows = []
    for division, tally in acc.divisions.items():
        rows.append({
            'division': division,
            'outflow': _clean(tally.outflow),
            'status': "Healthy" if tally.outflow > config.division_healthy_outflow else "Warning",
            'inflow': _clean(tally.inflow),
        })
    return rows


def build_customer_pareto(acc: Accumulators, config: ReportConfig) -> List[Dict[str, Any]]:
    # Internal customers are removed before the top-N cut
    external = {
        name: value for name, value in acc.customer_sales.items()
        if not is_internal_customer(name, config.internal_customer_keywords)
    }
    return rank(external, config.pareto_customers)


def build_diagnostics(
    acc: Accumulators,
    row_counts: Optional[Dict[str, int]] = None,
    extra: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    diagnostics = {
        'scope': acc.scope,
        'fromDate': acc.date_from,
        'toDate': acc.date_to,
        'counts': dict(row_counts or {}),
        'lines': dict(acc.counters),
        'unmappedLines': acc.counters['unmapped_invoice_lines'],
        'unmappedProducts': list(acc.unmapped_products),
    }
    if extra:
        diagnostics.update(extra)
    return diagnostics


def assemble_report(
    acc: Accumulators,
    config: ReportConfig,
    include_diagnostics: bool = False,
    row_counts: Optional[Dict[str, int]] = None,
    diagnostics_extra: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    """
    Shape the final report from the accumulators.

    Args:
        acc: Filled accumulators
        config: Business rules (limits, thresholds, internal customers)
        include_diagnostics: Attach the diagnostics block
        row_counts: Raw row counts per collection, for diagnostics
        diagnostics_extra: Additional diagnostics fields

    Returns:
        Report dictionary
    """
    logger.info("Assembling report...")

    velocity = velocity_rate(acc.total_outflow, acc.stock_in_scope)
    returns = return_rate(acc.total_inflow, acc.total_outflow)

    report = {
        'division': acc.scope,
        'goodStock': {
            'velocityRate': _clean(velocity),
            'status': status_for(velocity, config.velocity_statuses, config.velocity_floor_status),
            'totalOutflow': _clean(acc.total_outflow),
            'totalInflow': _clean(acc.total_outflow + acc.stock_in_scope),
        },
        'badStock': {
            'accumulated': _clean(acc.total_inflow),
            'status': status_for(returns, config.return_statuses, config.return_floor_status),
            'totalInflow': _clean(acc.total_inflow),
        },
        'trendData': build_trend(acc),
        'salesBySupplier': rank(acc.supplier_sales, config.top_suppliers),
        'salesBySalesman': rank(acc.salesman_sales, config.top_salesmen),
        'supplierBreakdown': build_supplier_breakdown(acc),
        'divisionBreakdown': build_division_breakdown(acc, config),
        'pareto': {
            'products': rank(acc.product_sales, config.pareto_products),
            'customers': build_customer_pareto(acc, config),
        },
    }

    if include_diagnostics:
        report['diagnostics'] = build_diagnostics(acc, row_counts, diagnostics_extra)

    return report
