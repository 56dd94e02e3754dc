"""
Tabular views of a report as pandas DataFrames, for printing or inspection.
"""

from typing import Dict, Any

import pandas as pd


def report_to_frames(report: Dict[str, Any]) -> Dict[str, pd.DataFrame]:
    """
    Convert every list section of a report into a DataFrame.

    The supplier breakdown is flattened to one row per supplier/salesman pair.

    Args:
        report: Report dictionary from build_report()/compute_report()

    Returns:
        Dictionary of section name to DataFrame
    """
    frames = {
        'trend': pd.DataFrame(report.get('trendData', []), columns=['date', 'outflow', 'inflow']),
        'sales_by_supplier': pd.DataFrame(report.get('salesBySupplier', []), columns=['name', 'value']),
        'sales_by_salesman': pd.DataFrame(report.get('salesBySalesman', []), columns=['name', 'value']),
        'divisions': pd.DataFrame(
            report.get('divisionBreakdown', []),
            columns=['division', 'outflow', 'status', 'inflow']
        ),
        'top_products': pd.DataFrame(
            report.get('pareto', {}).get('products', []), columns=['name', 'value']
        ),
        'top_customers': pd.DataFrame(
            report.get('pareto', {}).get('customers', []), columns=['name', 'value']
        ),
    }

    rows = []
    for supplier in report.get('supplierBreakdown', []):
        for salesman in supplier.get('salesmen', []):
            rows.append({
                'supplier': supplier['name'],
                'supplier_total': supplier['totalSales'],
                'salesman': salesman['name'],
                'amount': salesman['amount'],
                'percent': salesman['percent'],
            })
    frames['supplier_breakdown'] = pd.DataFrame(
        rows, columns=['supplier', 'supplier_total', 'salesman', 'amount', 'percent']
    )

    return frames


def summary_frame(report: Dict[str, Any]) -> pd.DataFrame:
    """One-row summary of the good/bad stock headline figures"""
    good = report.get('goodStock', {})
    bad = report.get('badStock', {})
    return pd.DataFrame([{
        'division': report.get('division'),
        'velocity_rate': good.get('velocityRate'),
        'velocity_status': good.get('status'),
        'total_outflow': good.get('totalOutflow'),
        'bad_stock': bad.get('accumulated'),
        'bad_stock_status': bad.get('status'),
    }])
