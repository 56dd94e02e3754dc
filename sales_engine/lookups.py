"""
Lookup Index Builder

Builds id -> name maps from the reference collections and the product index
used by the hierarchy resolver and division classifier.

Supplier, brand and section names are uppercased here, once, because the
division classifier does case-sensitive keyword containment checks.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any, Iterable

from sales_engine.identity import resolve_id

logger = logging.getLogger(__name__)


@dataclass
class Product:
    """A product with its brand/section names already joined in"""

    id: str
    parent_id: Optional[str]
    name: str
    brand_name: str = ""
    section_name: str = ""
    stock: float = 0


@dataclass
class Lookups:
    """All reference indexes for one report computation"""

    products: Dict[str, Product] = field(default_factory=dict)
    supplier_links: Dict[str, str] = field(default_factory=dict)
    suppliers: Dict[str, str] = field(default_factory=dict)
    brands: Dict[str, str] = field(default_factory=dict)
    sections: Dict[str, str] = field(default_factory=dict)
    salesmen: Dict[str, str] = field(default_factory=dict)
    customers: Dict[str, str] = field(default_factory=dict)
    dropped_products: int = 0


def first_present(record: Dict[str, Any], *names: str) -> Any:
    """Value of the first field that is present and not None"""
    for name in names:
        value = record.get(name)
        if value is not None:
            return value
    return None


def to_number(value: Any) -> float:
    """Loose numeric coercion: None, '', and garbage become 0"""
    if value is None or isinstance(value, bool):
        return 0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if number != number or number in (float("inf"), float("-inf")):
        return 0
    return int(number) if number.is_integer() else number


def build_name_map(
    records: Iterable[Dict[str, Any]],
    id_fields: List[str],
    name_fields: List[str],
    uppercase: bool = False
) -> Dict[str, str]:
    """
    Build an id -> display name map.

    Records whose id cannot be resolved are skipped; later duplicates win.

    Args:
        records: Raw reference records
        id_fields: Candidate id fields, in preference order
        name_fields: Candidate name fields, first non-empty wins
        uppercase: Uppercase names at ingestion

    Returns:
        Dictionary of id to name
    """
    names = {}
    for record in records:
        if not isinstance(record, dict):
            continue
        key = resolve_id(first_present(record, *id_fields), id_fields)
        if not key:
            continue

        name = ""
        for name_field in name_fields:
            value = record.get(name_field)
            if value:
                name = str(value).strip()
                break

        names[key] = name.upper() if uppercase else name
    return names


def build_supplier_map(records) -> Dict[str, str]:
    return build_name_map(records, ["id", "supplier_id"], ["supplier_name", "name"], uppercase=True)


def build_brand_map(records) -> Dict[str, str]:
    return build_name_map(records, ["brand_id", "id"], ["brand_name", "name"], uppercase=True)


def build_section_map(records) -> Dict[str, str]:
    return build_name_map(records, ["section_id", "id"], ["section_name", "name"], uppercase=True)


def build_salesman_map(records) -> Dict[str, str]:
    return build_name_map(records, ["id", "salesman_id"], ["salesman_name", "name"])


def build_customer_map(records) -> Dict[str, str]:
    # Customer names are matched against internal-customer keywords, hence uppercase
    return build_name_map(
        records,
        ["customer_code", "code"],
        ["store_name", "customer_name", "display_name", "name"],
        uppercase=True
    )


def build_supplier_links(records) -> Dict[str, str]:
    """
    Map product id -> supplier id, keeping only the first link seen per product.
    """
    links = {}
    for record in records:
        if not isinstance(record, dict):
            continue
        product_id = resolve_id(record.get("product_id"), ["product_id"])
        supplier_id = resolve_id(record.get("supplier_id"), ["supplier_id", "id"])
        if product_id and supplier_id and product_id not in links:
            links[product_id] = supplier_id
    return links


def _stock_on_hand(record: Dict[str, Any]) -> float:
    for name in ("stock", "inventory", "quantity", "stock_on_hand"):
        value = to_number(record.get(name))
        if value:
            return value
    return 0


def build_product_map(
    records,
    brands: Dict[str, str],
    sections: Dict[str, str]
) -> Dict[str, Product]:
    """
    Build the product index, joining brand and section names.

    A parent of 0, "", null, or the product itself marks a root.

    Returns:
        Dictionary of product id to Product
    """
    products = {}
    for record in records:
        if not isinstance(record, dict):
            continue
        product_id = resolve_id(first_present(record, "product_id", "id"), ["product_id"])
        if not product_id:
            continue

        parent_id = resolve_id(record.get("parent_id"), ["product_id"])
        if parent_id in ("", "0", product_id):
            parent_id = None

        brand_id = resolve_id(first_present(record, "product_brand", "brand_id"), ["brand_id"])
        section_id = resolve_id(first_present(record, "product_section", "section_id"), ["section_id"])

        products[product_id] = Product(
            id=product_id,
            parent_id=parent_id,
            name=str(first_present(record, "product_name", "name") or "").strip(),
            brand_name=brands.get(brand_id, "") if brand_id else "",
            section_name=sections.get(section_id, "") if section_id else "",
            stock=_stock_on_hand(record),
        )
    return products


def build_lookups(snapshot: Dict[str, List[Dict[str, Any]]]) -> Lookups:
    """
    Build every reference index from a fetched snapshot.

    Args:
        snapshot: Collection key -> raw records (see pipeline.COLLECTIONS)

    Returns:
        Lookups instance
    """
    logger.info("Building lookup indexes...")

    brands = build_brand_map(snapshot.get("brands", []))
    sections = build_section_map(snapshot.get("sections", []))
    raw_products = snapshot.get("products", [])
    products = build_product_map(raw_products, brands, sections)

    lookups = Lookups(
        products=products,
        supplier_links=build_supplier_links(snapshot.get("product_suppliers", [])),
        suppliers=build_supplier_map(snapshot.get("suppliers", [])),
        brands=brands,
        sections=sections,
        salesmen=build_salesman_map(snapshot.get("salesmen", [])),
        customers=build_customer_map(snapshot.get("customers", [])),
        dropped_products=max(len(raw_products) - len(products), 0),
    )

    if lookups.dropped_products:
        logger.warning(f"Dropped {lookups.dropped_products} product records (no usable id or duplicate)")

    return lookups
