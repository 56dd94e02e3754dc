"""
Configuration Module

Connection settings for the data provider (read from the environment / .env)
and the business rules used by the division classifier and report assembler.

Rules are plain data: divisions and keywords can be changed by editing the
defaults below or by pointing SALES_ENGINE_RULES at a JSON file.
"""

import os
import json
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any, Tuple

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

OVERVIEW = "Overview"

TOKEN_ENV_VARS = (
    "DIRECTUS_TOKEN",
    "DIRECTUS_ACCESS_TOKEN",
    "DIRECTUS_STATIC_TOKEN",
    "DIRECTUS_SERVICE_TOKEN",
)


def _env_number(name: str, default, cast=int):
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw)
    except ValueError:
        raise ValueError(f"Invalid value for {name}: {raw!r}")


@dataclass
class ProviderSettings:
    """Connection settings for the data provider"""

    base_url: str = "http://localhost:8055"
    token: str = ""
    timeout: float = 120.0
    page_size: int = 500
    max_workers: int = 11

    def __post_init__(self):
        self.base_url = self.base_url.rstrip("/")

    @classmethod
    def from_env(cls) -> "ProviderSettings":
        """
        Load settings from environment variables (and a .env file if present).

        Returns:
            ProviderSettings instance
        """
        load_dotenv()

        token = ""
        for name in TOKEN_ENV_VARS:
            token = os.getenv(name, "")
            if token:
                break

        return cls(
            base_url=os.getenv("DIRECTUS_URL") or cls.base_url,
            token=token,
            timeout=_env_number("DIRECTUS_TIMEOUT", cls.timeout, float),
            page_size=_env_number("DIRECTUS_PAGE_SIZE", cls.page_size),
            max_workers=_env_number("DIRECTUS_MAX_WORKERS", cls.max_workers),
        )


# =============================================================================
# BUSINESS RULES
# =============================================================================

@dataclass
class DivisionRule:
    """Brand and section keywords for one division (matched against uppercased names)"""

    division: str
    brands: List[str] = field(default_factory=list)
    sections: List[str] = field(default_factory=list)

    def __post_init__(self):
        self.brands = [k.upper() for k in self.brands]
        self.sections = [k.upper() for k in self.sections]


@dataclass
class HeuristicRule:
    """Last-resort keyword rule on a product attribute ('name' or 'section')"""

    attribute: str
    keywords: List[str]
    division: str

    def __post_init__(self):
        if self.attribute not in ("name", "section"):
            raise ValueError(f"Unsupported heuristic attribute: {self.attribute}")
        self.keywords = [k.upper() for k in self.keywords]


DEFAULT_DIVISION_RULES = [
    DivisionRule(
        "Dry Goods",
        brands=[
            "Lucky Me", "Nescafe", "Kopiko", "Bear Brand", "Maggi", "Surf", "Downy",
            "Richeese", "Richoco", "Keratin", "KeratinPlus", "Dove", "Palmolive",
            "Safeguard", "Sunsilk", "Cream Silk", "Head & Shoulders", "Colgate",
            "Close Up", "Bioderm", "Casino", "Efficascent", "Great Taste", "Presto",
            "Tide", "Ariel", "Champion", "Callee", "Systemack", "Wings", "Pride",
            "Smart",
        ],
        sections=[
            "Grocery", "Canned", "Noodles", "Beverages", "Non-Food", "Personal Care",
            "Snacks", "Biscuits", "Candy", "Coffee", "Milk", "Powder",
        ],
    ),
    DivisionRule(
        "Frozen Goods",
        brands=[
            "CDO", "Tender Juicy", "Mekeni", "Virginia", "Purefoods", "Aviko", "Swift",
            "Argentina", "Star", "Holiday", "Highland", "Bibbo", "Home Made",
            "Young Pork",
        ],
        sections=[
            "Frozen", "Meat", "Processed Meat", "Cold Cuts", "Ice Cream", "Hotdog",
            "Chicken", "Pork",
        ],
    ),
    DivisionRule(
        "Industrial",
        brands=[
            "Mama Sita", "Datu Puti", "Silver Swan", "Golden Fiesta", "LPG", "Solane",
            "Gasul", "Fiesta", "UFC", "Super Q", "Biguerlai", "Equal", "Jufran",
        ],
        sections=[
            "Condiments", "Oil", "Sacks", "Sugar", "Flour", "Industrial", "Gas", "Rice",
            "Salt",
        ],
    ),
    DivisionRule(
        "Mama Pina's",
        brands=["Mama Pina", "Mama Pinas", "Mama Pina's"],
        sections=["Franchise", "Ready to Eat", "Kiosk", "Mama Pina", "MP"],
    ),
    DivisionRule(
        "Internal",
        brands=["Internal", "Office Supplies", "VOS"],
        sections=["Internal", "Office", "Supplies"],
    ),
]

# Supplier catalogues are often mixed, so these only apply after brand/section
DEFAULT_SUPPLIER_RULES = [
    ("FOODSPHERE", "Frozen Goods"),
    ("MEKENI", "Frozen Goods"),
    ("VIRGINIA FOOD", "Frozen Goods"),
    ("MAMA PINA", "Mama Pina's"),
    ("PETRON", "Industrial"),
    ("INDUSTRIAL", "Industrial"),
    ("VOS", "Internal"),
]

DEFAULT_HEURISTICS = [
    HeuristicRule("section", ["FROZEN"], "Frozen Goods"),
    HeuristicRule(
        "name",
        ["HOTDOG", "TOCINO", "LONGGANISA", "LONGANISA", "NUGGETS", "BACON",
         "CHICKEN", "PORK", "BEEF", "SAUSAGE", "SIOMAI"],
        "Frozen Goods",
    ),
    HeuristicRule(
        "name",
        ["LPG", "GASUL", "SOLANE", "DIESEL", "GASOLINE", "KEROSENE", "FUEL"],
        "Industrial",
    ),
]

DEFAULT_INTERNAL_CUSTOMER_KEYWORDS = [
    "WALK-IN", "WALKIN", "EMPLOYEE", "POLITICIAN", "CLE ACE", "OFFICE", "INTERNAL",
    "VOS", "USE", "MEN2",
]


@dataclass
class ReportConfig:
    """
    Business rules passed explicitly into the classifier and report assembler.

    Built once at process start with ReportConfig.default() or from_json().
    """

    division_rules: List[DivisionRule] = field(default_factory=lambda: list(DEFAULT_DIVISION_RULES))
    supplier_rules: List[Tuple[str, str]] = field(default_factory=lambda: list(DEFAULT_SUPPLIER_RULES))
    heuristics: List[HeuristicRule] = field(default_factory=lambda: list(DEFAULT_HEURISTICS))
    default_division: str = "Dry Goods"
    internal_customer_keywords: List[str] = field(
        default_factory=lambda: list(DEFAULT_INTERNAL_CUSTOMER_KEYWORDS)
    )
    # Sales to internal customers are booked here whatever the product; None disables
    internal_customer_division: Optional[str] = "Internal"
    prefer_direct_link: bool = False

    top_suppliers: int = 10
    top_salesmen: int = 10
    pareto_products: int = 50
    pareto_customers: int = 50
    unmapped_samples: int = 10

    # (lower bound exclusive, label), checked top-down
    velocity_statuses: List[Tuple[float, str]] = field(default_factory=lambda: [
        (50, "Fast Moving"), (20, "Healthy"), (5, "Slow Moving"),
    ])
    velocity_floor_status: str = "Stagnant"
    return_statuses: List[Tuple[float, str]] = field(default_factory=lambda: [
        (5, "Critical"), (2, "High"), (0, "Normal"),
    ])
    return_floor_status: str = "Excellent"
    division_healthy_outflow: float = 5000

    def __post_init__(self):
        self.supplier_rules = [(k.upper(), d) for k, d in self.supplier_rules]
        self.internal_customer_keywords = [k.upper() for k in self.internal_customer_keywords]

    @property
    def divisions(self) -> List[str]:
        """All known divisions in configured order, default division included"""
        names = [rule.division for rule in self.division_rules]
        for _, division in self.supplier_rules:
            if division not in names:
                names.append(division)
        for rule in self.heuristics:
            if rule.division not in names:
                names.append(rule.division)
        if self.internal_customer_division and self.internal_customer_division not in names:
            names.append(self.internal_customer_division)
        if self.default_division not in names:
            names.append(self.default_division)
        return names

    @classmethod
    def default(cls) -> "ReportConfig":
        return cls()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReportConfig":
        """
        Build a config from a plain dictionary (e.g. parsed JSON).

        Keys that are absent keep their defaults.
        """
        kwargs = {}

        if "divisions" in data:
            kwargs["division_rules"] = [
                DivisionRule(d["division"], d.get("brands", []), d.get("sections", []))
                for d in data["divisions"]
            ]
        if "supplier_rules" in data:
            kwargs["supplier_rules"] = [(r["keyword"], r["division"]) for r in data["supplier_rules"]]
        if "heuristics" in data:
            kwargs["heuristics"] = [
                HeuristicRule(h["attribute"], h["keywords"], h["division"])
                for h in data["heuristics"]
            ]

        simple = (
            "default_division", "internal_customer_keywords", "internal_customer_division",
            "prefer_direct_link",
            "top_suppliers", "top_salesmen", "pareto_products", "pareto_customers",
            "unmapped_samples", "division_healthy_outflow",
        )
        for key in simple:
            if key in data:
                kwargs[key] = data[key]

        return cls(**kwargs)

    @classmethod
    def from_json(cls, path: str) -> "ReportConfig":
        with open(path, encoding="utf-8") as fh:
            data = json.load(fh)
        logger.info(f"Loaded report rules from {path}")
        return cls.from_dict(data)

    @classmethod
    def from_env(cls) -> "ReportConfig":
        """Use SALES_ENGINE_RULES if set, otherwise the built-in defaults"""
        load_dotenv()
        path = os.getenv("SALES_ENGINE_RULES")
        if path:
            return cls.from_json(path)
        return cls.default()
