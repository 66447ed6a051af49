"""Static reference lists backing the submission form dropdowns.

Seeded into the reference collection every time the index is bootstrapped.
"""

from datetime import datetime, timezone
from typing import Any

_MA_REGIONS = (
    "Région de Tanger – Tétouan",
    "Région de l’Oriental et du Rif",
    "Région de Fès – Meknès",
    "Région de Rabat – Salé – Kénitra",
    "Région de Béni Mellal – Khénifra",
    "Région de Casablanca – Settat",
    "Région de Marrakech – Safi",
    "Région de Daraâ – Tafilalet",
    "Région de Souss – Massa",
    "Région de Guelmime – Oued Noun",
    "Région de Laâyoune – Sakia al Hamra",
    "Région de Ed Dakhla – Oued Dahab",
)


def _rows(type_: str, category: str, items: list[tuple[str, str]], **metadata: Any) -> list[dict[str, Any]]:
    rows = []
    for order, (value, label) in enumerate(items, start=1):
        row: dict[str, Any] = {"type": type_, "category": category, "value": value, "label": label, "sortOrder": order}
        if metadata:
            row["metadata"] = dict(metadata)
        rows.append(row)
    return rows


REFERENCE_DATA: list[dict[str, Any]] = [
    *_rows(
        "country",
        "geography",
        [
            ("MA", "Morocco"),
            ("US", "United States"),
            ("CA", "Canada"),
            ("UK", "United Kingdom"),
            ("FR", "France"),
            ("DE", "Germany"),
        ],
    ),
    *_rows("state", "geography", [(f"MA-{i:02d}", label) for i, label in enumerate(_MA_REGIONS, start=1)], country="MA"),
    *_rows(
        "state",
        "geography",
        [("CA", "California"), ("NY", "New York"), ("TX", "Texas"), ("FL", "Florida")],
        country="US",
    ),
    *_rows("contactMethod", "communication", [("email", "Email"), ("phone", "Phone"), ("mail", "Mail")]),
    *_rows(
        "jobTitle",
        "professional",
        [
            ("CEO", "Chief Executive Officer"),
            ("CTO", "Chief Technology Officer"),
            ("Manager", "Manager"),
            ("Developer", "Software Developer"),
            ("Analyst", "Business Analyst"),
        ],
    ),
    *_rows(
        "department",
        "organization",
        [
            ("IT", "Information Technology"),
            ("HR", "Human Resources"),
            ("Finance", "Finance"),
            ("Sales", "Sales"),
            ("Marketing", "Marketing"),
        ],
    ),
    *_rows(
        "industry",
        "business",
        [
            ("Technology", "Technology"),
            ("Healthcare", "Healthcare"),
            ("Finance", "Finance"),
            ("Education", "Education"),
            ("Manufacturing", "Manufacturing"),
        ],
    ),
]

# dropdown key -> (reference type, category)
DROPDOWN_SOURCES: dict[str, tuple[str, str]] = {
    "countries": ("country", "geography"),
    "states": ("state", "geography"),
    "contactMethods": ("contactMethod", "communication"),
    "jobTitles": ("jobTitle", "professional"),
    "departments": ("department", "organization"),
    "industries": ("industry", "business"),
}


def seed_rows(now: datetime | None = None) -> list[dict[str, Any]]:
    """Reference rows stamped active with created/updated timestamps."""
    stamp = (now or datetime.now(timezone.utc)).isoformat()
    return [{**row, "isActive": True, "createdAt": stamp, "updatedAt": stamp} for row in REFERENCE_DATA]


def sort_reference_rows(rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """sortOrder ascending, then label ascending."""
    return sorted(rows, key=lambda r: (r.get("sortOrder") or 0, r.get("label") or ""))


def dropdown_options(key: str, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    options = []
    for row in rows:
        option = {"value": row.get("value"), "label": row.get("label")}
        if key == "states":
            option["country"] = (row.get("metadata") or {}).get("country")
        options.append(option)
    return options
