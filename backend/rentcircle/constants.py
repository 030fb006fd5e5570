from __future__ import annotations

# Locations a listing may be posted under (exact match, case-sensitive).
PUNE_AREAS: tuple[str, ...] = (
    "Baner",
    "Wakad",
    "Hinjewadi",
    "Kothrud",
    "Kharadi",
    "Hadapsar",
    "Viman Nagar",
    "Aundh",
    "Pimple Saudagar",
    "Magarpatta",
    "Koregaon Park",
    "Shivaji Nagar",
    "Deccan",
    "Pimpri-Chinchwad",
    "Kalyani Nagar",
    "Yerawada",
    "Kondhwa",
    "Undri",
    "NIBM",
    "Warje",
)

PROPERTY_TYPES: dict[str, str] = {
    "1rk": "1 RK",
    "1bhk": "1 BHK",
    "2bhk": "2 BHK",
    "3bhk+": "3 BHK+",
}

# Whole rupees per month.
RENT_MIN = 5000
RENT_MAX = 100000
RENT_STEP = 1000

STATUS_PENDING = "pending"
STATUS_APPROVED = "approved"
STATUS_REJECTED = "rejected"
PROPERTY_STATUSES = (STATUS_PENDING, STATUS_APPROVED, STATUS_REJECTED)

REPORT_OPEN = "open"
REPORT_REVIEWED = "reviewed"
REPORT_RESOLVED = "resolved"
REPORT_STATUSES = (REPORT_OPEN, REPORT_REVIEWED, REPORT_RESOLVED)

SERVICE_REQUEST_STATUSES = ("pending", "contacted", "completed", "cancelled")


def catalog_meta() -> dict:
    """Everything a client needs to render the filter bar and posting form."""
    from rentcircle import config

    return {
        "areas": list(PUNE_AREAS),
        "property_types": [{"value": k, "label": v} for k, v in PROPERTY_TYPES.items()],
        "rent_range": {"min": RENT_MIN, "max": RENT_MAX, "step": RENT_STEP},
        "images": {"min": config.min_listing_images(), "max": config.max_listing_images()},
        "listing_quota": config.listing_quota(),
    }
