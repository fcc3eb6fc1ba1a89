import json

from backend.database import SessionLocal
from backend.models.biomarker import BiomarkerReference
from backend.seed.marker_catalog import BIOMARKERS


def seed_biomarkers():
    db = SessionLocal()
    try:
        existing = {row.standard_name: row for row in db.query(BiomarkerReference).all()}
        for item in BIOMARKERS:
            aliases = json.dumps(list(item["aliases"]))
            match = existing.get(item["name"])
            if match:
                match.category = item["category"]
                match.common_aliases = aliases
                match.eu_unit = item["eu_unit"]
                match.us_unit = item["us_unit"]
                db.add(match)
                continue

            db.add(
                BiomarkerReference(
                    standard_name=item["name"],
                    category=item["category"],
                    common_aliases=aliases,
                    eu_unit=item["eu_unit"],
                    us_unit=item["us_unit"],
                )
            )
        db.commit()
    finally:
        db.close()
