"""Confidence scoring: classifier confidence plus evidence bonuses, as 0-100."""

import math

from .models import CanonicalManufacturerRecord

FACTORY_BONUS = 10
EQUIPMENT_BONUS = 5
CERTIFICATION_BONUS = 2  # per certification
CONTACT_BONUS = 5
LOCATION_BONUS = 5


def score_record(record: CanonicalManufacturerRecord, classification_confidence: float) -> int:
    score = classification_confidence * 100

    factory = record.factory_info
    if factory is not None and factory.has_factory:
        score += FACTORY_BONUS
    if factory is not None and factory.production_equipment:
        score += EQUIPMENT_BONUS

    score += CERTIFICATION_BONUS * len(record.certifications)

    if record.contact.phone and record.contact.email:
        score += CONTACT_BONUS

    location = record.location
    if location.address and location.city and location.province:
        score += LOCATION_BONUS

    # Half-up rounding, not banker's.
    return max(0, min(100, math.floor(score + 0.5)))
