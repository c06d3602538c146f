"""
Cancellation reason categories and their follow-up evidence thresholds.

The catalog is reference data owned outside this app; it is loaded from the
JSON file named by CANCEL_REASON_CATALOG_PATH and passed explicitly into the
eligibility evaluator.
"""
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from django.conf import settings

from cancellations.services.errors import Shortfall

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReasonCategory:
    """A cancellation reason and the minimum follow-up it requires."""

    id: str
    label: str
    requires_follow_up: bool = False
    min_phone_calls: int = 0
    min_sms: int = 0

    def evidence_shortfalls(self, phone_calls: int, sms_count: int) -> List[Shortfall]:
        """
        Compare submitted follow-up counters against this category's minimums.

        Returns:
            One Shortfall per unmet minimum, empty when the evidence suffices
        """
        if not self.requires_follow_up:
            return []

        shortfalls = []
        if phone_calls < self.min_phone_calls:
            shortfalls.append(Shortfall(
                requirement='phone_calls',
                message=f"requires at least {self.min_phone_calls} phone contacts, has {phone_calls}",
                required=self.min_phone_calls,
                actual=phone_calls,
            ))
        if sms_count < self.min_sms:
            shortfalls.append(Shortfall(
                requirement='sms',
                message=f"requires at least {self.min_sms} SMS contacts, has {sms_count}",
                required=self.min_sms,
                actual=sms_count,
            ))
        return shortfalls


class ReasonCatalog:
    """Lookup of reason categories by id."""

    def __init__(self, categories: Dict[str, ReasonCategory]):
        self._categories = dict(categories)

    def __contains__(self, category_id):
        return category_id in self._categories

    def __len__(self):
        return len(self._categories)

    def get(self, category_id: str) -> Optional[ReasonCategory]:
        return self._categories.get(category_id)

    def all(self) -> List[ReasonCategory]:
        return list(self._categories.values())

    @classmethod
    def from_dict(cls, data: dict) -> 'ReasonCatalog':
        categories = {}
        for category_id, rules in data.items():
            categories[category_id] = ReasonCategory(
                id=category_id,
                label=rules.get('label', category_id),
                requires_follow_up=bool(rules.get('requires_follow_up', False)),
                min_phone_calls=int(rules.get('min_phone_calls', 0)),
                min_sms=int(rules.get('min_sms', 0)),
            )
        return cls(categories)


def load_reason_catalog(path: Optional[str] = None) -> ReasonCatalog:
    """
    Load the reason catalog configuration.

    Args:
        path: JSON file to read, defaults to settings.CANCEL_REASON_CATALOG_PATH

    Returns:
        ReasonCatalog, empty when the file is missing or unreadable
    """
    catalog_path = Path(path or settings.CANCEL_REASON_CATALOG_PATH)

    if not catalog_path.exists():
        logger.warning(f"Reason catalog file not found: {catalog_path}")
        return ReasonCatalog({})

    try:
        with open(catalog_path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        logger.error(f"Error loading reason catalog: {e}")
        return ReasonCatalog({})

    catalog = ReasonCatalog.from_dict(data)
    logger.debug(f"Loaded {len(catalog)} cancellation reason categories")
    return catalog
