"""Replay provider: serves raw records captured earlier to a JSON file."""

import logging
from pathlib import Path
from typing import List, Optional

from ..loaders import load_raw_records
from .base import RawProviderRecord

logger = logging.getLogger(__name__)


class ReplayProvider:
    name = "replay"
    is_synthetic = False

    def __init__(self, path: str | Path):
        self.path = Path(path)

    async def fetch(
        self,
        query: str,
        *,
        location: Optional[str] = None,
        max_items: int = 2,
    ) -> List[RawProviderRecord]:
        # The captured response already answers one query; query and
        # max_items are ignored.
        records = load_raw_records(self.path)
        logger.info("Replaying %d raw records from %s", len(records), self.path)
        return records
