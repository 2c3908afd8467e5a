from __future__ import annotations

import logging
from typing import Callable, List, Optional, Sequence

from .api import TakealotApi
from .cancel import CancellationToken, check
from .errors import UpstreamFetchError
from .extract import map_detail_row, row_from_listing
from .types import DetailRow, ListingRecord

logger = logging.getLogger(__name__)

ItemProgress = Callable[[int, int], None]


class DetailEnricher:
    """Turns listing records into export rows, one detail request at a time.

    A failed detail request degrades to a row built from the listing record
    (with the record id as sku); only cancellation aborts the batch.
    """

    def __init__(self, api: TakealotApi) -> None:
        self.api = api

    def enrich(self, record: ListingRecord, token: Optional[CancellationToken] = None) -> DetailRow:
        check(token)
        try:
            payload = self.api.get_product(record.id, token=token)
            return map_detail_row(payload)
        except UpstreamFetchError as error:
            logger.warning("Failed to fetch product %s, using view data: %s", record.id, error)
        except (KeyError, IndexError, TypeError, AttributeError) as error:
            logger.warning("Malformed details for product %s, using view data: %r", record.id, error)
        return row_from_listing(record)

    def enrich_all(
        self,
        records: Sequence[ListingRecord],
        token: Optional[CancellationToken] = None,
        on_progress: Optional[ItemProgress] = None,
    ) -> List[DetailRow]:
        rows: List[DetailRow] = []
        total = len(records)
        for index, record in enumerate(records, start=1):
            rows.append(self.enrich(record, token=token))
            if on_progress is not None:
                on_progress(index, total)
        return rows
