"""
Flat Tracker: running-position reconstruction over raw broker fills.

Fills arrive per instrument as an interleaved stream of opening legs (no
realized P&L) and closing legs (realized P&L present).  Walking them in time
order while tracking opened vs closed contracts, a round turn starts at the
first opening leg while flat and ends on the leg that brings the position
back to flat.

Legs are classified one at a time against counters built from every earlier
leg, so a single instrument's stream is processed strictly sequentially.
"""

from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional, Sequence

from src.models.round_turn import ExecutionRecord
from src.pipeline.detectors import RoundTurnDetector
from src.pipeline.partitioner import key_instrument

logger = logging.getLogger(__name__)

__all__ = ["FlatPositionDetector"]


class FlatPositionDetector(RoundTurnDetector):
    """Splits one instrument's fills at the points where the position is flat.

    Parameters
    ----------
    orders_by_id : mapping, optional
        Known broker orders keyed by id.  When given, a fill whose parent
        order is not in the mapping is skipped without touching the
        counters.  When None, no order lookup is performed.
    """

    key_fn = staticmethod(key_instrument)

    def __init__(self, orders_by_id: Optional[Mapping[str, Any]] = None) -> None:
        super().__init__()
        self.orders_by_id = orders_by_id

    def _order_resolves(self, leg: ExecutionRecord) -> bool:
        if self.orders_by_id is None:
            return True
        return leg.source_order_id is not None and leg.source_order_id in self.orders_by_id

    def detect_groups(self, records: Sequence[ExecutionRecord]) -> List[List[ExecutionRecord]]:
        groups: List[List[ExecutionRecord]] = []
        current: List[ExecutionRecord] = []
        opened = 0
        closed = 0

        for leg in records:
            if not self._order_resolves(leg):
                self.skipped_records += 1
                logger.warning(
                    "Skipping fill %s: order %s not found", leg.id, leg.source_order_id,
                )
                continue

            if leg.quantity <= 0:
                self.skipped_records += 1
                logger.warning("Skipping fill %s: non-positive size %s", leg.id, leg.quantity)
                continue

            if not leg.is_closing_leg:
                # Opening or scale-in; the first one while flat starts a round turn
                opened += leg.quantity
                current.append(leg)
                continue

            if opened == 0:
                # Closing fill with nothing open (history starts mid-position)
                self.skipped_records += 1
                logger.warning("Skipping fill %s: closing leg while flat", leg.id)
                continue

            closed += leg.quantity
            current.append(leg)

            if closed >= opened:
                if closed > opened:
                    logger.warning(
                        "Round turn ending at fill %s closed %d of %d opened contracts",
                        leg.id, closed, opened,
                    )
                groups.append(current)
                current = []
                opened = 0
                closed = 0

        if current:
            # Still open at the end of the stream; picked up by a later rebuild
            self.open_positions += 1
            logger.info(
                "Position in %s still open after %d legs (%d opened, %d closed)",
                current[0].instrument_id, len(current), opened, closed,
            )

        return groups
