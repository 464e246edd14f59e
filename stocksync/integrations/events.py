"""
Internal event carried from the webhook boundary into the sync coordinator.

A StockChangeEvent says that one item in one store now holds a new quantity.
The coordinator uses it both for the local apply and for deciding whether to
fan the value out to the other members of the item's mapping.
"""

from datetime import datetime

from pydantic import BaseModel

from stocksync.core.enums import ItemKind


class StockChangeEvent(BaseModel):
    store_id: int
    kind: ItemKind
    remote_id: int
    new_quantity: int
    timestamp: datetime

    @property
    def is_variation(self) -> bool:
        return self.kind == ItemKind.VARIATION
