"""
Shopping cart held by the ordering client until checkout.
"""
from typing import List, Optional, Union

from schemas import CartItem, CartSnapshot


class Cart:
    def __init__(self, table_number: str = ""):
        self.items: List[CartItem] = []
        self.table_number = table_number

    def _find(self, item_id: Union[int, str]) -> Optional[CartItem]:
        return next((i for i in self.items if str(i.id) == str(item_id)), None)

    def add(self, item: CartItem) -> None:
        """Add a menu item; adding the same menu item again bumps its quantity by one."""
        existing = self._find(item.id)
        if existing:
            existing.quantity += 1
        else:
            self.items.append(item.model_copy(update={"quantity": 1}))

    def update_quantity(self, item_id: Union[int, str], quantity: int) -> None:
        if quantity <= 0:
            self.items = [i for i in self.items if str(i.id) != str(item_id)]
            return
        existing = self._find(item_id)
        if existing:
            existing.quantity = quantity

    def clear(self) -> None:
        self.items = []

    @property
    def total_amount(self) -> float:
        return sum(i.price * i.quantity for i in self.items)

    @property
    def total_items(self) -> int:
        return sum(i.quantity for i in self.items)

    def snapshot(self) -> CartSnapshot:
        return CartSnapshot(
            items=[i.model_copy() for i in self.items],
            total_amount=self.total_amount,
            table_number=self.table_number,
        )
