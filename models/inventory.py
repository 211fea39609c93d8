"""
Inventory model: item counts per account.
"""

from sqlalchemy import CheckConstraint, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class InventoryItem(Base):
    """How many of one item a user holds."""

    __tablename__ = 'inventory'
    __table_args__ = (
        CheckConstraint('count >= 0', name='ck_inventory_count_nonneg'),
    )

    user_id: Mapped[str] = mapped_column(String(32), ForeignKey('accounts.user_id'), primary_key=True)
    item_key: Mapped[str] = mapped_column(String(50), primary_key=True)  # e.g. 'gloves', 'master_key'
    count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<InventoryItem(user_id='{self.user_id}', item_key='{self.item_key}', count={self.count})>"
