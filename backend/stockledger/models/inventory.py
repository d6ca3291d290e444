from __future__ import annotations

from ..extensions import db


class Product(db.Model):
    """
    Product master data and the live stock count.

    STOCK: `stock` is a real number so half and quarter packs can be sold.
    It is only ever changed with relative updates (stock = stock + delta),
    never read-modify-write, so concurrent sales serialize on the row lock.

    SKU: unique across every row in the table, archived rows included.
    Archived products keep their SKU because historical sale lines
    still point at them.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("idx_products_category", "category"),
        db.Index("idx_products_stock", "stock"),
    )

    id = db.Column(db.String(32), primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    sku = db.Column(db.String(64), nullable=False, unique=True)
    category = db.Column(db.String(128), nullable=False, default="Uncategorized")

    # Full, half and quarter unit prices (half/quarter optional)
    selling_price = db.Column(db.Float, nullable=False, default=0.0)
    half_price = db.Column(db.Float, nullable=True)
    quarter_price = db.Column(db.Float, nullable=True)
    cost_price = db.Column(db.Float, nullable=False, default=0.0)

    stock = db.Column(db.Float, nullable=False, default=0.0)
    unit = db.Column(db.String(32), nullable=False, default="Pack")
    archived = db.Column(db.Boolean, nullable=False, default=False)

    def __repr__(self) -> str:
        return f"<Product id={self.id!r} sku={self.sku!r} stock={self.stock}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "sku": self.sku,
            "category": self.category,
            "sellingPrice": self.selling_price,
            "halfPrice": self.half_price,
            "quarterPrice": self.quarter_price,
            "costPrice": self.cost_price,
            "stock": self.stock,
            "unit": self.unit,
            "archived": self.archived,
        }
