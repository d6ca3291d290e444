from __future__ import annotations

from ..extensions import db


class Sale(db.Model):
    """
    Completed sale.

    Created together with its lines by record_sale and destroyed together
    with them by void_sale. Never edited in between.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("idx_sales_timestamp", "timestamp"),
    )

    id = db.Column(db.String(32), primary_key=True)
    total = db.Column(db.Float, nullable=False)

    # Creation instant, epoch milliseconds
    timestamp = db.Column(db.BigInteger, nullable=False)

    payment_method = db.Column(db.String(16), nullable=False)

    lines = db.relationship(
        "SaleLine",
        backref=db.backref("sale", lazy=True),
        lazy=True,
        order_by="SaleLine.id",
        passive_deletes=True,
    )

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "total": self.total,
            "timestamp": self.timestamp,
            "paymentMethod": self.payment_method,
        }
        if include_lines:
            data["items"] = [line.to_dict() for line in self.lines]
        return data


class SaleLine(db.Model):
    """
    Line item on a sale.

    name, price and cost_price are the values charged at sale time.
    They are never recomputed from the current product row.
    """
    __tablename__ = "sale_items"
    __table_args__ = (
        db.Index("idx_sale_items_sale_id", "sale_id"),
        db.Index("idx_sale_items_product_id", "product_id"),
    )

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    sale_id = db.Column(db.String(32), db.ForeignKey("sales.id"), nullable=False)
    product_id = db.Column(db.String(32), db.ForeignKey("products.id"), nullable=False)

    name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Float, nullable=False)
    price = db.Column(db.Float, nullable=False)
    cost_price = db.Column(db.Float, nullable=False, default=0.0)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "saleId": self.sale_id,
            "productId": self.product_id,
            "name": self.name,
            "quantity": self.quantity,
            "price": self.price,
            "costPrice": self.cost_price,
        }
