from sqlalchemy import (
    Column, Integer, String, Float, DateTime,
)
from datetime import datetime, timezone
from photostock.db import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Image(Base):
    __tablename__ = "images"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    price = Column(Float, nullable=False)

    # purchased original: remote http(s) URL, or a path under ASSET_ROOT.
    # Only ever reached through a signed download link.
    url = Column(String, nullable=False)
    content_type = Column(String, nullable=True)

    # public thumbnail / watermarked preview
    preview_url = Column(String, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "price": self.price,
            "previewUrl": self.preview_url,
        }


class Sale(Base):
    """Ledger row for a completed purchase. Written once, never updated."""
    __tablename__ = "sales"

    id = Column(Integer, primary_key=True)
    # no FK: the sale must outlive catalog changes
    image_id = Column(Integer, nullable=False, index=True)
    image_name = Column(String, nullable=False)
    price = Column(Float, nullable=False)
    buyer_email = Column(String, nullable=False)
    purchase_time = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    transaction_id = Column(String, unique=True, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "imageId": self.image_id,
            "imageName": self.image_name,
            "price": self.price,
            "buyerEmail": self.buyer_email,
            "purchaseTime": self.purchase_time.isoformat() if self.purchase_time else None,
            "transactionId": self.transaction_id,
        }
