import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from photostock.models import Sale, utcnow

logger = logging.getLogger(__name__)


def find_sale(db: Session, image_id: int, transaction_id: str) -> Sale | None:
    return (
        db.query(Sale)
        .filter_by(image_id=image_id, transaction_id=transaction_id)
        .first()
    )


def record_sale(
    db: Session,
    *,
    image_id: int,
    image_name: str,
    price: float,
    buyer_email: str,
    transaction_id: str,
) -> Sale:
    """
    Insert the sale for a transaction, or return the one already recorded.
    Fulfillment may be called more than once for the same checkout.
    """
    exist = db.query(Sale).filter_by(transaction_id=transaction_id).first()
    if exist:
        return exist

    rec = Sale(
        image_id=image_id,
        image_name=image_name,
        price=price,
        buyer_email=buyer_email,
        purchase_time=utcnow(),
        transaction_id=transaction_id,
    )
    db.add(rec)
    try:
        db.commit()
    except IntegrityError:
        # concurrent fulfillment of the same checkout won the insert
        db.rollback()
        return db.query(Sale).filter_by(transaction_id=transaction_id).one()
    db.refresh(rec)
    logger.info("Recorded sale image=%s tx=%s", image_id, transaction_id)
    return rec


def list_sales(db: Session) -> list[Sale]:
    return db.query(Sale).order_by(Sale.purchase_time.desc(), Sale.id.desc()).all()
