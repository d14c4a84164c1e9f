import logging

from fastapi import (
    FastAPI, Depends, Request, HTTPException, Body
)
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from photostock.auth import verify_api_token
from photostock.config import BASE_URL, DOWNLOAD_LINK_TTL, LOG_LEVEL, require_download_secret
from photostock.db import init_db, get_db
from photostock.ledger import find_sale, record_sale, list_sales
from photostock.models import Image
from photostock.origin import AssetOrigin, AssetFetchError
from photostock.payments import StripeGateway, PaymentError
from photostock.utils import LinkSigner

# =========================
# Logging
# =========================
logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s [%(levelname)s %(name)s] %(message)s"
)
logger = logging.getLogger("photostock")

# =========================
# FastAPI
# =========================
app = FastAPI(title="Photostock")

INVALID_LINK = "Invalid or expired link"


# =========================
# Startup
# =========================
@app.on_event("startup")
def startup():
    # no secret, no service
    app.state.signer = LinkSigner(require_download_secret())
    app.state.origin = AssetOrigin()
    app.state.gateway = StripeGateway()
    init_db()


# =========================
# Dependencies
# =========================
def get_signer(request: Request) -> LinkSigner:
    return request.app.state.signer


def get_origin(request: Request) -> AssetOrigin:
    return request.app.state.origin


def get_gateway(request: Request) -> StripeGateway:
    return request.app.state.gateway


# =========================
# Helpers
# =========================
def download_path(image_id: int) -> str:
    return f"/api/download/{image_id}"


def received_path(request: Request) -> str:
    """path + query exactly as the server received them"""
    raw = request.scope.get("raw_path")
    path = raw.split(b"?", 1)[0].decode("latin-1") if raw else request.url.path
    query = request.scope.get("query_string", b"").decode("latin-1")
    return f"{path}?{query}" if query else path


# =========================
# Catalog
# =========================
@app.get("/api/images")
def api_images(db: Session = Depends(get_db)):
    images = db.query(Image).order_by(Image.id).all()
    return {"data": [i.to_dict() for i in images]}


# =========================
# Checkout / fulfillment
# =========================
@app.post("/api/create-checkout-session")
def api_create_checkout_session(
    image_id: int = Body(..., alias="imageId"),
    buyer_email: str = Body(..., alias="buyerEmail"),
    db: Session = Depends(get_db),
    gateway: StripeGateway = Depends(get_gateway),
):
    image = db.query(Image).filter_by(id=image_id).first()
    if not image:
        raise HTTPException(404, "Image not found.")
    try:
        session_id = gateway.create_checkout_session(image, buyer_email)
    except PaymentError:
        raise HTTPException(502, "Payment provider unavailable")
    return {"id": session_id}


@app.post("/api/fulfill-order")
def api_fulfill_order(
    session_id: str = Body(..., alias="sessionId", embed=True),
    db: Session = Depends(get_db),
    gateway: StripeGateway = Depends(get_gateway),
    signer: LinkSigner = Depends(get_signer),
):
    try:
        session = gateway.retrieve_session(session_id)
    except PaymentError:
        raise HTTPException(502, "Payment provider unavailable")

    if not session["paid"] or not session["transaction_id"] or session["image_id"] is None:
        return JSONResponse({"success": False, "message": "Payment not successful."}, status_code=400)

    sale = record_sale(
        db,
        image_id=session["image_id"],
        image_name=session["image_name"] or "",
        price=session["price"],
        buyer_email=session["buyer_email"] or "",
        transaction_id=session["transaction_id"],
    )

    image = db.query(Image).filter_by(id=sale.image_id).first()
    if not image:
        raise HTTPException(404, "Image not found for fulfillment.")

    link = signer.sign(
        download_path(image.id),
        {"tx": sale.transaction_id},
        lifetime=DOWNLOAD_LINK_TTL,
    )
    return {
        "success": True,
        "downloadUrl": f"{BASE_URL}{link}",
        "imageName": sale.image_name or image.name,
        "expiresIn": DOWNLOAD_LINK_TTL,
    }


# =========================
# Public Download: signed link + ledger
# =========================
@app.get("/api/download/{image_id}")
async def api_download(
    image_id: int,
    request: Request,
    db: Session = Depends(get_db),
    signer: LinkSigner = Depends(get_signer),
    origin: AssetOrigin = Depends(get_origin),
):
    tx = request.query_params.get("tx")
    if not tx:
        logger.info("Download rejected image=%s: missing tx", image_id)
        raise HTTPException(401, "Missing transaction id")

    if not signer.verify(received_path(request)):
        logger.info("Download rejected image=%s: bad or expired link", image_id)
        raise HTTPException(403, INVALID_LINK)

    if not find_sale(db, image_id, tx):
        logger.info("Download rejected image=%s: no sale for tx", image_id)
        raise HTTPException(403, "Unauthorized download")

    image = db.query(Image).filter_by(id=image_id).first()
    if not image:
        raise HTTPException(404, "Image not found")

    try:
        return await origin.stream(image, request.headers.get("range"))
    except AssetFetchError as e:
        logger.warning("Asset fetch failed: %s", e)
        raise HTTPException(502, "Asset unavailable")


# =========================
# Admin
# =========================
@app.get("/api/sales")
def api_sales(
    db: Session = Depends(get_db),
    _: None = Depends(verify_api_token)
):
    return {"data": [s.to_dict() for s in list_sales(db)]}


# =========================
# Health
# =========================
@app.get("/api/ping")
def ping():
    return JSONResponse({"ok": True})
