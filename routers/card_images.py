from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse

from core.config import logger
from utils.card_images import ingest, is_valid_order_id
from utils.storage import ObjectStore, get_object_store

router = APIRouter(prefix="/api", tags=["card-images"])


@router.post("/upload-images")
async def upload_images(
    payload=Body(None),
    store: ObjectStore = Depends(get_object_store),
):
    """
    Store card images for an order and return their public URLs.

    Request JSON:
    {
      "images": ["data:image/png;base64,...", "https://already.hosted/card.png"],
      "orderId": "ord_123",
      "shippingAddress": { "country": "US", "postal_code": "94107" }   // optional
    }

    Response: { "success": true, "imageUrls": [...], "uploadedCount": 2, "totalCount": 2 }
    """
    if not isinstance(payload, dict):
        return JSONResponse({"error": "Images array is required"}, status_code=400)

    images = payload.get("images")
    order_id = str(payload.get("orderId") or "").strip()
    shipping_address = payload.get("shippingAddress")

    if not isinstance(images, list) or not images:
        return JSONResponse({"error": "Images array is required"}, status_code=400)
    if not order_id:
        return JSONResponse({"error": "Order ID is required"}, status_code=400)
    if not is_valid_order_id(order_id):
        return JSONResponse({"error": "Invalid order ID"}, status_code=400)

    try:
        report = await ingest(images, order_id, shipping_address, store)
    except Exception as ex:
        logger.exception(f"[card-images] upload failed for order {order_id}")
        return JSONResponse({"error": "Failed to upload images", "message": str(ex)}, status_code=500)

    if not report.ok:
        return JSONResponse({"error": "Failed to upload any images"}, status_code=500)

    return {
        "success": True,
        "imageUrls": report.urls,
        "uploadedCount": report.uploaded_count,
        "totalCount": report.total_count,
    }
