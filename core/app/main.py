"""Main application entry point for the Receipt Vault service.

This module initializes the FastAPI application and defines the receipt
endpoints used by the loan backend:

    - POST /receipts/{loan_id}: seal an uploaded payment proof and store it.
    - GET  /receipts/{loan_id}: open the latest stored receipt for a loan.

Callers are expected to have been authorized upstream.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from urllib.parse import quote

from fastapi import Depends, FastAPI, File, HTTPException, Request, Response, UploadFile, status

# Local imports
from app.config import settings
from app.policy import policy
from app.dbconnect import close_mongo_connection, connect_to_mongo, get_database, receipts_of
from engines.envelope import ReceiptEnvelope
from engines.errors import KeyGenerationError, ReceiptKeyError, ReceiptUnreadableError, ReceiptVaultError
from engines.instances import ServiceRegistry, initialize_services

# Setup Logger
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("receipt_vault.api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manages application lifecycle resources.

    - **Startup**: Loads the key pair, builds the envelope service and opens
      the database connection. A key material failure aborts startup.
    - **Shutdown**: Closes the database pool.
    """
    logger.info("🚀 Receipt Vault starting up...")
    app.state.services = initialize_services()
    await connect_to_mongo()

    yield

    logger.info("🛑 Receipt Vault shutting down...")
    await close_mongo_connection()


app = FastAPI(
    title=settings.PROJECT_NAME,
    version="1.0.0",
    lifespan=lifespan
)


def get_services(request: Request) -> ServiceRegistry:
    """Dependency returning the registry built at startup."""
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Receipt services are not initialized.",
        )
    return services


def content_disposition(filename: str) -> str:
    """Builds an attachment header that survives latin-1 header encoding.

    Non-ASCII names (e.g. Thai receipt names) are sent RFC 5987 encoded,
    the same way Starlette's `FileResponse` does.
    """
    quoted = quote(filename)
    if quoted != filename:
        return f"attachment; filename*=utf-8''{quoted}"
    return f'attachment; filename="{filename}"'


@app.get("/health")
async def health_check():
    """Returns the operational status of the service."""
    return {"status": "ok", "timestamp": datetime.now(timezone.utc)}


@app.post("/receipts/{loan_id}")
async def upload_receipt(
    loan_id: int,
    receipt: UploadFile = File(...),
    services: ServiceRegistry = Depends(get_services),
    database=Depends(get_database),
):
    """Seals a payment receipt and stores it against a loan.

    Steps:
    1. **Size Check**: Rejects files above `policy.max_receipt_size_bytes`.
    2. **Seal**: Encrypts the file under a fresh key and wraps the key (CPU-bound).
    3. **Store**: Inserts the payment record with both ciphertexts.
    """
    logger.info(f"📥 Receiving receipt for loan {loan_id}")

    content = await receipt.read()
    if len(content) > policy.max_receipt_size_bytes:
        logger.warning(f"⚠️ Receipt rejected (Size: {len(content)} bytes)")
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File too large. Maximum limit is {policy.max_receipt_size_bytes // (1024*1024)}MB.",
        )

    try:
        envelope = await asyncio.to_thread(services.envelope.seal, content)
    except KeyGenerationError:
        logger.error(f"❌ Key generation failed while sealing receipt for loan {loan_id}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error generating receipt key",
        )
    except ReceiptVaultError as e:
        logger.error(f"❌ Sealing failed for loan {loan_id}: {type(e).__name__}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error encrypting receipt",
        )

    payment_doc = {
        "loan_id": loan_id,
        **envelope.to_record(),
        "filename": receipt.filename,
        "size": len(content),
        "checked_status": "waiting",
        "uploaded_at": datetime.now(timezone.utc),
    }
    result = await receipts_of(database).insert_one(payment_doc)

    logger.info(f"🎉 Receipt sealed. Payment ID: {result.inserted_id}")
    return {
        "status": "success",
        "payment_id": str(result.inserted_id),
        "message": "Payment inserted and receipt encrypted successfully",
    }


@app.get("/receipts/{loan_id}")
async def retrieve_receipt(
    loan_id: int,
    services: ServiceRegistry = Depends(get_services),
    database=Depends(get_database),
):
    """Opens the most recent receipt stored for a loan.

    Returns:
        Response: The decrypted receipt as `application/octet-stream`.
    """
    logger.info(f"Received request to decrypt receipt for loan {loan_id}")

    payment_doc = await receipts_of(database).find_one(
        {"loan_id": loan_id}, sort=[("uploaded_at", -1)]
    )
    if not payment_doc:
        raise HTTPException(status_code=404, detail="No receipt found for the given loan")

    try:
        envelope = ReceiptEnvelope.from_record(payment_doc)
        clean_bytes = await asyncio.to_thread(services.envelope.open, envelope)
    except ReceiptUnreadableError:
        logger.critical(f"Integrity Error: Receipt for loan {loan_id} is unreadable")
        raise HTTPException(status_code=500, detail="Receipt unreadable")
    except ReceiptKeyError:
        logger.critical(f"Key Error: Receipt key for loan {loan_id} is unrecoverable")
        raise HTTPException(status_code=500, detail="Receipt key unrecoverable")

    headers = {}
    if payment_doc.get("filename"):
        headers["Content-Disposition"] = content_disposition(payment_doc["filename"])

    return Response(
        content=clean_bytes,
        media_type="application/octet-stream",
        headers=headers,
    )
