import hmac
from datetime import datetime

from fastapi import APIRouter, Depends, Header, HTTPException, Request, Response
from loguru import logger
from twilio.request_validator import RequestValidator

from app.deps import Services, get_services

router = APIRouter()


def _webhook_url(request: Request, public_base_url: str) -> str:
    if public_base_url:
        return public_base_url.rstrip("/") + request.url.path
    return str(request.url)


@router.get("/")
def health():
    return {
        "status": "ok",
        "service": "Ordenate Backend",
        "timestamp": datetime.now().isoformat(),
    }


@router.post("/webhook")
async def webhook(
    request: Request,
    services: Services = Depends(get_services),
    x_twilio_signature: str | None = Header(default=None),
):
    form = await request.form()

    settings = services.settings
    if settings.verify_twilio_signature:
        validator = RequestValidator(settings.twilio_auth_token)
        url = _webhook_url(request, settings.public_base_url)
        # Signed over every value of repeated fields, not a flattened dict
        if not validator.validate(url, form, x_twilio_signature or ""):
            logger.warning("Rejected webhook call with a bad Twilio signature")
            raise HTTPException(status_code=403, detail="Invalid signature")

    params = {key: str(value) for key, value in form.items()}

    sender = params.get("From", "").replace("whatsapp:", "").strip()
    body = params.get("Body", "")
    if not sender:
        logger.warning("Webhook call without a sender: {}", params)
        return Response(status_code=200)

    logger.info("Message from {}: {}", sender, body)
    try:
        outbox = await services.router.handle(sender, body)
        await services.dispatcher.dispatch(outbox)
    except Exception:
        # Twilio retries on non-2xx, which would replay the message
        logger.exception("Webhook handling failed for {}", sender)
    return Response(status_code=200)


@router.post("/cron/reminders")
async def run_reminders(
    services: Services = Depends(get_services),
    x_cron_secret: str | None = Header(default=None),
):
    secret = services.settings.cron_secret
    if not secret or not x_cron_secret or not hmac.compare_digest(secret, x_cron_secret):
        raise HTTPException(status_code=401, detail="Unauthorized")

    result = await services.reminders.run()
    return {"day": result.day.isoformat(), "notified": result.notified, "errors": result.errors}
