from fastapi import APIRouter

from app.api.modules.v1.waitlist.routes import waitlist_router

router = APIRouter(prefix="/v1")
router.include_router(waitlist_router)
