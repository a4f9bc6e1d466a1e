from fastapi import APIRouter

from bgremoval.api.v1.endpoints.health import router as health_router
from bgremoval.api.v1.endpoints.image import router as image_router
from bgremoval.api.v1.endpoints.detection import router as detection_router
from bgremoval.api.v1.endpoints.segmentation import router as segmentation_router

router = APIRouter()
router.include_router(health_router, tags=["health"])
router.include_router(image_router, prefix="/image", tags=["image"])
router.include_router(detection_router, prefix="/image", tags=["detection"])
router.include_router(segmentation_router, prefix="/image", tags=["segmentation"])
