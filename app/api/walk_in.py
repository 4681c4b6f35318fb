from fastapi import APIRouter

from app.database.serializers import to_jsonable
from app.models.models import WalkInCheckin
from app.services import walk_in as walk_in_service

router = APIRouter()


@router.post("/walk-in/checkin", status_code=201, tags=["walk-in"])  # /api/walk-in/checkin
def checkin(body: WalkInCheckin):
    """Public: a walk-in customer registers by scanning the QR code on a port."""
    return to_jsonable(walk_in_service.qr_checkin(body))
