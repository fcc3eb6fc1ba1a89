from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from backend.database import get_db
from backend.schemas.settings import AppSettingsUpdate
from backend.services.report_store import load_settings, update_settings

router = APIRouter(prefix="/api/settings", tags=["settings"])


@router.get("")
def get_settings(db: Session = Depends(get_db)):
    return {"statusCode": 200, "message": "Success", "data": load_settings(db)}


@router.put("")
def put_settings(payload: AppSettingsUpdate, db: Session = Depends(get_db)):
    return {"statusCode": 200, "message": "Settings updated", "data": update_settings(db, payload)}
