from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from app.core.constants import ERROR_MESSAGES, SUCCESS_MESSAGES
from app.core.exceptions import NotFoundError, ValidationError
from app.core.logger import logger
from app.core.security import authenticate
from app.core.validation import is_valid_uuid, sanitize_string
from app.models.auth import Principal
from app.models.service import ServiceCreate, ServiceUpdate
from app.services.db_service import db_service
from app.utils.helpers import create_response, utc_now_iso

router = APIRouter(prefix="/services")

SERVICE_REQUIRED_FIELDS = ["name", "category_id", "base_price"]


def _ensure_uuid(value: str, field: str = "id") -> None:
    if not is_valid_uuid(value):
        raise ValidationError(ERROR_MESSAGES["INVALID_SERVICE_ID"], field=field)


@router.get("")
async def list_services():
    categories = await db_service.list_service_categories()
    # Categories whose services are all inactive are left out
    return create_response(data=[category for category in categories if category.get("services")])


@router.get("/category/{category_id}")
async def list_services_by_category(category_id: str):
    _ensure_uuid(category_id, field="category_id")
    return create_response(data=await db_service.list_services_by_category(category_id))


@router.get("/{service_id}")
async def get_service(service_id: str):
    _ensure_uuid(service_id)
    service = await db_service.get_service(service_id)
    if not service:
        raise NotFoundError(ERROR_MESSAGES["SERVICE_NOT_FOUND"], resource_id=service_id)
    return create_response(data=service)


@router.post("", status_code=201)
async def create_service(req: ServiceCreate, user: Principal = Depends(authenticate)):
    payload = req.model_dump()
    missing = [field for field in SERVICE_REQUIRED_FIELDS if payload.get(field) in (None, "")]
    if missing:
        raise ValidationError(ERROR_MESSAGES["INCOMPLETE_DATA"], field=missing[0], required=SERVICE_REQUIRED_FIELDS)
    _ensure_uuid(req.category_id, field="category_id")

    service = await db_service.create_service(
        {
            "name": sanitize_string(req.name),
            "description": sanitize_string(req.description or ""),
            "base_price": req.base_price,
            "category_id": req.category_id,
            "display_order": req.display_order or 0,
            "is_active": True,
        }
    )
    logger.info(f"🆕 Service '{req.name}' created by {user.username}")
    return JSONResponse(status_code=201, content=create_response(data=service))


@router.put("/{service_id}")
async def update_service(service_id: str, req: ServiceUpdate, user: Principal = Depends(authenticate)):
    _ensure_uuid(service_id)
    if req.category_id is not None:
        _ensure_uuid(req.category_id, field="category_id")
    changes = {
        field: sanitize_string(value)
        for field, value in req.model_dump(exclude_unset=True).items()
        if value is not None
    }
    changes["updated_at"] = utc_now_iso()

    service = await db_service.update_service(service_id, changes)
    if not service:
        raise NotFoundError(ERROR_MESSAGES["SERVICE_NOT_FOUND"], resource_id=service_id)
    return create_response(data=service)


@router.delete("/{service_id}")
async def delete_service(service_id: str, user: Principal = Depends(authenticate)):
    _ensure_uuid(service_id)
    service = await db_service.update_service(service_id, {"is_active": False, "updated_at": utc_now_iso()})
    if not service:
        raise NotFoundError(ERROR_MESSAGES["SERVICE_NOT_FOUND"], resource_id=service_id)
    logger.info(f"🗑️ Service {service_id} deactivated by {user.username}")
    return create_response(message=SUCCESS_MESSAGES["SERVICE_DELETED"])
