"""
Template router: template CRUD and template activity CRUD.
"""

from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, Query, status
from sqlalchemy.orm import Session

from protocols_api.config import settings
from protocols_api.dependencies import get_current_principal, get_db, object_id_param
from protocols_api.models.common import envelope, page_body
from protocols_api.models.fields import parse_field_definition
from protocols_api.models.template import TemplateInput, TemplateUpdate
from protocols_api.services.template_service import TemplateService

router = APIRouter(dependencies=[Depends(get_current_principal)])

template_id_param = object_id_param("template_id")
activity_id_param = object_id_param("activity_id")


def get_template_service(db: Session = Depends(get_db)) -> TemplateService:
    return TemplateService(db)


@router.get("")
def list_templates(
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size, alias="pageSize"),
    service: TemplateService = Depends(get_template_service),
):
    templates, total = service.list_templates(page=page, page_size=page_size)
    return page_body([t.to_document() for t in templates], total, page, page_size)


@router.get("/{template_id}")
def get_template(
    template_id: str = Depends(template_id_param),
    service: TemplateService = Depends(get_template_service),
):
    return envelope(service.get_template(template_id).to_document())


@router.post("", status_code=status.HTTP_201_CREATED)
def create_template(
    payload: TemplateInput,
    service: TemplateService = Depends(get_template_service),
):
    template = service.create_template(payload)
    return envelope(template.to_document(), "Plantilla creada exitosamente")


@router.put("/{template_id}")
def update_template(
    payload: TemplateUpdate,
    template_id: str = Depends(template_id_param),
    service: TemplateService = Depends(get_template_service),
):
    template = service.update_template(template_id, payload)
    return envelope(template.to_document(), "Plantilla actualizada exitosamente")


@router.delete("/{template_id}")
def delete_template(
    template_id: str = Depends(template_id_param),
    service: TemplateService = Depends(get_template_service),
):
    service.delete_template(template_id)
    return envelope(message="Plantilla eliminada exitosamente")


@router.post("/{template_id}/activities", status_code=status.HTTP_201_CREATED)
def add_template_activity(
    payload: Dict[str, Any] = Body(...),
    template_id: str = Depends(template_id_param),
    service: TemplateService = Depends(get_template_service),
):
    service.add_activity(template_id, parse_field_definition(payload))
    template = service.get_template(template_id)
    return envelope(template.to_document(), "Actividad agregada exitosamente")


@router.put("/{template_id}/activities/{activity_id}")
def update_template_activity(
    payload: Dict[str, Any] = Body(...),
    template_id: str = Depends(template_id_param),
    activity_id: str = Depends(activity_id_param),
    service: TemplateService = Depends(get_template_service),
):
    service.update_activity(template_id, activity_id, parse_field_definition(payload))
    template = service.get_template(template_id)
    return envelope(template.to_document(), "Actividad actualizada exitosamente")


@router.delete("/{template_id}/activities/{activity_id}")
def delete_template_activity(
    template_id: str = Depends(template_id_param),
    activity_id: str = Depends(activity_id_param),
    service: TemplateService = Depends(get_template_service),
):
    service.delete_activity(template_id, activity_id)
    template = service.get_template(template_id)
    return envelope(template.to_document(), "Actividad eliminada exitosamente")
