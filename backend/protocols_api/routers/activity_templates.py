"""
Activity template router.

Applying an activity template to a visit lives in the protocol router
(``POST /api/protocols/{id}/visits/{visitId}/apply-activity-template/{templateId}``).
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from protocols_api.dependencies import get_current_principal, get_db, object_id_param
from protocols_api.models.common import envelope
from protocols_api.models.template import ActivityTemplateInput, ActivityTemplateUpdate
from protocols_api.services.activity_template_service import ActivityTemplateService

router = APIRouter(dependencies=[Depends(get_current_principal)])

template_id_param = object_id_param("template_id")


def get_activity_template_service(db: Session = Depends(get_db)) -> ActivityTemplateService:
    return ActivityTemplateService(db)


@router.get("")
def list_activity_templates(service: ActivityTemplateService = Depends(get_activity_template_service)):
    return envelope([t.to_document() for t in service.list_templates()])


@router.get("/{template_id}")
def get_activity_template(
    template_id: str = Depends(template_id_param),
    service: ActivityTemplateService = Depends(get_activity_template_service),
):
    return envelope(service.get_template(template_id).to_document())


@router.post("", status_code=status.HTTP_201_CREATED)
def create_activity_template(
    payload: ActivityTemplateInput,
    service: ActivityTemplateService = Depends(get_activity_template_service),
):
    template = service.create_template(payload)
    return envelope(template.to_document(), "Plantilla creada exitosamente")


@router.put("/{template_id}")
def update_activity_template(
    payload: ActivityTemplateUpdate,
    template_id: str = Depends(template_id_param),
    service: ActivityTemplateService = Depends(get_activity_template_service),
):
    template = service.update_template(template_id, payload)
    return envelope(template.to_document(), "Plantilla actualizada exitosamente")


@router.delete("/{template_id}")
def delete_activity_template(
    template_id: str = Depends(template_id_param),
    service: ActivityTemplateService = Depends(get_activity_template_service),
):
    service.delete_template(template_id)
    return envelope(message="Plantilla eliminada exitosamente")
