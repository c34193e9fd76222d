"""
Protocol router: protocols, visits, activities, clinical rules, template
import and clinical history generation.

All endpoints require authentication; deleting a protocol requires the admin
role. Mutations answer with the whole protocol document as stored.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query, status
from fastapi.responses import Response
from sqlalchemy.orm import Session

from protocols_api.config import settings
from protocols_api.dependencies import (
    get_current_principal,
    get_db,
    object_id_param,
    require_admin,
)
from protocols_api.errors import NotFoundError
from protocols_api.models.clinical_history import ClinicalHistoryRequest
from protocols_api.models.common import envelope, page_body
from protocols_api.models.fields import parse_field_definition
from protocols_api.models.protocol import (
    ActivitiesOrderRequest,
    ImportTemplateRequest,
    ProtocolCreate,
    ProtocolStatus,
    ProtocolUpdate,
    RulesOrderRequest,
    VisitInput,
    VisitUpdate,
    VisitsOrderRequest,
)
from protocols_api.models.rules import ClinicalRuleInput
from protocols_api.models.user import Principal
from protocols_api.services.auth_service import AuthService
from protocols_api.services.clinical_history import ClinicalHistoryService
from protocols_api.services.protocol_service import ProtocolService, import_message

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(get_current_principal)])

protocol_id_param = object_id_param("protocol_id")
visit_id_param = object_id_param("visit_id")
activity_id_param = object_id_param("activity_id")
rule_id_param = object_id_param("rule_id")
template_id_param = object_id_param("template_id")


def get_protocol_service(db: Session = Depends(get_db)) -> ProtocolService:
    return ProtocolService(db)


def get_clinical_history_service(db: Session = Depends(get_db)) -> ClinicalHistoryService:
    return ClinicalHistoryService(db)


# =============================================================================
# Protocols
# =============================================================================

@router.get("")
def list_protocols(
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size, alias="pageSize"),
    protocol_status: Optional[ProtocolStatus] = Query(None, alias="status"),
    service: ProtocolService = Depends(get_protocol_service),
):
    """List protocols, newest first."""
    status_value = protocol_status.value if protocol_status else None
    protocols, total = service.list_protocols(page=page, page_size=page_size, status=status_value)
    return page_body([p.to_document() for p in protocols], total, page, page_size)


@router.get("/{protocol_id}")
def get_protocol(
    protocol_id: str = Depends(protocol_id_param),
    service: ProtocolService = Depends(get_protocol_service),
):
    return envelope(service.get_protocol(protocol_id).to_document())


@router.post("", status_code=status.HTTP_201_CREATED)
def create_protocol(
    payload: ProtocolCreate,
    service: ProtocolService = Depends(get_protocol_service),
):
    protocol = service.create_protocol(payload)
    return envelope(protocol.to_document(), "Protocolo creado exitosamente")


@router.put("/{protocol_id}")
def update_protocol(
    payload: ProtocolUpdate,
    protocol_id: str = Depends(protocol_id_param),
    service: ProtocolService = Depends(get_protocol_service),
):
    protocol = service.update_protocol(protocol_id, payload)
    return envelope(protocol.to_document(), "Protocolo actualizado exitosamente")


@router.delete("/{protocol_id}", dependencies=[Depends(require_admin)])
def delete_protocol(
    protocol_id: str = Depends(protocol_id_param),
    service: ProtocolService = Depends(get_protocol_service),
):
    service.delete_protocol(protocol_id)
    return envelope(message="Protocolo eliminado exitosamente")


# =============================================================================
# Visits
# =============================================================================

@router.post("/{protocol_id}/visits", status_code=status.HTTP_201_CREATED)
def add_visit(
    payload: VisitInput,
    protocol_id: str = Depends(protocol_id_param),
    service: ProtocolService = Depends(get_protocol_service),
):
    """Add a visit; the basic visit template is imported into it."""
    protocol, _ = service.add_visit(protocol_id, payload)
    return envelope(
        protocol.to_document(),
        "Visita agregada exitosamente con la plantilla básica incluida",
    )


@router.put("/{protocol_id}/visits/order")
def reorder_visits(
    payload: VisitsOrderRequest,
    protocol_id: str = Depends(protocol_id_param),
    service: ProtocolService = Depends(get_protocol_service),
):
    protocol = service.reorder_visits(protocol_id, payload.visits_order)
    return envelope(protocol.to_document(), "Orden de visitas actualizado exitosamente")


@router.put("/{protocol_id}/visits/{visit_id}")
def update_visit(
    payload: VisitUpdate,
    protocol_id: str = Depends(protocol_id_param),
    visit_id: str = Depends(visit_id_param),
    service: ProtocolService = Depends(get_protocol_service),
):
    protocol = service.update_visit(protocol_id, visit_id, payload)
    return envelope(protocol.to_document(), "Visita actualizada exitosamente")


@router.delete("/{protocol_id}/visits/{visit_id}")
def delete_visit(
    protocol_id: str = Depends(protocol_id_param),
    visit_id: str = Depends(visit_id_param),
    service: ProtocolService = Depends(get_protocol_service),
):
    protocol = service.delete_visit(protocol_id, visit_id)
    return envelope(protocol.to_document(), "Visita eliminada exitosamente")


# =============================================================================
# Activities
# =============================================================================

@router.post("/{protocol_id}/visits/{visit_id}/activities", status_code=status.HTTP_201_CREATED)
def add_activity(
    payload: Dict[str, Any] = Body(...),
    protocol_id: str = Depends(protocol_id_param),
    visit_id: str = Depends(visit_id_param),
    service: ProtocolService = Depends(get_protocol_service),
):
    activity = parse_field_definition(payload)
    protocol, _ = service.add_activity(protocol_id, visit_id, activity)
    return envelope(protocol.to_document(), "Actividad agregada exitosamente")


@router.put("/{protocol_id}/visits/{visit_id}/activities/order")
def reorder_activities(
    payload: ActivitiesOrderRequest,
    protocol_id: str = Depends(protocol_id_param),
    visit_id: str = Depends(visit_id_param),
    service: ProtocolService = Depends(get_protocol_service),
):
    protocol = service.reorder_activities(protocol_id, visit_id, payload.activities_order)
    return envelope(protocol.to_document(), "Orden de actividades actualizado exitosamente")


@router.put("/{protocol_id}/visits/{visit_id}/activities/{activity_id}")
def update_activity(
    payload: Dict[str, Any] = Body(...),
    protocol_id: str = Depends(protocol_id_param),
    visit_id: str = Depends(visit_id_param),
    activity_id: str = Depends(activity_id_param),
    service: ProtocolService = Depends(get_protocol_service),
):
    activity = parse_field_definition(payload)
    protocol, _ = service.update_activity(protocol_id, visit_id, activity_id, activity)
    return envelope(protocol.to_document(), "Actividad actualizada exitosamente")


@router.delete("/{protocol_id}/visits/{visit_id}/activities/{activity_id}")
def delete_activity(
    protocol_id: str = Depends(protocol_id_param),
    visit_id: str = Depends(visit_id_param),
    activity_id: str = Depends(activity_id_param),
    service: ProtocolService = Depends(get_protocol_service),
):
    protocol = service.delete_activity(protocol_id, visit_id, activity_id)
    return envelope(protocol.to_document(), "Actividad eliminada exitosamente")


# =============================================================================
# Templates applied to visits
# =============================================================================

@router.post("/{protocol_id}/visits/{visit_id}/import-template")
def import_template(
    payload: ImportTemplateRequest,
    protocol_id: str = Depends(protocol_id_param),
    visit_id: str = Depends(visit_id_param),
    service: ProtocolService = Depends(get_protocol_service),
):
    protocol, result, template_name = service.import_template(protocol_id, visit_id, payload.template_id)
    return envelope(protocol.to_document(), import_message(template_name, result))


@router.post("/{protocol_id}/visits/{visit_id}/apply-activity-template/{template_id}")
def apply_activity_template(
    protocol_id: str = Depends(protocol_id_param),
    visit_id: str = Depends(visit_id_param),
    template_id: str = Depends(template_id_param),
    service: ProtocolService = Depends(get_protocol_service),
):
    protocol, result, _ = service.apply_activity_template(protocol_id, visit_id, template_id)
    return envelope(
        protocol.to_document(),
        f"Plantilla aplicada exitosamente. Se agregaron {len(result.added)} actividades.",
    )


# =============================================================================
# Clinical history
# =============================================================================

@router.post("/{protocol_id}/visits/{visit_id}/preview-clinical-history")
def preview_clinical_history(
    payload: ClinicalHistoryRequest,
    protocol_id: str = Depends(protocol_id_param),
    visit_id: str = Depends(visit_id_param),
    service: ClinicalHistoryService = Depends(get_clinical_history_service),
):
    text = service.preview(protocol_id, visit_id, payload.visit_data)
    return envelope({"text": text})


@router.post("/{protocol_id}/visits/{visit_id}/generate-clinical-history")
def generate_clinical_history(
    payload: ClinicalHistoryRequest,
    protocol_id: str = Depends(protocol_id_param),
    visit_id: str = Depends(visit_id_param),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    service: ClinicalHistoryService = Depends(get_clinical_history_service),
):
    """Generate the clinical history PDF, signed by the calling physician."""
    try:
        physician = AuthService(db).get_user(principal.user_id)
    except NotFoundError:
        physician = None

    pdf_bytes, filename = service.generate_pdf(protocol_id, visit_id, payload.visit_data, physician)
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# =============================================================================
# Clinical rules
# =============================================================================

@router.post("/{protocol_id}/clinical-rules", status_code=status.HTTP_201_CREATED)
def add_clinical_rule(
    payload: ClinicalRuleInput,
    protocol_id: str = Depends(protocol_id_param),
    service: ProtocolService = Depends(get_protocol_service),
):
    protocol, _ = service.add_rule(protocol_id, payload)
    return envelope(protocol.to_document(), "Regla clínica agregada exitosamente")


@router.put("/{protocol_id}/clinical-rules/order")
def reorder_clinical_rules(
    payload: RulesOrderRequest,
    protocol_id: str = Depends(protocol_id_param),
    service: ProtocolService = Depends(get_protocol_service),
):
    protocol = service.reorder_rules(protocol_id, payload.rules_order)
    return envelope(protocol.to_document(), "Orden de reglas actualizado exitosamente")


@router.put("/{protocol_id}/clinical-rules/{rule_id}")
def update_clinical_rule(
    payload: ClinicalRuleInput,
    protocol_id: str = Depends(protocol_id_param),
    rule_id: str = Depends(rule_id_param),
    service: ProtocolService = Depends(get_protocol_service),
):
    protocol, _ = service.update_rule(protocol_id, rule_id, payload)
    return envelope(protocol.to_document(), "Regla clínica actualizada exitosamente")


@router.delete("/{protocol_id}/clinical-rules/{rule_id}")
def delete_clinical_rule(
    protocol_id: str = Depends(protocol_id_param),
    rule_id: str = Depends(rule_id_param),
    service: ProtocolService = Depends(get_protocol_service),
):
    protocol = service.delete_rule(protocol_id, rule_id)
    return envelope(protocol.to_document(), "Regla clínica eliminada exitosamente")
