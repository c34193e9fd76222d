"""
AI-assisted clinical history for a completed visit.

The user prompt describes the protocol, the visit and every completed
activity; the system prompt is read from ``prompts/clinical_history.txt``.
The generated narrative is returned as text (preview) or rendered to PDF.
"""

import logging
import re
from datetime import datetime
from functools import lru_cache
from pathlib import Path
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from protocols_api.config import settings
from protocols_api.errors import UpstreamServiceError
from protocols_api.models.clinical_history import CompletedActivity, VisitData
from protocols_api.models.protocol import Protocol, Visit
from protocols_api.models.user import User
from protocols_api.repositories import ProtocolRepository
from protocols_api.services.llm_client import LLMClient
from protocols_api.services.pdf_renderer import ClinicalHistoryDocument, ClinicalHistoryRenderer, Signature
from protocols_api.services.protocol_service import require_visit

logger = logging.getLogger(__name__)

TITLE = "HISTORIA CLÍNICA"
PROMPT_FILE = "clinical_history.txt"


@lru_cache()
def load_system_prompt(prompts_dir: Optional[Path] = None) -> str:
    path = (prompts_dir or settings.prompts_dir) / PROMPT_FILE
    return path.read_text(encoding="utf-8")


def format_visit_date(timestamp: Optional[datetime]) -> str:
    return timestamp.strftime("%d/%m/%Y") if timestamp else "No especificada"


def _has_value(value) -> bool:
    return value is not None and value != ""


def describe_activity(index: int, data: CompletedActivity, visit: Visit) -> str:
    """Prompt lines for one completed activity (1-based ``index``)."""
    stored = visit.find_activity(data.id) if data.id else None
    description_text = (stored.description if stored else "") or data.description or ""

    lines = [f"{index}. {data.name}"]
    if description_text:
        lines.append(f"   Descripción: {description_text}")

    if _has_value(data.value):
        if isinstance(data.value, dict):
            compound = ", ".join(f"{key}: {val}" for key, val in data.value.items())
            lines.append(f"   Valores: {compound}")
        elif isinstance(data.value, list):
            lines.append(f"   Mediciones: {', '.join(str(v) for v in data.value)}")
        else:
            lines.append(f"   Valor: {data.value}")

    if data.measurements:
        lines.append("   Mediciones:")
        for number, measurement in enumerate(data.measurements, start=1):
            entry = f"     - Medición {number}:"
            if measurement.value is not None:
                entry += f" Valor: {measurement.value}"
            if measurement.date:
                entry += f" Fecha: {measurement.date}"
            if measurement.time:
                entry += f" Hora: {measurement.time}"
            lines.append(entry)

    if data.date:
        lines.append(f"   Fecha: {data.date}")
    if data.time:
        lines.append(f"   Hora: {data.time}")
    return "\n".join(lines)


def build_user_prompt(protocol: Protocol, visit: Visit, visit_data: VisitData) -> str:
    activities = "\n\n".join(
        describe_activity(index, data, visit)
        for index, data in enumerate(visit_data.activities, start=1)
    )
    return (
        f"Protocolo: {protocol.name} ({protocol.code})\n"
        f"Visita: {visit_data.visit_name or visit.name}\n"
        f"Fecha de la visita: {format_visit_date(visit_data.timestamp)}\n"
        f"\n"
        f"Actividades realizadas:\n"
        f"{activities}"
    )


def pdf_filename(protocol: Protocol, visit: Visit) -> str:
    visit_slug = re.sub(r"\s+", "-", visit.name)
    return f"historia-clinica-{protocol.code}-{visit_slug}.pdf"


class ClinicalHistoryService:

    def __init__(
        self,
        db: Session,
        llm: Optional[LLMClient] = None,
        renderer: Optional[ClinicalHistoryRenderer] = None,
    ):
        self.protocols = ProtocolRepository(db)
        self.llm = llm or LLMClient()
        self.renderer = renderer or ClinicalHistoryRenderer()

    def _generate(self, protocol_id: str, visit_id: str, visit_data: VisitData) -> Tuple[Protocol, Visit, str]:
        protocol = self.protocols.get(protocol_id)
        visit = require_visit(protocol, visit_id)
        user_prompt = build_user_prompt(protocol, visit, visit_data)
        logger.info(
            f"Generating clinical history for protocol {protocol.code}, visit {visit.name} "
            f"({len(visit_data.activities)} activities)"
        )
        text = self.llm.generate_text(load_system_prompt(), user_prompt)
        return protocol, visit, text

    def preview(self, protocol_id: str, visit_id: str, visit_data: VisitData) -> str:
        _, _, text = self._generate(protocol_id, visit_id, visit_data)
        return text

    def generate_pdf(
        self,
        protocol_id: str,
        visit_id: str,
        visit_data: VisitData,
        physician: Optional[User] = None,
    ) -> Tuple[bytes, str]:
        """
        Generate the narrative and render it.

        Returns:
            (PDF bytes, attachment filename)
        """
        protocol, visit, text = self._generate(protocol_id, visit_id, visit_data)

        signature = None
        if physician is not None:
            signature = Signature(
                name=physician.name,
                license_number=physician.license_number,
                image_data_url=physician.seal_signature_photo,
            )

        document = ClinicalHistoryDocument(
            title=TITLE,
            header_lines=[
                f"Protocolo: {protocol.name} ({protocol.code})",
                f"Visita: {visit_data.visit_name or visit.name}",
                f"Fecha: {format_visit_date(visit_data.timestamp)}",
            ],
            body=text,
            signature=signature,
        )
        try:
            pdf_bytes = self.renderer.render(document)
        except (RuntimeError, ValueError) as e:
            logger.error(f"PDF rendering failed: {e}")
            raise UpstreamServiceError("Error al generar historia clínica") from e

        return pdf_bytes, pdf_filename(protocol, visit)
