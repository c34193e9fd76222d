"""
Tests for clinical history generation.

Tests:
- Prompt assembly from completed visit data
- LLM client error mapping (mocked OpenAI)
- PDF rendering with PyMuPDF
- Preview and PDF generation through the service (mocked LLM)

Run with: python -m pytest protocols_api/tests/test_clinical_history.py -v
"""

from datetime import datetime
from unittest.mock import MagicMock, patch

import fitz
import pytest
from openai import OpenAIError

from protocols_api.errors import NotFoundError, UpstreamServiceError
from protocols_api.models.clinical_history import VisitData
from protocols_api.models.protocol import VisitInput
from protocols_api.models.user import User
from protocols_api.services.clinical_history import (
    ClinicalHistoryService,
    build_user_prompt,
    format_visit_date,
    load_system_prompt,
    pdf_filename,
)
from protocols_api.services.llm_client import LLMClient
from protocols_api.services.pdf_renderer import (
    ClinicalHistoryDocument,
    ClinicalHistoryRenderer,
    Signature,
    decode_data_url,
)

NARRATIVE = (
    "Paciente que concurre a la visita de seguimiento. Se registra un peso de 72 kg "
    "y una presión arterial de 120/80 mmHg, sin eventos adversos reportados."
)


@pytest.fixture
def visit(protocol, protocol_service):
    _, visit = protocol_service.add_visit(
        protocol.id, VisitInput(name="Visita de seguimiento", type="presencial", order=1)
    )
    return visit


@pytest.fixture
def visit_data(visit) -> VisitData:
    dni = next(a for a in visit.activities if a.name == "dni")
    return VisitData.model_validate({
        "visitName": "Visita de seguimiento",
        "timestamp": "2024-03-05T10:30:00",
        "activities": [
            {"id": dni.id, "name": "dni", "value": "30123456"},
            {"name": "Presión arterial", "value": {"sistolica": 120, "diastolica": 80}},
            {
                "name": "Glucemia",
                "measurements": [
                    {"value": 98, "date": "2024-03-05", "time": "08:00"},
                    {"value": 110, "time": "10:00"},
                ],
            },
            {"name": "Comentarios", "value": ""},
        ],
    })


@pytest.fixture
def mock_llm():
    llm = MagicMock(spec=LLMClient)
    llm.generate_text.return_value = NARRATIVE
    return llm


class TestPromptAssembly:
    """Tests for build_user_prompt and helpers."""

    def test_header(self, protocol, visit, visit_data):
        prompt = build_user_prompt(protocol, visit, visit_data)

        assert prompt.startswith("Protocolo: Estudio de hipertensión (HTA-001)\n")
        assert "Visita: Visita de seguimiento" in prompt
        assert "Fecha de la visita: 05/03/2024" in prompt

    def test_activity_lines(self, protocol, visit, visit_data):
        prompt = build_user_prompt(protocol, visit, visit_data)

        assert "1. dni\n   Descripción: DNI del paciente\n   Valor: 30123456" in prompt
        assert "   Valores: sistolica: 120, diastolica: 80" in prompt
        assert "     - Medición 1: Valor: 98 Fecha: 2024-03-05 Hora: 08:00" in prompt
        assert "     - Medición 2: Valor: 110 Hora: 10:00" in prompt

    def test_empty_value_omitted(self, protocol, visit, visit_data):
        prompt = build_user_prompt(protocol, visit, visit_data)
        comments = prompt.split("4. Comentarios", 1)[1]

        assert "Valor" not in comments

    def test_missing_date(self):
        assert format_visit_date(None) == "No especificada"
        assert format_visit_date(datetime(2024, 12, 1)) == "01/12/2024"

    def test_filename(self, protocol, visit):
        assert pdf_filename(protocol, visit) == "historia-clinica-HTA-001-Visita-de-seguimiento.pdf"

    def test_system_prompt_bundled(self):
        assert load_system_prompt().strip()


class TestLLMClient:
    """Tests for LLMClient with a mocked OpenAI client."""

    def test_generate_text(self):
        client = LLMClient(api_key="sk-test", model="gpt-4")
        mock_openai = MagicMock()
        mock_openai.chat.completions.create.return_value.choices = [
            MagicMock(message=MagicMock(content=NARRATIVE))
        ]
        client._client = mock_openai

        assert client.generate_text("sistema", "usuario") == NARRATIVE
        kwargs = mock_openai.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4"
        assert kwargs["messages"][0] == {"role": "system", "content": "sistema"}

    def test_api_error(self):
        client = LLMClient(api_key="sk-test")
        client._client = MagicMock()
        client._client.chat.completions.create.side_effect = OpenAIError("timeout")

        with pytest.raises(UpstreamServiceError):
            client.generate_text("sistema", "usuario")

    def test_empty_answer(self):
        client = LLMClient(api_key="sk-test")
        client._client = MagicMock()
        client._client.chat.completions.create.return_value.choices = []

        with pytest.raises(UpstreamServiceError):
            client.generate_text("sistema", "usuario")

    def test_missing_api_key(self):
        with patch("protocols_api.services.llm_client.settings") as mock_settings:
            mock_settings.openai_api_key = None
            client = LLMClient()

        with pytest.raises(UpstreamServiceError):
            client.generate_text("sistema", "usuario")


class TestRenderer:
    """Tests for ClinicalHistoryRenderer."""

    def test_render_pdf(self):
        document = ClinicalHistoryDocument(
            title="HISTORIA CLÍNICA",
            header_lines=["Protocolo: Estudio (HTA-001)"],
            body=NARRATIVE,
            signature=Signature(name="Dra. Pérez", license_number="123456"),
        )

        pdf_bytes = ClinicalHistoryRenderer().render(document)

        assert pdf_bytes.startswith(b"%PDF")
        with fitz.open(stream=pdf_bytes, filetype="pdf") as doc:
            text = doc[0].get_text()
        assert "HISTORIA CL" in text
        assert "M.N. 123456" in text

    def test_long_body_paginates(self):
        body = "\n".join([NARRATIVE] * 60)

        pdf_bytes = ClinicalHistoryRenderer().render(
            ClinicalHistoryDocument(title="HISTORIA CLÍNICA", body=body)
        )

        with fitz.open(stream=pdf_bytes, filetype="pdf") as doc:
            assert doc.page_count > 1

    def test_wrap_paragraph_fits_column(self):
        renderer = ClinicalHistoryRenderer()

        lines = renderer.wrap_paragraph(NARRATIVE * 3)

        assert len(lines) > 1
        assert all(renderer._text_length(line) <= renderer.text_width for line in lines)

    def test_decode_data_url(self):
        assert decode_data_url("data:image/png;base64,aGVsbG8=") == b"hello"
        assert decode_data_url("sin-coma") is None
        assert decode_data_url("data:image/png;base64,@@@") is None


class TestClinicalHistoryService:
    """Tests for ClinicalHistoryService with a mocked LLM."""

    def test_preview(self, db, protocol, visit, visit_data, mock_llm):
        service = ClinicalHistoryService(db, llm=mock_llm)

        text = service.preview(protocol.id, visit.id, visit_data)

        assert text == NARRATIVE
        system_prompt, user_prompt = mock_llm.generate_text.call_args.args
        assert system_prompt == load_system_prompt()
        assert "Actividades realizadas:" in user_prompt

    def test_unknown_visit(self, db, protocol, visit_data, mock_llm):
        service = ClinicalHistoryService(db, llm=mock_llm)

        with pytest.raises(NotFoundError):
            service.preview(protocol.id, "9" * 24, visit_data)
        mock_llm.generate_text.assert_not_called()

    def test_generate_pdf(self, db, protocol, visit, visit_data, mock_llm, medico_user):
        service = ClinicalHistoryService(db, llm=mock_llm)

        pdf_bytes, filename = service.generate_pdf(protocol.id, visit.id, visit_data, medico_user)

        assert pdf_bytes.startswith(b"%PDF")
        assert filename == "historia-clinica-HTA-001-Visita-de-seguimiento.pdf"

    def test_render_failure(self, db, protocol, visit, visit_data, mock_llm):
        renderer = MagicMock()
        renderer.render.side_effect = RuntimeError("font not found")
        service = ClinicalHistoryService(db, llm=mock_llm, renderer=renderer)

        with pytest.raises(UpstreamServiceError):
            service.generate_pdf(protocol.id, visit.id, visit_data, None)

    def test_signature_from_physician(self, db, protocol, visit, visit_data, mock_llm):
        renderer = MagicMock()
        renderer.render.return_value = b"%PDF-1.7"
        service = ClinicalHistoryService(db, llm=mock_llm, renderer=renderer)
        physician = User(id="a" * 24, email="m@cedic.com", name="Dr. Ruiz", license_number="778899")

        service.generate_pdf(protocol.id, visit.id, visit_data, physician)

        document = renderer.render.call_args.args[0]
        assert document.signature.name == "Dr. Ruiz"
        assert document.signature.license_number == "778899"
        assert document.body == NARRATIVE
        assert document.header_lines[-1] == "Fecha: 05/03/2024"
