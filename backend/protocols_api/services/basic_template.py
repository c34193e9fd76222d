"""
The basic visit template ("Visita Basica").

Its fields are imported into every new visit. The template is created on
first use through a single creation path and afterwards resolved through the
id held by the process-wide registry; rows created before the system key
existed are still found by name.
"""

import logging
from typing import List, Optional

from protocols_api.config import settings
from protocols_api.errors import DuplicateIdentifierError, NotFoundError
from protocols_api.models.fields import (
    DatetimeField,
    FieldDefinitionBase,
    NumberSimpleField,
    TextShortField,
    fold_name,
)
from protocols_api.models.template import Template
from protocols_api.repositories import TemplateRepository

logger = logging.getLogger(__name__)

BASIC_TEMPLATE_KEY = "basic_visit"
BASIC_TEMPLATE_DESCRIPTION = (
    "Plantilla básica que se incluye automáticamente en todas las visitas nuevas"
)


def basic_template_fields() -> List[FieldDefinitionBase]:
    """Fields of a freshly created basic visit template."""
    return [
        TextShortField(
            name="nombre_apellido",
            description="Nombre y apellido del paciente",
            required=True,
            order=1,
        ),
        TextShortField(
            name="dni",
            description="DNI del paciente",
            required=True,
            order=2,
        ),
        DatetimeField(
            name="fecha_visita",
            description="Fecha de la visita",
            required=True,
            order=3,
            datetime_include_date=True,
            datetime_include_time=False,
        ),
        NumberSimpleField(
            name="numero_hoja",
            description="Número de hoja",
            required=True,
            order=4,
        ),
    ]


class BasicTemplateRegistry:
    """Holds the identity of the basic visit template for this process."""

    def __init__(self, name: Optional[str] = None):
        self.name = name or settings.basic_template_name
        self._template_id: Optional[str] = None

    @property
    def template_id(self) -> Optional[str]:
        return self._template_id

    def reset(self) -> None:
        self._template_id = None

    def is_basic_template(self, template: Template) -> bool:
        """True for the registered template or any template carrying its name."""
        return (
            template.id == self._template_id
            or template.system_key == BASIC_TEMPLATE_KEY
            or fold_name(template.name) == fold_name(self.name)
        )

    def get_or_create(self, repository: TemplateRepository) -> Template:
        """Current basic template, created on first use."""
        if self._template_id:
            try:
                return repository.get(self._template_id)
            except NotFoundError:
                logger.warning(f"Basic template {self._template_id} disappeared, resolving again")
                self._template_id = None

        template = (
            repository.find_by_system_key(BASIC_TEMPLATE_KEY)
            or repository.find_by_name(self.name)
        )
        if template is None:
            template = self._create(repository)

        self._template_id = template.id
        return template

    def _create(self, repository: TemplateRepository) -> Template:
        template = Template(
            name=self.name,
            description=BASIC_TEMPLATE_DESCRIPTION,
            activities=basic_template_fields(),
            system_key=BASIC_TEMPLATE_KEY,
        )
        try:
            created = repository.create(template)
        except DuplicateIdentifierError:
            # Another request created it first
            existing = repository.find_by_system_key(BASIC_TEMPLATE_KEY)
            if existing is None:
                raise
            return existing

        logger.info(f'Template "{self.name}" created automatically ({created.id})')
        return created


basic_templates = BasicTemplateRegistry()
