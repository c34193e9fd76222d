"""
Persistence for protocol, template, activity template and user documents.

Repositories translate between table rows and pydantic documents and turn
storage conditions into domain errors:

- missing row                      -> NotFoundError
- unique constraint violation      -> DuplicateIdentifierError
- stale protocol version on update -> WriteConflictError
"""

import logging
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from protocols_api.db import ActivityTemplateRecord, ProtocolRecord, TemplateRecord, UserRecord
from protocols_api.errors import DuplicateIdentifierError, NotFoundError, WriteConflictError
from protocols_api.models.protocol import Protocol
from protocols_api.models.template import ActivityTemplate, Template
from protocols_api.models.user import User

logger = logging.getLogger(__name__)


class _Repository:
    """Shared session handling."""

    def __init__(self, db: Session):
        self.db = db

    def _commit(self, unique_field: str, duplicate_message: Optional[str] = None):
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            logger.warning(f"Unique constraint violated on {unique_field}: {e.orig}")
            raise DuplicateIdentifierError(unique_field, duplicate_message) from e


def _offset(page: int, page_size: int) -> int:
    return (max(page, 1) - 1) * page_size


# =============================================================================
# Protocols
# =============================================================================

DUPLICATE_CODE_MESSAGE = "El código del protocolo ya existe"


def _protocol_from_record(record: ProtocolRecord) -> Protocol:
    return Protocol.model_validate({
        "id": record.id,
        "name": record.name,
        "code": record.code,
        "sponsor": record.sponsor,
        "description": record.description,
        "status": record.status,
        "visits": record.visits or [],
        "clinicalRules": record.clinical_rules or [],
        "version": record.version,
        "createdAt": record.created_at,
        "updatedAt": record.updated_at,
    })


def _protocol_columns(protocol: Protocol) -> dict:
    return {
        "name": protocol.name,
        "code": protocol.code,
        "sponsor": protocol.sponsor,
        "description": protocol.description,
        "status": protocol.status,
        "visits": [visit.to_document() for visit in protocol.visits],
        "clinical_rules": [rule.to_document() for rule in protocol.clinical_rules],
    }


class ProtocolRepository(_Repository):
    """Protocol documents with optimistic version checks on update."""

    def get(self, protocol_id: str) -> Protocol:
        """Fresh read of a protocol, bypassing the session identity map."""
        record = self.db.get(ProtocolRecord, protocol_id, populate_existing=True)
        if record is None:
            raise NotFoundError("Protocolo no encontrado")
        return _protocol_from_record(record)

    def list(
        self,
        page: int = 1,
        page_size: int = 10,
        status: Optional[str] = None,
    ) -> Tuple[List[Protocol], int]:
        """Page of protocols, newest first, and the total count."""
        query = self.db.query(ProtocolRecord)
        if status:
            query = query.filter(ProtocolRecord.status == status)
        total = query.count()
        records = (
            query.order_by(ProtocolRecord.created_at.desc())
            .offset(_offset(page, page_size))
            .limit(page_size)
            .all()
        )
        return [_protocol_from_record(r) for r in records], total

    def create(self, protocol: Protocol) -> Protocol:
        now = datetime.utcnow()
        record = ProtocolRecord(
            id=protocol.id,
            version=0,
            created_at=now,
            updated_at=now,
            **_protocol_columns(protocol),
        )
        self.db.add(record)
        self._commit("code", DUPLICATE_CODE_MESSAGE)
        logger.info(f"Created protocol {protocol.id} ({protocol.code})")
        return protocol.model_copy(update={"version": 0, "created_at": now, "updated_at": now})

    def save(self, protocol: Protocol) -> Protocol:
        """
        Write the whole document if the stored version still matches.

        Args:
            protocol: Document read earlier; ``protocol.version`` is the
                version it was read at

        Returns:
            The document with its new version

        Raises:
            WriteConflictError: another writer persisted a newer version
            NotFoundError: the protocol was deleted meanwhile
            DuplicateIdentifierError: the new code collides with another protocol
        """
        now = datetime.utcnow()
        statement = (
            update(ProtocolRecord)
            .where(ProtocolRecord.id == protocol.id)
            .where(ProtocolRecord.version == protocol.version)
            .values(
                version=protocol.version + 1,
                updated_at=now,
                **_protocol_columns(protocol),
            )
        )
        try:
            result = self.db.execute(statement)
        except IntegrityError as e:
            self.db.rollback()
            raise DuplicateIdentifierError("code", DUPLICATE_CODE_MESSAGE) from e

        if result.rowcount == 0:
            self.db.rollback()
            exists = self.db.query(ProtocolRecord.id).filter(ProtocolRecord.id == protocol.id).first()
            if exists is None:
                raise NotFoundError("Protocolo no encontrado")
            raise WriteConflictError(
                f"El protocolo {protocol.id} fue modificado por otro usuario (versión {protocol.version})"
            )

        self._commit("code", DUPLICATE_CODE_MESSAGE)
        return protocol.model_copy(update={"version": protocol.version + 1, "updated_at": now})

    def delete(self, protocol_id: str) -> None:
        """Delete a protocol; nested visits, activities and rules go with it."""
        deleted = self.db.query(ProtocolRecord).filter(ProtocolRecord.id == protocol_id).delete()
        if not deleted:
            self.db.rollback()
            raise NotFoundError("Protocolo no encontrado")
        self.db.commit()
        logger.info(f"Deleted protocol {protocol_id}")

    def count(self, status: Optional[str] = None) -> int:
        query = self.db.query(func.count(ProtocolRecord.id))
        if status:
            query = query.filter(ProtocolRecord.status == status)
        return query.scalar() or 0

    def sponsors(self) -> List[str]:
        return [row[0] for row in self.db.query(ProtocolRecord.sponsor).all()]


# =============================================================================
# Templates
# =============================================================================

def _template_from_record(record: TemplateRecord) -> Template:
    return Template.model_validate({
        "id": record.id,
        "name": record.name,
        "description": record.description,
        "activities": record.activities or [],
        "systemKey": record.system_key,
        "createdAt": record.created_at,
        "updatedAt": record.updated_at,
    })


def _activities_column(activities) -> list:
    return [activity.to_document() for activity in activities]


class TemplateRepository(_Repository):
    """Template documents (last write wins)."""

    def get(self, template_id: str) -> Template:
        record = self.db.get(TemplateRecord, template_id, populate_existing=True)
        if record is None:
            raise NotFoundError("Plantilla no encontrada")
        return _template_from_record(record)

    def find_by_system_key(self, system_key: str) -> Optional[Template]:
        record = self.db.query(TemplateRecord).filter(TemplateRecord.system_key == system_key).first()
        return _template_from_record(record) if record else None

    def find_by_name(self, name: str) -> Optional[Template]:
        """Most recently updated template whose name matches case-insensitively."""
        record = (
            self.db.query(TemplateRecord)
            .filter(func.lower(TemplateRecord.name) == name.strip().lower())
            .order_by(TemplateRecord.updated_at.desc())
            .first()
        )
        return _template_from_record(record) if record else None

    def list(self, page: int = 1, page_size: int = 10) -> Tuple[List[Template], int]:
        query = self.db.query(TemplateRecord)
        total = query.count()
        records = (
            query.order_by(TemplateRecord.created_at.desc())
            .offset(_offset(page, page_size))
            .limit(page_size)
            .all()
        )
        return [_template_from_record(r) for r in records], total

    def create(self, template: Template) -> Template:
        now = datetime.utcnow()
        record = TemplateRecord(
            id=template.id,
            name=template.name,
            description=template.description,
            activities=_activities_column(template.activities),
            system_key=template.system_key,
            created_at=now,
            updated_at=now,
        )
        self.db.add(record)
        self._commit("systemKey")
        return template.model_copy(update={"created_at": now, "updated_at": now})

    def save(self, template: Template) -> Template:
        record = self.db.get(TemplateRecord, template.id)
        if record is None:
            raise NotFoundError("Plantilla no encontrada")
        record.name = template.name
        record.description = template.description
        record.activities = _activities_column(template.activities)
        record.updated_at = datetime.utcnow()
        self.db.commit()
        return template.model_copy(update={"updated_at": record.updated_at})

    def delete(self, template_id: str) -> None:
        deleted = self.db.query(TemplateRecord).filter(TemplateRecord.id == template_id).delete()
        if not deleted:
            self.db.rollback()
            raise NotFoundError("Plantilla no encontrada")
        self.db.commit()


# =============================================================================
# Activity templates
# =============================================================================

def _activity_template_from_record(record: ActivityTemplateRecord) -> ActivityTemplate:
    return ActivityTemplate.model_validate({
        "id": record.id,
        "name": record.name,
        "description": record.description,
        "activities": record.activities or [],
        "createdAt": record.created_at,
        "updatedAt": record.updated_at,
    })


class ActivityTemplateRepository(_Repository):

    def get(self, template_id: str) -> ActivityTemplate:
        record = self.db.get(ActivityTemplateRecord, template_id, populate_existing=True)
        if record is None:
            raise NotFoundError("Plantilla no encontrada")
        return _activity_template_from_record(record)

    def list_all(self) -> List[ActivityTemplate]:
        records = self.db.query(ActivityTemplateRecord).order_by(ActivityTemplateRecord.created_at.desc()).all()
        return [_activity_template_from_record(r) for r in records]

    def create(self, template: ActivityTemplate) -> ActivityTemplate:
        now = datetime.utcnow()
        self.db.add(ActivityTemplateRecord(
            id=template.id,
            name=template.name,
            description=template.description,
            activities=_activities_column(template.activities),
            created_at=now,
            updated_at=now,
        ))
        self.db.commit()
        return template.model_copy(update={"created_at": now, "updated_at": now})

    def save(self, template: ActivityTemplate) -> ActivityTemplate:
        record = self.db.get(ActivityTemplateRecord, template.id)
        if record is None:
            raise NotFoundError("Plantilla no encontrada")
        record.name = template.name
        record.description = template.description
        record.activities = _activities_column(template.activities)
        record.updated_at = datetime.utcnow()
        self.db.commit()
        return template.model_copy(update={"updated_at": record.updated_at})

    def delete(self, template_id: str) -> None:
        deleted = self.db.query(ActivityTemplateRecord).filter(ActivityTemplateRecord.id == template_id).delete()
        if not deleted:
            self.db.rollback()
            raise NotFoundError("Plantilla no encontrada")
        self.db.commit()


# =============================================================================
# Users
# =============================================================================

def _user_from_record(record: UserRecord) -> User:
    return User.model_validate({
        "id": record.id,
        "email": record.email,
        "name": record.name,
        "role": record.role,
        "isActive": record.is_active,
        "firstName": record.first_name,
        "lastName": record.last_name,
        "licenseNumber": record.license_number,
        "sealSignaturePhoto": record.seal_signature_photo,
        "createdAt": record.created_at,
        "updatedAt": record.updated_at,
    })


class UserRepository(_Repository):

    def get(self, user_id: str) -> User:
        record = self.db.get(UserRecord, user_id, populate_existing=True)
        if record is None:
            raise NotFoundError("Usuario no encontrado")
        return _user_from_record(record)

    def get_credentials(self, email: str) -> Optional[Tuple[User, str]]:
        """User and password hash for an email, or None."""
        record = self.db.query(UserRecord).filter(UserRecord.email == email.lower()).first()
        if record is None:
            return None
        return _user_from_record(record), record.password_hash

    def list_all(self) -> List[User]:
        records = self.db.query(UserRecord).order_by(UserRecord.created_at.desc()).all()
        return [_user_from_record(r) for r in records]

    def create(self, user: User, password_hash: str) -> User:
        now = datetime.utcnow()
        self.db.add(UserRecord(
            id=user.id,
            email=user.email.lower(),
            password_hash=password_hash,
            name=user.name,
            first_name=user.first_name,
            last_name=user.last_name,
            license_number=user.license_number,
            seal_signature_photo=user.seal_signature_photo,
            role=user.role,
            is_active=user.is_active,
            created_at=now,
            updated_at=now,
        ))
        self._commit("email", "El email ya está registrado")
        return user.model_copy(update={"email": user.email.lower(), "created_at": now, "updated_at": now})

    def update_fields(self, user_id: str, **values) -> User:
        record = self.db.get(UserRecord, user_id)
        if record is None:
            raise NotFoundError("Usuario no encontrado")
        for key, value in values.items():
            setattr(record, key, value)
        record.updated_at = datetime.utcnow()
        self.db.commit()
        return _user_from_record(record)

    def delete_by_email(self, email: str) -> bool:
        deleted = self.db.query(UserRecord).filter(UserRecord.email == email.lower()).delete()
        self.db.commit()
        return bool(deleted)

    def count_active(self, role: Optional[str] = None) -> int:
        query = self.db.query(func.count(UserRecord.id)).filter(UserRecord.is_active.is_(True))
        if role:
            query = query.filter(UserRecord.role == role)
        return query.scalar() or 0
