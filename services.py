import logging
from contextlib import contextmanager
from datetime import datetime

from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError

from errors import NotFoundError, PersistenceError, ValidationError
from models import Contact, ContactMethod, db

logger = logging.getLogger(__name__)

NAME_MAX_LENGTH = 100
COMPANY_MAX_LENGTH = 200
POSITION_MAX_LENGTH = 100
LABEL_MAX_LENGTH = 50
VALUE_MAX_LENGTH = 500


def _check_text(attr, value, limit=None):
    if value is None:
        return
    if limit is not None and len(value) > limit:
        raise ValidationError(f'{attr} must be at most {limit} characters')
    # 控制字符写不进 Excel
    if ILLEGAL_CHARACTERS_RE.search(value):
        raise ValidationError(f'{attr} contains control characters')


def validate_contact_fields(contact):
    """检查联系人基本信息，不包括联系方式"""
    if not contact.name or not contact.name.strip():
        raise ValidationError('Name is required')
    contact.name = contact.name.strip()

    _check_text('name', contact.name, NAME_MAX_LENGTH)
    _check_text('company', contact.company, COMPANY_MAX_LENGTH)
    _check_text('position', contact.position, POSITION_MAX_LENGTH)
    _check_text('notes', contact.notes)


def validate_method(method):
    if method.type is None:
        raise ValidationError('Contact method type is required')
    if not method.value or not method.value.strip():
        raise ValidationError('Contact method value is required')
    _check_text('value', method.value, VALUE_MAX_LENGTH)
    _check_text('label', method.label, LABEL_MAX_LENGTH)


def validate_contact(contact):
    """写入前检查联系人字段"""
    validate_contact_fields(contact)
    for method in contact.methods:
        validate_method(method)


class ContactService:
    """联系人的增删改查、搜索和收藏"""

    def __init__(self, session=None):
        self.session = session if session is not None else db.session

    @contextmanager
    def _transaction(self, action):
        # 任何数据库错误都回滚并包装成 PersistenceError
        try:
            yield
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.exception('Database error while trying to %s', action)
            raise PersistenceError(f'Failed to {action}: {e}') from e

    def _ordered(self, query):
        return query.order_by(Contact.is_favorite.desc(), Contact.name.asc())

    def list_all(self):
        with self._transaction('list contacts'):
            return self._ordered(self.session.query(Contact)).all()

    def list_favorites(self):
        with self._transaction('list favorite contacts'):
            return self.session.query(Contact).filter(Contact.is_favorite.is_(True)).order_by(Contact.name.asc()).all()

    def search(self, term):
        if term is None or not term.strip():
            return self.list_all()

        with self._transaction(f'search contacts for {term!r}'):
            query = self.session.query(Contact).filter(or_(
                Contact.name.icontains(term, autoescape=True),
                Contact.company.icontains(term, autoescape=True),
                Contact.position.icontains(term, autoescape=True),
            ))
            return self._ordered(query).all()

    def get_by_id(self, contact_id):
        with self._transaction(f'load contact {contact_id}'):
            return self.session.get(Contact, contact_id)

    def _stamp_new(self, contact, now):
        contact.created_at = now
        contact.updated_at = now
        for method in contact.methods:
            method.created_at = now

    def create(self, contact):
        validate_contact(contact)
        with self._transaction(f'create contact {contact.name!r}'):
            self._stamp_new(contact, datetime.now())
            self.session.add(contact)
            self.session.commit()

        logger.info('Created contact id=%s name=%s', contact.id, contact.name)
        return contact

    def create_many(self, contacts):
        """批量创建，全部成功或全部失败"""
        contacts = list(contacts)
        for contact in contacts:
            validate_contact(contact)

        with self._transaction(f'create {len(contacts)} contacts'):
            now = datetime.now()
            for contact in contacts:
                self._stamp_new(contact, now)
                self.session.add(contact)
            self.session.commit()

        logger.info('Created %d contacts', len(contacts))
        return contacts

    def update(self, contact):
        validate_contact(contact)
        with self._transaction(f'update contact {contact.id}'):
            existing = self.session.get(Contact, contact.id)
            if existing is None:
                raise NotFoundError(contact.id)

            now = datetime.now()
            existing.name = contact.name
            existing.company = contact.company
            existing.position = contact.position
            existing.notes = contact.notes
            existing.is_favorite = bool(contact.is_favorite)
            existing.updated_at = now

            # 联系方式整体替换：旧的由 delete-orphan 删除，新的重新分配 id
            existing.methods = [
                ContactMethod(
                    type=method.type,
                    label=method.label,
                    value=method.value,
                    is_primary=bool(method.is_primary),
                    created_at=now,
                )
                for method in contact.methods
            ]
            self.session.commit()

        logger.info('Updated contact id=%s name=%s', existing.id, existing.name)
        return existing

    def delete(self, contact_id):
        with self._transaction(f'delete contact {contact_id}'):
            contact = self.session.get(Contact, contact_id)
            if contact is None:
                logger.warning('Tried to delete missing contact id=%s', contact_id)
                return False

            name = contact.name
            self.session.delete(contact)
            self.session.commit()

        logger.info('Deleted contact id=%s name=%s', contact_id, name)
        return True

    def toggle_favorite(self, contact_id):
        with self._transaction(f'toggle favorite for contact {contact_id}'):
            contact = self.session.get(Contact, contact_id)
            if contact is None:
                raise NotFoundError(contact_id)

            contact.is_favorite = not contact.is_favorite
            contact.updated_at = datetime.now()
            self.session.commit()

        logger.info('Toggled favorite id=%s is_favorite=%s', contact_id, contact.is_favorite)
        return contact
