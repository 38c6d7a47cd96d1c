"""Tests for the contact directory service."""

import pytest
from sqlalchemy.exc import OperationalError

from errors import NotFoundError, PersistenceError, ValidationError
from models import Contact, ContactMethod, ContactMethodType, db
from seed import seed_contacts


def _new_contact(name, methods=(), **fields):
    return Contact(name=name, methods=list(methods), **fields)


def _method(method_type, value, label=None, is_primary=False):
    return ContactMethod(type=method_type, value=value, label=label, is_primary=is_primary)


@pytest.fixture
def people(service):
    return [
        service.create(_new_contact('Charlie', company='Acme', position='Engineer')),
        service.create(_new_contact('alice', company='Globex', is_favorite=True)),
        service.create(_new_contact('Bob', position='Sales Manager', is_favorite=True)),
        service.create(_new_contact('张三', company='ABC科技')),
    ]


class TestCreate:

    def test_assigns_id_and_timestamps(self, service):
        contact = service.create(_new_contact(
            '张三', methods=[_method(ContactMethodType.PHONE, '13800138000', label='工作')]))

        assert contact.id is not None
        assert contact.created_at is not None
        assert contact.updated_at == contact.created_at
        assert contact.is_favorite is False
        assert [m.contact_id for m in contact.methods] == [contact.id]
        assert contact.methods[0].id is not None
        assert contact.methods[0].created_at is not None

    def test_blank_name_is_rejected(self, service):
        with pytest.raises(ValidationError):
            service.create(_new_contact('   '))
        assert service.list_all() == []

    def test_name_is_trimmed(self, service):
        assert service.create(_new_contact('  张三  ')).name == '张三'

    @pytest.mark.parametrize('fields', [
        {'name': 'x' * 101},
        {'name': 'ok', 'company': 'x' * 201},
        {'name': 'ok', 'position': 'x' * 101},
    ])
    def test_length_limits(self, service, fields):
        with pytest.raises(ValidationError):
            service.create(Contact(methods=[], **fields))

    @pytest.mark.parametrize('contact', [
        Contact(name='张三', notes='line\x07bell', methods=[]),
        Contact(name='张\x1b三', methods=[]),
        Contact(name='张三', company='A\x00BC', methods=[]),
        Contact(name='张三', methods=[ContactMethod(type=ContactMethodType.PHONE, value='138\x0b0013')]),
        Contact(name='张三', methods=[ContactMethod(type=ContactMethodType.PHONE, label='\x01', value='1')]),
    ])
    def test_control_characters_are_rejected(self, service, contact):
        with pytest.raises(ValidationError):
            service.create(contact)
        assert service.list_all() == []

    def test_newlines_and_tabs_are_allowed(self, service):
        contact = service.create(_new_contact('张三', notes='第一行\n第二行\t缩进'))

        assert contact.notes == '第一行\n第二行\t缩进'

    def test_method_limits(self, service):
        with pytest.raises(ValidationError):
            service.create(_new_contact('a', methods=[_method(ContactMethodType.EMAIL, 'x' * 501)]))
        with pytest.raises(ValidationError):
            service.create(_new_contact('a', methods=[_method(ContactMethodType.EMAIL, 'v', label='x' * 51)]))
        with pytest.raises(ValidationError):
            service.create(_new_contact('a', methods=[_method(ContactMethodType.EMAIL, '  ')]))

    def test_persistence_failure_is_wrapped_and_rolled_back(self, service, monkeypatch):
        def failing_commit():
            raise OperationalError('INSERT', {}, Exception('disk I/O error'))

        monkeypatch.setattr(db.session, 'commit', failing_commit)

        with pytest.raises(PersistenceError):
            service.create(_new_contact('张三'))

        monkeypatch.undo()
        assert service.list_all() == []

    def test_create_many_is_atomic(self, service):
        contacts = [_new_contact('张三'), _new_contact('')]

        with pytest.raises(ValidationError):
            service.create_many(contacts)

        assert service.list_all() == []

    def test_create_many(self, service):
        created = service.create_many([_new_contact('张三'), _new_contact('李四')])

        assert all(c.id is not None for c in created)
        assert len(service.list_all()) == 2


class TestQueries:

    def test_list_all_favorites_first_then_name(self, service, people):
        assert [c.name for c in service.list_all()] == ['Bob', 'alice', 'Charlie', '张三']

    def test_list_favorites(self, service, people):
        assert [c.name for c in service.list_favorites()] == ['Bob', 'alice']

    @pytest.mark.parametrize('term, expected', [
        ('ACME', ['Charlie']),
        ('manager', ['Bob']),
        ('LI', ['alice', 'Charlie']),
        ('科技', ['张三']),
        ('nobody', []),
    ])
    def test_search_name_company_position(self, service, people, term, expected):
        assert [c.name for c in service.search(term)] == expected

    @pytest.mark.parametrize('term', ['', '   ', None])
    def test_blank_search_lists_all(self, service, people, term):
        assert [c.name for c in service.search(term)] == ['Bob', 'alice', 'Charlie', '张三']

    def test_search_wildcards_are_literal(self, service, people):
        service.create(_new_contact('100% Real'))
        assert [c.name for c in service.search('%')] == ['100% Real']

    def test_search_keeps_surrounding_spaces(self, service, people):
        service.create(_new_contact('Ann Lee'))
        service.create(_new_contact('Lee'))

        assert [c.name for c in service.search(' lee')] == ['Ann Lee']
        assert [c.name for c in service.search('lee')] == ['Ann Lee', 'Lee']

    def test_get_by_id(self, service, people):
        contact = service.get_by_id(people[0].id)
        assert contact.name == 'Charlie'
        assert service.get_by_id(9999) is None


class TestUpdate:

    def test_replaces_scalars_and_methods(self, service):
        original = service.create(_new_contact(
            '张三', company='Old',
            methods=[_method(ContactMethodType.PHONE, '1'), _method(ContactMethodType.EMAIL, 'a@b.c')]))
        old_method_ids = {m.id for m in original.methods}
        created_at = original.created_at

        updated = service.update(_new_contact(
            '张三丰', id=original.id, company='New', notes='n', is_favorite=True,
            methods=[_method(ContactMethodType.WECHAT, 'zs', label='个人', is_primary=True)]))

        assert updated.id == original.id
        assert (updated.name, updated.company, updated.notes, updated.is_favorite) == ('张三丰', 'New', 'n', True)
        assert [(m.type, m.label, m.value, m.is_primary) for m in updated.methods] == [
            (ContactMethodType.WECHAT, '个人', 'zs', True)]
        assert not old_method_ids & {m.id for m in updated.methods}
        assert updated.created_at == created_at
        assert updated.updated_at >= created_at
        assert ContactMethod.query.count() == 1

    def test_update_twice_does_not_double_methods(self, service):
        contact = service.create(_new_contact('张三'))

        def payload():
            return _new_contact('张三', id=contact.id, methods=[
                _method(ContactMethodType.PHONE, '1'), _method(ContactMethodType.QQ, '2')])

        first_ids = [m.id for m in service.update(payload()).methods]
        second = service.update(payload())

        assert [(m.type, m.value) for m in second.methods] == [
            (ContactMethodType.PHONE, '1'), (ContactMethodType.QQ, '2')]
        assert ContactMethod.query.filter_by(contact_id=contact.id).count() == 2
        assert set(first_ids).isdisjoint(m.id for m in second.methods)

    def test_missing_contact(self, service):
        with pytest.raises(NotFoundError):
            service.update(_new_contact('张三', id=9999))


class TestDeleteAndFavorite:

    def test_delete_cascades_methods(self, service):
        contact = service.create(_new_contact('张三', methods=[_method(ContactMethodType.PHONE, '1')]))

        assert service.delete(contact.id) is True
        assert service.get_by_id(contact.id) is None
        assert ContactMethod.query.count() == 0

    def test_delete_missing(self, service):
        assert service.delete(9999) is False

    def test_toggle_favorite(self, service):
        contact = service.create(_new_contact('张三'))
        before = contact.updated_at

        assert service.toggle_favorite(contact.id).is_favorite is True
        toggled = service.toggle_favorite(contact.id)
        assert toggled.is_favorite is False
        assert toggled.updated_at >= before

    def test_toggle_missing(self, service):
        with pytest.raises(NotFoundError):
            service.toggle_favorite(9999)


class TestSeed:

    def test_seeds_empty_database_once(self, service):
        assert seed_contacts(service) == 3
        assert seed_contacts(service) == 0
        assert len(service.list_all()) == 3
