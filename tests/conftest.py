import io

import pytest
from openpyxl import Workbook

from app import create_app
from config import TestingConfig
from import_export import COLUMNS
from models import db
from services import ContactService


@pytest.fixture
def app():
    app = create_app(TestingConfig)
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def service(app):
    return ContactService(db.session)


@pytest.fixture
def make_workbook():
    """Build an in-memory .xlsx with the standard header and the given data rows."""

    def _make(rows, header=True):
        workbook = Workbook()
        worksheet = workbook.active
        if header:
            worksheet.append(COLUMNS)
        for row in rows:
            worksheet.append(list(row))
        buffer = io.BytesIO()
        workbook.save(buffer)
        buffer.seek(0)
        return buffer

    return _make
