import logging
import os
import sys
from datetime import datetime

import click
from flask import Blueprint, Flask, jsonify, request, send_file
from flask_cors import CORS

from config import Config
from errors import ContactBookError, NotFoundError, ValidationError
from import_export import (XLSX_MIMETYPE, export_contacts, export_template, import_contacts,
                           method_type_label, parse_method_type)
from models import Contact, ContactMethod, ContactMethodType, db
from seed import seed_contacts
from services import ContactService

logger = logging.getLogger(__name__)

bp = Blueprint('contacts', __name__)


# --- 辅助函数 ---
def format_contact(contact):
    """将数据库对象转换为 JSON 格式给前端"""
    return {
        'id': contact.id,
        'name': contact.name,
        'company': contact.company,
        'position': contact.position,
        'notes': contact.notes,
        'is_favorite': contact.is_favorite,
        'photo_path': contact.photo_path,
        'created_at': contact.created_at.isoformat() if contact.created_at else None,
        'updated_at': contact.updated_at.isoformat() if contact.updated_at else None,
        'methods': [
            {
                'id': method.id,
                'type': method.type.value,
                'type_label': method_type_label(method.type),
                'label': method.label,
                'value': method.value,
                'is_primary': method.is_primary,
            }
            for method in contact.methods
        ],
    }


def _optional_str(data, key):
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f'{key} must be a string')
    return value.strip() or None


def _method_type(value):
    # 既接受 'Phone' 这样的枚举值，也接受 '手机' 这样的中文名称
    try:
        return ContactMethodType(value)
    except ValueError:
        method_type = parse_method_type(value if isinstance(value, str) else None)
        if method_type is ContactMethodType.OTHER and value != method_type_label(ContactMethodType.OTHER):
            raise ValidationError(f'Unknown contact method type: {value}')
        return method_type


def contact_from_payload(data, contact_id=None):
    if not isinstance(data, dict) or not isinstance(data.get('name'), str) or not data['name'].strip():
        raise ValidationError('Name is required')

    methods = []
    for m in data.get('methods') or []:
        if not isinstance(m, dict):
            raise ValidationError('Each contact method must be an object')
        value = m.get('value')
        # 没填值的联系方式直接跳过
        if not value or not str(value).strip():
            continue
        methods.append(ContactMethod(
            type=_method_type(m.get('type', ContactMethodType.OTHER.value)),
            label=_optional_str(m, 'label'),
            value=str(value).strip(),
            is_primary=bool(m.get('is_primary', False)),
        ))

    return Contact(
        id=contact_id,
        name=data['name'].strip(),
        company=_optional_str(data, 'company'),
        position=_optional_str(data, 'position'),
        notes=_optional_str(data, 'notes'),
        is_favorite=bool(data.get('is_favorite', False)),
        methods=methods,
    )


def _service():
    return ContactService(db.session)


def _xlsx_response(stream, download_name):
    return send_file(stream, mimetype=XLSX_MIMETYPE, as_attachment=True, download_name=download_name)


def _timestamp():
    return datetime.now().strftime('%Y%m%d%H%M%S')


# --- API 路由 ---

# 1. 获取联系人列表 (支持搜索、只看收藏) & 新增联系人
@bp.route('/contacts', methods=['GET', 'POST'])
def handle_contacts():
    service = _service()

    if request.method == 'GET':
        if request.args.get('favorites') in ('1', 'true'):
            contacts = service.list_favorites()
        else:
            contacts = service.search(request.args.get('search', ''))
        return jsonify([format_contact(c) for c in contacts])

    contact = service.create(contact_from_payload(request.get_json(silent=True)))
    return jsonify(format_contact(contact)), 201


# 2. 收藏的联系人
@bp.route('/contacts/favorites', methods=['GET'])
def list_favorites():
    return jsonify([format_contact(c) for c in _service().list_favorites()])


# 3. 单个联系人：查看、修改、删除
@bp.route('/contacts/<int:id>', methods=['GET', 'PUT', 'DELETE'])
def handle_contact(id):
    service = _service()

    if request.method == 'GET':
        contact = service.get_by_id(id)
        if contact is None:
            raise NotFoundError(id)
        return jsonify(format_contact(contact))

    if request.method == 'PUT':
        contact = service.update(contact_from_payload(request.get_json(silent=True), contact_id=id))
        return jsonify(format_contact(contact))

    if not service.delete(id):
        raise NotFoundError(id)
    return jsonify({'message': 'Deleted successfully'}), 200


# 4. 切换收藏状态
@bp.route('/contacts/<int:id>/favorite', methods=['PUT'])
def toggle_favorite(id):
    contact = _service().toggle_favorite(id)
    return jsonify(format_contact(contact))


# 5. 导出 Excel
@bp.route('/export', methods=['GET'])
def export_excel():
    contacts = _service().list_all()
    if not contacts:
        return jsonify({'error': '没有可导出的联系人数据'}), 404
    return _xlsx_response(export_contacts(contacts), f'联系人列表_{_timestamp()}.xlsx')


@bp.route('/export/favorites', methods=['GET'])
def export_favorites():
    contacts = _service().list_favorites()
    if not contacts:
        return jsonify({'error': '没有收藏的联系人可导出'}), 404
    return _xlsx_response(export_contacts(contacts), f'收藏联系人_{_timestamp()}.xlsx')


@bp.route('/export/template', methods=['GET'])
def export_import_template():
    return _xlsx_response(export_template(), '联系人导入模板.xlsx')


# 6. 导入 Excel
@bp.route('/import', methods=['POST'])
def import_excel():
    if 'file' not in request.files or not request.files['file'].filename:
        return jsonify({'error': 'No file uploaded'}), 400
    file = request.files['file']

    if os.path.splitext(file.filename)[1].lower() != '.xlsx':
        return jsonify({'error': '只支持 .xlsx 格式的 Excel 文件'}), 400

    result = import_contacts(file.stream)
    if result.has_structural_error:
        return jsonify(result.to_dict()), 400

    _service().create_many(result.contacts)

    body = result.to_dict()
    body['imported_contacts'] = len(result.contacts)
    body['message'] = f'成功导入 {result.success_count} 条联系人记录'
    return jsonify(body), 200


# --- 错误处理 ---
def handle_contact_book_error(error):
    if error.status_code >= 500:
        logger.error('Request failed: %s', error)
    return jsonify({'error': str(error)}), error.status_code


# --- 日志 ---
def configure_logging(app):
    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter('%(asctime)s %(levelname)s [%(name)s] %(message)s'))
        root.addHandler(handler)
    root.setLevel(app.config['LOG_LEVEL'])

    # SQLAlchemy 的 SQL 日志太多
    logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)


def create_app(config_object=None):
    app = Flask(__name__)
    app.config.from_object(config_object or Config)
    # 中文直接输出，不转成 \uXXXX
    app.json.ensure_ascii = False

    configure_logging(app)

    # 允许跨域 (CORS)
    CORS(app)

    # 绑定数据库，启动时自动创建表
    db.init_app(app)
    with app.app_context():
        db.create_all()

    app.register_blueprint(bp)
    app.register_error_handler(ContactBookError, handle_contact_book_error)

    @app.cli.command('init-db')
    def init_db_command():
        """创建数据库表"""
        db.create_all()
        click.echo('Database initialized')

    @app.cli.command('seed')
    def seed_command():
        """数据库为空时添加示例数据"""
        count = seed_contacts(_service())
        click.echo(f'Added {count} sample contacts')

    return app


if __name__ == '__main__':
    # 端口保持 5001
    create_app().run(debug=True, port=5001)
