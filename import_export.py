"""Excel 导入导出

导出: 每个联系方式一行，联系人的基本信息在每一行重复；没有联系方式的联系人也输出一行。
导入: 按姓名把多行合并成一个联系人，单行出错只记录错误，不会中断整个导入。
"""
import io
import logging
import unicodedata
from dataclasses import dataclass, field
from typing import List, Optional

import pandas as pd
from openpyxl import load_workbook
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
from openpyxl.utils import get_column_letter

from errors import StructuralImportError
from models import Contact, ContactMethod, ContactMethodType
from services import validate_contact_fields, validate_method

logger = logging.getLogger(__name__)

SHEET_NAME = '联系人列表'
XLSX_MIMETYPE = 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'

# 表头顺序固定，导入时按列位置读取
COLUMNS = ['姓名', '公司', '职位', '备注', '是否收藏', '联系方式类型', '联系方式标签', '联系方式值']

FAVORITE_YES = '是'
FAVORITE_NO = '否'

NAME_REQUIRED = 'name must not be empty'
NO_SHEET = 'workbook contains no sheet'
NO_DATA = 'workbook contains no data'

# 联系方式类型 <-> 中文名称，导出和导入共用这一张表
METHOD_TYPE_LABELS = (
    (ContactMethodType.PHONE, '手机'),
    (ContactMethodType.TELEPHONE, '电话'),
    (ContactMethodType.EMAIL, '邮箱'),
    (ContactMethodType.WECHAT, '微信'),
    (ContactMethodType.QQ, 'QQ'),
    (ContactMethodType.ADDRESS, '地址'),
    (ContactMethodType.OTHER, '其他'),
)
_LABEL_BY_TYPE = dict(METHOD_TYPE_LABELS)
_TYPE_BY_LABEL = {label: method_type for method_type, label in METHOD_TYPE_LABELS}

MIN_COLUMN_WIDTH = 8
MAX_COLUMN_WIDTH = 60


def method_type_label(method_type: Optional[ContactMethodType]) -> str:
    """联系方式类型 -> 中文名称"""
    return _LABEL_BY_TYPE.get(method_type, _LABEL_BY_TYPE[ContactMethodType.OTHER])


def parse_method_type(text: Optional[str]) -> ContactMethodType:
    """中文名称 -> 联系方式类型，空白或无法识别时为 Other"""
    if not text or not text.strip():
        return ContactMethodType.OTHER
    return _TYPE_BY_LABEL.get(text.strip(), ContactMethodType.OTHER)


@dataclass
class ImportRowError:
    row_number: int
    contact_name: str
    error_message: str

    def to_dict(self):
        return {
            'row_number': self.row_number,
            'contact_name': self.contact_name,
            'error_message': self.error_message,
        }


@dataclass
class ImportResult:
    total_count: int = 0
    success_count: int = 0
    errors: List[ImportRowError] = field(default_factory=list)
    contacts: List[Contact] = field(default_factory=list)

    @property
    def error_count(self) -> int:
        return self.total_count - self.success_count

    @property
    def is_success(self) -> bool:
        return self.error_count == 0

    @property
    def has_structural_error(self) -> bool:
        # 结构性错误没有行号
        return any(error.row_number == 0 for error in self.errors)

    def to_dict(self):
        return {
            'total_count': self.total_count,
            'success_count': self.success_count,
            'error_count': self.error_count,
            'is_success': self.is_success,
            'errors': [error.to_dict() for error in self.errors],
        }


# --- 导出 ---

def _sheet_text(value):
    # 控制字符不能写进工作表
    if isinstance(value, str):
        return ILLEGAL_CHARACTERS_RE.sub('', value)
    return value


def _contact_row(contact, method=None):
    row = [
        contact.name,
        contact.company,
        contact.position,
        contact.notes,
        FAVORITE_YES if contact.is_favorite else FAVORITE_NO,
        method_type_label(method.type) if method is not None else None,
        method.label if method is not None else None,
        method.value if method is not None else None,
    ]
    return [_sheet_text(value) for value in row]


def _keep_formulas_as_text(worksheet):
    # openpyxl 把以 '=' 开头的字符串当作公式，这里改回普通文本
    for row in worksheet.iter_rows(min_row=2):
        for cell in row:
            if cell.data_type == 'f':
                cell.data_type = 's'


def _display_width(text):
    # 中文等宽字符按两个字符宽度计算
    return sum(2 if unicodedata.east_asian_width(ch) in ('W', 'F') else 1 for ch in text)


def _autofit_columns(worksheet, frame):
    for position, column in enumerate(frame.columns, start=1):
        widths = [_display_width(str(column))]
        widths.extend(_display_width(str(value)) for value in frame[column] if value is not None)
        width = min(max(max(widths) + 2, MIN_COLUMN_WIDTH), MAX_COLUMN_WIDTH)
        worksheet.column_dimensions[get_column_letter(position)].width = width


def export_contacts(contacts) -> io.BytesIO:
    """把联系人列表导出为 Excel，返回位置在开头的字节流"""
    rows = []
    count = 0
    for contact in contacts:
        count += 1
        if contact.methods:
            rows.extend(_contact_row(contact, method) for method in contact.methods)
        else:
            # 没有联系方式的联系人也要导出
            rows.append(_contact_row(contact))

    frame = pd.DataFrame(rows, columns=COLUMNS, dtype=object)

    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine='openpyxl') as writer:
        frame.to_excel(writer, sheet_name=SHEET_NAME, index=False)
        worksheet = writer.sheets[SHEET_NAME]
        _keep_formulas_as_text(worksheet)
        _autofit_columns(worksheet, frame)
    buffer.seek(0)

    logger.info('Exported %d contacts (%d rows) to Excel', count, len(rows))
    return buffer


def export_template() -> io.BytesIO:
    """导入模板：带一个示例联系人"""
    sample = Contact(
        name='张三',
        company='示例公司',
        position='经理',
        notes='这是一个示例联系人',
        is_favorite=True,
        methods=[
            ContactMethod(type=ContactMethodType.PHONE, label='手机', value='13800138000'),
            ContactMethod(type=ContactMethodType.EMAIL, label='工作邮箱', value='zhangsan@example.com'),
        ],
    )
    return export_contacts([sample])


# --- 导入 ---

def _is_blank(value):
    return value is None or (isinstance(value, float) and pd.isna(value))


def _cell_text(value) -> str:
    """单元格内容转成去掉首尾空白的文本"""
    if _is_blank(value):
        return ''
    if isinstance(value, float) and value.is_integer():
        # Excel 把 13800138000 存成数字时读出来是 13800138000.0
        value = int(value)
    return str(value).strip()


def _optional_text(value) -> Optional[str]:
    return _cell_text(value) or None


def _raw_cell_text(value) -> str:
    return '' if _is_blank(value) else str(value)


def _load_sheet(stream):
    try:
        workbook = load_workbook(stream, data_only=True)
    except Exception as e:
        raise StructuralImportError(f'failed to read workbook: {e}') from e

    if not workbook.worksheets:
        raise StructuralImportError(NO_SHEET)

    worksheet = workbook.worksheets[0]
    if worksheet.max_row <= 1:
        raise StructuralImportError(NO_DATA)
    return worksheet


def import_contacts(stream) -> ImportResult:
    """从 Excel 读取联系人，同名的多行合并为一个联系人"""
    result = ImportResult()

    try:
        worksheet = _load_sheet(stream)
    except StructuralImportError as e:
        logger.warning('Excel import rejected: %s', e)
        result.errors.append(ImportRowError(row_number=0, contact_name='', error_message=str(e)))
        return result

    last_row = worksheet.max_row
    contacts = {}

    # 第 1 行是表头，从第 2 行开始读
    rows = worksheet.iter_rows(min_row=2, max_row=last_row, max_col=len(COLUMNS), values_only=True)
    for row_number, cells in enumerate(rows, start=2):
        cells = tuple(cells) + (None,) * (len(COLUMNS) - len(cells))
        try:
            name = _cell_text(cells[0])
            if not name:
                result.errors.append(ImportRowError(row_number, '', NAME_REQUIRED))
                continue

            contact = contacts.get(name)
            if contact is None:
                contact = Contact(
                    name=name,
                    company=_optional_text(cells[1]),
                    position=_optional_text(cells[2]),
                    notes=_optional_text(cells[3]),
                    is_favorite=_cell_text(cells[4]) == FAVORITE_YES,
                    methods=[],
                )
                # 不合格的联系人不进入分组，同名的后续行也会各自报错
                validate_contact_fields(contact)
                contacts[name] = contact

            method_value = _cell_text(cells[7])
            if method_value:
                method = ContactMethod(
                    type=parse_method_type(_cell_text(cells[5])),
                    label=_optional_text(cells[6]),
                    value=method_value,
                    is_primary=False,
                )
                validate_method(method)
                contact.methods.append(method)

            result.success_count += 1
        except Exception as e:
            logger.warning('Excel import failed at row %d: %s', row_number, e)
            result.errors.append(ImportRowError(row_number, _raw_cell_text(cells[0]), str(e)))

    result.total_count = last_row - 1
    result.contacts = list(contacts.values())

    logger.info('Excel import finished: total=%d success=%d failed=%d contacts=%d',
                result.total_count, result.success_count, result.error_count, len(result.contacts))
    return result
