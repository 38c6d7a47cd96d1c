class ContactBookError(Exception):
    """通讯录错误的基类"""

    status_code = 500


class ValidationError(ContactBookError):
    """联系人字段或请求数据不合法"""

    status_code = 400


class NotFoundError(ContactBookError):
    """联系人不存在"""

    status_code = 404

    def __init__(self, contact_id):
        self.contact_id = contact_id
        super().__init__(f'Contact not found: {contact_id}')


class PersistenceError(ContactBookError):
    """数据库操作失败，会话已回滚"""


class StructuralImportError(ContactBookError):
    """上传的 Excel 没有工作表、没有数据，或者无法读取"""

    status_code = 400
