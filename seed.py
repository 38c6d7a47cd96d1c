import logging

from models import Contact, ContactMethod, ContactMethodType

logger = logging.getLogger(__name__)


def sample_contacts():
    """示例数据"""
    return [
        Contact(
            name='张三',
            company='ABC科技有限公司',
            position='软件工程师',
            notes='负责后端开发，熟悉Python',
            is_favorite=True,
            methods=[
                ContactMethod(type=ContactMethodType.PHONE, label='工作手机', value='13800138000', is_primary=True),
                ContactMethod(type=ContactMethodType.EMAIL, label='工作邮箱', value='zhangsan@abc-tech.com', is_primary=True),
                ContactMethod(type=ContactMethodType.WECHAT, label='微信', value='zhangsan_dev'),
            ],
        ),
        Contact(
            name='李四',
            company='XYZ网络公司',
            position='产品经理',
            notes='擅长用户体验设计和产品规划',
            is_favorite=False,
            methods=[
                ContactMethod(type=ContactMethodType.PHONE, label='个人手机', value='13900139000', is_primary=True),
                ContactMethod(type=ContactMethodType.EMAIL, label='个人邮箱', value='lisi@example.com', is_primary=True),
                ContactMethod(type=ContactMethodType.QQ, value='123456789'),
            ],
        ),
        Contact(
            name='王五',
            company='创新设计工作室',
            position='UI设计师',
            is_favorite=True,
            methods=[
                ContactMethod(type=ContactMethodType.TELEPHONE, label='办公室', value='010-88886666'),
                ContactMethod(type=ContactMethodType.ADDRESS, label='公司地址', value='北京市朝阳区建国路88号'),
            ],
        ),
    ]


def seed_contacts(service):
    """数据库为空时添加示例数据，返回添加的数量"""
    if service.list_all():
        logger.info('Database already has contacts, skipping seed data')
        return 0

    contacts = service.create_many(sample_contacts())
    logger.info('Seeded %d sample contacts', len(contacts))
    return len(contacts)
