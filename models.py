import enum
from datetime import datetime

from flask_sqlalchemy import SQLAlchemy

# 初始化数据库实例
db = SQLAlchemy()


class ContactMethodType(enum.Enum):
    PHONE = 'Phone'
    TELEPHONE = 'Telephone'
    EMAIL = 'Email'
    WECHAT = 'WeChat'
    QQ = 'QQ'
    ADDRESS = 'Address'
    OTHER = 'Other'


class Contact(db.Model):
    __tablename__ = 'contacts'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    company = db.Column(db.String(200))
    position = db.Column(db.String(100))
    notes = db.Column(db.Text)
    is_favorite = db.Column(db.Boolean, nullable=False, default=False)  # 收藏
    photo_path = db.Column(db.String(500))
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.now)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.now)

    # 一个联系人对应多个联系方式
    # cascade='all, delete-orphan' 确保删除联系人时，其联系方式也被删除
    methods = db.relationship('ContactMethod', backref='contact', lazy=True,
                              cascade='all, delete-orphan', order_by='ContactMethod.id')

    def __repr__(self):
        return f'<Contact {self.id}: {self.name}>'


class ContactMethod(db.Model):
    __tablename__ = 'contact_methods'
    id = db.Column(db.Integer, primary_key=True)
    contact_id = db.Column(db.Integer, db.ForeignKey('contacts.id', ondelete='CASCADE'), nullable=False)
    type = db.Column(db.Enum(ContactMethodType), nullable=False, default=ContactMethodType.OTHER)
    label = db.Column(db.String(50))  # 例如: '工作', '个人'
    value = db.Column(db.String(500), nullable=False)  # 例如: '13812345678'
    is_primary = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.now)

    def __repr__(self):
        return f'<ContactMethod {self.type.value if self.type else None}: {self.value}>'
