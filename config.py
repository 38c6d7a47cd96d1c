import os


class Config:
    """默认配置，可以通过环境变量覆盖"""
    # 使用本地 SQLite 数据库
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL', 'sqlite:///address_book.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # 上传文件大小上限 16MB
    MAX_CONTENT_LENGTH = 16 * 1024 * 1024

    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO').upper()


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    LOG_LEVEL = 'WARNING'
