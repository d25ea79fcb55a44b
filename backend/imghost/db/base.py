from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


from imghost.models import image, tag  # noqa: E402,F401
