"""Identity records for the people that hold E4C wallets"""
from datetime import datetime
from uuid import uuid4
from sqlalchemy import Column, Integer, String, DateTime

from educhain.models.database import Base


def _uuid() -> str:
    return str(uuid4())


class Admin(Base):
    """Institution administrator"""
    __tablename__ = "admins"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, unique=True)
    stellar_public_key = Column(String(56), nullable=True)  # issuer account after provisioning
    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<Admin {self.email}>"


class Student(Base):
    """Student; `tokens` mirrors the on-chain E4C balance"""
    __tablename__ = "students"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, unique=True)
    stellar_public_key = Column(String(56), nullable=True, index=True)
    tokens = Column(Integer, nullable=False, default=0)
    tasks_completed = Column(Integer, nullable=False, default=0)
    grade = Column(String(50), nullable=True)
    school = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<Student {self.email} ({self.tokens} tokens)>"


class Teacher(Base):
    """Teacher"""
    __tablename__ = "teachers"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, unique=True)
    stellar_public_key = Column(String(56), nullable=True)
    school = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<Teacher {self.email}>"


class Validator(Base):
    """Validator certifying teacher-approved tasks"""
    __tablename__ = "validators"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, unique=True)
    stellar_public_key = Column(String(56), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<Validator {self.email}>"
