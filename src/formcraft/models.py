from __future__ import annotations

from sqlalchemy import Column, DateTime, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


class UserModel(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True)
    username = Column(String, unique=True, index=True, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    password_hash = Column(String, nullable=False)
    role = Column(String, nullable=False, default="admin")
    created_at = Column(DateTime(timezone=True))


class FormModel(Base):
    __tablename__ = "forms"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    description = Column(Text)
    schema_json = Column(Text, nullable=False)
    user_id = Column(String, index=True, nullable=False)
    status = Column(String, nullable=False, default="draft")
    published_url = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True))
    updated_at = Column(DateTime(timezone=True))


class SubmissionModel(Base):
    __tablename__ = "submissions"

    id = Column(String, primary_key=True)
    form_id = Column(String, index=True, nullable=False)
    data_json = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True))


class FileUploadModel(Base):
    __tablename__ = "file_uploads"

    id = Column(String, primary_key=True)
    submission_id = Column(String, index=True, nullable=False)
    field_id = Column(String, nullable=False)
    file_name = Column(String, nullable=False)
    file_type = Column(String, nullable=False)
    file_path = Column(Text, nullable=False)
    file_size = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True))
