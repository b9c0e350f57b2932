import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, JSON, String, Text, UniqueConstraint
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class Company(Base):
    __tablename__ = "companies"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String, nullable=False)
    logo = Column(String, nullable=True)
    address = Column(String, nullable=True)
    cnpj = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    is_main = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    clients = relationship("Client", back_populates="company")
    responsibles = relationship("Responsible", back_populates="company")


class Client(Base):
    __tablename__ = "clients"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String, nullable=False)
    contact_email = Column(String, nullable=True)
    contact_phone = Column(String, nullable=True)
    address = Column(String, nullable=True)
    cnpj = Column(String, nullable=True)
    company_id = Column(String, ForeignKey("companies.id"), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    company = relationship("Company", back_populates="clients")


class Responsible(Base):
    __tablename__ = "responsibles"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String, nullable=False)
    email = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    department = Column(String, nullable=True)
    role = Column(String, nullable=True)
    type = Column(String, nullable=False, default="responsible")
    company_id = Column(String, ForeignKey("companies.id"), nullable=False)
    user_id = Column(String, ForeignKey("profiles.id"), nullable=True)
    client_ids = Column(JSON, nullable=True)
    is_system_user = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    company = relationship("Company", back_populates="responsibles")


class User(Base):
    __tablename__ = "profiles"
    __table_args__ = (
        UniqueConstraint("cpf", name="uq_profile_cpf"),
        UniqueConstraint("email", name="uq_profile_email"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String, nullable=False)
    cpf = Column(String, nullable=False)
    email = Column(String, nullable=False)
    password_hash = Column(String, nullable=False)
    role = Column(String, nullable=False, default="user")
    status = Column(String, nullable=False, default="active")
    company_ids = Column(JSON, nullable=True)
    client_ids = Column(JSON, nullable=True)
    responsible_id = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    permissions = relationship(
        "UserPermission", back_populates="user", uselist=False, cascade="all, delete-orphan"
    )
    notification_settings = relationship(
        "UserNotificationSettings", back_populates="user", uselist=False, cascade="all, delete-orphan"
    )


class UserPermission(Base):
    __tablename__ = "user_permissions"
    __table_args__ = (UniqueConstraint("user_id", name="uq_user_permissions_user"),)

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("profiles.id"), nullable=False)
    can_create = Column(Boolean, default=False, nullable=False)
    can_edit = Column(Boolean, default=False, nullable=False)
    can_delete = Column(Boolean, default=False, nullable=False)
    can_mark_complete = Column(Boolean, default=False, nullable=False)
    can_mark_delayed = Column(Boolean, default=False, nullable=False)
    can_add_notes = Column(Boolean, default=False, nullable=False)
    can_view_reports = Column(Boolean, default=False, nullable=False)
    view_all_actions = Column(Boolean, default=False, nullable=False)
    can_edit_user = Column(Boolean, default=False, nullable=False)
    can_edit_action = Column(Boolean, default=False, nullable=False)
    can_edit_client = Column(Boolean, default=False, nullable=False)
    can_delete_client = Column(Boolean, default=False, nullable=False)
    can_edit_company = Column(Boolean, default=False, nullable=False)
    can_delete_company = Column(Boolean, default=False, nullable=False)
    view_only_assigned_actions = Column(Boolean, default=False, nullable=False)

    user = relationship("User", back_populates="permissions")


class UserNotificationSettings(Base):
    __tablename__ = "user_notification_settings"
    __table_args__ = (UniqueConstraint("user_id", name="uq_notification_settings_user"),)

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("profiles.id"), nullable=False)
    email_enabled = Column(Boolean, default=True, nullable=False)
    whatsapp_enabled = Column(Boolean, default=False, nullable=False)
    sms_enabled = Column(Boolean, default=False, nullable=False)
    internal_enabled = Column(Boolean, default=True, nullable=False)
    reminder_before_hours = Column(Integer, default=24, nullable=False)
    reminder_frequency_hours = Column(Integer, default=1, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    user = relationship("User", back_populates="notification_settings")


class Action(Base):
    __tablename__ = "actions"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    subject = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String, nullable=False, default="pendente")
    responsible_id = Column(String, ForeignKey("responsibles.id"), nullable=False)
    start_date = Column(DateTime, nullable=False, default=datetime.utcnow)
    end_date = Column(DateTime, nullable=False)
    company_id = Column(String, ForeignKey("companies.id"), nullable=False)
    client_id = Column(String, ForeignKey("clients.id"), nullable=True)
    requester_id = Column(String, ForeignKey("responsibles.id"), nullable=True)
    completed_at = Column(DateTime, nullable=True)
    completion_notes = Column(Text, nullable=True)
    is_personal_reminder = Column(Boolean, default=False, nullable=False)
    created_by = Column(String, nullable=True)
    created_by_name = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    responsible = relationship("Responsible", foreign_keys=[responsible_id])
    requester = relationship("Responsible", foreign_keys=[requester_id])
    company = relationship("Company")
    client = relationship("Client")
    notes = relationship(
        "ActionNote",
        back_populates="action",
        cascade="all, delete-orphan",
        order_by="ActionNote.created_at",
    )
    attachments = relationship(
        "ActionAttachment",
        back_populates="action",
        cascade="all, delete-orphan",
        order_by="ActionAttachment.created_at",
    )


class ActionNote(Base):
    __tablename__ = "action_notes"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    action_id = Column(String, ForeignKey("actions.id"), nullable=False)
    content = Column(Text, nullable=False)
    created_by = Column(String, nullable=False, default="system")
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    is_deleted = Column(Boolean, default=False, nullable=False)

    action = relationship("Action", back_populates="notes")


class ActionAttachment(Base):
    __tablename__ = "action_attachments"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    action_id = Column(String, ForeignKey("actions.id"), nullable=False)
    file_path = Column(String, nullable=False)
    file_name = Column(String, nullable=False)
    content_type = Column(String, nullable=True)
    size = Column(Integer, nullable=True)
    created_by = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    action = relationship("Action", back_populates="attachments")


class InternalNotification(Base):
    __tablename__ = "internal_notifications"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    recipient_id = Column(String, nullable=False, index=True)
    sender_id = Column(String, nullable=True)
    title = Column(String, nullable=False)
    content = Column(Text, nullable=False)
    reference_id = Column(String, nullable=True)
    reference_type = Column(String, nullable=True)
    read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
