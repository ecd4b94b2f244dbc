"""
SQLAlchemy ORM Models
Defines all database models for the staffsync system.
"""

from datetime import datetime

from sqlalchemy import (
    Boolean, Column, Date, DateTime, Float, ForeignKey,
    Integer, JSON, String, Text, Time, UniqueConstraint, Index
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()

JSONType = JSON().with_variant(JSONB(), 'postgresql')


# ============================================
# TENANT & SITE MODELS
# ============================================

class Franchisee(Base):
    """Franchisee model (remote-system tenant)."""
    __tablename__ = 'franchisees'

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False)
    company_tax_id = Column(String(50))
    remote_api_key = Column(Text)  # bearer credential, optional
    remote_business_id = Column(String(100))
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    centres = relationship("Centre", back_populates="franchisee")
    services = relationship("RemoteService", back_populates="franchisee")


class Centre(Base):
    """Centre (restaurant/site) model."""
    __tablename__ = 'centres'

    id = Column(Integer, primary_key=True)
    code = Column(String(50), nullable=False, unique=True)
    name = Column(String(255), nullable=False)
    city = Column(String(255))
    active = Column(Boolean, default=True, nullable=False)
    remote_service_id = Column(String(100))
    remote_business_id = Column(String(100))
    franchisee_id = Column(Integer, ForeignKey('franchisees.id'))
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    franchisee = relationship("Franchisee", back_populates="centres")


# ============================================
# MIRRORED WORKFORCE MODELS
# ============================================

class Employee(Base):
    """Employee mirrored from the remote system."""
    __tablename__ = 'employees'

    id = Column(Integer, primary_key=True)
    remote_id = Column(String(100), unique=True)
    first_name = Column(String(255), nullable=False)
    last_name = Column(String(255), nullable=False, default='')
    email = Column(String(255))
    centre_code = Column(String(50), index=True)
    payroll_code = Column(String(50))
    hire_date = Column(Date)
    termination_date = Column(Date)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    schedules = relationship("Schedule", back_populates="employee", cascade="all, delete-orphan")
    absences = relationship("Absence", back_populates="employee", cascade="all, delete-orphan")
    payrolls = relationship("Payroll", back_populates="employee", cascade="all, delete-orphan")


class Schedule(Base):
    """Planned shift (remote assignment)."""
    __tablename__ = 'schedules'

    id = Column(Integer, primary_key=True)
    employee_id = Column(Integer, ForeignKey('employees.id', ondelete='CASCADE'), nullable=False)
    date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    planned_hours = Column(Float, nullable=False)
    service_id = Column(String(100), nullable=False)
    assignment_type = Column(String(100))
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint('employee_id', 'date', 'service_id', name='uq_schedule_employee_date_service'),
        Index('ix_schedules_date', 'date'),
    )

    # Relationships
    employee = relationship("Employee", back_populates="schedules")


class Absence(Base):
    """Absence mirrored from the remote system."""
    __tablename__ = 'absences'

    id = Column(Integer, primary_key=True)
    employee_id = Column(Integer, ForeignKey('employees.id', ondelete='CASCADE'), nullable=False)
    date = Column(Date, nullable=False)
    absence_type = Column(String(100), nullable=False)
    hours = Column(Float, nullable=False)
    reason = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint('employee_id', 'date', 'absence_type', name='uq_absence_employee_date_type'),
        Index('ix_absences_date', 'date'),
    )

    # Relationships
    employee = relationship("Employee", back_populates="absences")


class RemoteService(Base):
    """Service catalog entry; the full remote payload is archived."""
    __tablename__ = 'remote_services'

    id = Column(Integer, primary_key=True)
    remote_id = Column(String(100), nullable=False, unique=True)
    name = Column(String(255), nullable=False)
    time_zone = Column(String(100))
    latitude = Column(Float)
    longitude = Column(Float)
    payload = Column(JSONType)
    franchisee_id = Column(Integer, ForeignKey('franchisees.id'))
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    franchisee = relationship("Franchisee", back_populates="services")


class Payroll(Base):
    """Payroll period imported from the payroll system."""
    __tablename__ = 'payrolls'

    id = Column(Integer, primary_key=True)
    employee_id = Column(Integer, ForeignKey('employees.id', ondelete='CASCADE'), nullable=False)
    period_start = Column(Date, nullable=False)
    period_end = Column(Date, nullable=False)
    hours_worked = Column(Float, default=0)
    total_cost = Column(Float, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    employee = relationship("Employee", back_populates="payrolls")


class DataQualityIssue(Base):
    """Data quality issue detected on mirrored data."""
    __tablename__ = 'dq_issues'

    id = Column(Integer, primary_key=True)
    issue_type = Column(String(100), nullable=False)
    severity = Column(String(20), nullable=False)  # 'critical', 'high', 'medium', 'low'
    resolved = Column(Boolean, default=False, nullable=False)
    resolved_at = Column(DateTime)
    centre_code = Column(String(50))
    employee_id = Column(Integer, ForeignKey('employees.id', ondelete='SET NULL'))
    period_start = Column(Date)
    period_end = Column(Date)
    detail = Column(JSONType)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


# ============================================
# USERS
# ============================================

class User(Base):
    """Dashboard user profile."""
    __tablename__ = 'users'

    id = Column(Integer, primary_key=True)
    email = Column(String(255))
    full_name = Column(String(255))
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    roles = relationship("UserRole", back_populates="user", cascade="all, delete-orphan")


class UserRole(Base):
    """Role granted to a user, optionally scoped to a centre."""
    __tablename__ = 'user_roles'

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    role = Column(String(20), nullable=False)  # 'admin', 'manager', 'franchisee', 'advisor'
    centre_code = Column(String(50))
    franchisee_id = Column(Integer, ForeignKey('franchisees.id'))
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    user = relationship("User", back_populates="roles")


# ============================================
# ALERTING MODELS
# ============================================

class AlertRule(Base):
    """Configurable alert rule."""
    __tablename__ = 'alert_rules'

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    rule_type = Column(String(50), nullable=False)
    centre_code = Column(String(50))  # optional scope
    operator = Column(String(5), nullable=False, default='>')  # '>', '<', '='
    threshold = Column(Float)
    period = Column(String(20), nullable=False, default='last_month')
    channels = Column(JSONType, default=list)  # e.g. ['in_app', 'email']
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    notifications = relationship("AlertNotification", back_populates="rule")


class AlertNotification(Base):
    """One notification per (rule, recipient) per triggering evaluation."""
    __tablename__ = 'alert_notifications'

    id = Column(Integer, primary_key=True)
    rule_id = Column(Integer, ForeignKey('alert_rules.id', ondelete='SET NULL'))
    rule_type = Column(String(50), nullable=False)
    severity = Column(String(20), nullable=False)  # 'high', 'critical'
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    details = Column(JSONType)
    centre_code = Column(String(50))
    recipient_user_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'))
    recipient_email = Column(String(255))
    read = Column(Boolean, default=False, nullable=False)
    read_at = Column(DateTime)
    email_sent = Column(Boolean, default=False, nullable=False)
    email_sent_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index('ix_alert_notifications_recipient', 'recipient_user_id', 'read'),
    )

    # Relationships
    rule = relationship("AlertRule", back_populates="notifications")


# ============================================
# RUN TRACKING MODELS
# ============================================

class SyncLog(Base):
    """Entity synchronization run tracking model."""
    __tablename__ = 'sync_logs'

    id = Column(Integer, primary_key=True)
    sync_type = Column(String(20), nullable=False)  # 'employees', 'schedules', 'absences', 'full'
    status = Column(String(20), nullable=False, default='running')  # 'running', 'completed', 'partial', 'failed'
    params = Column(JSONType)
    trigger_source = Column(String(20), default='manual')  # 'manual', 'scheduled'
    triggered_by = Column(String(255))
    started_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    completed_at = Column(DateTime)
    total_rows = Column(Integer, default=0)
    inserted_rows = Column(Integer, default=0)
    updated_rows = Column(Integer, default=0)
    error_rows = Column(Integer, default=0)
    errors = Column(JSONType)


class ServiceSyncLog(Base):
    """Service catalog (tenant fan-out) run tracking model."""
    __tablename__ = 'service_sync_logs'

    id = Column(Integer, primary_key=True)
    status = Column(String(20), nullable=False, default='running')
    trigger_source = Column(String(20), default='manual')
    triggered_by = Column(String(255))
    started_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    completed_at = Column(DateTime)
    total_franchisees = Column(Integer, default=0)
    franchisees_succeeded = Column(Integer, default=0)
    franchisees_failed = Column(Integer, default=0)
    total_services = Column(Integer, default=0)
    results = Column(JSONType)
    errors = Column(JSONType)


class RunLease(Base):
    """Expiring lease preventing overlapping runs of the same kind."""
    __tablename__ = 'run_leases'

    key = Column(String(100), primary_key=True)
    token = Column(String(64), nullable=False)
    acquired_at = Column(DateTime, nullable=False)
    expires_at = Column(DateTime, nullable=False)


class RemoteLatencyLog(Base):
    """Latency sample for one remote API call."""
    __tablename__ = 'remote_latency_logs'

    id = Column(Integer, primary_key=True)
    endpoint = Column(String(500), nullable=False)
    method = Column(String(10), nullable=False)
    status_code = Column(Integer)
    latency_ms = Column(Integer, nullable=False)
    success = Column(Boolean, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class SystemHealthLog(Base):
    """Result of one health probe."""
    __tablename__ = 'system_health_logs'

    id = Column(Integer, primary_key=True)
    checked_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    overall_status = Column(String(20), nullable=False)  # 'healthy', 'degraded', 'down'
    database_status = Column(String(20), nullable=False)
    database_latency_ms = Column(Integer)
    remote_status = Column(String(20), nullable=False)
    remote_latency_ms = Column(Integer)
    remote_error = Column(Text)
    last_sync_status = Column(String(20))
    last_sync_at = Column(DateTime)
    employees_count = Column(Integer, default=0)
    schedules_count = Column(Integer, default=0)
    absences_count = Column(Integer, default=0)
    payrolls_count = Column(Integer, default=0)
    details = Column(JSONType)
