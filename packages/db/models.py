"""
SQLAlchemy ORM models for Careline persistence.
"""
from __future__ import annotations

import uuid
from datetime import datetime, timezone as dt_timezone

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Integer, String, Text, JSON
from sqlalchemy.orm import DeclarativeBase, relationship

def _uuid():
    return uuid.uuid4().hex

def utcnow():
    return datetime.now(dt_timezone.utc)

class Base(DeclarativeBase):
    pass


class Facility(Base):
    __tablename__ = "facilities"
    id = Column(String(120), primary_key=True, default=_uuid)
    name = Column(String(200), nullable=False)
    created_at = Column(DateTime, default=utcnow)

    patients = relationship("Patient", back_populates="facility", cascade="all, delete-orphan")
    referrals = relationship("Referral", back_populates="facility", cascade="all, delete-orphan")


class Patient(Base):
    __tablename__ = "patients"

    id = Column(String(120), primary_key=True, default=_uuid)
    facility_id = Column(String(120), ForeignKey("facilities.id"), nullable=False)
    emirates_id = Column(String(32), nullable=True)
    first_name_en = Column(String(120), nullable=True)
    last_name_en = Column(String(120), nullable=True)
    first_name_ar = Column(String(120), nullable=True)
    last_name_ar = Column(String(120), nullable=True)
    date_of_birth = Column(Date, nullable=True)
    gender = Column(String(20), nullable=True)
    nationality = Column(String(80), nullable=True)
    phone_number = Column(String(40), nullable=True)
    email = Column(String(200), nullable=True)
    address_json = Column(JSON, nullable=True)
    insurance_provider = Column(String(120), nullable=True)
    insurance_type = Column(String(80), nullable=True)
    insurance_number = Column(String(120), nullable=True)
    thiqa_card_number = Column(String(120), nullable=True)
    blood_type = Column(String(8), nullable=True)
    allergies_json = Column(JSON, nullable=True)
    chronic_conditions_json = Column(JSON, nullable=True)
    language_preference = Column(String(20), default="en")
    interpreter_required = Column(Boolean, default=False)
    status = Column(String(20), default="active")  # active | inactive | discharged
    lifecycle_status = Column(String(40), default="referral")
    homebound_status = Column(String(40), default="pending_assessment")
    discharge_checklist_json = Column(JSON, nullable=True)
    last_synced_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    facility = relationship("Facility", back_populates="patients")
    episodes = relationship("Episode", back_populates="patient", cascade="all, delete-orphan")


class Referral(Base):
    __tablename__ = "referrals"

    id = Column(String(120), primary_key=True, default=_uuid)
    facility_id = Column(String(120), ForeignKey("facilities.id"), nullable=False)
    referral_date = Column(Date, nullable=False)
    referral_source = Column(String(120), nullable=False)
    referral_source_contact = Column(String(200), nullable=True)
    patient_name = Column(String(200), nullable=False)
    patient_contact = Column(String(120), nullable=True)
    preliminary_needs = Column(Text, nullable=True)
    insurance_info = Column(String(200), nullable=True)
    geographic_location = Column(String(200), nullable=True)
    acknowledgment_status = Column(String(20), default="Pending")  # Pending | Acknowledged | Processed
    acknowledged_by = Column(String(120), nullable=True)
    acknowledgment_date = Column(DateTime, nullable=True)
    referral_status = Column(String(20), default="New")  # New | In Progress | Accepted | Declined
    status_notes = Column(Text, nullable=True)
    assigned_nurse_supervisor = Column(String(120), nullable=True)
    assigned_charge_nurse = Column(String(120), nullable=True)
    assigned_case_coordinator = Column(String(120), nullable=True)
    assessment_scheduled_date = Column(Date, nullable=True)
    initial_contact_completed = Column(Boolean, default=False)
    documentation_prepared = Column(Boolean, default=False)
    created_at = Column(DateTime, default=utcnow)

    facility = relationship("Facility", back_populates="referrals")


class Episode(Base):
    __tablename__ = "episodes"

    id = Column(String(120), primary_key=True, default=_uuid)
    patient_id = Column(String(120), ForeignKey("patients.id"), nullable=False)
    episode_number = Column(Integer, nullable=False)
    status = Column(String(20), default="active")  # active | completed | cancelled
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)
    primary_diagnosis = Column(String(200), nullable=True)
    created_at = Column(DateTime, default=utcnow)

    patient = relationship("Patient", back_populates="episodes")
    events = relationship("EpisodeEvent", back_populates="episode", cascade="all, delete-orphan")
    forms = relationship("EpisodeForm", back_populates="episode", cascade="all, delete-orphan")


class EpisodeEvent(Base):
    __tablename__ = "episode_events"

    id = Column(String(120), primary_key=True, default=_uuid)
    episode_id = Column(String(120), ForeignKey("episodes.id"), nullable=False)
    occurred_at = Column(DateTime, nullable=False)
    event_type = Column(String(50), nullable=False)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    performed_by = Column(String(120), nullable=True)

    episode = relationship("Episode", back_populates="events")


class EpisodeForm(Base):
    __tablename__ = "episode_forms"

    id = Column(String(120), primary_key=True, default=_uuid)
    episode_id = Column(String(120), ForeignKey("episodes.id"), nullable=False)
    form_type = Column(String(50), nullable=False)  # referral | assessment | monitoring | care_plan | homebound_assessment
    status = Column(String(20), default="draft")  # draft | completed | submitted
    submitted_at = Column(DateTime, nullable=True)
    data_json = Column(JSON, nullable=True)

    episode = relationship("Episode", back_populates="forms")
