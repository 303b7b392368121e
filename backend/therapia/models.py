from __future__ import annotations
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import (
    String, Text, Integer, Date, DateTime, Numeric, Boolean, JSON, Uuid,
    CheckConstraint, ForeignKey, Index, UniqueConstraint,
)
from sqlalchemy.sql import func

from therapia.db import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Therapist(Base):
    """Profilo professionale del terapeuta (user_id = id utente Supabase)."""
    __tablename__ = "therapists"

    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    full_name: Mapped[Optional[str]] = mapped_column(String)
    email: Mapped[Optional[str]] = mapped_column(String)
    therapeutic_orientation: Mapped[Optional[str]] = mapped_column(String)

    # dati di fatturazione
    address: Mapped[Optional[str]] = mapped_column(String)
    city: Mapped[Optional[str]] = mapped_column(String)
    postal_code: Mapped[Optional[str]] = mapped_column(String)
    province: Mapped[Optional[str]] = mapped_column(String(2))
    vat_number: Mapped[Optional[str]] = mapped_column(String)
    registration_number: Mapped[Optional[str]] = mapped_column(String)
    iban: Mapped[Optional[str]] = mapped_column(String)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    patients: Mapped[list["Patient"]] = relationship(back_populates="therapist")


class Patient(Base):
    __tablename__ = "patients"
    __table_args__ = (
        Index("idx_patients_therapist", "therapist_user_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    therapist_user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("therapists.user_id", ondelete="CASCADE"), nullable=False
    )
    # account del paziente per il portale (se invitato)
    patient_user_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, unique=True, nullable=True)

    display_name: Mapped[str] = mapped_column(String, nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String)
    phone: Mapped[Optional[str]] = mapped_column(String)
    address: Mapped[Optional[str]] = mapped_column(String)
    city: Mapped[Optional[str]] = mapped_column(String)
    postal_code: Mapped[Optional[str]] = mapped_column(String)
    province: Mapped[Optional[str]] = mapped_column(String(2))
    fiscal_code: Mapped[Optional[str]] = mapped_column(String(16))
    birth_date: Mapped[Optional[date]] = mapped_column(Date)
    birth_place: Mapped[Optional[str]] = mapped_column(String)
    medico_mmg: Mapped[Optional[str]] = mapped_column(String)

    issues: Mapped[Optional[str]] = mapped_column(Text)
    goals: Mapped[Optional[str]] = mapped_column(Text)

    session_duration_individual: Mapped[int] = mapped_column(Integer, default=45, nullable=False)
    session_duration_couple: Mapped[int] = mapped_column(Integer, default=60, nullable=False)
    session_duration_family: Mapped[int] = mapped_column(Integer, default=75, nullable=False)
    rate_individual: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    rate_couple: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    rate_family: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    therapist: Mapped["Therapist"] = relationship(back_populates="patients")


class Appointment(Base):
    __tablename__ = "appointments"
    __table_args__ = (
        CheckConstraint("ends_at > starts_at", name="ck_appointments_range"),
        Index("idx_appointments_therapist_start", "therapist_user_id", "starts_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    therapist_user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("therapists.user_id", ondelete="CASCADE"), nullable=False
    )
    patient_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("patients.id", ondelete="SET NULL"), nullable=True
    )
    title: Mapped[str] = mapped_column(String, default="Seduta", nullable=False)
    starts_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    ends_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    location: Mapped[Optional[str]] = mapped_column(String)
    status: Mapped[str] = mapped_column(String, default="scheduled", nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )


class AppointmentMessage(Base):
    """Messaggio del paziente legato a un appuntamento (es. disdetta, ritardo)."""
    __tablename__ = "appointment_messages"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    appointment_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("appointments.id", ondelete="CASCADE"), nullable=False
    )
    patient_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False
    )
    message: Mapped[str] = mapped_column(Text, nullable=False)
    read_by_therapist: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )


class SessionNote(Base):
    __tablename__ = "session_notes"
    __table_args__ = (
        Index("idx_session_notes_patient_date", "patient_id", "session_date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    patient_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False
    )
    therapist_user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("therapists.user_id", ondelete="CASCADE"), nullable=False
    )
    session_date: Mapped[date] = mapped_column(Date, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    ai_summary: Mapped[Optional[str]] = mapped_column(Text)
    themes: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )


class QuestionnaireResult(Base):
    __tablename__ = "questionnaire_results"
    __table_args__ = (
        Index("idx_questionnaire_results_patient", "patient_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    patient_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False
    )
    therapist_user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("therapists.user_id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(String, nullable=False)
    answers: Mapped[list[int]] = mapped_column(JSON, default=list, nullable=False)
    total: Mapped[int] = mapped_column(Integer, nullable=False)
    severity: Mapped[str] = mapped_column(String, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )


class TherapyPlan(Base):
    """Valutazione clinica + obiettivi ed esercizi correnti del paziente (una riga per paziente)."""
    __tablename__ = "therapy_plan"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    patient_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("patients.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    anamnesi: Mapped[Optional[str]] = mapped_column(Text)
    valutazione_psicodiagnostica: Mapped[Optional[str]] = mapped_column(Text)
    formulazione_caso: Mapped[Optional[str]] = mapped_column(Text)
    obiettivi_generali: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    obiettivi_specifici: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    esercizi: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now()
    )


class ObjectiveCompletion(Base):
    __tablename__ = "objectives_completion"
    __table_args__ = (
        CheckConstraint(
            "objective_type in ('generale','specifico')",
            name="ck_objectives_completion_type",
        ),
        UniqueConstraint("patient_id", "objective_type", "objective_index",
                         name="uq_objectives_completion_slot"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    patient_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False
    )
    objective_type: Mapped[str] = mapped_column(String, nullable=False)
    objective_index: Mapped[int] = mapped_column(Integer, nullable=False)
    objective_text: Mapped[str] = mapped_column(Text, nullable=False)
    completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))


class ExerciseCompletion(Base):
    __tablename__ = "exercises_completion"
    __table_args__ = (
        UniqueConstraint("patient_id", "exercise_index", name="uq_exercises_completion_slot"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    patient_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False
    )
    exercise_index: Mapped[int] = mapped_column(Integer, nullable=False)
    exercise_text: Mapped[str] = mapped_column(Text, nullable=False)
    completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))


class PatientNote(Base):
    """Diario del paziente."""
    __tablename__ = "patient_notes"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    patient_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False
    )
    note_date: Mapped[date] = mapped_column(Date, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )


class PatientSessionThought(Base):
    """Pensieri da portare alla prossima seduta (una riga per paziente)."""
    __tablename__ = "patient_session_thoughts"

    patient_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("patients.id", ondelete="CASCADE"), primary_key=True
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now()
    )


class ConsentDocument(Base):
    __tablename__ = "consent_documents"
    __table_args__ = (
        CheckConstraint(
            "status in ('pending','therapist_signed','completed')",
            name="ck_consent_documents_status",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    patient_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False
    )
    therapist_user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("therapists.user_id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(String, default="pending", nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )


class Invoice(Base):
    __tablename__ = "invoices"
    __table_args__ = (
        UniqueConstraint("therapist_user_id", "invoice_number", name="uq_invoices_number"),
        CheckConstraint("status in ('draft','sent','paid')", name="ck_invoices_status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    therapist_user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("therapists.user_id", ondelete="CASCADE"), nullable=False
    )
    patient_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False
    )
    invoice_number: Mapped[str] = mapped_column(String, nullable=False)
    period_start: Mapped[Optional[date]] = mapped_column(Date)
    period_end: Mapped[Optional[date]] = mapped_column(Date)
    due_date: Mapped[Optional[date]] = mapped_column(Date)

    subtotal: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    enpap_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    enpap_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    bollo_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    notes: Mapped[Optional[str]] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String, default="draft", nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    items: Mapped[list["InvoiceItem"]] = relationship(
        back_populates="invoice", cascade="all, delete-orphan", order_by="InvoiceItem.session_date"
    )


class InvoiceItem(Base):
    __tablename__ = "invoice_items"
    __table_args__ = (
        CheckConstraint(
            "session_type in ('individual','couple','family')",
            name="ck_invoice_items_session_type",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    invoice_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False
    )
    session_date: Mapped[date] = mapped_column(Date, nullable=False)
    description: Mapped[str] = mapped_column(String, nullable=False)
    session_type: Mapped[str] = mapped_column(String, default="individual", nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    invoice: Mapped["Invoice"] = relationship(back_populates="items")
