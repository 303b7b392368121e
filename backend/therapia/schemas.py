from __future__ import annotations
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

SessionType = Literal["individual", "couple", "family"]


class CamelModel(BaseModel):
    """Request bodies: the web client sends camelCase (patientId), snake_case is accepted too."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True


# ---------- AI ----------
class TranscriptReq(CamelModel):
    transcript: Optional[str] = None
    patient_id: Optional[uuid.UUID] = None


class PatientIdReq(CamelModel):
    patient_id: Optional[uuid.UUID] = None


class ObjectivesReq(CamelModel):
    patient_id: Optional[uuid.UUID] = None
    last_session_only: bool = False
    transcript_text: Optional[str] = None


class SummaryResp(BaseModel):
    summary: str


class ThemesResp(BaseModel):
    themes: List[str]
    transcript_length: int


class Assessment(BaseModel):
    anamnesi: str = ""
    valutazione_psicodiagnostica: str = ""
    formulazione_caso: str = ""


class AssessmentResp(BaseModel):
    assessment: Assessment


class ObjectivesResp(BaseModel):
    obiettivi_generali: List[str]
    obiettivi_specifici: List[str]
    esercizi: List[str]
    sessions_analyzed: int
    patient_name: str
    last_session_only: bool
    error_info: Optional[str] = None


class PlanSuggestions(BaseModel):
    obiettivi_generali: List[str] = []
    obiettivi_specifici: List[str] = []
    esercizi: List[str] = []
    note: str = ""


class PlanSuggestionsResp(BaseModel):
    suggestions: PlanSuggestions


# ---------- Assistant ----------
class ChatTurn(BaseModel):
    role: str
    content: str


class TherapistChatReq(CamelModel):
    message: Optional[str] = None
    conversation_history: List[ChatTurn] = []
    action: Optional[Literal["create_appointment", "delete_appointment", "create_patient"]] = None
    action_data: Dict[str, Any] = {}


# ---------- Questionnaires ----------
class SubmitQuestionnaireReq(CamelModel):
    patient_id: uuid.UUID
    type: str
    answers: List[int]


class SubmitQuestionnaireResp(BaseModel):
    success: bool = True
    total: int
    severity: str
    max_score: int


class QuestionnaireInviteReq(CamelModel):
    patient_id: uuid.UUID
    email: EmailStr
    patient_name: Optional[str] = None
    questionnaire_type: str


class Gad7ResultReq(CamelModel):
    to: Optional[EmailStr] = None
    to_email: Optional[EmailStr] = None
    to_name: str = "Paziente"
    patient_name: Optional[str] = None
    total: int = Field(..., ge=0, le=21)
    severity: str
    result_date: Optional[str] = Field(None, alias="date")

    @model_validator(mode="after")
    def _recipient(self):
        if not (self.to or self.to_email):
            raise ValueError("Destinatario mancante")
        return self


class QuestionnaireResultPublic(BaseModel):
    id: uuid.UUID
    patient_id: uuid.UUID
    type: str
    answers: List[int]
    total: int
    severity: str
    created_at: datetime

    class Config:
        from_attributes = True


# ---------- Patients ----------
class PatientBase(CamelModel):
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    province: Optional[str] = Field(None, max_length=2)
    fiscal_code: Optional[str] = Field(None, max_length=16)
    birth_date: Optional[date] = None
    birth_place: Optional[str] = None
    medico_mmg: Optional[str] = None
    issues: Optional[str] = None
    goals: Optional[str] = None
    session_duration_individual: Optional[int] = Field(None, gt=0)
    session_duration_couple: Optional[int] = Field(None, gt=0)
    session_duration_family: Optional[int] = Field(None, gt=0)
    rate_individual: Optional[Decimal] = Field(None, ge=0)
    rate_couple: Optional[Decimal] = Field(None, ge=0)
    rate_family: Optional[Decimal] = Field(None, ge=0)

    @field_validator("province", "fiscal_code", mode="before")
    @classmethod
    def _upper(cls, v):
        return v.strip().upper() if isinstance(v, str) else v


class PatientCreate(PatientBase):
    display_name: str = Field(..., min_length=1)


class PatientUpdate(PatientBase):
    display_name: Optional[str] = Field(None, min_length=1)


class PatientPublic(BaseModel):
    id: uuid.UUID
    display_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    province: Optional[str] = None
    fiscal_code: Optional[str] = None
    birth_date: Optional[date] = None
    birth_place: Optional[str] = None
    medico_mmg: Optional[str] = None
    issues: Optional[str] = None
    goals: Optional[str] = None
    session_duration_individual: int
    session_duration_couple: int
    session_duration_family: int
    rate_individual: Optional[Decimal] = None
    rate_couple: Optional[Decimal] = None
    rate_family: Optional[Decimal] = None
    created_at: datetime

    class Config:
        from_attributes = True


class PatientProfileUpdate(CamelModel):
    """What the patient can edit from the portal."""
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    province: Optional[str] = Field(None, max_length=2)
    fiscal_code: Optional[str] = Field(None, max_length=16)
    birth_date: Optional[date] = None
    birth_place: Optional[str] = None
    medico_mmg: Optional[str] = None

    @field_validator("province", "fiscal_code", mode="before")
    @classmethod
    def _upper(cls, v):
        return v.strip().upper() if isinstance(v, str) else v


# ---------- Session notes ----------
class SessionNoteCreate(CamelModel):
    session_date: date
    transcript: Optional[str] = None
    ai_summary: Optional[str] = None
    themes: List[str] = []
    objectives: List[str] = []
    exercises: List[str] = []
    personal_notes: Optional[str] = None


class SessionNotePublic(BaseModel):
    id: uuid.UUID
    patient_id: uuid.UUID
    session_date: date
    notes: Optional[str] = None
    ai_summary: Optional[str] = None
    themes: List[str] = []
    created_at: datetime

    class Config:
        from_attributes = True


# ---------- Therapy plan ----------
class TherapyPlanUpdate(CamelModel):
    anamnesi: Optional[str] = None
    valutazione_psicodiagnostica: Optional[str] = None
    formulazione_caso: Optional[str] = None
    obiettivi_generali: Optional[List[str]] = None
    obiettivi_specifici: Optional[List[str]] = None
    esercizi: Optional[List[str]] = None


class TherapyPlanPublic(BaseModel):
    patient_id: uuid.UUID
    anamnesi: Optional[str] = None
    valutazione_psicodiagnostica: Optional[str] = None
    formulazione_caso: Optional[str] = None
    obiettivi_generali: List[str] = []
    obiettivi_specifici: List[str] = []
    esercizi: List[str] = []

    class Config:
        from_attributes = True


class SessionItemsMerge(CamelModel):
    obiettivi_specifici: List[str] = []
    esercizi: List[str] = []


class SendObjectivesReq(CamelModel):
    patient_id: uuid.UUID
    obiettivi_generali: List[str] = []
    obiettivi_specifici: List[str] = []
    esercizi: List[str] = []


class ObjectiveCompletionPublic(BaseModel):
    id: uuid.UUID
    objective_type: str
    objective_index: int
    objective_text: str
    completed: bool
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ExerciseCompletionPublic(BaseModel):
    id: uuid.UUID
    exercise_index: int
    exercise_text: str
    completed: bool
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CompletionToggle(BaseModel):
    completed: bool


class CompletionPublic(BaseModel):
    objectives: List[ObjectiveCompletionPublic]
    exercises: List[ExerciseCompletionPublic]


# ---------- Appointments ----------
class AppointmentCreate(CamelModel):
    patient_id: Optional[uuid.UUID] = None
    title: str = "Seduta"
    starts_at: datetime
    ends_at: Optional[datetime] = None
    duration_minutes: Optional[int] = Field(None, gt=0)
    location: Optional[str] = None

    @model_validator(mode="after")
    def _range(self):
        if self.ends_at is None and self.duration_minutes is None:
            raise ValueError("Indicare la fine o la durata dell'appuntamento")
        if self.ends_at is not None and self.ends_at <= self.starts_at:
            raise ValueError("La fine deve essere successiva all'inizio")
        return self


class AppointmentPublic(BaseModel):
    id: uuid.UUID
    patient_id: Optional[uuid.UUID] = None
    title: str
    starts_at: datetime
    ends_at: datetime
    location: Optional[str] = None
    status: str

    class Config:
        from_attributes = True


class AppointmentMessageIn(BaseModel):
    message: str


class AppointmentMessagePublic(BaseModel):
    id: uuid.UUID
    appointment_id: uuid.UUID
    patient_id: uuid.UUID
    message: str
    read_by_therapist: bool
    created_at: datetime

    class Config:
        from_attributes = True


# ---------- Patient portal ----------
class DiaryNoteIn(BaseModel):
    content: str


class PatientNotePublic(BaseModel):
    id: uuid.UUID
    note_date: date
    content: str
    created_at: datetime

    class Config:
        from_attributes = True


class ThoughtsIn(BaseModel):
    content: str


class ThoughtsPublic(BaseModel):
    content: str
    created_at: datetime

    class Config:
        from_attributes = True


class ConsentPublic(BaseModel):
    id: uuid.UUID
    patient_id: uuid.UUID
    title: str
    status: str
    created_at: datetime

    class Config:
        from_attributes = True


class PortalOverview(BaseModel):
    patient: PatientPublic
    upcoming_appointments: List[AppointmentPublic]
    diary: List[PatientNotePublic]
    thoughts: Optional[ThoughtsPublic] = None
    objectives: List[ObjectiveCompletionPublic]
    exercises: List[ExerciseCompletionPublic]
    consents: List[ConsentPublic]


# ---------- Invoices ----------
class InvoiceItemIn(CamelModel):
    session_date: date
    session_type: SessionType = "individual"
    description: Optional[str] = None
    amount: Optional[Decimal] = Field(None, ge=0)


class InvoiceCreate(CamelModel):
    patient_id: uuid.UUID
    period_start: date
    period_end: date
    due_date: Optional[date] = None
    enpap_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    notes: Optional[str] = None
    items: List[InvoiceItemIn] = Field(..., min_length=1)

    @model_validator(mode="after")
    def _period(self):
        if self.period_end < self.period_start:
            raise ValueError("Periodo di fatturazione non valido")
        return self


class InvoiceItemPublic(BaseModel):
    session_date: date
    description: str
    session_type: str
    amount: Decimal

    class Config:
        from_attributes = True


class InvoicePublic(BaseModel):
    id: uuid.UUID
    patient_id: uuid.UUID
    invoice_number: str
    period_start: Optional[date] = None
    period_end: Optional[date] = None
    due_date: Optional[date] = None
    subtotal: Decimal
    enpap_rate: Decimal
    enpap_amount: Decimal
    bollo_amount: Decimal
    total_amount: Decimal
    notes: Optional[str] = None
    status: str
    created_at: datetime
    items: List[InvoiceItemPublic] = []

    class Config:
        from_attributes = True


class SendInvoiceReq(CamelModel):
    invoice_id: uuid.UUID


# ---------- Therapist profile / consents ----------
class TherapistProfileUpdate(CamelModel):
    full_name: Optional[str] = None
    email: Optional[EmailStr] = None
    therapeutic_orientation: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    province: Optional[str] = Field(None, max_length=2)
    vat_number: Optional[str] = None
    registration_number: Optional[str] = None
    iban: Optional[str] = None

    @field_validator("province", "iban", mode="before")
    @classmethod
    def _upper(cls, v):
        return v.replace(" ", "").upper() if isinstance(v, str) else v


class TherapistProfilePublic(BaseModel):
    user_id: uuid.UUID
    full_name: Optional[str] = None
    email: Optional[str] = None
    therapeutic_orientation: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    province: Optional[str] = None
    vat_number: Optional[str] = None
    registration_number: Optional[str] = None
    iban: Optional[str] = None

    class Config:
        from_attributes = True


class ConsentCreate(CamelModel):
    title: str = "Consenso informato"
