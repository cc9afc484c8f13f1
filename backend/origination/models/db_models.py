"""
Loan Origination API - SQLAlchemy ORM Models
PostgreSQL database models for persistent storage
"""
from datetime import datetime
from enum import Enum
from sqlalchemy import Column, String, Integer, DateTime, Text, JSON, ForeignKey, Enum as SQLEnum, Boolean
from sqlalchemy.orm import relationship
from ..database import Base


# =============================================================================
# ENUMS
# =============================================================================

class QuestionType(str, Enum):
    """Answer shape of a question."""
    YES_NO = "YES_NO"
    FILL_IN_BLANK = "FILL_IN_BLANK"
    MULTIPLE_CHOICE = "MULTIPLE_CHOICE"
    SINGLE_CHOICE = "SINGLE_CHOICE"
    GROUPED = "GROUPED"  # Container for sub_questions, holds no value itself


class ValidationFactor(str, Enum):
    """How fill-in-blank values are validated client side."""
    NONE = "NONE"
    PERCENTAGE = "PERCENTAGE"
    NUMERIC = "NUMERIC"
    ALPHANUMERIC = "ALPHANUMERIC"


class FormType(str, Enum):
    SCREENING = "SCREENING"
    LOAN_APPLICATION = "LOAN_APPLICATION"
    GROUP_APPLICATION = "GROUP_APPLICATION"


class FormLayout(str, Enum):
    TWO_COLUMNS = "TWO_COLUMNS"
    THREE_COLUMNS = "THREE_COLUMNS"


class ScreeningStatus(str, Enum):
    """
    Screening lifecycle.

    new -> screening_inprogress -> submitted -> approved | declined_final | declined_under_review
    """
    NEW = "new"
    SCREENING_INPROGRESS = "screening_inprogress"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    DECLINED_FINAL = "declined_final"
    DECLINED_UNDER_REVIEW = "declined_under_review"


class ClientStatus(str, Enum):
    """Workflow status of a client, driven by screening outcomes."""
    NEW = "new"
    SCREENING_INPROGRESS = "screening_inprogress"
    SUBMITTED = "submitted"
    ELIGIBLE = "eligible"
    INELIGIBLE = "ineligible"
    LOAN_GRANTED = "loan_granted"
    LOAN_PAID = "loan_paid"


class LoanStatus(str, Enum):
    NEW = "new"
    SUBMITTED = "submitted"
    INPROGRESS = "inprogress"
    ACCEPTED = "accepted"
    DECLINED_FINAL = "declined_final"
    CLOSED = "closed"


class ACATStatus(str, Enum):
    NEW = "new"
    SUBMITTED = "submitted"
    RESUBMITTED = "resubmitted"
    INPROGRESS = "inprogress"
    AUTHORIZED = "authorized"
    DECLINED_FINAL = "declined_final"
    CLOSED = "closed"


class TaskType(str, Enum):
    APPROVE = "approve"
    REVIEW = "review"


class TaskStatus(str, Enum):
    NEW = "new"
    COMPLETED = "completed"


class CBSStatus(str, Enum):
    """Outcome of pushing a client to the core banking system."""
    NO_ATTEMPT = "NO_ATTEMPT"
    ACCEPTED = "ACCEPTED"
    DENIED = "DENIED"


# =============================================================================
# ACTORS
# =============================================================================

class UserDB(Base):
    """
    Staff account acting on the workflow.

    Account management lives elsewhere; only what the workflow reads is kept.
    """
    __tablename__ = "users"

    id = Column(String(36), primary_key=True)  # UUID
    email = Column(String(255), unique=True, nullable=False, index=True)
    username = Column(String(100), unique=True, nullable=False, index=True)
    role = Column(String(50), default="user")  # "admin" bypasses capability checks
    permissions = Column(JSON, default=list)  # Capability names, e.g. ["AUTHORIZE"]
    branch_id = Column(String(36), nullable=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)


# =============================================================================
# CLIENTS
# =============================================================================

class ClientDB(Base):
    """Loan applicant. Status is updated as a side effect of screening transitions."""
    __tablename__ = "clients"

    id = Column(String(36), primary_key=True)  # UUID
    branch_id = Column(String(36), nullable=False, index=True)
    created_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    # Identity
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    grandfather_name = Column(String(100), nullable=False)
    gender = Column(String(20), nullable=False)
    national_id_no = Column(String(100), nullable=False)
    national_id_card = Column(String(500), nullable=True)  # Asset URL
    picture = Column(String(500), nullable=True)  # Asset URL
    date_of_birth = Column(DateTime, nullable=True)
    phone = Column(String(50), nullable=True, index=True)

    # Household
    civil_status = Column(String(50), nullable=False)
    household_members_count = Column(Integer, default=0)
    spouse = Column(JSON, nullable=True)  # {"first_name": ..., "last_name": ..., ...}

    # Address
    woreda = Column(String(100), nullable=True)
    kebele = Column(String(100), nullable=True)
    house_no = Column(String(50), nullable=True)
    geolocation = Column(JSON, nullable=True)  # Polygon as [[lng, lat], ...]
    geolocation_result = Column(JSON, nullable=True)

    # Workflow
    status = Column(SQLEnum(ClientStatus), default=ClientStatus.NEW, nullable=False)
    loan_cycle_number = Column(Integer, default=1)
    is_active = Column(Boolean, default=True)

    # Core banking
    cbs_status = Column(SQLEnum(CBSStatus), default=CBSStatus.NO_ATTEMPT)
    cbs_ref = Column(String(100), nullable=True)
    cbs_message = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    screenings = relationship("ScreeningDB", back_populates="client")


# =============================================================================
# QUESTIONS / SECTIONS / FORMS
# =============================================================================

class QuestionDB(Base):
    """
    Node in a question tree.

    A question is owned by exactly one of: a parent question (sub question),
    a form, a section or a screening. Prerequisites reference other questions
    by id: [{"question": <id>, "answer": <required value>}].
    """
    __tablename__ = "questions"

    id = Column(String(36), primary_key=True)  # UUID
    question_text = Column(Text, nullable=False)
    remark = Column(Text, default="")
    number = Column(Integer, default=1)  # Display number
    position = Column(Integer, default=0)  # Order within owner

    type = Column(SQLEnum(QuestionType), default=QuestionType.YES_NO, nullable=False)
    required = Column(Boolean, default=False)
    validation_factor = Column(SQLEnum(ValidationFactor), default=ValidationFactor.NONE)
    measurement_unit = Column(String(50), default="")
    options = Column(JSON, default=list)
    values = Column(JSON, default=list)  # Answers
    show = Column(Boolean, default=True)
    prerequisites = Column(JSON, default=list)

    # Owner (exactly one is set)
    parent_id = Column(String(36), ForeignKey("questions.id", ondelete="CASCADE"), nullable=True, index=True)
    form_id = Column(String(36), ForeignKey("forms.id", ondelete="CASCADE"), nullable=True, index=True)
    section_id = Column(String(36), ForeignKey("sections.id", ondelete="CASCADE"), nullable=True, index=True)
    screening_id = Column(String(36), ForeignKey("screenings.id", ondelete="CASCADE"), nullable=True, index=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    sub_questions = relationship(
        "QuestionDB",
        back_populates="parent",
        cascade="all, delete",
        order_by="QuestionDB.position",
    )
    parent = relationship("QuestionDB", back_populates="sub_questions", remote_side="QuestionDB.id")


class SectionDB(Base):
    """Named, ordered group of questions inside a form template or a screening."""
    __tablename__ = "sections"

    id = Column(String(36), primary_key=True)  # UUID
    title = Column(String(255), default="")
    number = Column(Integer, default=1)  # Sort key

    form_id = Column(String(36), ForeignKey("forms.id", ondelete="CASCADE"), nullable=True, index=True)
    screening_id = Column(String(36), ForeignKey("screenings.id", ondelete="CASCADE"), nullable=True, index=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    questions = relationship(
        "QuestionDB",
        foreign_keys="QuestionDB.section_id",
        cascade="all, delete",
        order_by="QuestionDB.position",
    )


class FormDB(Base):
    """Reusable questionnaire blueprint. Never mutated by screenings."""
    __tablename__ = "forms"

    id = Column(String(36), primary_key=True)  # UUID
    type = Column(SQLEnum(FormType), default=FormType.SCREENING, nullable=False, index=True)
    title = Column(String(255), default="")
    subtitle = Column(String(255), default="")
    purpose = Column(Text, default="")
    layout = Column(SQLEnum(FormLayout), default=FormLayout.TWO_COLUMNS)
    has_sections = Column(Boolean, default=False)
    disclaimer = Column(Text, default="")
    signatures = Column(JSON, default=list)
    created_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    questions = relationship(
        "QuestionDB",
        foreign_keys="QuestionDB.form_id",
        cascade="all, delete",
        order_by="QuestionDB.position",
    )
    sections = relationship(
        "SectionDB",
        foreign_keys="SectionDB.form_id",
        cascade="all, delete",
        order_by="SectionDB.number",
    )


# =============================================================================
# SCREENINGS
# =============================================================================

class ScreeningDB(Base):
    """One loan cycle's questionnaire instance for one client. Owns its clones."""
    __tablename__ = "screenings"

    id = Column(String(36), primary_key=True)  # UUID
    client_id = Column(String(36), ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)
    branch_id = Column(String(36), nullable=True, index=True)
    created_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    status = Column(SQLEnum(ScreeningStatus), default=ScreeningStatus.NEW, nullable=False, index=True)
    comment = Column(Text, default="")

    # Copied from the template at clone time
    title = Column(String(255), default="")
    subtitle = Column(String(255), default="")
    purpose = Column(Text, default="")
    layout = Column(SQLEnum(FormLayout), default=FormLayout.TWO_COLUMNS)
    has_sections = Column(Boolean, default=False)
    disclaimer = Column(Text, default="")
    signatures = Column(JSON, default=list)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    client = relationship("ClientDB", back_populates="screenings")
    questions = relationship(
        "QuestionDB",
        foreign_keys="QuestionDB.screening_id",
        cascade="all, delete",
        order_by="QuestionDB.position",
    )
    sections = relationship(
        "SectionDB",
        foreign_keys="SectionDB.screening_id",
        cascade="all, delete",
        order_by="SectionDB.number",
    )


# =============================================================================
# LOAN CYCLE HISTORY
# =============================================================================

class HistoryDB(Base):
    """
    Per-client ledger of loan cycles.

    cycles: [{"cycle_number": 1, "screening": id, "loan": id|"", "acat": id|"",
              "started_by": user id, "last_edit_by": user id}]
    """
    __tablename__ = "histories"

    id = Column(String(36), primary_key=True)  # UUID
    client_id = Column(String(36), ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, unique=True)
    branch_id = Column(String(36), nullable=True, index=True)
    cycle_number = Column(Integer, default=1)
    cycles = Column(JSON, default=list)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class LoanDB(Base):
    """Loan application. Owned by the loan module, read here for cycle gating."""
    __tablename__ = "loans"

    id = Column(String(36), primary_key=True)  # UUID
    client_id = Column(String(36), ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(SQLEnum(LoanStatus), default=LoanStatus.NEW, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class ClientACATDB(Base):
    """ACAT application. Owned by the ACAT module, read here for cycle gating."""
    __tablename__ = "client_acats"

    id = Column(String(36), primary_key=True)  # UUID
    client_id = Column(String(36), ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(SQLEnum(ACATStatus), default=ACATStatus.NEW, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


# =============================================================================
# TASKS / NOTIFICATIONS / AUDIT
# =============================================================================

class TaskDB(Base):
    """Approval work routed to a staff member. Linked to its entity by entity_ref."""
    __tablename__ = "tasks"

    id = Column(String(36), primary_key=True)  # UUID
    task = Column(Text, nullable=False)
    task_type = Column(SQLEnum(TaskType), nullable=False)
    entity_ref = Column(String(36), nullable=False, index=True)
    entity_type = Column(String(50), default="screening")
    status = Column(SQLEnum(TaskStatus), default=TaskStatus.NEW, nullable=False)
    comment = Column(Text, default="")
    created_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    assigned_to = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    branch_id = Column(String(36), nullable=True, index=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class NotificationDB(Base):
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True)  # UUID
    type = Column(String(50), nullable=False)  # SCREENING_APPROVED, SCREENING_DECLINED_FINAL, ...
    message = Column(Text, nullable=False)
    task_ref = Column(String(36), nullable=True)
    for_user = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True)
    read = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)


class AuditLogDB(Base):
    """Append-only trail of views and mutations."""
    __tablename__ = "audit_logs"

    id = Column(String(36), primary_key=True)  # UUID
    event = Column(String(100), nullable=False, index=True)
    user_id = Column(String(36), nullable=True, index=True)
    message = Column(Text, default="")
    diff = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class CBSConfigDB(Base):
    """Persisted CBS credentials. Single row; overrides the environment defaults."""
    __tablename__ = "cbs_config"

    id = Column(String(36), primary_key=True)  # UUID
    url = Column(String(500), nullable=False)
    username = Column(String(255), nullable=False)
    password = Column(String(255), nullable=False)
    device_id = Column(String(255), default="")
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
