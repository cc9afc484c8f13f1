"""
Shared fixtures: in-memory SQLite database, staff users, a screening form
template and an API client with auth and DB dependencies overridden.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from uuid import uuid4

from origination.database import Base
from origination.models import db_models  # noqa: F401
from origination.models.db_models import UserDB
from origination.models.dto import ClientIntake
from origination.services.forms import FormTemplateStore
from origination.services.integrations import GeoValidationService, LocalAssetStore
from origination.services.screening import ScreeningService

BRANCH_ID = "branch-meki-001"


# =============================================================================
# DATABASE
# =============================================================================

@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


# =============================================================================
# USERS
# =============================================================================

def _user(db, username, role="user", permissions=None):
    user = UserDB(
        id=str(uuid4()),
        email=f"{username}@mfi.example.com",
        username=username,
        role=role,
        permissions=permissions or [],
        branch_id=BRANCH_ID,
    )
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def officer(db):
    """Loan officer: fills in and submits screenings."""
    return _user(db, "officer")


@pytest.fixture
def supervisor(db):
    """Branch supervisor holding the AUTHORIZE permission."""
    return _user(db, "supervisor", permissions=["AUTHORIZE"])


@pytest.fixture
def admin(db):
    return _user(db, "admin", role="admin")


# =============================================================================
# SCREENING TEMPLATE
# =============================================================================

@pytest.fixture
def template(db, admin):
    """
    SCREENING form:

    top level:  resident, land (+ sub: land size), certificate -> land,
                trade license -> income source (section question, dropped on clone)
    Income:     income source, farm income -> income source,
                years of residence -> resident (top level, dropped on clone)
    """
    store = FormTemplateStore(db)
    form = store.create({
        "type": "SCREENING",
        "title": "Client Screening",
        "purpose": "Eligibility screening for individual loans",
        "layout": "TWO_COLUMNS",
        "signatures": ["Loan Officer", "Client"],
        "questions": [
            {
                "question_text": "Is the client a resident of the kebele?",
                "type": "Yes/No",
                "options": ["Yes", "No"],
                "required": True,
            },
            {
                "question_text": "Does the client own farm land?",
                "type": "YES_NO",
                "options": ["Yes", "No"],
                "sub_questions": [
                    {
                        "question_text": "Land size",
                        "type": "FILL_IN_BLANK",
                        "validation_factor": "NUMERIC",
                        "measurement_unit": "ha",
                    },
                ],
            },
        ],
        "sections": [
            {
                "title": "Income",
                "questions": [
                    {
                        "question_text": "Main source of income",
                        "type": "SINGLE_CHOICE",
                        "options": ["Farming", "Trade"],
                    },
                ],
            },
        ],
    }, created_by=admin.id)

    resident, land = form.questions
    income = form.sections[0]
    income_source = income.questions[0]

    store.add_question(form.id, {
        "question_text": "Land certificate number",
        "type": "FILL_IN_BLANK",
        "prerequisites": [{"question": land.id, "answer": "Yes"}],
    })
    store.add_question(form.id, {
        "question_text": "Trade license number",
        "type": "FILL_IN_BLANK",
        "prerequisites": [{"question": income_source.id, "answer": "Trade"}],
    })
    store.add_question(form.id, {
        "question_text": "Monthly farm income",
        "type": "FILL_IN_BLANK",
        "validation_factor": "NUMERIC",
        "prerequisites": [{"question": income_source.id, "answer": "Farming"}],
    }, section_id=income.id)
    store.add_question(form.id, {
        "question_text": "Years of residence",
        "type": "FILL_IN_BLANK",
        "prerequisites": [{"question": resident.id, "answer": "Yes"}],
    }, section_id=income.id)

    db.commit()
    return form


# =============================================================================
# CLIENT INTAKE / SERVICES
# =============================================================================

@pytest.fixture
def make_intake(officer):
    def factory(**overrides):
        data = dict(
            first_name="Abebe",
            last_name="Kebede",
            grandfather_name="Tesema",
            gender="male",
            national_id_no="ID-0001",
            branch=BRANCH_ID,
            created_by=officer.id,
            civil_status="single",
            household_members_count=4,
            phone="0911000001",
            woreda="Dugda",
            kebele="01",
            house_no="123",
        )
        data.update(overrides)
        return ClientIntake(**data)
    return factory


@pytest.fixture
def asset_store(tmp_path):
    return LocalAssetStore(root=tmp_path / "assets", base_url="http://testserver/media/")


@pytest.fixture
def screening_service(db, asset_store):
    return ScreeningService(db, assets=asset_store, geo=GeoValidationService(url=""))


# =============================================================================
# API
# =============================================================================

class ApiHarness:
    """TestClient acting as one of the fixture users."""

    def __init__(self, client, acting):
        self.client = client
        self._acting = acting

    def act_as(self, user):
        self._acting["id"] = user.id
        return self


@pytest.fixture
def api(session_factory, officer, monkeypatch, tmp_path):
    from fastapi import Depends
    from fastapi.testclient import TestClient
    from sqlalchemy.orm import Session

    from origination import config
    from origination.auth import get_current_user
    from origination.database import get_db
    from origination.main import app

    monkeypatch.setattr(config, "ASSETS_DIR", tmp_path / "media")
    monkeypatch.setattr(config, "ASSETS_URL", "http://testserver/media/")
    monkeypatch.setattr(config, "GEO_WPS_URL", "")

    acting = {"id": officer.id}

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    def override_current_user(db: Session = Depends(get_db)):
        return db.get(UserDB, acting["id"])

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_current_user

    yield ApiHarness(TestClient(app), acting)

    app.dependency_overrides.clear()
