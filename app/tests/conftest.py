"""
Fixtures compartilhadas dos testes
Arquivo: tests/conftest.py
"""
import os

# Antes de importar o app: sem Redis, sem rate limit, bcrypt rápido
os.environ["REDIS_URL"] = ""
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["PASSWORD_HASH_ROUNDS"] = "4"
os.environ["LOG_DIR"] = ""

import re
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.main import app
from app.api.password_recovery import get_email_service, get_sms_service
from app.config.database import Base, get_db
from app.config.redis_config import get_token_store
from app.model.user import User
from app.service.sms_service import SmsProviderError
from app.service.token_store import MemoryTokenStore
from app.util.security import hash_password

# Configuração do banco de dados de teste
SQLALCHEMY_DATABASE_URL = "sqlite:///./test_recovery.db"
engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

CODE_PATTERN = re.compile(r"reset code is: (\d{6})")


class FakeClock:
    """Relógio controlável para testar expiração"""

    def __init__(self, start: datetime = None):
        self.now = start or datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def timestamp(self) -> float:
        return self.now.timestamp()

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


class FakeEmailService:
    def __init__(self, succeed: bool = True):
        self.succeed = succeed
        self.sent = []

    async def send_email(self, to_email, subject, body_html, body_text=None) -> bool:
        self.sent.append({
            "to_email": to_email,
            "subject": subject,
            "body_html": body_html,
            "body_text": body_text
        })
        return self.succeed

    def last_code(self) -> str:
        for message in reversed(self.sent):
            match = CODE_PATTERN.search(message["body_text"] or "")
            if match:
                return match.group(1)
        raise AssertionError("Nenhum código enviado")


class FakeSmsService:
    def __init__(self):
        self.send_ok = True
        self.status = "approved"
        self.fail_check = False
        self.sent = []
        self.checked = []

    async def send_verification(self, phone: str) -> bool:
        self.sent.append(phone)
        return self.send_ok

    async def check_verification(self, phone: str, code: str):
        self.checked.append((phone, code))
        if self.fail_check:
            raise SmsProviderError("provider down")
        return self.status


# Fixtures
@pytest.fixture(scope="function")
def test_db():
    """Cria banco de dados de teste limpo para cada teste"""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session(test_db):
    """Cria sessão de banco de dados para teste"""
    connection = engine.connect()
    transaction = connection.begin()
    session = TestingSessionLocal(bind=connection)
    yield session
    session.close()
    transaction.rollback()
    connection.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def token_store(clock):
    return MemoryTokenStore(clock=clock.timestamp)


@pytest.fixture
def fake_email():
    return FakeEmailService()


@pytest.fixture
def fake_sms():
    return FakeSmsService()


@pytest.fixture(scope="function")
def client(db_session, fake_email, fake_sms):
    """Cliente de teste com banco, token store e provedores substituídos"""
    store = MemoryTokenStore()

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_token_store] = lambda: store
    app.dependency_overrides[get_email_service] = lambda: fake_email
    app.dependency_overrides[get_sms_service] = lambda: fake_sms
    with TestClient(app) as test_client:
        test_client.token_store = store
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def sample_user_data():
    return {
        "email": "a@example.com",
        "password": "OldPassword1",
        "name": "Alex",
        "phone": "(555) 123-4567",
        "username": "AlexR"
    }


@pytest.fixture
def existing_user(db_session, sample_user_data):
    """Cria um usuário existente no banco"""
    user = User(
        email=sample_user_data["email"],
        phone=sample_user_data["phone"],
        username=sample_user_data["username"],
        name=sample_user_data["name"],
        password_hash=hash_password(sample_user_data["password"])
    )
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user
