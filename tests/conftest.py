from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from llm.client import OpenAIClient
from models import (
    Adventure,
    AdventureQuest,
    Base,
    Chapter,
    ChapterQuest,
    Character,
    GameSession,
    PlayerProfile,
)

USER_ID = "00000000-0000-0000-0000-000000000001"


class StubLLMClient(OpenAIClient):
    def __init__(self, output=None, error=None, usage=None):
        super().__init__(api_key="test-key", base_url="http://llm.test/v1", model="gpt-test", timeout=5)
        self.output = output
        self.error = error
        self.usage = usage or {"input_tokens": 10, "output_tokens": 20}
        self.payloads = []

    def create_response(self, payload):
        self.payloads.append(payload)
        if self.error is not None:
            raise self.error
        return {"id": "resp_test", "output_text": self.output, "usage": self.usage}


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite needs manual BEGIN for SAVEPOINT support.
    @event.listens_for(engine, "connect")
    def _connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, future=True)


@pytest.fixture()
def db(session_factory):
    with session_factory() as session:
        yield session


@pytest.fixture()
def llm():
    return StubLLMClient


@pytest.fixture()
def world(db):
    character = Character(
        name="Sage Ormond",
        emoji="🦉",
        archetype="Mentor",
        vibe="calme",
        motto="Un pas après l'autre.",
        ai_style={"tone": "chaleureux", "style": "imagé", "verbosity": "short"},
    )
    db.add(character)
    db.flush()
    db.add(
        PlayerProfile(
            user_id=USER_ID,
            display_name="Louise",
            character_id=character.id,
            context_home="Appartement de 3 pièces",
        )
    )
    session = GameSession(user_id=USER_ID, title="Ma partie")
    db.add(session)
    db.flush()
    adventure = Adventure(
        session_id=session.id,
        title="Réalignement du foyer",
        description="Remettre la maison en ordre.",
        context_text="General home reset",
    )
    db.add(adventure)
    db.flush()
    chapter = Chapter(
        session_id=session.id,
        adventure_id=adventure.id,
        title="Chapitre 1",
        context_text="Focus on kitchen",
        status="active",
    )
    quest = AdventureQuest(
        session_id=session.id,
        adventure_id=adventure.id,
        title="Vider l'évier",
        description="Laver toute la vaisselle.",
        room_code="kitchen",
        difficulty=2,
    )
    db.add_all([chapter, quest])
    db.flush()
    chapter_quest = ChapterQuest(
        session_id=session.id,
        chapter_id=chapter.id,
        adventure_quest_id=quest.id,
        status="doing",
        mission_md="Commence par trier les couverts.",
    )
    db.add(chapter_quest)
    db.commit()
    return SimpleNamespace(
        user_id=USER_ID,
        character_id=character.id,
        session_id=session.id,
        adventure_id=adventure.id,
        chapter_id=chapter.id,
        adventure_quest_id=quest.id,
        chapter_quest_id=chapter_quest.id,
    )
