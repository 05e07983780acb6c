import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from versionic import init_versionic
from versioned_models import Story


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'versionic.db'}")
    init_versionic(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def story(session):
    story = Story(title="A Story")
    session.add(story)
    session.commit()
    return story
