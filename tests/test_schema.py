from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest
from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, create_engine, inspect
from sqlalchemy.orm import Session, declarative_base, relationship

from versionic import ConfigurationError, MigratableModel, derive_history_type, is_versioned
from versionic.core.schema import FieldKind, history_fields, reflect_fields
from versioned_models import EPOCH, Novel, Story


def _fresh_model(name, **columns):
    base = declarative_base(cls=MigratableModel)
    namespace = {
        "__tablename__": name.lower() + "s",
        "id": Column(Integer, primary_key=True),
        **columns,
    }
    return type(name, (base,), namespace)


class TestReflectFields:
    def test_declared_order(self):
        assert [f.name for f in reflect_fields(Story)] == [
            "id",
            "title",
            "updated_at",
            "type",
        ]

    def test_special_kinds(self):
        kinds = {f.name: f.kind for f in reflect_fields(Story)}
        assert kinds == {
            "id": FieldKind.SERIAL,
            "title": FieldKind.ORDINARY,
            "updated_at": FieldKind.ORDINARY,
            "type": FieldKind.DISCRIMINATOR,
        }

    def test_serial_and_key_options(self):
        id_field = reflect_fields(Story)[0]
        assert id_field.options["key"] is True
        assert id_field.options["serial"] is True


class TestHistoryFields:
    def test_key_is_exactly_the_watched_fields(self):
        fields = history_fields(reflect_fields(Story), ["updated_at"])
        assert {f.name for f in fields if f.is_key} == {"updated_at"}

    def test_same_names_and_count(self):
        source = reflect_fields(Story)
        derived = history_fields(source, ["updated_at"])
        assert [f.name for f in derived] == [f.name for f in source]

    def test_special_kinds_become_ordinary(self):
        derived = {f.name: f for f in history_fields(reflect_fields(Story), ["updated_at"])}
        assert all(f.kind is FieldKind.ORDINARY for f in derived.values())
        assert isinstance(derived["id"].type_, Integer)
        assert isinstance(derived["type"].type_, String)
        assert "serial" not in derived["id"].options
        assert derived["id"].is_key is False

    def test_serial_field_that_is_watched_stays_key(self):
        derived = {f.name: f for f in history_fields(reflect_fields(Story), ["id"])}
        assert derived["id"].is_key is True
        assert "serial" not in derived["id"].options
        assert derived["updated_at"].is_key is False

    def test_multiple_watched_fields(self):
        derived = history_fields(reflect_fields(Story), ["updated_at", "title"])
        assert {f.name for f in derived if f.is_key} == {"updated_at", "title"}

    @pytest.mark.parametrize("watched", [[], ["missing"], ["title", "title"]])
    def test_invalid_watched_set(self, watched):
        with pytest.raises(ConfigurationError):
            history_fields(reflect_fields(Story), watched)


class TestDerivedType:
    def test_storage_name(self):
        assert Story.Version.__tablename__ == "story_versions"
        assert Story.Version.__name__ == "StoryVersion"

    def test_memoized(self):
        assert Story.Version is Story.Version
        assert derive_history_type(Story) is Story.Version

    def test_subclass_shares_history_type(self):
        assert Novel.Version is Story.Version

    def test_columns_match_source(self):
        source = {c.name: c for c in Story.__table__.columns}
        history = {c.name: c for c in Story.Version.__table__.columns}
        assert set(history) == set(source)
        for name, column in history.items():
            assert column.type.python_type is source[name].type.python_type

    def test_primary_key(self):
        assert [c.name for c in inspect(Story.Version).primary_key] == ["updated_at"]

    def test_history_columns_never_autoincrement(self):
        assert Story.Version.__table__.c.id.autoincrement is False
        assert Story.Version.__table__.autoincrement_column is None

    def test_same_metadata_as_model(self):
        assert Story.Version.metadata is Story.metadata

    def test_unconfigured_model(self):
        model = _fresh_model("Unversioned", stamp=Column(DateTime))
        with pytest.raises(ConfigurationError):
            derive_history_type(model)

    def test_configure_twice(self):
        model = _fresh_model("Twice", stamp=Column(DateTime))
        is_versioned(model, on=["stamp"])
        with pytest.raises(ConfigurationError):
            is_versioned(model, on=["stamp"])

    def test_unknown_watched_field_on_configure(self):
        model = _fresh_model("Unknown", stamp=Column(DateTime))
        with pytest.raises(ConfigurationError):
            is_versioned(model, on=["missing"])
        # a failed configuration leaves the model unversioned
        with pytest.raises(ConfigurationError):
            derive_history_type(model)

    def test_concurrent_first_access_derives_once(self):
        model = _fresh_model("Raced", stamp=Column(DateTime))
        is_versioned(model, on=["stamp"])
        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda _: derive_history_type(model), range(32)))
        assert all(r is results[0] for r in results)

    def test_relationship_to_class_declared_later(self, tmp_path):
        base = declarative_base(cls=MigratableModel)

        class Chapter(base):
            __tablename__ = "chapters"
            id = Column(Integer, primary_key=True)
            title = Column(String(100))
            saved_at = Column(DateTime)
            author_id = Column(Integer, ForeignKey("authors.id"))
            author = relationship("Author")

        is_versioned(Chapter, on=["saved_at"])

        class Author(base):
            __tablename__ = "authors"
            id = Column(Integer, primary_key=True)
            name = Column(String(100))

        assert {c.name for c in Chapter.Version.__table__.columns} == {
            "id",
            "title",
            "saved_at",
            "author_id",
        }

        engine = create_engine(f"sqlite:///{tmp_path / 'chapters.db'}")
        base.metadata.create_all(engine)
        with Session(engine) as session:
            chapter = Chapter(title="One", saved_at=EPOCH, author=Author(name="Ann"))
            session.add(chapter)
            session.commit()
            chapter.saved_at = EPOCH + timedelta(days=1)
            session.commit()
            assert [(v.title, v.saved_at) for v in chapter.versions] == [("One", EPOCH)]
        engine.dispose()
