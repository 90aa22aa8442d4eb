from chat_core.artifacts import ArtifactStore, ArtifactUpdate
from chat_core.session import SessionRepository


def test_upsert_creates_then_updates_present_fields_only(repository: SessionRepository) -> None:
    session = repository.create_session()
    artifacts = ArtifactStore(repository)

    created = artifacts.upsert(
        session.id,
        ArtifactUpdate(id="page", type="text/html", title="Page", content="<p>v1</p>"),
    )
    updated = artifacts.upsert(session.id, ArtifactUpdate(id="page", content="<p>v2</p>"))

    assert created is updated
    assert len(session.artifacts) == 1
    assert updated.title == "Page"
    assert updated.type == "text/html"
    assert updated.content == "<p>v2</p>"


def test_read_by_id_or_path(repository: SessionRepository) -> None:
    session = repository.create_session()
    artifacts = ArtifactStore(repository)
    artifacts.upsert(session.id, ArtifactUpdate(id="app", path="/src/app.js", content="run()"))

    assert artifacts.read(session.id, "app") == "run()"
    assert artifacts.read(session.id, "src/app.js") == "run()"
    assert artifacts.read(session.id, "nope") is None
    assert [a.id for a in artifacts.list_artifacts(session.id)] == ["app"]


def test_upsert_keyed_on_path(repository: SessionRepository) -> None:
    session = repository.create_session()
    artifacts = ArtifactStore(repository)
    artifacts.upsert(session.id, ArtifactUpdate(path="notes.md", content="a"))
    artifacts.upsert(session.id, ArtifactUpdate(path="notes.md", content="b"))

    assert len(session.artifacts) == 1
    assert session.artifacts[0].content == "b"


def test_unknown_session_is_ignored(repository: SessionRepository) -> None:
    artifacts = ArtifactStore(repository)

    assert artifacts.upsert("missing", ArtifactUpdate(id="x", content="y")) is None
    assert artifacts.read("missing", "x") is None
    assert artifacts.list_artifacts("missing") == []
