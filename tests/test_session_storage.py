"""Tests for session persistence and the session manager."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from agenttree.conversation import AssistantNode, SummaryNode, ToolResultNode, UserNode
from agenttree.core.llm.provider import ToolCall
from agenttree.errors import InvalidStateError, NotFoundError, StateParseError
from agenttree.session import (
    InMemorySessionStore,
    Session,
    SessionManager,
    YamlSessionStore,
    get_sessions_dir,
)


def populated_session() -> Session:
    """A session with a tool interaction, a branch and a summary."""
    session = Session(name="persist me", system_prompt="sys", model="deepseek-chat")
    session.preferences = {"tone": "terse"}
    question = UserNode(text="list files")
    session.append(question)
    assistant = AssistantNode(
        tool_calls=[ToolCall("c1", "shell", '{"command": "ls"}')],
        model="deepseek-chat",
        input_tokens=12,
        output_tokens=4,
    )
    session.append(assistant)
    session.append_child(assistant.id, ToolResultNode(tool_call_id="c1", content="a.txt"), advance=True)
    session.append(AssistantNode(text="One file: a.txt"))
    session.branch_from(session.cursor)
    session.append(SummaryNode(text="user asked for files"))
    session.add_usage(12, 4)
    return session


class TestSessionRecord:
    def test_round_trip(self) -> None:
        session = populated_session()
        restored = Session.from_dict(session.to_dict())

        assert restored.id == session.id
        assert restored.name == "persist me"
        assert restored.model == "deepseek-chat"
        assert restored.cursor == session.cursor
        assert restored.preferences == {"tone": "terse"}
        assert (restored.input_tokens, restored.output_tokens) == (12, 4)
        assert [n.id for n in restored.tree.walk()] == [n.id for n in session.tree.walk()]
        assert restored.linearise() == session.linearise()
        assert restored.created_at == session.created_at

    def test_siblings_keep_order(self) -> None:
        session = populated_session()
        tool_result = session.tree.parent(session.cursor)
        restored = Session.from_dict(session.to_dict())
        assert restored.tree.get(tool_result.id).children == tool_result.children

    def test_bad_cursor(self) -> None:
        record = populated_session().to_dict()
        record["cursor"] = "nowhere"
        with pytest.raises(StateParseError):
            Session.from_dict(record)

    def test_missing_fields(self) -> None:
        with pytest.raises(StateParseError):
            Session.from_dict({"nodes": []})


class TestYamlSessionStore:
    @pytest.fixture
    def store(self, tmp_path: Path) -> YamlSessionStore:
        return YamlSessionStore.for_workspace(str(tmp_path))

    def test_location(self, store: YamlSessionStore, tmp_path: Path) -> None:
        assert store.directory == get_sessions_dir(str(tmp_path))
        assert store.directory == tmp_path / ".agenttree" / "sessions"

    def test_save_and_load(self, store: YamlSessionStore) -> None:
        session = populated_session()
        store.save(session.to_dict())

        path = store.path_for(session.id)
        assert path.exists()
        assert not path.with_name(path.name + ".tmp").exists()
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
        assert data["session_id"] == session.id

        restored = Session.from_dict(store.load(session.id))
        assert restored.linearise() == session.linearise()

    def test_load_missing(self, store: YamlSessionStore) -> None:
        with pytest.raises(NotFoundError):
            store.load("nope")

    def test_load_corrupt(self, store: YamlSessionStore) -> None:
        store.directory.mkdir(parents=True)
        (store.directory / "broken.yaml").write_text("- just\n- a list\n", encoding="utf-8")
        with pytest.raises(StateParseError):
            store.load("broken")

    def test_invalid_id(self, store: YamlSessionStore) -> None:
        with pytest.raises(NotFoundError):
            store.path_for("../escape")

    def test_list_and_delete(self, store: YamlSessionStore) -> None:
        first = Session(name="first")
        second = Session(name="second")
        store.save(first.to_dict())
        store.save(second.to_dict())

        assert store.list_ids() == sorted([first.id, second.id])
        assert {m.name for m in store.list_metadata()} == {"first", "second"}
        assert store.delete(first.id)
        assert not store.delete(first.id)
        assert store.list_ids() == [second.id]

    def test_list_skips_unreadable(self, store: YamlSessionStore) -> None:
        store.save(Session(name="ok").to_dict())
        (store.directory / "bad.yaml").write_text("{not: [valid", encoding="utf-8")
        assert [m.name for m in store.list_metadata()] == ["ok"]


class TestSessionManager:
    @pytest.fixture
    def manager(self) -> SessionManager:
        return SessionManager(InMemorySessionStore(), system_prompt="sys", temperature=0.3)

    def test_create(self, manager: SessionManager) -> None:
        session = manager.create("work")
        assert session.name == "work"
        assert session.temperature == 0.3
        assert session.tree.root.text == "sys"
        assert manager.get(session.id) is session

    def test_create_without_system_prompt(self) -> None:
        session = SessionManager().create()
        assert session.cursor is None
        assert session.name.startswith("Session ")

    def test_get_unknown(self, manager: SessionManager) -> None:
        with pytest.raises(NotFoundError):
            manager.get("missing")

    def test_save_close_load(self, manager: SessionManager) -> None:
        session = manager.create("work")
        session.append(UserNode(text="hi"))
        manager.save(session)
        manager.close(session)

        with pytest.raises(NotFoundError):
            manager.get(session.id)
        loaded = manager.load(session.id)
        assert loaded is not session
        assert loaded.linearise() == session.linearise()
        assert manager.load(session.id) is loaded

    def test_list(self, manager: SessionManager) -> None:
        saved = manager.create("saved")
        manager.save(saved)
        unsaved = manager.create("unsaved")
        assert manager.list() == sorted([saved.id, unsaved.id])
        assert [m.name for m in manager.list_metadata()] == ["saved"]

    def test_delete(self, manager: SessionManager) -> None:
        session = manager.create()
        manager.save(session)
        assert manager.delete(session.id)
        assert manager.list() == []

    def test_driving_guard(self, manager: SessionManager) -> None:
        first = manager.create()
        second = manager.create()
        with manager.driving(first):
            assert manager.driving_session_id == first.id
            with pytest.raises(InvalidStateError):
                with manager.driving(second):
                    pass
            with pytest.raises(InvalidStateError):
                manager.close(first)
            with pytest.raises(InvalidStateError):
                manager.delete(first.id)
        assert manager.driving_session_id is None
        manager.close(first)
