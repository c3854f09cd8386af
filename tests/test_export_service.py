import io
import json
import os
import zipfile
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from config.settings import Settings
from core.archive import archive_filename, build_zip_bytes
from core.cleanup import cleanup_once
from core.export_service import (
    ExportEntry,
    ExportError,
    ExportService,
    build_export,
    naming_options_for_chat,
)
from core.naming import NamingOptions
from core.state_machine import InvalidStatusTransition, mark_run_running
from core.transcript_walker import CYCLE_WARNING
from storage.db import Base
from storage.models import ChatSettings, ErrorType, ExportStatus, LayoutPolicy, utcnow
from storage.repositories import ExportedFileRepository, ExportRunRepository


def _tag(title, language, content):
    return f'<antArtifact title="{title}" language="{language}">{content}</antArtifact>'


def _conversation(messages, name="My Project"):
    return {"uuid": "conv-1", "name": name, "chat_messages": messages}


@pytest.fixture()
def session_factory():
    engine = create_engine("sqlite:///:memory:", future=True)
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, class_=Session, autoflush=False)


@pytest.fixture()
def settings(tmp_path):
    return Settings(
        db_path=str(tmp_path / "db.sqlite3"),
        export_root=str(tmp_path / "exports"),
        log_dir=str(tmp_path / "logs"),
        max_traversal_depth=100,
        max_upload_size_mb=1,
    )


def test_assistant_message_artifacts_use_message_index():
    payload = _conversation(
        [
            {
                "uuid": "123",
                "sender": "assistant",
                "index": 0,
                "text": _tag("file1", "javascript", 'console.log("one");')
                + _tag("file2", "python", 'print("two")'),
            }
        ]
    )
    result = build_export(payload, NamingOptions(layout=LayoutPolicy.FLAT))
    assert [(e.path, e.content) for e in result.entries] == [
        ("1_file1.js", 'console.log("one");'),
        ("1_file2.py", 'print("two")'),
    ]


def test_user_messages_are_not_extracted_but_children_are():
    payload = _conversation(
        [
            {"uuid": "u", "sender": "user", "index": 0, "text": _tag("nope", "txt", "x")},
            {
                "uuid": "a",
                "parent_message_uuid": "u",
                "sender": "assistant",
                "index": 1,
                "text": _tag("reply", "html", "<p>hi</p>"),
            },
        ]
    )
    result = build_export(payload, NamingOptions())
    assert result.paths == ["2_reply.html"]
    assert result.messages_visited == 2


def test_child_messages_follow_parent_in_creation_order():
    payload = _conversation(
        [
            {
                "sender": "assistant",
                "text": _tag("child2", "python", 'print("child2")'),
                "index": 2,
                "uuid": "child2",
                "parent_message_uuid": "123",
                "created_at": "2023-01-01T12:05:00Z",
            },
            {
                "sender": "assistant",
                "text": _tag("child1", "javascript", 'console.log("child1");'),
                "index": 1,
                "uuid": "child1",
                "parent_message_uuid": "123",
                "created_at": "2023-01-01T12:00:00Z",
            },
            {
                "sender": "assistant",
                "text": _tag("parent", "html", "<p>Parent</p>"),
                "index": 0,
                "uuid": "123",
            },
        ]
    )
    result = build_export(payload, NamingOptions())
    assert result.paths == ["1_parent.html", "2_child1.js", "3_child2.py"]


def test_depth_ceiling_keeps_named_artifacts(caplog):
    messages = []
    for i in range(5):
        messages.append(
            {
                "uuid": f"m{i}",
                "parent_message_uuid": f"m{i - 1}" if i else None,
                "sender": "assistant",
                "index": i,
                "text": _tag("step", "go", str(i)),
            }
        )
    result = build_export(_conversation(messages), NamingOptions(), max_depth=2)
    assert result.paths == ["1_step.go", "2_step.go", "3_step.go"]
    assert result.depth_limit_hit
    assert len(result.warnings) == 1


def test_rootless_cycle_still_exports_artifacts():
    payload = _conversation(
        [
            {
                "uuid": "b",
                "parent_message_uuid": "a",
                "sender": "assistant",
                "index": 1,
                "text": _tag("second", "python", "2"),
            },
            {
                "uuid": "a",
                "parent_message_uuid": "b",
                "sender": "assistant",
                "index": 0,
                "text": _tag("first", "python", "1"),
            },
        ]
    )
    result = build_export(payload, NamingOptions())
    assert result.paths == ["1_first.py", "2_second.py"]
    assert result.messages_visited == 2
    assert result.warnings == [CYCLE_WARNING]


def test_directory_layout_and_collisions_across_messages():
    payload = _conversation(
        [
            {"uuid": "a", "sender": "assistant", "index": 0, "text": _tag("src/utils/helper", "javascript", "1")},
            {
                "uuid": "b",
                "parent_message_uuid": "a",
                "sender": "assistant",
                "index": 1,
                "text": _tag("src/utils/helper", "javascript", "2") + _tag("../../etc/passwd", "", "3"),
            },
        ]
    )
    result = build_export(payload, NamingOptions(layout=LayoutPolicy.DIRECTORY_STRUCTURE))
    assert result.paths == ["src/utils/helper.js", "src/utils/helper_*.js", "etc/passwd.txt"]


def test_build_export_is_deterministic():
    payload = _conversation(
        [
            {"uuid": "a", "sender": "assistant", "index": 0, "text": _tag("x", "python", "1") * 3},
        ]
    )
    options = NamingOptions()
    first = build_export(payload, options).paths
    assert build_export(payload, options).paths == first == ["1_x.py", "1_x_*.py", "1_x_**.py"]


def test_zip_contains_entries_in_order():
    entries = [
        ExportEntry(path="src/a.py", content="print('a')"),
        ExportEntry(path="b.bin", content=b"\x00\x01"),
    ]
    with zipfile.ZipFile(io.BytesIO(build_zip_bytes(entries))) as archive:
        assert archive.namelist() == ["src/a.py", "b.bin"]
        assert archive.read("src/a.py") == b"print('a')"
        assert archive.read("b.bin") == b"\x00\x01"


def test_archive_filename():
    assert archive_filename("My Project!") == "My_Project_artifacts.zip"
    assert archive_filename(None, datetime(2024, 1, 2, 3, 4, 5)) == "conversation_20240102_030405_artifacts.zip"


def test_utcnow_is_naive_utc(recwarn):
    now = utcnow()
    aware = datetime.now(timezone.utc).replace(tzinfo=None)
    assert now.tzinfo is None
    assert abs((aware - now).total_seconds()) < 60
    assert not [w for w in recwarn if issubclass(w.category, DeprecationWarning)]


def test_naming_options_for_chat(settings):
    assert naming_options_for_chat(None, settings) == NamingOptions(layout=LayoutPolicy.FLAT)

    chat_settings = ChatSettings(
        chat_id="1",
        layout=LayoutPolicy.DIRECTORY_STRUCTURE.value,
        include_index=True,
        nest_directories=False,
    )
    options = naming_options_for_chat(chat_settings, settings)
    assert options.layout == LayoutPolicy.DIRECTORY_STRUCTURE
    assert options.use_index
    assert not options.nest_directories


def test_export_service_writes_archive_and_records_run(session_factory, settings):
    service = ExportService(settings, session_factory)
    raw = json.dumps(
        _conversation(
            [
                {"uuid": "a", "sender": "assistant", "index": 0, "text": _tag("main", "python", "print(1)")},
                {
                    "uuid": "b",
                    "parent_message_uuid": "a",
                    "sender": "assistant",
                    "index": 1,
                    "text": _tag("main", "python", "print(2)"),
                },
            ]
        )
    ).encode("utf-8")

    outcome = service.export_transcript(
        raw, options=NamingOptions(), chat_id=42, user_id=7, source_name="chat.json"
    )

    assert outcome.archive_name == "My_Project_artifacts.zip"
    assert outcome.archive_path == os.path.join(
        settings.export_root, str(outcome.run_id), "My_Project_artifacts.zip"
    )
    with zipfile.ZipFile(outcome.archive_path) as archive:
        assert archive.namelist() == ["1_main.py", "2_main.py"]
        assert archive.read("2_main.py") == b"print(2)"

    session = session_factory()
    try:
        run = ExportRunRepository(session).get_by_id(outcome.run_id)
        assert run.status == ExportStatus.COMPLETED.value
        assert run.chat_id == "42"
        assert run.artifact_count == 2
        assert run.messages_visited == 2
        assert run.conversation_name == "My Project"
        files = ExportedFileRepository(session).list_for_run(run.id)
        assert [(f.path, f.ordinal_index, f.size_bytes) for f in files] == [
            ("1_main.py", 0, 8),
            ("2_main.py", 1, 8),
        ]
        assert [r.id for r in ExportRunRepository(session).list_recent_for_chat(42)] == [run.id]
    finally:
        session.close()


@pytest.mark.parametrize(
    "raw, error_type",
    [
        (b"{broken", ErrorType.PARSER_ERROR),
        (json.dumps({"chat_messages": []}).encode(), ErrorType.NO_ARTIFACTS),
        (b" " * (1024 * 1024 + 1), ErrorType.SIZE_LIMIT),
    ],
)
def test_export_service_marks_failed_runs(session_factory, settings, raw, error_type):
    service = ExportService(settings, session_factory)
    with pytest.raises(ExportError) as excinfo:
        service.export_transcript(raw, options=NamingOptions(), chat_id=1)
    assert excinfo.value.error_type == error_type

    session = session_factory()
    try:
        failed = ExportRunRepository(session).list_by_status(ExportStatus.FAILED)
        assert len(failed) == 1
        assert failed[0].error_type == error_type.value
        assert failed[0].archive_path is None
    finally:
        session.close()


def test_completed_runs_cannot_restart(session_factory):
    session = session_factory()
    try:
        repo = ExportRunRepository(session)
        run = repo.create_run(layout=LayoutPolicy.FLAT, include_index=True)
        mark_run_running(session, run)
        run.status = ExportStatus.COMPLETED.value
        repo.save(run)
        with pytest.raises(InvalidStatusTransition):
            mark_run_running(session, run)
    finally:
        session.close()


def test_cleanup_removes_expired_archives(session_factory, settings):
    os.makedirs(settings.export_root, exist_ok=True)
    inside = os.path.join(settings.export_root, "old.zip")
    with open(inside, "wb") as fp:
        fp.write(b"zip")

    session = session_factory()
    try:
        repo = ExportRunRepository(session)
        run = repo.create_run(layout=LayoutPolicy.FLAT, include_index=True)
        run.status = ExportStatus.COMPLETED.value
        run.archive_path = inside
        run.updated_at = utcnow() - timedelta(days=10)
        session.add(run)
        session.commit()
        run_id = run.id
    finally:
        session.close()

    settings.export_retention_days = 3
    assert cleanup_once(settings, session_factory) == 1
    assert not os.path.exists(inside)

    session = session_factory()
    try:
        assert ExportRunRepository(session).get_by_id(run_id).archive_path is None
    finally:
        session.close()
