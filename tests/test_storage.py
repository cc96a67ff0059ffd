import json

import pytest
import requests

from conftest import MemoryStorage
from mmt_forms.config import AppConfig
from mmt_forms.errors import ConfigurationError, StorageError
from mmt_forms.models import AttendanceCheck, AttendanceRecord, Participant, SchoolClass
from mmt_forms.storage import get_storage
from mmt_forms.storage.http_json import HttpJsonStorage
from mmt_forms.storage.json_file import JsonFileStorage
from mmt_forms.storage.sharepoint import SharePointStorage, odata_literal


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload
        self.content = b"" if payload is None else json.dumps(payload).encode()

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        if self._payload is None:
            raise ValueError("no JSON body")
        return self._payload


class FakeSession:
    """Records requests and answers them with ``handler(method, url, kwargs)``."""

    def __init__(self, handler):
        self.handler = handler
        self.calls = []

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        return self.handler(method, url, kwargs)


# Document backends


def test_json_file_missing_is_empty(tmp_path):
    storage = JsonFileStorage(tmp_path / "db.json")
    assert storage.get_participants() == []
    assert storage.get_classes() == []
    assert not (tmp_path / "db.json").exists()


def test_json_file_round_trip(tmp_path):
    path = tmp_path / "data" / "db.json"
    storage = JsonFileStorage(path)
    saved = storage.save_participant(
        Participant(first_name="Jean", last_name="Dupont", original_pdf=b"%PDF-1.4")
    )
    assert saved.id

    document = json.loads(path.read_text(encoding="utf-8"))
    raw = document["participants"][0]
    assert raw["firstName"] == "Jean"
    assert raw["originalPdfBase64"] == "JVBERi0xLjQ="
    assert set(document) == {
        "participants",
        "archivedParticipants",
        "classes",
        "attendance",
        "attendanceChecks",
    }

    reloaded = JsonFileStorage(path).get_participant(saved.id)
    assert reloaded.last_name == "Dupont"
    assert reloaded.original_pdf == b"%PDF-1.4"
    assert not (tmp_path / "data" / "db.json.tmp").exists()


def test_json_file_reads_legacy_document(tmp_path):
    path = tmp_path / "db.json"
    path.write_text(
        json.dumps(
            {
                "participants": [
                    {"id": "p1", "firstName": "Anna", "lastName": "Muller", "interruptionMMT": True}
                ],
                "attendance": {
                    "c1_2025-06-03_p1": {
                        "date": "2025-06-03",
                        "participantId": "p1",
                        "classId": "c1",
                        "morningCode": "P",
                        "afternoonCode": "X",
                    }
                },
            }
        ),
        encoding="utf-8",
    )
    storage = JsonFileStorage(path)
    participant = storage.get_participant("p1")
    assert participant.interruption_mmt is True
    assert participant.schedule["1-am"] is True
    assert storage.get_attendances(class_id="c1")[0].morning_code == "P"
    assert storage.get_classes() == []


@pytest.mark.parametrize("content", ["[]", "{not json"])
def test_json_file_invalid_document(tmp_path, content):
    path = tmp_path / "db.json"
    path.write_text(content, encoding="utf-8")
    with pytest.raises(StorageError):
        JsonFileStorage(path).get_participants()


def test_delete_participant_removes_class_membership(storage):
    participant = storage.save_participant(Participant(last_name="Dupont"))
    school_class = storage.save_class(
        SchoolClass(name="Matin", participant_ids=[participant.id, "other"])
    )

    storage.delete_participant(participant.id)

    assert storage.get_participants() == []
    assert storage.get_class(school_class.id).participant_ids == ["other"]


def test_archive_participant(storage):
    participant = storage.save_participant(Participant(last_name="Dupont"))
    storage.archive_participant(participant.id)

    assert storage.get_participants() == []
    assert [p.last_name for p in storage.get_archived_participants()] == ["Dupont"]
    assert storage.saved["archivedParticipants"][0]["id"] == participant.id


def test_attendance_upsert_and_filters(storage):
    record = AttendanceRecord(date="2025-06-03", participant_id="p1", class_id="c1")
    storage.save_attendance(record)
    storage.save_attendance(record.model_copy(update={"morning_code": "B"}))
    storage.save_attendance(record.model_copy(update={"class_id": "c2"}))

    assert len(storage.get_attendances()) == 2
    assert [r.morning_code for r in storage.get_attendances(class_id="c1")] == ["B"]
    assert storage.get_attendances(date="2025-06-04") == []


def test_attendance_check(storage):
    assert storage.get_check("c1", "2025-06-03") is None
    storage.save_check(AttendanceCheck(class_id="c1", date="2025-06-03"))
    assert "check_c1_2025-06-03" in storage.saved["attendanceChecks"]
    assert storage.get_check("c1", "2025-06-03").class_id == "c1"


def test_document_is_cached_until_refresh():
    storage = MemoryStorage({"participants": [{"id": "p1", "lastName": "Dupont"}]})
    assert len(storage.get_participants()) == 1
    storage.saved = {"participants": []}
    assert len(storage.get_participants()) == 1
    storage.refresh()
    assert storage.get_participants() == []


# HTTP JSON document


def test_http_missing_document_is_empty():
    session = FakeSession(lambda method, url, kwargs: FakeResponse(404))
    storage = HttpJsonStorage("https://example.org/mmt_db.json", session=session)

    assert storage.get_participants() == []
    method, url, kwargs = session.calls[0]
    assert method == "GET"
    assert "t" in kwargs["params"]


def test_http_save_puts_whole_document():
    def handler(method, url, kwargs):
        if method == "GET":
            return FakeResponse(200, {"participants": [], "classes": []})
        return FakeResponse(204)

    session = FakeSession(handler)
    storage = HttpJsonStorage("https://example.org/mmt_db.json", session=session, timeout=5)
    storage.save_class(SchoolClass(name="Matin"))

    method, url, kwargs = session.calls[-1]
    assert method == "PUT"
    assert kwargs["headers"]["If-Match"] == "*"
    assert kwargs["timeout"] == 5
    assert kwargs["json"]["classes"][0]["name"] == "Matin"


def test_http_server_error():
    session = FakeSession(lambda method, url, kwargs: FakeResponse(500))
    storage = HttpJsonStorage("https://example.org/mmt_db.json", session=session)
    with pytest.raises(StorageError, match="HTTP 500"):
        storage.get_participants()


def test_http_connection_error():
    def handler(method, url, kwargs):
        raise requests.ConnectionError("refused")

    storage = HttpJsonStorage("https://example.org/mmt_db.json", session=FakeSession(handler))
    with pytest.raises(StorageError, match="refused"):
        storage.get_classes()


# SharePoint lists


def sharepoint_handler(items=None, created_id=7):
    items = items or {}

    def handler(method, url, kwargs):
        if url.endswith("/_api/contextinfo"):
            return FakeResponse(
                200, {"d": {"GetContextWebInformation": {"FormDigestValue": "digest"}}}
            )
        if "$select=ListItemEntityTypeFullName" in url:
            return FakeResponse(200, {"d": {"ListItemEntityTypeFullName": "SP.Data.ListItem"}})
        if method == "GET" and url.endswith("/items"):
            for list_name, results in items.items():
                if list_name in url:
                    return FakeResponse(200, {"d": {"results": results}})
            return FakeResponse(200, {"d": {"results": []}})
        if method == "POST" and url.endswith("/items"):
            return FakeResponse(201, {"d": {"Id": created_id}})
        return FakeResponse(204)

    return handler


def _sharepoint(session):
    return SharePointStorage("https://tenant.sharepoint.com/sites/mmt/", "token", session=session)


def test_sharepoint_reads_active_participants():
    session = FakeSession(
        sharepoint_handler(
            {
                "MMT_Participants": [
                    {
                        "Id": 3,
                        "Firstname": "Jean",
                        "Lastname": "Dupont",
                        "WorkPercent": 80,
                        "Schedule": '{"1-am": false}',
                    },
                    {"Id": 4, "Lastname": "Martin", "Archived": True},
                ]
            }
        )
    )
    participants = _sharepoint(session).get_participants()

    assert [p.id for p in participants] == ["3"]
    assert participants[0].work_percent == 80
    assert participants[0].schedule == {"1-am": False}
    method, url, kwargs = session.calls[0]
    assert url.startswith("https://tenant.sharepoint.com/sites/mmt/_api/web/lists/getbytitle(")
    assert kwargs["headers"]["Authorization"] == "Bearer token"


def test_sharepoint_creates_new_participant():
    session = FakeSession(sharepoint_handler(created_id=12))
    saved = _sharepoint(session).save_participant(Participant(last_name="Dupont"))

    assert saved.id == "12"
    method, url, kwargs = session.calls[-1]
    assert method == "POST"
    assert kwargs["headers"]["X-RequestDigest"] == "digest"
    body = json.loads(kwargs["data"])
    assert body["__metadata"] == {"type": "SP.Data.ListItem"}
    assert body["Lastname"] == "Dupont"


def test_sharepoint_updates_existing_participant():
    session = FakeSession(sharepoint_handler())
    _sharepoint(session).save_participant(Participant(id="12", last_name="Dupont"))

    method, url, kwargs = session.calls[-1]
    assert url.endswith("/items(12)")
    assert kwargs["headers"]["X-HTTP-Method"] == "MERGE"
    assert kwargs["headers"]["IF-MATCH"] == "*"


def test_sharepoint_attendance_filters():
    session = FakeSession(
        sharepoint_handler(
            {
                "MMT_Attendances": [
                    {
                        "Id": 1,
                        "Title": "c1_2025-06-03_p1",
                        "ClassId": "c1",
                        "ParticipantId": "p1",
                        "AttendanceDate": "2025-06-03",
                        "MorningCode": "X",
                        "AfternoonCode": "G",
                        "Comment": "mariage",
                    },
                    {"Id": 2, "Title": "check_c1_2025-06-03", "ClassId": "c1"},
                ]
            }
        )
    )
    records = _sharepoint(session).get_attendances(class_id="c1", date="2025-06-03")

    assert [(r.participant_id, r.afternoon_code, r.comment) for r in records] == [
        ("p1", "G", "mariage")
    ]
    odata_filter = session.calls[0][2]["params"]["$filter"]
    assert odata_filter == "ClassId eq 'c1' and AttendanceDate eq '2025-06-03'"


def test_sharepoint_error_status():
    session = FakeSession(lambda method, url, kwargs: FakeResponse(403))
    with pytest.raises(StorageError, match="HTTP 403"):
        _sharepoint(session).get_classes()


def test_odata_literal_escapes_quotes():
    assert odata_literal("O'Neil") == "'O''Neil'"


# Backend selection


def test_get_storage_json(tmp_path):
    storage = get_storage(AppConfig(storage_backend="json", data_file=str(tmp_path / "db.json")))
    assert isinstance(storage, JsonFileStorage)


def test_get_storage_http():
    storage = get_storage(AppConfig(storage_backend="http", storage_url="https://example.org/db"))
    assert isinstance(storage, HttpJsonStorage)


@pytest.mark.parametrize(
    "settings",
    [
        {"storage_backend": "http", "storage_url": ""},
        {"storage_backend": "sharepoint", "sharepoint_site_url": "https://x", "sharepoint_token": ""},
    ],
)
def test_get_storage_missing_settings(settings):
    with pytest.raises(ConfigurationError):
        get_storage(AppConfig(**settings))
