"""SharePoint lists backend (REST API, OData verbose).

Each collection is a SharePoint list. Item ids are assigned by SharePoint;
attendance records and check markers are looked up by their composite id
stored in the ``Title`` column. Uploaded PDFs are not stored in list items.

The bearer token is supplied by the caller (``MMT_SHAREPOINT_TOKEN``); how it
is obtained is outside this package.
"""

import json
from urllib.parse import quote

import requests

from mmt_forms.errors import StorageError
from mmt_forms.logging import get_logger
from mmt_forms.models import AttendanceCheck, AttendanceRecord, Participant, SchoolClass
from mmt_forms.storage.base import Storage

log = get_logger(__name__)

ODATA_JSON = "application/json;odata=verbose"


def odata_literal(value: str) -> str:
    """Quote a string for an OData $filter expression."""
    return "'" + value.replace("'", "''") + "'"


class SharePointStorage(Storage):
    """Storage over three SharePoint lists."""

    def __init__(
        self,
        site_url: str,
        token: str,
        participants_list: str = "MMT_Participants",
        classes_list: str = "MMT_Classes",
        attendances_list: str = "MMT_Attendances",
        session: requests.Session | None = None,
        timeout: float = 30.0,
    ) -> None:
        self.site_url = site_url.rstrip("/")
        self.token = token
        self.participants_list = participants_list
        self.classes_list = classes_list
        self.attendances_list = attendances_list
        self.session = session or requests.Session()
        self.timeout = timeout
        self._digest: str | None = None
        self._entity_types: dict[str, str] = {}

    # REST plumbing

    def _headers(self, **extra: str) -> dict[str, str]:
        headers = {
            "Accept": ODATA_JSON,
            "Content-Type": ODATA_JSON,
            "Authorization": f"Bearer {self.token}",
        }
        headers.update(extra)
        return headers

    def _request(self, method: str, path: str, **kwargs) -> dict:
        url = f"{self.site_url}/_api/{path}"
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise StorageError(f"{method} {url} failed: {e}") from e
        if not response.ok:
            raise StorageError(f"{method} {url} returned HTTP {response.status_code}")
        if response.status_code == 204 or not response.content:
            return {}
        try:
            return response.json().get("d", {})
        except ValueError as e:
            raise StorageError(f"{method} {url} did not return JSON: {e}") from e

    def _form_digest(self) -> str:
        if self._digest is None:
            body = self._request("POST", "contextinfo", headers=self._headers())
            try:
                self._digest = body["GetContextWebInformation"]["FormDigestValue"]
            except KeyError as e:
                raise StorageError("SharePoint did not return a form digest") from e
        return self._digest

    def _list_path(self, list_name: str) -> str:
        return f"web/lists/getbytitle('{quote(list_name)}')"

    def _entity_type(self, list_name: str) -> str:
        if list_name not in self._entity_types:
            body = self._request(
                "GET",
                f"{self._list_path(list_name)}?$select=ListItemEntityTypeFullName",
                headers=self._headers(),
            )
            self._entity_types[list_name] = body.get(
                "ListItemEntityTypeFullName", f"SP.Data.{list_name}ListItem"
            )
        return self._entity_types[list_name]

    def _items(self, list_name: str, odata_filter: str | None = None) -> list[dict]:
        params = {"$top": "5000"}
        if odata_filter:
            params["$filter"] = odata_filter
        body = self._request(
            "GET", f"{self._list_path(list_name)}/items", params=params, headers=self._headers()
        )
        return body.get("results", [])

    def _create(self, list_name: str, fields: dict) -> dict:
        payload = {"__metadata": {"type": self._entity_type(list_name)}, **fields}
        return self._request(
            "POST",
            f"{self._list_path(list_name)}/items",
            data=json.dumps(payload),
            headers=self._headers(**{"X-RequestDigest": self._form_digest()}),
        )

    def _update(self, list_name: str, item_id: str, fields: dict) -> None:
        payload = {"__metadata": {"type": self._entity_type(list_name)}, **fields}
        self._request(
            "POST",
            f"{self._list_path(list_name)}/items({int(item_id)})",
            data=json.dumps(payload),
            headers=self._headers(
                **{
                    "X-RequestDigest": self._form_digest(),
                    "X-HTTP-Method": "MERGE",
                    "IF-MATCH": "*",
                }
            ),
        )

    def _delete(self, list_name: str, item_id: str) -> None:
        self._request(
            "POST",
            f"{self._list_path(list_name)}/items({int(item_id)})",
            headers=self._headers(
                **{
                    "X-RequestDigest": self._form_digest(),
                    "X-HTTP-Method": "DELETE",
                    "IF-MATCH": "*",
                }
            ),
        )

    def _upsert(self, list_name: str, item_id: str, fields: dict) -> str:
        if item_id.isdigit():
            self._update(list_name, item_id, fields)
            return item_id
        created = self._create(list_name, fields)
        return str(created.get("Id", created.get("ID", "")))

    # Participants

    def get_participants(self) -> list[Participant]:
        return [
            _participant_from_item(item)
            for item in self._items(self.participants_list)
            if not item.get("Archived")
        ]

    def save_participant(self, participant: Participant) -> Participant:
        if participant.original_pdf:
            log.debug("original_pdf_not_stored", participant_id=participant.id)
        item_id = self._upsert(
            self.participants_list, participant.id, _participant_to_fields(participant)
        )
        return participant.model_copy(update={"id": item_id})

    def delete_participant(self, participant_id: str) -> None:
        self._delete(self.participants_list, participant_id)

    def archive_participant(self, participant_id: str) -> None:
        self._update(self.participants_list, participant_id, {"Archived": True})

    # Classes

    def get_classes(self) -> list[SchoolClass]:
        return [_class_from_item(item) for item in self._items(self.classes_list)]

    def save_class(self, school_class: SchoolClass) -> SchoolClass:
        fields = {
            "Title": school_class.name,
            "Description": school_class.description,
            "Participants": json.dumps(school_class.participant_ids),
        }
        item_id = self._upsert(self.classes_list, school_class.id, fields)
        return school_class.model_copy(update={"id": item_id})

    def delete_class(self, class_id: str) -> None:
        self._delete(self.classes_list, class_id)

    # Attendance

    def get_attendances(
        self, class_id: str | None = None, date: str | None = None
    ) -> list[AttendanceRecord]:
        clauses = []
        if class_id is not None:
            clauses.append(f"ClassId eq {odata_literal(class_id)}")
        if date is not None:
            clauses.append(f"AttendanceDate eq {odata_literal(date)}")
        items = self._items(self.attendances_list, " and ".join(clauses) or None)
        return [_attendance_from_item(item) for item in items if item.get("ParticipantId")]

    def _find_by_title(self, title: str) -> dict | None:
        items = self._items(self.attendances_list, f"Title eq {odata_literal(title)}")
        return items[0] if items else None

    def save_attendance(self, record: AttendanceRecord) -> AttendanceRecord:
        fields = {
            "Title": record.record_id,
            "ClassId": record.class_id,
            "ParticipantId": record.participant_id,
            "AttendanceDate": record.date,
            "MorningCode": record.morning_code,
            "AfternoonCode": record.afternoon_code,
            "Comment": record.comment,
        }
        existing = self._find_by_title(record.record_id)
        if existing:
            self._update(self.attendances_list, str(existing["Id"]), fields)
        else:
            self._create(self.attendances_list, fields)
        return record

    def get_check(self, class_id: str, date: str) -> AttendanceCheck | None:
        item = self._find_by_title(f"check_{class_id}_{date}")
        if item is None:
            return None
        if item.get("CheckedAt"):
            return AttendanceCheck(class_id=class_id, date=date, checked_at=item["CheckedAt"])
        return AttendanceCheck(class_id=class_id, date=date)

    def save_check(self, check: AttendanceCheck) -> AttendanceCheck:
        fields = {
            "Title": check.check_id,
            "ClassId": check.class_id,
            "AttendanceDate": check.date,
            "CheckedAt": check.checked_at.isoformat(),
        }
        existing = self._find_by_title(check.check_id)
        if existing:
            self._update(self.attendances_list, str(existing["Id"]), fields)
        else:
            self._create(self.attendances_list, fields)
        return check


def _json_column(raw, default):
    if not raw:
        return default
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        log.warning("invalid_json_column", value=str(raw)[:80])
        return default


def _participant_from_item(item: dict) -> Participant:
    participant = Participant(
        id=str(item.get("Id", item.get("ID", ""))),
        first_name=item.get("Firstname") or "",
        last_name=item.get("Lastname") or "",
        course_type=item.get("CourseType") or "",
        date_start=item.get("DateStart") or "",
        date_end=item.get("DateEnd") or "",
        work_percent=item.get("WorkPercent") or 100,
        avs_number=item.get("AvsNumber") or "",
        birth_date=item.get("BirthDate") or "",
        decision_number=item.get("DecisionNumber") or "",
        unemployment_office=item.get("UnemploymentOffice") or "",
        execution_place=item.get("ExecutionPlace") or "",
        interruption_mmt=bool(item.get("InterruptionMMT")),
        interruption_date=item.get("InterruptionDate") or "",
    )
    schedule = _json_column(item.get("Schedule"), None)
    if isinstance(schedule, dict):
        participant.schedule = schedule
    return participant


def _participant_to_fields(participant: Participant) -> dict:
    return {
        "Title": participant.full_name,
        "Firstname": participant.first_name,
        "Lastname": participant.last_name,
        "CourseType": participant.course_type,
        "DateStart": participant.date_start,
        "DateEnd": participant.date_end,
        "WorkPercent": participant.work_percent,
        "AvsNumber": participant.avs_number,
        "BirthDate": participant.birth_date,
        "DecisionNumber": participant.decision_number,
        "UnemploymentOffice": participant.unemployment_office,
        "ExecutionPlace": participant.execution_place,
        "InterruptionMMT": participant.interruption_mmt,
        "InterruptionDate": participant.interruption_date,
        "Schedule": json.dumps(participant.schedule),
    }


def _class_from_item(item: dict) -> SchoolClass:
    return SchoolClass(
        id=str(item.get("Id", item.get("ID", ""))),
        name=item.get("Title") or "",
        description=item.get("Description") or "",
        participant_ids=_json_column(item.get("Participants"), []),
    )


def _attendance_from_item(item: dict) -> AttendanceRecord:
    return AttendanceRecord(
        date=item.get("AttendanceDate") or "",
        participant_id=item.get("ParticipantId") or "",
        class_id=item.get("ClassId") or "",
        morning_code=item.get("MorningCode") or "",
        afternoon_code=item.get("AfternoonCode") or "",
        comment=item.get("Comment") or "",
    )
