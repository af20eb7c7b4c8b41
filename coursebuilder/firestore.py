"""
Hosted document database (Firestore) course store over the REST API.

Layout inside the database:

    schools/{school_id}/courses/{course_id}
    schools/{school_id}/classes/{class_id}

Documents travel as typed values ({"stringValue": ...}, {"mapValue": ...},
...). encode_value/decode_value convert between those and plain Python
values; datetimes become timestampValue.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import requests

from coursebuilder.errors import CourseNotFound, PersistenceError
from coursebuilder.model import ClassInfo

logger = logging.getLogger(__name__)

BASE_URL = "https://firestore.googleapis.com/v1"
PAGE_SIZE = 300


# ---------------------------------------------------------------------------
# Typed value codec
# ---------------------------------------------------------------------------


def _format_timestamp(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def _parse_timestamp(text: str) -> datetime:
    """
    Parse an RFC 3339 UTC timestamp. The server may send up to nine
    fractional digits; Python keeps six.
    """
    s = text.strip()
    if s.endswith("Z"):
        s = s[:-1]
    base, _, frac = s.partition(".")
    dt = datetime.strptime(base, "%Y-%m-%dT%H:%M:%S")
    micro = int((frac + "000000")[:6]) if frac else 0
    return dt.replace(microsecond=micro, tzinfo=timezone.utc)


def encode_value(value: Any) -> Dict[str, Any]:
    if value is None:
        return {"nullValue": None}
    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, int):
        return {"integerValue": str(value)}
    if isinstance(value, float):
        return {"doubleValue": value}
    if isinstance(value, datetime):
        return {"timestampValue": _format_timestamp(value)}
    if isinstance(value, str):
        return {"stringValue": value}
    if isinstance(value, dict):
        return {"mapValue": {"fields": encode_fields(value)}}
    if isinstance(value, (list, tuple)):
        return {"arrayValue": {"values": [encode_value(v) for v in value]}}
    raise TypeError(f"Cannot encode value of type {type(value).__name__}")


def encode_fields(data: Dict[str, Any]) -> Dict[str, Any]:
    return {str(k): encode_value(v) for k, v in data.items()}


def decode_value(typed: Dict[str, Any]) -> Any:
    if "nullValue" in typed:
        return None
    if "booleanValue" in typed:
        return bool(typed["booleanValue"])
    if "integerValue" in typed:
        return int(typed["integerValue"])
    if "doubleValue" in typed:
        return float(typed["doubleValue"])
    if "timestampValue" in typed:
        return _parse_timestamp(typed["timestampValue"])
    if "stringValue" in typed:
        return typed["stringValue"]
    if "mapValue" in typed:
        return decode_fields(typed["mapValue"].get("fields", {}))
    if "arrayValue" in typed:
        return [decode_value(v) for v in typed["arrayValue"].get("values", [])]
    if "referenceValue" in typed:
        return typed["referenceValue"]
    if "bytesValue" in typed:
        return typed["bytesValue"]
    if "geoPointValue" in typed:
        return dict(typed["geoPointValue"])
    raise ValueError(f"Unknown typed value: {sorted(typed)}")


def decode_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {k: decode_value(v) for k, v in fields.items()}


def decode_document(document: Dict[str, Any], id_field: str) -> Dict[str, Any]:
    """
    Decode a REST document and make sure it carries its id under id_field.
    """
    data = decode_fields(document.get("fields", {}))
    name = str(document.get("name", ""))
    if not data.get(id_field) and name:
        data[id_field] = name.rsplit("/", 1)[-1]
    return data


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class FirestoreCourseStore:
    """
    Course store backed by Firestore.

    Authentication is whatever the caller got from the identity provider:
    an ID token (sent as a bearer token) and/or a web API key.
    """

    def __init__(
        self,
        project_id: str,
        school_id: str,
        api_key: str = "",
        id_token: str = "",
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not project_id or not school_id:
            raise ValueError("project_id and school_id are required")
        self.project_id = project_id
        self.school_id = school_id
        self.api_key = api_key
        self.id_token = id_token
        self.timeout = timeout
        self.session = session or requests.Session()

    # -- paths ---------------------------------------------------------------

    @property
    def school_path(self) -> str:
        return f"projects/{self.project_id}/databases/(default)/documents/schools/{self.school_id}"

    def _url(self, suffix: str) -> str:
        return f"{BASE_URL}/{self.school_path}{suffix}"

    # -- transport -----------------------------------------------------------

    def _request(
        self,
        method: str,
        url: str,
        params: Optional[List[Tuple[str, str]]] = None,
        body: Optional[Dict[str, Any]] = None,
    ) -> requests.Response:
        query = list(params or [])
        if self.api_key:
            query.append(("key", self.api_key))
        headers = {}
        if self.id_token:
            headers["Authorization"] = f"Bearer {self.id_token}"

        try:
            return self.session.request(
                method, url, params=query, json=body, headers=headers, timeout=self.timeout
            )
        except requests.RequestException as exc:
            raise PersistenceError(f"{method} {url} failed: {exc}") from exc

    @staticmethod
    def _ensure_ok(resp: requests.Response) -> None:
        try:
            resp.raise_for_status()
        except requests.HTTPError as exc:
            raise PersistenceError(f"Database request failed: {exc}") from exc

    def _list_collection(self, collection: str) -> List[Dict[str, Any]]:
        documents: List[Dict[str, Any]] = []
        page_token = ""
        while True:
            params = [("pageSize", str(PAGE_SIZE))]
            if page_token:
                params.append(("pageToken", page_token))
            resp = self._request("GET", self._url(f"/{collection}"), params=params)
            self._ensure_ok(resp)
            data = resp.json()
            documents.extend(data.get("documents", []))
            page_token = data.get("nextPageToken", "")
            if not page_token:
                return documents

    # -- courses -------------------------------------------------------------

    def list_courses(self, teacher_id: Optional[str] = None) -> List[Dict[str, Any]]:
        if not teacher_id:
            return [decode_document(d, "courseId") for d in self._list_collection("courses")]

        query = {
            "structuredQuery": {
                "from": [{"collectionId": "courses"}],
                "where": {
                    "fieldFilter": {
                        "field": {"fieldPath": "teacherId"},
                        "op": "EQUAL",
                        "value": {"stringValue": teacher_id},
                    }
                },
            }
        }
        resp = self._request("POST", self._url(":runQuery"), body=query)
        self._ensure_ok(resp)
        # rows without "document" only carry a readTime
        return [decode_document(row["document"], "courseId") for row in resp.json() if "document" in row]

    def get_course(self, course_id: str) -> Dict[str, Any]:
        resp = self._request("GET", self._url(f"/courses/{course_id}"))
        if resp.status_code == 404:
            raise CourseNotFound(course_id)
        self._ensure_ok(resp)
        return decode_document(resp.json(), "courseId")

    def create_course(self, payload: Dict[str, Any]) -> str:
        course_id = str(uuid.uuid4())
        body = {"fields": encode_fields({**payload, "courseId": course_id})}
        resp = self._request("POST", self._url("/courses"), params=[("documentId", course_id)], body=body)
        self._ensure_ok(resp)
        logger.info("created course %s in school %s", course_id, self.school_id)
        return course_id

    def update_course(self, course_id: str, payload: Dict[str, Any]) -> None:
        params = [("updateMask.fieldPaths", key) for key in payload]
        params.append(("currentDocument.exists", "true"))
        body = {"fields": encode_fields(payload)}
        resp = self._request("PATCH", self._url(f"/courses/{course_id}"), params=params, body=body)
        if resp.status_code == 404:
            raise CourseNotFound(course_id)
        self._ensure_ok(resp)
        logger.info("updated course %s in school %s", course_id, self.school_id)

    def delete_course(self, course_id: str) -> None:
        params = [("currentDocument.exists", "true")]
        resp = self._request("DELETE", self._url(f"/courses/{course_id}"), params=params)
        if resp.status_code == 404:
            raise CourseNotFound(course_id)
        self._ensure_ok(resp)
        logger.info("deleted course %s in school %s", course_id, self.school_id)

    # -- classes -------------------------------------------------------------

    def list_classes(self) -> List[ClassInfo]:
        docs = [decode_document(d, "classId") for d in self._list_collection("classes")]
        return [ClassInfo.from_dict(d) for d in docs]
