"""Interfaces of the services the workflow engine depends on.

The engine never talks to a database, directory, file store or form admin
screen directly. It consumes the protocols below, and this module ships
in-memory implementations used by the tests and by single-process
deployments.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence
import copy
import threading

from typing_extensions import Protocol, runtime_checkable

from legalhub.documents import RequiredDocument, matches_party_types
from legalhub.errors import ConcurrentModificationError, NotFoundError
from legalhub.models import Submission
from legalhub.types import DocumentType, Role


@dataclass(frozen=True)
class DirectoryUser:
    """A person known to the user/department directory."""
    id: str
    name: str
    email: str
    role: Role
    department: str = ""
    is_active: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DirectoryUser":
        return cls(
            id=data["id"],
            name=data.get("name") or data.get("email", ""),
            email=data.get("email", ""),
            role=Role.parse(data["role"]),
            department=data.get("department") or "",
            is_active=bool(data.get("isActive", True)),
        )


@runtime_checkable
class UserDirectory(Protocol):
    """User/department directory lookups."""

    def lookup_users_by_role(self, role: Role) -> List[DirectoryUser]:
        ...


@runtime_checkable
class FormConfiguration(Protocol):
    """Admin-maintained document requirements per form."""

    def get_required_documents(
        self, form_id: int, party_types: Iterable[str]
    ) -> List[RequiredDocument]:
        ...


@runtime_checkable
class FileStorage(Protocol):
    """Blob storage for uploaded documents."""

    def upload_file(self, content: bytes, submission_id: str, filename: str) -> str:
        ...


@runtime_checkable
class SubmissionStore(Protocol):
    """Persistent submission records with optimistic concurrency.

    ``commit`` must write all given submissions or none, and only if each
    stored version still equals the version the caller read.
    """

    def get(self, submission_id: str) -> Submission:
        ...

    def list_all(self) -> List[Submission]:
        ...

    def count_created_between(self, start: datetime, end: datetime) -> int:
        ...

    def commit(self, submissions: Sequence[Submission]) -> List[Submission]:
        ...


class InMemoryDirectory:
    """Directory backed by a list of users."""

    def __init__(self, users: Optional[Iterable[DirectoryUser]] = None):
        self._users: List[DirectoryUser] = list(users or [])

    def add(self, user: DirectoryUser) -> None:
        self._users.append(user)

    def lookup_users_by_role(self, role: Role) -> List[DirectoryUser]:
        return [u for u in self._users if u.role == role]


def find_active_user(
    directory: UserDirectory,
    role: Role,
    user_id: Optional[str] = None,
    email: Optional[str] = None,
) -> Optional[DirectoryUser]:
    """Find an active directory user holding ``role`` by id or email."""
    for user in directory.lookup_users_by_role(role):
        if not user.is_active:
            continue
        if user_id and user.id == user_id:
            return user
        if email and user.email.lower() == email.strip().lower():
            return user
    return None


# Document requirements used when no admin configuration is supplied
DEFAULT_FORM_DOCUMENTS: Dict[int, List[RequiredDocument]] = {
    1: [
        RequiredDocument("Certificate of Incorporation", "Company"),
        RequiredDocument("Form 1 (Company Registration)", "Company"),
        RequiredDocument("Articles of Association", "Company"),
        RequiredDocument("Board Resolution", "Company"),
        RequiredDocument("VAT Registration Certificate", "Company"),
        RequiredDocument("Partnership Agreement", "Partnership"),
        RequiredDocument("Business Registration Certificate", "Partnership"),
        RequiredDocument("NIC copies of all Partners", "Partnership"),
        RequiredDocument("Business Registration Certificate", "Sole proprietorship"),
        RequiredDocument("NIC copy of Proprietor", "Sole proprietorship"),
        RequiredDocument("NIC copy", "Individual"),
        RequiredDocument("Proof of Address", "Individual"),
        RequiredDocument("Form 15 (latest form)", DocumentType.COMMON.value),
        RequiredDocument(
            "Form 13 (latest form if applicable)", DocumentType.COMMON.value, mandatory=False
        ),
        RequiredDocument(
            "Form 20 (latest form if applicable)", DocumentType.COMMON.value, mandatory=False
        ),
    ],
}

GENERIC_FORM_DOCUMENTS: List[RequiredDocument] = [
    RequiredDocument("Certificate of Incorporation", "Company"),
]


class StaticFormConfiguration:
    """Form configuration held in memory, keyed by form id."""

    def __init__(self, documents: Optional[Dict[int, List[RequiredDocument]]] = None):
        self._documents = dict(DEFAULT_FORM_DOCUMENTS if documents is None else documents)

    def set_documents(self, form_id: int, documents: List[RequiredDocument]) -> None:
        self._documents[form_id] = list(documents)

    def get_required_documents(
        self, form_id: int, party_types: Iterable[str]
    ) -> List[RequiredDocument]:
        configured = self._documents.get(form_id, GENERIC_FORM_DOCUMENTS)
        party_types = list(party_types)
        return [d for d in configured if matches_party_types(d.type, party_types)]


class InMemoryFileStorage:
    """File storage keeping uploads in a dict."""

    def __init__(self):
        self.files: Dict[str, bytes] = {}

    def upload_file(self, content: bytes, submission_id: str, filename: str) -> str:
        url = f"memory://{submission_id}/{filename}"
        self.files[url] = bytes(content)
        return url


class InMemorySubmissionStore:
    """Submission store keeping serialized records in a dict.

    Records are stored as their ``to_dict`` form so callers never share
    objects with the store. Commits are serialized by a lock and checked
    against the stored version.
    """

    def __init__(self):
        self._records: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def get(self, submission_id: str) -> Submission:
        with self._lock:
            record = self._records.get(submission_id)
        if record is None:
            raise NotFoundError(f"Submission {submission_id} not found", submission_id=submission_id)
        return Submission.from_dict(copy.deepcopy(record))

    def list_all(self) -> List[Submission]:
        with self._lock:
            records = list(self._records.values())
        return [Submission.from_dict(copy.deepcopy(r)) for r in records]

    def count_created_between(self, start: datetime, end: datetime) -> int:
        return sum(1 for s in self.list_all() if start <= s.created_at < end)

    def commit(self, submissions: Sequence[Submission]) -> List[Submission]:
        """Write all submissions atomically.

        Raises:
            ConcurrentModificationError: If any stored version differs from
                the one the caller read; nothing is written
        """
        with self._lock:
            for submission in submissions:
                stored = self._records.get(submission.id)
                stored_version = stored["version"] if stored is not None else 0
                if stored_version != submission.version:
                    raise ConcurrentModificationError(
                        f"Submission {submission.submission_no} was modified concurrently "
                        f"(read version {submission.version}, stored version {stored_version})",
                        submission_id=submission.id,
                        status=submission.status.value,
                    )
            committed = []
            for submission in submissions:
                record = copy.deepcopy(submission.to_dict())
                record["version"] = submission.version + 1
                self._records[submission.id] = record
                committed.append(Submission.from_dict(copy.deepcopy(record)))
        return committed


__all__ = [
    "DirectoryUser",
    "UserDirectory",
    "FormConfiguration",
    "FileStorage",
    "SubmissionStore",
    "InMemoryDirectory",
    "find_active_user",
    "DEFAULT_FORM_DOCUMENTS",
    "StaticFormConfiguration",
    "InMemoryFileStorage",
    "InMemorySubmissionStore",
]
