"""Document Registry for Legal Hub submissions.

Which documents a submission needs is never hardcoded here: the form
configuration supplies ``RequiredDocument`` entries and the registry keeps
those whose category is ``Common`` or matches one of the submission's party
types. Reviewer annotations are only accepted while the Legal Officer is
working the matter.

The functions below mutate the submission they are given; the engine calls
them on a private copy.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Union
import uuid

from legalhub.errors import (
    FieldError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
    missing_field_error,
)
from legalhub.models import DocumentRecord, Submission
from legalhub.state_machine import TERMINAL_STATUSES, is_document_reviewable
from legalhub.types import (
    REVIEW_STATUSES,
    DocumentStatus,
    DocumentType,
    FieldErrorCode,
)

PREPARED_TYPES = frozenset({DocumentType.LO_PREPARED_INITIAL, DocumentType.LO_PREPARED_FINAL})


@dataclass(frozen=True)
class RequiredDocument:
    """A document the form configuration asks for.

    Attributes:
        label: Display label, unique within a submission
        type: Party-type category or ``Common``
        mandatory: Whether a file must exist before a draft can be submitted
    """
    label: str
    type: str
    mandatory: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RequiredDocument":
        return cls(
            label=data["label"],
            type=data.get("type", DocumentType.COMMON.value),
            mandatory=bool(data.get("mandatory", True)),
        )


def _normalize_category(value: str) -> str:
    return value.replace("-", " ").strip().lower()


def matches_party_types(category: str, party_types: Iterable[str]) -> bool:
    """Whether a document category applies to a submission with ``party_types``.

    ``Common`` always applies. Party types are compared case-insensitively with
    hyphens read as spaces.
    """
    normalized = _normalize_category(category)
    if normalized == _normalize_category(DocumentType.COMMON.value):
        return True
    return normalized in {_normalize_category(t) for t in party_types if t}


def _new_document_id() -> str:
    return f"doc_{uuid.uuid4().hex[:16]}"


def build_documents(
    required: Iterable[RequiredDocument],
    party_types: Iterable[str],
) -> List[DocumentRecord]:
    """Build the initial registry for a new submission.

    Keeps configured documents whose category is ``Common`` or one of the
    party types (compared case-insensitively, hyphens as spaces), in
    configuration order, dropping repeated labels.

    Examples:
        >>> docs = build_documents(
        ...     [RequiredDocument("NIC copy", "Individual"), RequiredDocument("Form 15", "Common")],
        ...     ["Company"],
        ... )
        >>> [d.label for d in docs]
        ['Form 15']
    """
    party_types = list(party_types)
    seen = set()
    documents: List[DocumentRecord] = []
    for entry in required:
        if not matches_party_types(entry.type, party_types):
            continue
        if entry.label in seen:
            continue
        seen.add(entry.label)
        documents.append(
            DocumentRecord(
                id=_new_document_id(),
                label=entry.label,
                type=entry.type,
                mandatory=entry.mandatory,
            )
        )
    return documents


def get_document(submission: Submission, document_id: str) -> DocumentRecord:
    """Return a document by id.

    Raises:
        NotFoundError: If the submission has no such document
    """
    document = submission.document(document_id)
    if document is None:
        raise NotFoundError(
            f"Document {document_id} not found on submission {submission.submission_no}"
        )
    return document


def set_document_status(
    submission: Submission,
    document_id: str,
    status: Union[DocumentStatus, str],
    comment: Optional[str] = None,
) -> bool:
    """Write a reviewer status and comment onto a document.

    Setting the status and comment a document already has is a no-op.

    Returns:
        True if the document changed

    Raises:
        InvalidStateError: If the Legal Officer is not in a document review stage
        NotFoundError: If the document does not exist
        ValidationError: If ``status`` is not a reviewer status
    """
    if not is_document_reviewable(submission):
        raise InvalidStateError(
            f"Documents cannot be reviewed while the submission is {submission.status.value} "
            f"(stage {submission.lo_stage.value})"
        )
    status = DocumentStatus.parse(status)
    if status not in REVIEW_STATUSES:
        raise ValidationError(
            f"'{status.value}' is not a reviewer document status",
            fields=[
                FieldError(
                    path="documentStatus",
                    code=FieldErrorCode.INVALID_VALUE,
                    message=f"'{status.value}' is not a reviewer document status",
                    expected=sorted(s.value for s in REVIEW_STATUSES),
                    received=status.value,
                )
            ],
        )
    document = get_document(submission, document_id)
    comment = comment or None
    if document.status == status and (comment is None or document.comment == comment):
        return False
    document.status = status
    if comment is not None:
        document.comment = comment
    return True


def request_additional_document(
    submission: Submission,
    label: str,
    requested_by: str,
) -> DocumentRecord:
    """Ask the initiator for one more document.

    Raises:
        InvalidStateError: If the Legal Officer is not in a document review stage
        ValidationError: If the label is empty or already in the registry
    """
    if not is_document_reviewable(submission):
        raise InvalidStateError(
            f"Documents cannot be requested while the submission is {submission.status.value} "
            f"(stage {submission.lo_stage.value})"
        )
    label = (label or "").strip()
    if not label:
        raise missing_field_error(["documentLabel"], "A document label is required")
    if any(d.label == label for d in submission.documents):
        raise ValidationError(
            f"Document '{label}' is already in the registry",
            fields=[
                FieldError(
                    path="documentLabel",
                    code=FieldErrorCode.INVALID_VALUE,
                    message=f"Document '{label}' is already in the registry",
                    received=label,
                )
            ],
        )
    document = DocumentRecord(
        id=_new_document_id(),
        label=label,
        type=DocumentType.LO_REQUESTED.value,
        mandatory=True,
        requested_by=requested_by,
    )
    submission.documents.append(document)
    return document


def add_prepared_document(
    submission: Submission,
    label: str,
    doc_type: DocumentType,
    file_url: str,
    prepared_by: str,
    now: datetime,
) -> DocumentRecord:
    """Attach a draft or final document prepared by the Legal Officer.

    Raises:
        ValidationError: If the type is not a prepared type or the file is missing
    """
    received = doc_type.value if isinstance(doc_type, DocumentType) else doc_type
    if received not in {t.value for t in PREPARED_TYPES}:
        raise ValidationError(
            f"'{received}' is not a Legal Officer prepared document type",
            fields=[
                FieldError(
                    path="documentType",
                    code=FieldErrorCode.INVALID_VALUE,
                    message="Prepared documents must be LO_PREPARED_INITIAL or LO_PREPARED_FINAL",
                    received=received,
                )
            ],
        )
    doc_type = DocumentType(received)
    if not file_url:
        raise missing_field_error(["fileUrl"], "A prepared document needs a file")
    document = DocumentRecord(
        id=_new_document_id(),
        label=(label or doc_type.value).strip(),
        type=doc_type.value,
        status=DocumentStatus.UPLOADED,
        file_url=file_url,
        requested_by=prepared_by,
        uploaded_at=now,
    )
    submission.documents.append(document)
    return document


def attach_file(
    submission: Submission,
    document_id: str,
    file_url: str,
    now: datetime,
) -> DocumentRecord:
    """Record a finished upload against a document.

    Raises:
        InvalidStateError: If the submission is terminal
        NotFoundError: If the document does not exist
        ValidationError: If ``file_url`` is empty
    """
    if submission.status in TERMINAL_STATUSES:
        raise InvalidStateError(
            f"Files cannot be attached to a {submission.status.value} submission"
        )
    if not file_url:
        raise missing_field_error(["fileUrl"], "A file URL is required")
    document = get_document(submission, document_id)
    document.file_url = file_url
    document.status = DocumentStatus.UPLOADED
    document.uploaded_at = now
    return document


def missing_mandatory(submission: Submission) -> List[str]:
    """Labels of mandatory documents that have no file yet."""
    return [d.label for d in submission.documents if d.mandatory and not d.file_url]


def check_mandatory_uploaded(submission: Submission) -> None:
    """Raise a ValidationError naming every mandatory document without a file."""
    missing = missing_mandatory(submission)
    if missing:
        raise missing_field_error(
            missing, "Mandatory documents are missing", code=FieldErrorCode.FILE_REQUIRED
        )


__all__ = [
    "RequiredDocument",
    "matches_party_types",
    "build_documents",
    "get_document",
    "set_document_status",
    "request_additional_document",
    "add_prepared_document",
    "attach_file",
    "missing_mandatory",
    "check_mandatory_uploaded",
]
