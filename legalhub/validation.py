"""JSON Schema validation for requests entering the workflow engine.

Action requests, creation payloads and the official-use field set are checked
against JSON Schema definitions before anything is read from the store. The
jsonschema errors are translated into ``FieldError`` entries with stable codes
and field paths, so the view layer can highlight the offending inputs.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import jsonschema
from jsonschema import Draft7Validator

from legalhub.errors import FieldError, ValidationError
from legalhub.types import DocumentStatus, FieldErrorCode

ACTION_REQUEST_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "role": {"type": "string", "minLength": 1},
        "action": {"type": "string", "minLength": 1},
        "comment": {"type": ["string", "null"]},
        "approverName": {"type": ["string", "null"]},
        "approverEmail": {"type": ["string", "null"]},
        "approverId": {"type": ["string", "null"]},
        "assignedOfficer": {"type": ["string", "null"]},
        "specialApproverEmail": {"type": ["string", "null"]},
        "specialApproverName": {"type": ["string", "null"]},
        "specialApproverDepartment": {"type": ["string", "null"]},
        "courtOfficerId": {"type": ["string", "null"]},
        "documentId": {"type": ["string", "null"]},
        "documentStatus": {
            "type": ["string", "null"],
            "enum": [s.value for s in DocumentStatus] + [None],
        },
        "documentLabel": {"type": ["string", "null"]},
        "officialUse": {"type": ["object", "null"]},
        "content": {"type": ["object", "null"]},
        "docStatuses": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "documentId": {"type": "string", "minLength": 1},
                    "status": {"enum": [s.value for s in DocumentStatus]},
                    "comment": {"type": ["string", "null"]},
                },
                "required": ["documentId", "status"],
            },
        },
    },
    "required": ["role", "action"],
}

CREATE_SUBMISSION_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "formId": {"type": "integer", "minimum": 1},
        "formName": {"type": "string"},
        "initiatorId": {"type": "string", "minLength": 1},
        "companyCode": {"type": "string", "minLength": 1},
        "title": {"type": "string", "minLength": 1},
        "value": {"type": ["string", "number", "null"]},
        "lkrValue": {"type": ["string", "number", "null"]},
        "status": {"enum": ["DRAFT", "PENDING_APPROVAL"]},
        "submissionNo": {"type": ["string", "null"]},
        "legalOfficerId": {"type": ["string", "null"]},
        "bumId": {"type": ["string", "null"]},
        "fbpId": {"type": ["string", "null"]},
        "clusterHeadId": {"type": ["string", "null"]},
        "ceoId": {"type": ["string", "null"]},
        "content": {"type": "object"},
        "parties": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "type": {"type": "string", "minLength": 1},
                    "name": {"type": "string"},
                },
                "required": ["type"],
            },
        },
    },
    "required": ["initiatorId", "companyCode", "title"],
}


def official_use_schema(required_fields: Sequence[str]) -> Dict[str, Any]:
    """Schema requiring each official-use field to hold a non-blank value.

    Examples:
        >>> official_use_schema(["registeredBy"])["required"]
        ['registeredBy']
    """
    non_blank = {"not": {"enum": ["", None, False]}, "pattern": r"\S"}
    return {
        "type": "object",
        "properties": {name: non_blank for name in required_fields},
        "required": list(required_fields),
    }


@dataclass(frozen=True)
class ValidationResult:
    """Result of validating data against a JSON Schema.

    Attributes:
        is_valid: Whether the data passed all validation checks
        errors: List of field-level validation errors (empty if valid)
        missing_fields: Field paths that are required but absent or blank
        invalid_fields: Field paths that failed any other check
    """
    is_valid: bool
    errors: List[FieldError]
    missing_fields: Optional[List[str]] = None
    invalid_fields: Optional[List[str]] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for serialization."""
        return {
            "isValid": self.is_valid,
            "errors": [e.to_dict() for e in self.errors],
            "missingFields": list(self.missing_fields or []),
            "invalidFields": list(self.invalid_fields or []),
        }


class SchemaValidator:
    """JSON Schema validator producing ``FieldError`` results.

    Examples:
        >>> validator = SchemaValidator(official_use_schema(["registeredBy"]))
        >>> validator.validate({"registeredBy": ""}).missing_fields
        ['registeredBy']
    """

    def __init__(self, schema: Dict[str, Any]) -> None:
        """Initialize the validator.

        Raises:
            jsonschema.SchemaError: If the provided schema is invalid
        """
        self.schema = schema
        Draft7Validator.check_schema(schema)
        self.validator = Draft7Validator(schema)

    def validate(self, data: Any) -> ValidationResult:
        """Validate ``data`` and translate every failure into a FieldError."""
        errors = sorted(
            self.validator.iter_errors(data), key=lambda e: [str(p) for p in e.path]
        )
        field_errors: List[FieldError] = []
        missing: List[str] = []
        invalid: List[str] = []
        for error in errors:
            field_error = self._translate_error(error)
            if field_error.code == FieldErrorCode.REQUIRED:
                if field_error.path in missing:
                    continue
                missing.append(field_error.path)
            else:
                invalid.append(field_error.path)
            field_errors.append(field_error)
        return ValidationResult(
            is_valid=not field_errors,
            errors=field_errors,
            missing_fields=missing,
            invalid_fields=invalid,
        )

    def check(self, data: Any, message: str) -> None:
        """Validate and raise a ValidationError listing every failing field.

        Raises:
            ValidationError: If the data does not conform
        """
        result = self.validate(data)
        if not result.is_valid:
            names = [e.path for e in result.errors]
            raise ValidationError(f"{message}: {', '.join(names)}", fields=result.errors)

    def _translate_error(self, error: jsonschema.ValidationError) -> FieldError:
        """Map a jsonschema error onto a FieldError.

        Error mapping:
            - 'required', and blank values caught by 'not'/'pattern' -> REQUIRED
            - 'type' -> INVALID_TYPE
            - 'enum' -> INVALID_VALUE
            - 'minLength' on an empty string -> REQUIRED, otherwise TOO_SHORT
            - Other constraint errors -> INVALID_VALUE
        """
        path = ".".join(str(p) for p in error.path)

        if error.validator == "required":
            missing_prop = error.message.split("'")[1] if "'" in error.message else "field"
            full_path = f"{path}.{missing_prop}" if path else missing_prop
            return FieldError(
                path=full_path,
                code=FieldErrorCode.REQUIRED,
                message=f"Field '{full_path}' is required but was not provided",
                expected="required field",
            )

        if error.validator in ("not", "pattern") or (
            error.validator == "minLength" and error.instance == ""
        ):
            return FieldError(
                path=path,
                code=FieldErrorCode.REQUIRED,
                message=f"Field '{path}' is required but was empty",
                expected="non-empty value",
                received=error.instance,
            )

        if error.validator == "type":
            received_type = type(error.instance).__name__
            return FieldError(
                path=path,
                code=FieldErrorCode.INVALID_TYPE,
                message=(
                    f"Field '{path}' has invalid type. "
                    f"Expected {error.validator_value}, got {received_type}"
                ),
                expected=error.validator_value,
                received=received_type,
            )

        if error.validator == "enum":
            return FieldError(
                path=path,
                code=FieldErrorCode.INVALID_VALUE,
                message=f"Field '{path}' has invalid value. Must be one of: {error.validator_value}",
                expected=error.validator_value,
                received=error.instance,
            )

        if error.validator == "minLength":
            return FieldError(
                path=path,
                code=FieldErrorCode.TOO_SHORT,
                message=f"Field '{path}' is too short. Minimum length: {error.validator_value}",
                expected=f"minimum {error.validator_value} characters",
                received=error.instance,
            )

        return FieldError(
            path=path,
            code=FieldErrorCode.INVALID_VALUE,
            message=f"Field '{path}' validation failed: {error.message}",
            expected=error.validator_value,
            received=error.instance,
        )


ACTION_REQUEST_VALIDATOR = SchemaValidator(ACTION_REQUEST_SCHEMA)
CREATE_SUBMISSION_VALIDATOR = SchemaValidator(CREATE_SUBMISSION_SCHEMA)


def check_official_use(fields: Dict[str, Any], required_fields: Sequence[str]) -> None:
    """Reject completion unless every required official-use field is filled.

    Raises:
        ValidationError: Naming each missing or blank field
    """
    SchemaValidator(official_use_schema(required_fields)).check(
        fields or {}, "Official use fields are missing"
    )


__all__ = [
    "ACTION_REQUEST_SCHEMA",
    "CREATE_SUBMISSION_SCHEMA",
    "official_use_schema",
    "ValidationResult",
    "SchemaValidator",
    "ACTION_REQUEST_VALIDATOR",
    "CREATE_SUBMISSION_VALIDATOR",
    "check_official_use",
]
