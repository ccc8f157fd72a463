# flask-app/schemas.py

"""Request bodies accepted by the HTTP layer, validated before they reach the store."""

from typing import List

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from errors import InvalidInput
from models import AccessDuration, Role


class RequestSchema(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")


class LoginRequest(RequestSchema):
    address: str = Field(min_length=1)
    role: Role


class CreateUserRequest(RequestSchema):
    address: str = Field(min_length=1)
    role: Role


class RecordUploadForm(RequestSchema):
    title: str = Field(min_length=1)
    recordType: str = Field(min_length=1)
    recordDate: str = Field(min_length=1)
    patientAddress: str = Field(min_length=1)


class GrantAccessRequest(RequestSchema):
    doctorAddress: str = Field(min_length=1)
    patientAddress: str = Field(min_length=1)
    recordIds: List[int] = Field(min_length=1)
    accessDuration: AccessDuration


def validate_payload(schema, data):
    """Parses `data` with `schema`; raises InvalidInput listing the failing fields."""
    if data is None:
        raise InvalidInput("Request body is required")
    try:
        return schema.model_validate(data)
    except ValidationError as e:
        problems = [
            {"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
            for err in e.errors()
        ]
        raise InvalidInput("Invalid request", errors=problems)
