"""Doctor availability tool."""

from typing import Any

from pydantic import BaseModel, Field, field_validator

from clinicbot.services.availability import AvailabilityService, parse_appointment_date
from clinicbot.tools.base import ToolDefinition

GET_AVAILABILITY_DESCRIPTION = """Check whether a doctor is free for an appointment at a given date and time.

Use this when the user wants to know if they can book a doctor on a specific date.

Required Information:
- doctor_id: The doctor's identifier (e.g., dr_lee)
- appointment_date: The requested slot in ISO 8601 format (e.g., 2025-03-01T10:00:00)

Resolve relative dates such as "tomorrow" against today's date before calling.
Ask the user for the doctor or the time if either is missing.

Returns {"available": true|false, "message": "..."}."""


class GetAvailabilityInput(BaseModel):
    """Input schema for the availability tool."""

    doctor_id: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="The doctor's identifier",
        examples=["dr_lee", "dr_patel"],
    )
    appointment_date: str = Field(
        ...,
        description="Requested appointment date and time in ISO 8601 format",
        examples=["2025-03-01T10:00:00", "2025-03-01T15:30:00+05:30"],
    )

    @field_validator("appointment_date")
    @classmethod
    def validate_appointment_date(cls, v: str) -> str:
        """Reject values that are not ISO 8601 dates."""
        try:
            parse_appointment_date(v)
        except ValueError as e:
            raise ValueError("Invalid date format. Please provide the date in ISO 8601 format") from e
        return v.strip()


def create_get_availability_tool(availability_service: AvailabilityService) -> ToolDefinition:
    async def get_availability_handler(params: GetAvailabilityInput) -> dict[str, Any]:
        return await availability_service.check_doctor_availability(params.doctor_id, params.appointment_date)

    return ToolDefinition(
        name="get_availability",
        description=GET_AVAILABILITY_DESCRIPTION,
        input_schema_class=GetAvailabilityInput,
        handler=get_availability_handler,
    )
