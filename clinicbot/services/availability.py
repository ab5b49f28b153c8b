"""Doctor availability service interface and implementations."""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any, Protocol

import httpx

from clinicbot.errors import ToolExecutionError
from clinicbot.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class Appointment:
    """Appointment data model."""

    id: str
    doctor_id: str
    patient_id: str
    appointment_date: str  # ISO 8601
    status: str  # scheduled, confirmed, cancelled


def parse_appointment_date(value: str) -> datetime:
    """Parse an ISO 8601 date or date-time into a naive UTC datetime.

    Raises:
        ValueError: If the value is not ISO 8601
    """
    parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(UTC).replace(tzinfo=None)
    return parsed


class AvailabilityService(Protocol):
    """Interface for doctor availability lookups."""

    async def check_doctor_availability(self, doctor_id: str, appointment_date: str) -> dict[str, Any]:
        """Check whether a doctor is free at a given date and time.

        Args:
            doctor_id: The doctor's identifier
            appointment_date: Requested slot in ISO 8601 format

        Returns:
            Mapping with at least ``available`` and ``message`` keys
        """
        ...


class InMemoryAvailabilityService:
    """In-memory availability service

    Uses mock appointment data stored in memory.
    """

    def __init__(self, appointments: list[Appointment] | None = None):
        """Initialize with the given or mock appointment data."""
        self.appointments = appointments if appointments is not None else self._create_mock_appointments()

    async def check_doctor_availability(self, doctor_id: str, appointment_date: str) -> dict[str, Any]:
        """A slot is free when the doctor has no active appointment at that time."""
        requested = parse_appointment_date(appointment_date)

        conflicts = [
            apt
            for apt in self.appointments
            if apt.doctor_id == doctor_id
            and apt.status != "cancelled"
            and parse_appointment_date(apt.appointment_date) == requested
        ]

        available = not conflicts
        return {
            "available": available,
            "message": (
                "The requested appointment slot is available."
                if available
                else "The requested appointment slot is already booked."
            ),
        }

    def _create_mock_appointments(self) -> list[Appointment]:
        """Create mock appointment data for local development."""
        base_time = (datetime.now(UTC) + timedelta(days=1)).replace(
            hour=10, minute=0, second=0, microsecond=0, tzinfo=None
        )

        return [
            Appointment(
                id="APT_001",
                doctor_id="dr_lee",
                patient_id="PATIENT_001",
                appointment_date=base_time.isoformat(),
                status="scheduled",
            ),
            Appointment(
                id="APT_002",
                doctor_id="dr_lee",
                patient_id="PATIENT_002",
                appointment_date=(base_time + timedelta(hours=2)).isoformat(),
                status="cancelled",
            ),
            Appointment(
                id="APT_003",
                doctor_id="dr_patel",
                patient_id="PATIENT_003",
                appointment_date=(base_time + timedelta(days=1, hours=4)).isoformat(),
                status="confirmed",
            ),
        ]


class ConvexAvailabilityService:
    """Availability lookups against the clinic records backend.

    Calls the ``appointment:checkDoctorAvailability`` query through the
    Convex HTTP API. The request timeout is owned here, not by the caller.
    """

    QUERY_PATH = "appointment:checkDoctorAvailability"

    def __init__(self, base_url: str, timeout: float = 10.0, http_client: httpx.AsyncClient | None = None):
        """Initialize with the deployment URL of the records backend."""
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.http_client = http_client or httpx.AsyncClient(timeout=timeout)

    async def check_doctor_availability(self, doctor_id: str, appointment_date: str) -> dict[str, Any]:
        """Run the availability query and return its value."""
        payload = {
            "path": self.QUERY_PATH,
            "args": {"doctorId": doctor_id, "appointmentDate": appointment_date},
            "format": "json",
        }

        try:
            response = await self.http_client.post(f"{self.base_url}/api/query", json=payload, timeout=self.timeout)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Availability query failed for doctor {doctor_id}: {e}")
            raise ToolExecutionError("get_availability", "records backend unavailable") from e

        body = response.json()
        if body.get("status") != "success":
            logger.warning(f"Availability query returned an error: {body.get('errorMessage')}")
            raise ToolExecutionError("get_availability", body.get("errorMessage") or "query failed")

        return body["value"]
