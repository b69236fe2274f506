"""Asynchronous clients for the clinic services."""

import asyncio
import datetime as dt
from decimal import Decimal
from types import TracebackType
from typing import Any, Dict, Optional, Self, Type

import aiohttp
import orjson
from loguru import logger

from clinic.api.constants import DEFAULT_HEADERS, ENDPOINTS
from clinic.db.models.enums import PaymentMethod
from clinic.exceptions import (
    ERRORS_BY_KIND,
    ClinicError,
    ConflictError,
    NotFoundError,
    UnavailableError,
    ValidationError,
)
from clinic.settings import settings

from .models import (
    ChargeResponse,
    PatientSummary,
    SlotResponse,
    SlotSnapshot,
    SpecialtyInfo,
)

_ERRORS_BY_STATUS: Dict[int, Type[ClinicError]] = {
    400: ValidationError,
    404: NotFoundError,
    409: ConflictError,
}


def _dumps(obj: Any) -> str:
    return orjson.dumps(obj).decode()


def error_from_response(status: int, body: bytes) -> ClinicError:
    """
    Turn an error response into the matching exception.

    The ``error`` kind of the body wins; the status code is the fallback.
    A 5xx answer always means the collaborator is unavailable, so it is
    never confused with a missing resource.
    """
    if status >= 500:
        return UnavailableError(f"Remote service answered HTTP {status}")

    try:
        data = orjson.loads(body) if body else {}
    except orjson.JSONDecodeError:
        data = {}
    if not isinstance(data, dict):
        data = {}

    message = data.get("message") or f"HTTP {status}"
    error_class = ERRORS_BY_KIND.get(data.get("error", ""))
    if error_class is None:
        error_class = _ERRORS_BY_STATUS.get(status, ClinicError)
    return error_class(message)


class ClinicAPIClient:
    """Base asynchronous client for one remote service."""

    def __init__(self, base_url: str, timeout: Optional[float] = None) -> None:
        self._base_url = base_url.rstrip("/") + "/"
        self._timeout = aiohttp.ClientTimeout(
            total=timeout or settings.REMOTE_TIMEOUT_SECONDS,
        )
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> Self:
        await self._ensure_session()
        return self

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        await self.close()

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    def _headers(self) -> Dict[str, str]:
        return dict(DEFAULT_HEADERS)

    async def _ensure_session(self) -> None:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=self._timeout,
                headers=self._headers(),
                json_serialize=_dumps,
            )

    async def _request(
        self,
        method: str,
        endpoint: str,
        **kwargs: Any,
    ) -> Any:
        """Make HTTP request to the service.

        Args:
            method: HTTP method (GET, POST, etc.)
            endpoint: Endpoint relative to the base URL
            **kwargs: Additional request parameters

        Returns:
            Decoded JSON body, None for an empty one

        Raises:
            ClinicError: Subclass matching the error response
            UnavailableError: On 5xx, timeouts and connection failures
            RuntimeError: If session is not initialized
        """
        await self._ensure_session()
        url = self._base_url + endpoint

        if self._session is None:
            raise RuntimeError("Session not initialized")

        try:
            async with self._session.request(method, url, **kwargs) as resp:
                body = await resp.read()
                if resp.status >= 400:
                    raise error_from_response(resp.status, body)
                return orjson.loads(body) if body else None
        except asyncio.TimeoutError as err:
            logger.warning(f"{method} {url} timed out")
            raise UnavailableError(f"{url} timed out") from err
        except aiohttp.ClientError as err:
            logger.warning(f"{method} {url} failed: {err}")
            raise UnavailableError(f"{url} unreachable: {err}") from err


class ScheduleAPIClient(ClinicAPIClient):
    """Client of the schedule service."""

    def __init__(self, base_url: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(base_url or settings.SCHEDULE_SERVICE_URL or "", **kwargs)

    async def get_slot_snapshot(self, schedule_id: int, slot_id: int) -> SlotSnapshot:
        """Get a slot with its schedule and specialty.

        Args:
            schedule_id: Schedule ID
            slot_id: Slot ID

        Returns:
            Slot snapshot
        """
        logger.info(f"Fetching slot {slot_id} of schedule {schedule_id}")
        endpoint = ENDPOINTS["slot"].format(schedule_id=schedule_id, slot_id=slot_id)
        data = await self._request("GET", endpoint)
        return SlotSnapshot(**data)

    async def _transition(
        self,
        schedule_id: int,
        slot_id: int,
        action: str,
        payload: Optional[Dict[str, Any]] = None,
    ) -> SlotResponse:
        logger.info(f"Requesting {action} of slot {slot_id} of schedule {schedule_id}")
        endpoint = ENDPOINTS["slot_transition"].format(
            schedule_id=schedule_id,
            slot_id=slot_id,
            action=action,
        )
        data = await self._request("PUT", endpoint, json=payload)
        return SlotResponse(**data)

    async def occupy_slot(
        self,
        schedule_id: int,
        slot_id: int,
        appointment_id: int,
    ) -> SlotResponse:
        return await self._transition(
            schedule_id,
            slot_id,
            "occupy",
            {"appointment_id": appointment_id},
        )

    async def release_slot(
        self,
        schedule_id: int,
        slot_id: int,
        appointment_id: Optional[int] = None,
    ) -> SlotResponse:
        payload = None if appointment_id is None else {"appointment_id": appointment_id}
        return await self._transition(schedule_id, slot_id, "release", payload)

    async def block_slot(self, schedule_id: int, slot_id: int) -> SlotResponse:
        return await self._transition(schedule_id, slot_id, "block")

    async def unblock_slot(self, schedule_id: int, slot_id: int) -> SlotResponse:
        return await self._transition(schedule_id, slot_id, "unblock")

    async def find_available_slot(
        self,
        practitioner_id: int,
        date: dt.date,
        preferred_time: Optional[dt.time] = None,
    ) -> SlotResponse:
        """Find a free slot of a practitioner on a date.

        Args:
            practitioner_id: Practitioner ID
            date: Day to search
            preferred_time: Optional time the slot should start close to

        Returns:
            The chosen slot
        """
        params = {"practitioner_id": str(practitioner_id), "date": date.isoformat()}
        if preferred_time is not None:
            params["preferred_time"] = preferred_time.isoformat()
        data = await self._request("GET", ENDPOINTS["available_slot"], params=params)
        return SlotResponse(**data)


class PaymentAPIClient(ClinicAPIClient):
    """Client of the payment service."""

    def __init__(self, base_url: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(base_url or settings.PAYMENT_SERVICE_URL or "", **kwargs)

    async def register_charge(
        self,
        appointment_id: int,
        patient_dni: str,
        amount: Decimal,
        method: PaymentMethod,
    ) -> ChargeResponse:
        logger.info(f"Registering charge of {amount} for appointment {appointment_id}")
        payload = {
            "appointment_id": appointment_id,
            "patient_dni": patient_dni,
            "amount": str(amount),
            "method": method.value,
        }
        data = await self._request("POST", ENDPOINTS["charges"], json=payload)
        return ChargeResponse(**data)

    async def capture_charge(self, appointment_id: int) -> ChargeResponse:
        logger.info(f"Capturing charge of appointment {appointment_id}")
        endpoint = ENDPOINTS["charge_capture"].format(appointment_id=appointment_id)
        data = await self._request("PATCH", endpoint)
        return ChargeResponse(**data)


class PatientAPIClient(ClinicAPIClient):
    """Client of the patient directory."""

    def __init__(self, base_url: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(base_url or settings.PATIENT_SERVICE_URL, **kwargs)

    async def get_patient_by_dni(self, dni: str) -> Optional[PatientSummary]:
        """Get patient by national identity number.

        Args:
            dni: Patient DNI

        Returns:
            Patient if found, None otherwise
        """
        endpoint = ENDPOINTS["patient_by_dni"].format(dni=dni)
        try:
            data = await self._request("GET", endpoint)
        except NotFoundError:
            logger.warning(f"Patient {dni} not found")
            return None
        return PatientSummary(**data)


class SpecialtyAPIClient(ClinicAPIClient):
    """Client of the specialty catalogue."""

    def __init__(self, base_url: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(base_url or settings.SPECIALTY_SERVICE_URL, **kwargs)

    async def get_specialty(self, specialty_id: int) -> SpecialtyInfo:
        """Get specialty with its fixed cost.

        Args:
            specialty_id: Specialty ID

        Returns:
            Specialty info
        """
        endpoint = ENDPOINTS["specialty"].format(specialty_id=specialty_id)
        data = await self._request("GET", endpoint)
        logger.debug(f"Specialty {specialty_id}: {data}")
        return SpecialtyInfo(**data)
