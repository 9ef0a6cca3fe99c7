"""
Nest Trend Monitor - API Poller

Handles communication with the Google Smart Device Management (SDM) API:
OAuth token refresh, thermostat inventory, trait normalization and the
remote "mode OFF" safety command.
"""

import logging
import math
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

import requests

import config
from errors import ActuationFailure, MalformedReading, UpstreamFatal

logger = logging.getLogger(__name__)

TRAIT_SETPOINT = "sdm.devices.traits.ThermostatTemperatureSetpoint"
TRAIT_HVAC = "sdm.devices.traits.ThermostatHvac"
TRAIT_TEMPERATURE = "sdm.devices.traits.Temperature"
TRAIT_SETTINGS = "sdm.devices.traits.Settings"

COMMAND_SET_MODE = "sdm.devices.commands.ThermostatMode.SetMode"


class HvacState(Enum):
    """Current operating state reported by the ThermostatHvac trait."""
    OFF = "OFF"
    HEATING = "HEATING"
    COOLING = "COOLING"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def from_status(cls, status: Optional[str]) -> "HvacState":
        if not isinstance(status, str):
            return cls.UNKNOWN
        try:
            return cls(status.upper())
        except ValueError:
            return cls.UNKNOWN


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 / RFC 3339 timestamp, including a trailing "Z"."""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)


@dataclass
class Reading:
    """
    One normalized observation of a thermostat.

    Temperatures are already in the device's display unit; nothing
    downstream converts them again.
    """
    device_id: str
    ambient: float
    heat_setpoint: float
    cool_setpoint: float
    hvac_state: HvacState
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def validate(self) -> "Reading":
        if not self.device_id:
            raise MalformedReading("reading has an empty device id")
        if self.ambient is None or not math.isfinite(self.ambient):
            raise MalformedReading(f"{self.device_id}: ambient temperature {self.ambient!r} is not a number")
        if not isinstance(self.hvac_state, HvacState):
            raise MalformedReading(f"{self.device_id}: unrecognised hvac state {self.hvac_state!r}")
        return self

    def to_dict(self) -> dict:
        """Serialized sample layout used by the history store."""
        return {
            "ambient": self.ambient,
            "hvac_state": self.hvac_state.value,
            "heat": self.heat_setpoint,
            "cool": self.cool_setpoint,
            "ts": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, device_id: str, data: dict) -> "Reading":
        try:
            return cls(
                device_id=device_id,
                ambient=float(data["ambient"]),
                heat_setpoint=float(data.get("heat") or 0.0),
                cool_setpoint=float(data.get("cool") or 0.0),
                hvac_state=HvacState.from_status(data.get("hvac_state")),
                timestamp=parse_timestamp(data["ts"]),
            )
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise MalformedReading(f"{device_id}: unreadable stored sample {data!r}: {e}") from e


@dataclass
class DevicePoll:
    """Result of one inventory fetch."""
    timestamp: datetime
    readings: list[Reading] = field(default_factory=list)
    rejected: dict[str, str] = field(default_factory=dict)  # device_id -> reason


def _trait(device_id: str, traits: dict, name: str) -> dict:
    value = traits.get(name)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise MalformedReading(f"{device_id}: trait {name} is not an object")
    return value


def c_to_f(celsius: float) -> float:
    return (celsius * 9 / 5) + 32


def parse_device_traits(device: dict, timestamp: datetime = None) -> Reading:
    """
    Normalize one SDM device resource into a Reading.

    Temperatures arrive in Celsius and are converted when the thermostat's
    display unit is Fahrenheit.
    """
    if not isinstance(device, dict):
        raise MalformedReading("device resource is not an object")
    name = device.get("name") or ""
    if not isinstance(name, str):
        raise MalformedReading(f"device name {name!r} is not a string")
    device_id = name.rstrip("/").split("/")[-1]
    if not device_id:
        raise MalformedReading("device resource has no name")

    traits = device.get("traits") or {}
    if not isinstance(traits, dict):
        raise MalformedReading(f"{device_id}: traits are not an object")

    temperature = _trait(device_id, traits, TRAIT_TEMPERATURE)
    ambient = temperature.get("ambientTemperatureCelsius")
    if ambient is None:
        raise MalformedReading(f"{device_id}: no ambient temperature reported")

    setpoint = _trait(device_id, traits, TRAIT_SETPOINT)
    heat = setpoint.get("heatCelsius", 0.0)
    cool = setpoint.get("coolCelsius", 0.0)

    hvac_state = HvacState.from_status(_trait(device_id, traits, TRAIT_HVAC).get("status"))
    unit = _trait(device_id, traits, TRAIT_SETTINGS).get("displayTemperatureUnit")

    try:
        ambient, heat, cool = float(ambient), float(heat), float(cool)
    except (TypeError, ValueError) as e:
        raise MalformedReading(f"{device_id}: non-numeric temperature trait: {e}") from e

    if unit == "FAHRENHEIT":
        ambient, heat, cool = c_to_f(ambient), c_to_f(heat), c_to_f(cool)

    return Reading(
        device_id=device_id,
        ambient=ambient,
        heat_setpoint=heat,
        cool_setpoint=cool,
        hvac_state=hvac_state,
        timestamp=timestamp or datetime.now(timezone.utc),
    )


def _device_label(device) -> str:
    name = device.get("name") if isinstance(device, dict) else None
    if not isinstance(name, str):
        return "N/A"
    return name.rstrip("/").split("/")[-1] or "N/A"


class NestPoller:
    """Polls the SDM API and returns normalized thermostat readings."""

    def __init__(
        self,
        client_id: str = None,
        client_secret: str = None,
        refresh_token: str = None,
        project_id: str = None,
        session: requests.Session = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.client_id = client_id or config.NEST_CLIENT_ID
        self.client_secret = client_secret or config.NEST_CLIENT_SECRET
        self.refresh_token = refresh_token or config.NEST_REFRESH_TOKEN
        self.project_id = project_id or config.NEST_PROJECT_ID
        self.token_url = config.NEST_TOKEN_URL
        self.api_base = config.NEST_API_BASE.rstrip("/")
        self.timeout = config.HTTP_TIMEOUT_SECONDS
        self._session = session or requests.Session()
        self._sleep = sleep
        self._token: Optional[str] = None

    @property
    def is_configured(self) -> bool:
        return all((self.client_id, self.client_secret, self.refresh_token, self.project_id))

    def _refresh_access_token(self) -> str:
        response = self._session.post(
            self.token_url,
            data={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "refresh_token": self.refresh_token,
                "grant_type": "refresh_token",
            },
            timeout=self.timeout,
        )
        response.raise_for_status()
        token = response.json().get("access_token")
        if not token:
            raise ValueError("token response did not contain an access_token")
        return token

    def get_access_token(self) -> str:
        """
        Exchange the refresh token for a bearer token.

        Retries with a linear backoff; after the last attempt the failure
        is raised as UpstreamFatal.
        """
        if self._token:
            return self._token

        attempts = config.TOKEN_RETRY_ATTEMPTS
        last_error = None
        for attempt in range(1, attempts + 1):
            try:
                self._token = self._refresh_access_token()
                logger.debug(f"Obtained access token on attempt {attempt}")
                return self._token
            except (requests.RequestException, ValueError) as e:
                last_error = e
                logger.warning(f"Token refresh attempt {attempt}/{attempts} failed: {e}")
                if attempt < attempts:
                    self._sleep(attempt * config.TOKEN_RETRY_BACKOFF_SECONDS)

        raise UpstreamFatal(f"Token error after {attempts} attempts: {last_error}")

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.get_access_token()}",
            "Content-Type": "application/json",
        }

    def fetch_devices(self) -> list[dict]:
        """Fetch raw device resources for the project."""
        url = f"{self.api_base}/enterprises/{self.project_id}/devices"
        try:
            response = self._session.get(url, headers=self._headers(), timeout=self.timeout)
            response.raise_for_status()
            devices = response.json().get("devices") or []
        except (requests.RequestException, ValueError) as e:
            raise UpstreamFatal(f"Fetch error: {e}") from e

        if not devices:
            raise UpstreamFatal("No devices found")
        return devices

    def poll(self) -> DevicePoll:
        """
        Fetch all thermostats and normalize them into Readings.

        Devices that cannot be normalized are reported in `rejected`
        instead of failing the whole poll.
        """
        result = DevicePoll(timestamp=datetime.now(timezone.utc))
        for device in self.fetch_devices():
            try:
                reading = parse_device_traits(device, timestamp=result.timestamp)
            except (MalformedReading, AttributeError, TypeError) as e:
                device_id = _device_label(device)
                result.rejected[device_id] = str(e)
                logger.warning(f"Skipping device {device_id}: {e}")
                continue

            result.readings.append(reading)
            logger.debug(
                f"Device {reading.device_id}: {reading.ambient:.1f}° "
                f"(heat {reading.heat_setpoint:.1f}°, cool {reading.cool_setpoint:.1f}°, "
                f"{reading.hvac_state.value})"
            )

        logger.info(f"Polled {len(result.readings)} devices successfully")
        return result

    def disable_heating_cooling(self, device_id: str):
        """
        Set the thermostat mode to OFF.

        Raises ActuationFailure if the command is rejected or cannot be
        delivered. Never retried.
        """
        device_name = f"enterprises/{self.project_id}/devices/{device_id}"
        url = f"{self.api_base}/{device_name}:executeCommand"
        payload = {"command": COMMAND_SET_MODE, "params": {"mode": "OFF"}}

        try:
            response = self._session.post(url, json=payload, headers=self._headers(), timeout=self.timeout)
        except (requests.RequestException, UpstreamFatal) as e:
            raise ActuationFailure(device_id, f"command could not be delivered: {e}") from e

        if response.status_code != 200:
            raise ActuationFailure(
                device_id,
                f"turn-off request returned status {response.status_code}",
                status_code=response.status_code,
            )
        logger.info(f"Thermostat {device_id} set to OFF")
