"""
auth/device.py -- Device binding rules for the restricted (inspector) role.

An inspector account is bound to exactly one physical device at provisioning
time; an admin account must never carry a binding. This module:

  - checks that invariant (check_binding_invariant for writes,
    verify_account_binding for reads, which fails closed),
  - validates the device presented at sign-in (check_sign_in),
  - validates the X-Device-Info header on every authenticated request
    (check_request).

Bindings are never created here. Comparison is exact string equality on the
device identifier.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from auth.errors import DeviceInfoMalformed, DeviceInfoNotAllowed, DeviceInfoRequired, DeviceMismatch
from auth.models import Account, DeviceBinding, Platform, Role

DEVICE_HEADER = "x-device-info"


class DeviceDescriptor(BaseModel):
    """Client-declared device, as sent in the sign-in body or X-Device-Info header.

    Wire shape: {"deviceId": "DEV-123", "platform": "android"}. Extra keys
    (device name, OS version) are ignored.
    """

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True, extra="ignore")

    device_id: str = Field(alias="deviceId", min_length=1, max_length=255)
    platform: Optional[Platform] = None

    @field_validator("platform")
    @classmethod
    def mobile_platform_only(cls, value: Optional[Platform]) -> Optional[Platform]:
        if value is not None and not value.is_mobile:
            raise ValueError("platform must be 'android' or 'ios'")
        return value


def parse_device_header(raw: str) -> DeviceDescriptor:
    """Parse the JSON object carried by X-Device-Info. Any failure is DeviceInfoMalformed."""
    try:
        return DeviceDescriptor.model_validate_json(raw)
    except ValidationError as exc:
        raise DeviceInfoMalformed(detail=f"{exc.error_count()} validation error(s)") from exc


def check_binding_invariant(roles, device: DeviceBinding | None) -> None:
    """Raise ValueError unless inspectors carry a binding and admins do not."""
    roles = set(roles)
    if Role.INSPECTOR in roles and Role.ADMIN in roles:
        raise ValueError("An account cannot be both admin and inspector.")
    if Role.INSPECTOR in roles:
        if device is None:
            raise ValueError("Inspector accounts require a device binding.")
        if not device.platform.is_mobile:
            raise ValueError("Device platform must be 'android' or 'ios'.")
    elif device is not None:
        raise ValueError("Administrators must not have a device binding.")


def verify_account_binding(account: Account) -> None:
    """Re-check the stored invariant. A stored inconsistency is a rejection."""
    try:
        check_binding_invariant(account.roles, account.device)
    except ValueError as exc:
        raise DeviceMismatch("Account device binding is inconsistent with its role.") from exc


def check_sign_in(account: Account, supplied: DeviceDescriptor | None) -> None:
    """Validate the device presented in a sign-in request.

    Admins must not present a device. Inspectors must present the one bound
    to their account.
    """
    if not account.is_restricted:
        if supplied is not None:
            raise DeviceInfoNotAllowed()
        verify_account_binding(account)
        return

    if account.device is None:
        raise DeviceMismatch("No device is bound to this account.")
    if supplied is None:
        raise DeviceInfoRequired()
    verify_account_binding(account)
    if supplied.device_id != account.device.device_id:
        raise DeviceMismatch()


def check_request(account: Account, header_value: str | None) -> DeviceDescriptor | None:
    """Validate X-Device-Info on an authenticated request.

    Returns the parsed descriptor for inspectors, None for admins (who skip
    the header check).
    """
    verify_account_binding(account)
    if not account.is_restricted:
        return None
    if header_value is None or not header_value.strip():
        raise DeviceInfoRequired()
    descriptor = parse_device_header(header_value)
    if descriptor.device_id != account.device.device_id:
        raise DeviceMismatch()
    return descriptor
